# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Resolve cluster nodes to the cloud servers they run on."""

import logging
import re
from typing import Optional, Tuple

from kubernetes import client

from cloud import CloudError
from models import CloudServer

logger = logging.getLogger(__name__)


class ServerResolutionError(Exception):
    """A node could not be mapped to exactly one cloud server"""


def parse_provider_id(provider_id: Optional[str],
                      pattern: re.Pattern) -> Tuple[str, str]:
    """
    Extract (server_id, zone) from a node provider ID.

    Returns empty strings for whatever could not be parsed, e.g.
    "scaleway://instance/fr-par-1/<uuid>" -> ("<uuid>", "fr-par-1"),
    "scaleway://<uuid>" -> ("<uuid>", "").
    """
    if not provider_id:
        return '', ''
    match = pattern.search(provider_id)
    if not match:
        return '', ''
    groups = match.groupdict()
    server_id = groups.get('uuid') or groups.get('bare_uuid') or ''
    zone = groups.get('zone') or ''
    return server_id, zone


class NodeResolver:
    """Maps a Node to its CloudServer by provider ID, falling back to name lookup"""

    def __init__(self, cloud, provider_id_regexp: re.Pattern):
        self.cloud = cloud
        self.provider_id_regexp = provider_id_regexp

    def resolve(self, node: client.V1Node) -> CloudServer:
        node_name = node.metadata.name
        provider_id = node.spec.provider_id if node.spec else None
        server_id, zone = parse_provider_id(provider_id,
                                            self.provider_id_regexp)

        if server_id:
            try:
                return self.cloud.get_server(zone, server_id)
            except CloudError as e:
                logger.warning(
                    "[RESOLVE] Lookup of server %s for node %s failed (%s), falling back to name",
                    server_id, node_name, e)
        else:
            logger.debug(
                "[RESOLVE] No usable provider ID on node %s (%r), looking up by name",
                node_name, provider_id)

        servers = self.cloud.list_servers(zone, node_name)
        if len(servers) != 1:
            raise ServerResolutionError(
                f"found {len(servers)} servers with name {node_name} instead of 1"
            )
        return servers[0]
