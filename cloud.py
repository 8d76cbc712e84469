# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Cloud network client for the PrivateNetwork controller.

Adapts the Scaleway SDK (Instance and VPC APIs) to the small set of calls
the controller needs and converts SDK objects into models.CloudServer and
models.PrivateNic. SDK errors are wrapped in CloudError, with HTTP 404
mapped to CloudNotFoundError.
"""

import logging
from typing import List, Optional

from scaleway import Client
from scaleway.instance.v1 import InstanceV1API
from scaleway.vpc.v1 import VpcV1API
from scaleway_core.api import ScalewayException

from models import CloudServer, PrivateNic

logger = logging.getLogger(__name__)


class CloudError(Exception):
    """Cloud provider call failed"""


class CloudNotFoundError(CloudError):
    """Cloud resource does not exist"""


def _wrap(e: ScalewayException, what: str) -> CloudError:
    if getattr(e, 'status_code', None) == 404:
        return CloudNotFoundError(f"{what}: not found")
    return CloudError(f"{what}: {e}")


def _zone(zone: str) -> Optional[str]:
    # Empty zone means "client default zone"
    return zone or None


def _to_private_nic(nic) -> PrivateNic:
    return PrivateNic(id=nic.id,
                      private_network_id=nic.private_network_id,
                      mac_address=nic.mac_address,
                      server_id=getattr(nic, 'server_id', '') or '',
                      state=str(getattr(nic, 'state', '') or ''))


def _to_server(server) -> CloudServer:
    return CloudServer(
        id=server.id,
        name=server.name,
        zone=str(server.zone),
        private_nics=[_to_private_nic(n) for n in server.private_nics or []])


class ScalewayCloud:
    """Cloud Network Client backed by the Scaleway SDK"""

    def __init__(self, scw_client: Client):
        self.instance_api = InstanceV1API(scw_client)
        self.vpc_api = VpcV1API(scw_client)

    def get_private_network(self, zone: str, network_id: str):
        try:
            return self.vpc_api.get_private_network(
                private_network_id=network_id, zone=_zone(zone))
        except ScalewayException as e:
            raise _wrap(e, f"get private network {network_id}") from e

    def get_server(self, zone: str, server_id: str) -> CloudServer:
        try:
            resp = self.instance_api.get_server(server_id=server_id,
                                                zone=_zone(zone))
        except ScalewayException as e:
            raise _wrap(e, f"get server {server_id}") from e
        return _to_server(resp.server)

    def list_servers(self, zone: str, name: str) -> List[CloudServer]:
        """List servers whose name is exactly `name`.

        The API name filter is a substring match, so results are narrowed
        down to exact matches here.
        """
        try:
            servers = self.instance_api.list_servers_all(zone=_zone(zone),
                                                         name=name)
        except ScalewayException as e:
            raise _wrap(e, f"list servers named {name}") from e
        return [_to_server(s) for s in servers if s.name == name]

    def list_server_private_nics(self,
                                 server: CloudServer) -> List[PrivateNic]:
        try:
            resp = self.instance_api.list_private_ni_cs(server_id=server.id,
                                                        zone=_zone(
                                                            server.zone))
        except ScalewayException as e:
            raise _wrap(e, f"list private nics of server {server.id}") from e
        return [_to_private_nic(n) for n in resp.private_nics or []]

    def create_private_nic(self, zone: str, server: CloudServer,
                           network_id: str) -> PrivateNic:
        try:
            resp = self.instance_api.create_private_nic(
                server_id=server.id,
                private_network_id=network_id,
                zone=_zone(zone))
        except ScalewayException as e:
            raise _wrap(
                e,
                f"create private nic on server {server.id} for network {network_id}"
            ) from e
        logger.info("[CLOUD] Created private nic %s on server %s",
                    resp.private_nic.id, server.id)
        return _to_private_nic(resp.private_nic)

    def delete_private_nic(self, zone: str, server: CloudServer,
                           nic: PrivateNic) -> None:
        """Detach a private NIC. An already-detached NIC is success."""
        try:
            self.instance_api.delete_private_nic(server_id=server.id,
                                                 private_nic_id=nic.id,
                                                 zone=_zone(zone))
        except ScalewayException as e:
            err = _wrap(e, f"delete private nic {nic.id}")
            if isinstance(err, CloudNotFoundError):
                logger.debug("[CLOUD] Private nic %s already deleted", nic.id)
                return
            raise err from e
        logger.info("[CLOUD] Deleted private nic %s from server %s", nic.id,
                    server.id)
