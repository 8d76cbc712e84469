# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Per-node synchronization of NetworkInterface objects.

For one (PrivateNetwork, Node) pair, makes sure the node's cloud server is
attached to the private network and that exactly one NetworkInterface
records that attachment with an allocated address.
"""

import logging
from typing import Dict

from kubernetes import client

from constants import FINALIZER, IP_FINALIZER, NODE_LABEL, PRIVATE_NETWORK_LABEL
from ipam import Prefix
from models import PrivateNetwork, PrivateNic, build_network_interface

logger = logging.getLogger(__name__)


class DuplicateInterfaceError(Exception):
    """More than one NetworkInterface exists for a (PrivateNetwork, Node) pair"""


class InterfaceSynchronizer:
    """Ensures one NetworkInterface, address and private NIC per node"""

    def __init__(self, store, ipam, cloud, resolver):
        self.store = store
        self.ipam = ipam
        self.cloud = cloud
        self.resolver = resolver

    def sync(self, pn: PrivateNetwork, node: client.V1Node,
             prefix: Prefix) -> Dict:
        """
        Converge the NetworkInterface of `node` on `pn`.

        Returns the existing or newly created NetworkInterface object.
        Raises DuplicateInterfaceError without creating anything when the
        pair already has more than one NetworkInterface.
        """
        node_name = node.metadata.name
        interfaces = self.store.list_network_interfaces({
            PRIVATE_NETWORK_LABEL: pn.name,
            NODE_LABEL: node_name,
        })
        if len(interfaces) > 1:
            raise DuplicateInterfaceError(
                f"node {node_name} have {len(interfaces)} networkInterfaces instead of at most one"
            )

        server = self.resolver.resolve(node)
        private_nic = self._ensure_private_nic(pn, server)

        if interfaces:
            nic = interfaces[0]
            mac = (nic.get('status') or {}).get('macAddress')
            if mac != private_nic.mac_address:
                logger.info(
                    "[SYNC] Repairing status of networkInterface %s (macAddress=%r)",
                    nic['metadata']['name'], mac)
                nic = self._write_status(nic, private_nic)
            return nic

        ip = self.ipam.acquire_ip(prefix.cidr)
        address = f"{ip}/{prefix.prefix_length}"
        body = build_network_interface(pn, node_name, address,
                                       private_nic.id,
                                       [FINALIZER, IP_FINALIZER])
        try:
            nic = self.store.create_network_interface(body)
        except Exception:
            # Nothing references the address yet, hand it back
            logger.warning(
                "[SYNC] Creating networkInterface for node %s failed, releasing %s",
                node_name, ip)
            try:
                self.ipam.release_ip(prefix.cidr, ip)
            except Exception as e:
                logger.error("[SYNC] Unable to release %s from %s: %s", ip,
                             prefix.cidr, e)
            raise

        nic = self._write_status(nic, private_nic)
        logger.info(
            f"[SYNC] Successfully created networkInterface {nic['metadata']['name']} "
            f"on node {node_name} (address={address}, mac={private_nic.mac_address})"
        )
        return nic

    def _write_status(self, nic: Dict, private_nic: PrivateNic) -> Dict:
        nic.setdefault('status', {})['macAddress'] = private_nic.mac_address
        return self.store.update_network_interface_status(nic)

    def _ensure_private_nic(self, pn: PrivateNetwork, server) -> PrivateNic:
        """Reuse the server's private NIC on pn, creating one if needed."""
        for existing in self.cloud.list_server_private_nics(server):
            if existing.private_network_id == pn.network_id:
                return existing
        logger.info("[SYNC] Attaching server %s (%s) to private network %s",
                    server.id, server.name, pn.network_id)
        return self.cloud.create_private_nic(server.zone, server,
                                             pn.network_id)
