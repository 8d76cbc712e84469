# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Finalizer-gated teardown of a PrivateNetwork and its NetworkInterfaces.

Each NetworkInterface carries two finalizers with separate owners:
- FINALIZER is cleared by the node-side interface agent once the host no
  longer uses the interface
- IP_FINALIZER is cleared here, after the address is released and the
  cloud private NIC is detached

Cleanup of a child only starts once it is marked for deletion AND its
FINALIZER is gone, so it runs after the host is done with the interface
and at most once per child. The PrivateNetwork keeps its own FINALIZER
until no child is left.
"""

import logging

from cloud import CloudNotFoundError
from constants import FINALIZER, IP_FINALIZER, PRIVATE_NETWORK_LABEL
from ipam import NotFoundError
from models import (
    NetworkInterface,
    PrivateNetwork,
    Result,
    has_finalizer,
    is_owned_by,
    remove_finalizer,
)

logger = logging.getLogger(__name__)


class DeletionSequencer:
    """Unwinds a PrivateNetwork marked for deletion"""

    def __init__(self, store, ipam, cloud, resolver, requeue_after: float):
        self.store = store
        self.ipam = ipam
        self.cloud = cloud
        self.resolver = resolver
        self.requeue_after = requeue_after

    def run(self, pn: PrivateNetwork) -> Result:
        children = self.store.list_network_interfaces(
            {PRIVATE_NETWORK_LABEL: pn.name})

        for obj in children:
            nic = NetworkInterface.from_object(obj)
            if not is_owned_by(obj, pn):
                logger.warning(
                    "[DELETE] networkInterface %s is labeled for %s but not owned by it",
                    nic.name, pn.name)
            if not nic.is_being_deleted:
                logger.info("[DELETE] Deleting networkInterface %s",
                            nic.name)
                self.store.delete_network_interface(nic.name)
            elif not has_finalizer(obj, FINALIZER) and has_finalizer(
                    obj, IP_FINALIZER):
                self._cleanup_interface(pn, nic)

        if children:
            logger.info(
                "[DELETE] privateNetwork %s still has %d networkInterfaces, requeueing",
                pn.name, len(children))
            return Result(requeue_after=self.requeue_after)

        try:
            self.ipam.delete_prefix(pn.cidr)
        except NotFoundError:
            logger.debug("[DELETE] Prefix %s already deleted", pn.cidr)

        remove_finalizer(pn.obj, FINALIZER)
        self.store.update_private_network(pn.obj)
        logger.info("[DELETE] privateNetwork %s cleaned up", pn.name)
        return Result()

    def _cleanup_interface(self, pn: PrivateNetwork,
                           nic: NetworkInterface) -> None:
        """Release the address, detach the private NIC, drop IP_FINALIZER."""
        try:
            self.ipam.release_ip(pn.cidr, nic.ip)
        except NotFoundError:
            logger.debug("[DELETE] ip %s already released from %s", nic.ip,
                         pn.cidr)

        node = self.store.get_node(nic.node_name)
        if node is not None:
            server = self.resolver.resolve(node)
            private_nic = server.find_private_nic(pn.network_id)
            if private_nic is not None:
                try:
                    self.cloud.delete_private_nic(server.zone, server,
                                                  private_nic)
                except CloudNotFoundError:
                    logger.debug("[DELETE] private nic %s already gone",
                                 private_nic.id)
        else:
            logger.info(
                "[DELETE] node %s is gone, skipping private nic detach for %s",
                nic.node_name, nic.name)

        remove_finalizer(nic.obj, IP_FINALIZER)
        self.store.update_network_interface(nic.obj)
        logger.info("[DELETE] Released networkInterface %s (address %s)",
                    nic.name, nic.address)
