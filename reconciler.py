# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
PrivateNetwork reconciliation.

One call to PrivateNetworkReconciler.reconcile() is one reconciliation pass
for one PrivateNetwork name. A pass either:
- returns Result() when the object has converged (or is gone),
- returns Result(requeue_after=...) when work is still in progress or an
  expected "not ready yet" condition was hit,
- raises, in which case the work queue retries with exponential backoff.

State machine:

    fetch --(missing)--> done
      |
    ensure prefix
      |
      +-- not deleting --> add FINALIZER --> cloud network visible? --no--> requeue
      |                                            |
      |                                         sync every node --> done
      |
      +-- deleting --> FINALIZER present? --no--> done
                               |
                          DeletionSequencer --> done | requeue
"""

import logging

from cloud import CloudError
from constants import FINALIZER, ControllerConfig
from deletion import DeletionSequencer
from interface_sync import DuplicateInterfaceError, InterfaceSynchronizer
from models import PrivateNetwork, Result, add_finalizer, has_finalizer
from node_resolver import NodeResolver, ServerResolutionError

logger = logging.getLogger(__name__)


class PrivateNetworkReconciler:
    """Drives one PrivateNetwork towards one NetworkInterface per node, or away"""

    def __init__(self, store, ipam, cloud, config: ControllerConfig = None):
        self.store = store
        self.ipam = ipam
        self.cloud = cloud
        self.config = config or ControllerConfig()

        self.resolver = NodeResolver(cloud, self.config.provider_id_regexp)
        self.synchronizer = InterfaceSynchronizer(store, ipam, cloud,
                                                  self.resolver)
        self.sequencer = DeletionSequencer(store, ipam, cloud, self.resolver,
                                           self.config.requeue_after)

    def reconcile(self, name: str) -> Result:
        obj = self.store.get_private_network(name)
        if obj is None:
            logger.debug("[RECONCILE] privateNetwork %s not found", name)
            return Result()
        pn = PrivateNetwork.from_object(obj)

        try:
            prefix = self.ipam.new_prefix(pn.cidr)
        except Exception:
            logger.error("[RECONCILE] Error creating prefix %s for %s",
                         pn.cidr, name)
            raise

        if pn.is_being_deleted:
            if not has_finalizer(pn.obj, FINALIZER):
                return Result()
            return self.sequencer.run(pn)

        if add_finalizer(pn.obj, FINALIZER):
            pn.obj = self.store.update_private_network(pn.obj)
            logger.info("[RECONCILE] Added finalizer to privateNetwork %s",
                        name)

        try:
            self.cloud.get_private_network(pn.zone, pn.network_id)
        except CloudError as e:
            logger.error(
                "[RECONCILE] Error getting private network %s (zone %s) from api: %s",
                pn.network_id, pn.zone, e)
            return Result(requeue_after=self.config.requeue_after)

        for node in self.store.list_nodes():
            node_name = node.metadata.name
            try:
                self.synchronizer.sync(pn, node, prefix)
            except DuplicateInterfaceError as e:
                logger.error(f"[RECONCILE] Could not handle node: {e}")
                return Result(requeue_after=self.config.requeue_after)
            except ServerResolutionError as e:
                logger.error(
                    f"[RECONCILE] Could not get server from node {node_name}: {e}"
                )
                return Result(requeue_after=self.config.requeue_after)

        # Interfaces of nodes that left the cluster are not removed here
        return Result()
