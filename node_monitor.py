# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Node membership watcher for the PrivateNetwork controller.

Every PrivateNetwork wants one NetworkInterface per node, so any node
creation or deletion re-queues every PrivateNetwork. Node updates are
ignored: they do not change membership.
"""

import logging

from kubernetes import client

logger = logging.getLogger(__name__)


class NodeChangeWatcher:
    """Fans node add/delete events out to every PrivateNetwork"""

    def __init__(self, store, queue):
        self.store = store
        self.queue = queue

    @property
    def handlers(self):
        return {
            'add': self.on_node_add,
            'delete': self.on_node_delete,
        }

    def on_node_add(self, node: client.V1Node, is_initial_sync: bool = False):
        # The PrivateNetwork informer's own initial sync already queues everything
        if is_initial_sync:
            return
        logger.info("[NODE-EVENT] Node %s added", node.metadata.name)
        self.enqueue_all()

    def on_node_delete(self, node: client.V1Node):
        logger.info("[NODE-EVENT] Node %s deleted", node.metadata.name)
        self.enqueue_all()

    def enqueue_all(self) -> int:
        """Queue every PrivateNetwork. Returns how many were queued."""
        try:
            networks = self.store.list_private_networks()
        except Exception as e:
            logger.error(
                "[NODE-EVENT] Unable to sync privatenetworks on node change: %s",
                e)
            return 0
        for obj in networks:
            self.queue.add(obj['metadata']['name'])
        logger.debug("[NODE-EVENT] Queued %d privatenetworks", len(networks))
        return len(networks)
