# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
PrivateNetwork Controller - runtime wiring

Connects informers, the work queue and the reconciler:
- PrivateNetwork events queue the PrivateNetwork itself
- NetworkInterface events queue the owning PrivateNetwork
- Node add/delete events queue every PrivateNetwork (NodeChangeWatcher)

Worker threads pull PrivateNetwork names from the queue and run one
reconciliation pass each. The queue never hands the same name to two
workers at once; different names are reconciled in parallel.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from kubernetes import client

from constants import (
    NETWORK_INTERFACE_PLURAL,
    PRIVATE_NETWORK_LABEL,
    PRIVATE_NETWORK_PLURAL,
    VPC_GROUP,
    VPC_VERSION,
    ControllerConfig,
)
from informers import ResourceInformer
from models import controller_owner_name
from node_monitor import NodeChangeWatcher
from reconciler import PrivateNetworkReconciler
from work_queue import RateLimitingQueue

logger = logging.getLogger(__name__)


class PrivateNetworkController:
    """Runs reconciliation workers fed by PrivateNetwork, NetworkInterface and Node events"""

    def __init__(self,
                 reconciler: PrivateNetworkReconciler,
                 store,
                 custom_api: client.CustomObjectsApi = None,
                 v1_api: client.CoreV1Api = None,
                 config: ControllerConfig = None,
                 queue: RateLimitingQueue = None):
        self.reconciler = reconciler
        self.store = store
        self.config = config or ControllerConfig()
        self.queue = queue or RateLimitingQueue()

        self.node_watcher = NodeChangeWatcher(store, self.queue)
        self.workers: List[threading.Thread] = []
        self.informers: List[ResourceInformer] = []
        self._running = False

        if custom_api is not None:
            self.informers.append(
                ResourceInformer(
                    name="PrivateNetwork",
                    list_func=custom_api.list_cluster_custom_object,
                    list_kwargs={
                        'group': VPC_GROUP,
                        'version': VPC_VERSION,
                        'plural': PRIVATE_NETWORK_PLURAL,
                    },
                    handlers={
                        'add': self.on_private_network_event,
                        'update': self.on_private_network_event,
                        'delete': self.on_private_network_event,
                    }))
            self.informers.append(
                ResourceInformer(
                    name="NetworkInterface",
                    list_func=custom_api.list_cluster_custom_object,
                    list_kwargs={
                        'group': VPC_GROUP,
                        'version': VPC_VERSION,
                        'plural': NETWORK_INTERFACE_PLURAL,
                    },
                    handlers={
                        'add': self.on_network_interface_event,
                        'update': self.on_network_interface_event,
                        'delete': self.on_network_interface_event,
                    }))
        if v1_api is not None:
            self.informers.append(
                ResourceInformer(name="Node",
                                 list_func=v1_api.list_node,
                                 handlers=self.node_watcher.handlers))

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_private_network_event(self, obj: Dict,
                                 is_initial_sync: bool = False):
        name = obj.get('metadata', {}).get('name')
        if name:
            self.queue.add(name)

    def on_network_interface_event(self, obj: Dict,
                                   is_initial_sync: bool = False):
        owner = controller_owner_name(obj)
        if not owner:
            owner = obj.get('metadata', {}).get('labels',
                                                {}).get(PRIVATE_NETWORK_LABEL)
        if owner:
            self.queue.add(owner)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def process_next_item(self, timeout: Optional[float] = None) -> bool:
        """Reconcile one queued name. Returns False when nothing was processed."""
        name = self.queue.get(timeout=timeout)
        if name is None:
            return False
        try:
            result = self.reconciler.reconcile(name)
        except Exception as e:
            logger.error(
                f"[RECONCILE] Reconciling privateNetwork {name} failed "
                f"(attempt {self.queue.num_requeues(name) + 1}): {e}",
                exc_info=True)
            self.queue.add_rate_limited(name)
        else:
            self.queue.forget(name)
            if result.requeue:
                logger.debug(
                    f"[RECONCILE] Requeueing privateNetwork {name} in {result.requeue_after}s"
                )
                self.queue.add_after(name, result.requeue_after)
        finally:
            self.queue.done(name)
        return True

    def _worker_loop(self):
        while self._running:
            self.process_next_item(timeout=1.0)

    def start(self):
        if self._running:
            logger.warning("Controller already running")
            return
        self._running = True

        for informer in self.informers:
            informer.start()

        for i in range(self.config.workers):
            worker = threading.Thread(target=self._worker_loop,
                                      name=f"reconcile-worker-{i}",
                                      daemon=True)
            worker.start()
            self.workers.append(worker)
        logger.info(
            f"[INIT] Controller started with {self.config.workers} workers")

    def stop(self):
        logger.info("Stopping controller...")
        self._running = False
        for informer in self.informers:
            informer.stop()
        self.queue.shut_down()
        for worker in self.workers:
            worker.join(timeout=10)
        self.workers = []
        logger.info("Controller stopped")

    def run(self):
        """Start and block until interrupted"""
        self.start()
        try:
            while self._running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Received interrupt")
        finally:
            self.stop()
