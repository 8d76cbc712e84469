# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Informers for the PrivateNetwork controller.

ResourceInformer lists a resource once, then watches it from the listed
resourceVersion and dispatches ADDED/MODIFIED/DELETED events to handlers.
It works for both typed core resources (Nodes, returned as V1Node objects)
and custom resources (returned as dicts).
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from kubernetes import client, watch

from constants import WATCH_RECONNECT_DELAY, WATCH_RETRY_DELAY

logger = logging.getLogger(__name__)


def _items_and_version(resp) -> Tuple[List, Optional[str]]:
    """Split a list response into (items, resourceVersion)"""
    if isinstance(resp, dict):
        return resp.get('items', []), resp.get('metadata',
                                               {}).get('resourceVersion')
    return resp.items, resp.metadata.resource_version


class ResourceInformer:
    """
    Informer for a single resource type.

    Handlers is a dict with optional 'add', 'update' and 'delete' callables.
    'add' also receives is_initial_sync=True for objects found by the
    first list. Objects found by a later re-list (after a 410) are passed
    as ordinary adds.
    """

    def __init__(self,
                 name: str,
                 list_func: Callable,
                 handlers: Dict,
                 list_kwargs: Dict = None):
        """
        Initialize informer.

        Args:
            name: Human-readable resource name for logs
            list_func: Kubernetes list call (e.g. CoreV1Api.list_node)
            handlers: Dict of event handlers (add, update, delete)
            list_kwargs: Extra arguments for list_func (group, version, plural...)
        """
        self.name = name
        self.list_func = list_func
        self.handlers = handlers or {}
        self.list_kwargs = list_kwargs or {}

        self.running = False
        self.watch_thread = None
        self.initial_sync_done = False
        self.has_synced = False
        self.resource_version: Optional[str] = None
        self._watch: Optional[watch.Watch] = None

    def _sync_cache(self):
        """List every object and pass it to the add handler"""
        logger.info(f"[SYNC] Syncing {self.name}...")
        items, self.resource_version = _items_and_version(
            self.list_func(**self.list_kwargs))
        is_initial_sync = not self.has_synced
        for obj in items:
            if 'add' in self.handlers:
                self.handlers['add'](obj, is_initial_sync=is_initial_sync)
        self.initial_sync_done = True
        self.has_synced = True
        logger.info(f"[SYNC] {self.name} synced: {len(items)} objects")

    def _dispatch(self, event_type: str, obj) -> None:
        if event_type == 'ADDED' and 'add' in self.handlers:
            self.handlers['add'](obj)
        elif event_type == 'MODIFIED' and 'update' in self.handlers:
            self.handlers['update'](obj)
        elif event_type == 'DELETED' and 'delete' in self.handlers:
            self.handlers['delete'](obj)

    def _watch_loop(self):
        """Main watch loop with automatic reconnection"""
        while self.running:
            try:
                if not self.initial_sync_done:
                    self._sync_cache()

                self._watch = watch.Watch()
                kwargs = dict(self.list_kwargs)
                if self.resource_version:
                    kwargs['resource_version'] = self.resource_version
                stream = self._watch.stream(self.list_func,
                                            timeout_seconds=0,
                                            **kwargs)

                for event in stream:
                    if not self.running:
                        break
                    # watch.Watch tracks the last seen resourceVersion
                    self.resource_version = self._watch.resource_version
                    self._dispatch(event['type'], event['object'])

                if self.running:
                    logger.debug(
                        f"{self.name} watch stream ended, reconnecting...")
                    time.sleep(WATCH_RECONNECT_DELAY)

            except client.exceptions.ApiException as e:
                if e.status == 410:  # Gone - resource version too old
                    logger.warning(
                        f"{self.name} resource version expired (410), resyncing..."
                    )
                    self.initial_sync_done = False
                    self.resource_version = None
                    time.sleep(WATCH_RECONNECT_DELAY)
                else:
                    logger.error(
                        f"API error in {self.name} watch: {e}. Reconnecting in {WATCH_RETRY_DELAY}s..."
                    )
                    time.sleep(WATCH_RETRY_DELAY)

            except Exception as e:
                if not self.running:
                    break
                logger.error(
                    f"Error in {self.name} watch loop: {e}. Reconnecting in {WATCH_RETRY_DELAY}s...",
                    exc_info=True)
                time.sleep(WATCH_RETRY_DELAY)

    def start(self):
        """Start the informer"""
        if self.running:
            logger.warning(f"{self.name} informer already running")
            return

        self.running = True
        self.watch_thread = threading.Thread(target=self._watch_loop,
                                             name=f"{self.name}-informer",
                                             daemon=True)
        self.watch_thread.start()
        logger.info(f"[INFORMER] {self.name} informer started")

    def stop(self):
        """Stop the informer"""
        logger.info(f"[INFORMER] Stopping {self.name} informer...")
        self.running = False
        if self._watch is not None:
            self._watch.stop()
        if self.watch_thread:
            self.watch_thread.join(timeout=10)
        logger.info(f"[INFORMER] {self.name} informer stopped")
