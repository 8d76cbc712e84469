# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Object store access for the PrivateNetwork controller.

Thin wrapper around the Kubernetes API for the two cluster-scoped custom
resources (PrivateNetwork, NetworkInterface) and Node objects. Reads that
hit a 404 return None; every other ApiException (including 409 conflicts
on stale updates) propagates to the caller.
"""

import logging
from typing import Dict, List, Optional

from kubernetes import client

from constants import (
    NETWORK_INTERFACE_PLURAL,
    PRIVATE_NETWORK_PLURAL,
    VPC_GROUP,
    VPC_VERSION,
)

logger = logging.getLogger(__name__)


def label_selector(labels: Dict[str, str]) -> str:
    """Render a dict as an equality-based label selector"""
    return ','.join(f"{k}={v}" for k, v in sorted(labels.items()))


class ObjectStore:
    """Kubernetes-backed store for PrivateNetworks, NetworkInterfaces and Nodes"""

    def __init__(self, custom_api: client.CustomObjectsApi,
                 v1_api: client.CoreV1Api):
        self.custom_api = custom_api
        self.v1_api = v1_api

    # ------------------------------------------------------------------
    # PrivateNetwork
    # ------------------------------------------------------------------

    def get_private_network(self, name: str) -> Optional[Dict]:
        try:
            return self.custom_api.get_cluster_custom_object(
                group=VPC_GROUP,
                version=VPC_VERSION,
                plural=PRIVATE_NETWORK_PLURAL,
                name=name)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def list_private_networks(self) -> List[Dict]:
        resp = self.custom_api.list_cluster_custom_object(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=PRIVATE_NETWORK_PLURAL)
        return resp.get('items', [])

    def update_private_network(self, obj: Dict) -> Dict:
        return self.custom_api.replace_cluster_custom_object(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=PRIVATE_NETWORK_PLURAL,
            name=obj['metadata']['name'],
            body=obj)

    # ------------------------------------------------------------------
    # NetworkInterface
    # ------------------------------------------------------------------

    def list_network_interfaces(self, labels: Dict[str, str]) -> List[Dict]:
        resp = self.custom_api.list_cluster_custom_object(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=NETWORK_INTERFACE_PLURAL,
            label_selector=label_selector(labels))
        return resp.get('items', [])

    def create_network_interface(self, body: Dict) -> Dict:
        return self.custom_api.create_cluster_custom_object(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=NETWORK_INTERFACE_PLURAL,
            body=body)

    def update_network_interface(self, obj: Dict) -> Dict:
        return self.custom_api.replace_cluster_custom_object(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=NETWORK_INTERFACE_PLURAL,
            name=obj['metadata']['name'],
            body=obj)

    def update_network_interface_status(self, obj: Dict) -> Dict:
        return self.custom_api.replace_cluster_custom_object_status(
            group=VPC_GROUP,
            version=VPC_VERSION,
            plural=NETWORK_INTERFACE_PLURAL,
            name=obj['metadata']['name'],
            body=obj)

    def delete_network_interface(self, name: str) -> None:
        """Request deletion. Finalizers keep the object until they are cleared."""
        try:
            self.custom_api.delete_cluster_custom_object(
                group=VPC_GROUP,
                version=VPC_VERSION,
                plural=NETWORK_INTERFACE_PLURAL,
                name=name)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                logger.debug("NetworkInterface %s already gone", name)
                return
            raise

    # ------------------------------------------------------------------
    # Node
    # ------------------------------------------------------------------

    def list_nodes(self) -> List[client.V1Node]:
        return self.v1_api.list_node().items

    def get_node(self, name: str) -> Optional[client.V1Node]:
        try:
            return self.v1_api.read_node(name=name)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise
