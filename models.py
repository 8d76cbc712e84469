# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Data models for the PrivateNetwork controller.

This module contains:
- Views over the PrivateNetwork and NetworkInterface custom objects
- Cloud-side data classes (CloudServer, PrivateNic)
- The reconciliation Result
- Helpers for finalizers, deletion markers and owner references on raw objects
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from constants import (
    NETWORK_INTERFACE_KIND,
    NODE_LABEL,
    PRIVATE_NETWORK_KIND,
    PRIVATE_NETWORK_LABEL,
    VPC_API_VERSION,
)

# ============================================================================
# Custom Resource Views
# ============================================================================


@dataclass
class IPAMConfig:
    """Address configuration of a PrivateNetwork (spec.ipam)"""
    type: str
    available_ranges: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional['IPAMConfig']:
        if not data:
            return None
        static = data.get('static') or {}
        return cls(type=data.get('type', ''),
                   available_ranges=list(static.get('availableRanges') or []))


@dataclass
class Route:
    """Static route announced on the private network (spec.routes[])"""
    to: str
    via: str


@dataclass
class PrivateNetwork:
    """
    Read-only view of a PrivateNetwork object.

    The raw object is kept in `obj` so finalizer changes can be written back
    without dropping fields this view does not model.
    """
    name: str
    uid: str
    network_id: str
    zone: str
    cidr: str
    ipam: Optional[IPAMConfig]
    routes: List[Route]
    labels: Dict[str, str]
    annotations: Dict[str, str]
    obj: Dict = field(repr=False)

    @classmethod
    def from_object(cls, obj: Dict) -> 'PrivateNetwork':
        metadata = obj.get('metadata', {})
        spec = obj.get('spec', {})
        routes = [
            Route(to=r.get('to', ''), via=r.get('via', ''))
            for r in spec.get('routes') or []
        ]
        return cls(name=metadata['name'],
                   uid=metadata.get('uid', ''),
                   network_id=spec.get('id', ''),
                   zone=spec.get('zone', ''),
                   cidr=spec.get('cidr', ''),
                   ipam=IPAMConfig.from_dict(spec.get('ipam')),
                   routes=routes,
                   labels=dict(metadata.get('labels') or {}),
                   annotations=dict(metadata.get('annotations') or {}),
                   obj=obj)

    @property
    def is_being_deleted(self) -> bool:
        return is_being_deleted(self.obj)


@dataclass
class NetworkInterface:
    """Read-only view of a NetworkInterface object"""
    name: str
    node_name: str
    address: str
    nic_id: str
    mac_address: Optional[str]
    obj: Dict = field(repr=False)

    @classmethod
    def from_object(cls, obj: Dict) -> 'NetworkInterface':
        metadata = obj.get('metadata', {})
        spec = obj.get('spec', {})
        status = obj.get('status') or {}
        return cls(name=metadata.get('name', ''),
                   node_name=spec.get('nodeName', ''),
                   address=spec.get('address', ''),
                   nic_id=spec.get('id', ''),
                   mac_address=status.get('macAddress'),
                   obj=obj)

    @property
    def ip(self) -> str:
        """Address without its prefix length ("10.0.0.2/24" -> "10.0.0.2")"""
        return self.address.split('/')[0]

    @property
    def is_being_deleted(self) -> bool:
        return is_being_deleted(self.obj)


# ============================================================================
# Cloud Data Classes
# ============================================================================


@dataclass
class PrivateNic:
    """A server's attachment to a cloud private network"""
    id: str
    private_network_id: str
    mac_address: str
    server_id: str = ''
    state: str = ''


@dataclass
class CloudServer:
    """A cloud compute instance backing a cluster node"""
    id: str
    name: str
    zone: str
    private_nics: List[PrivateNic] = field(default_factory=list)

    def find_private_nic(self, network_id: str) -> Optional[PrivateNic]:
        for nic in self.private_nics:
            if nic.private_network_id == network_id:
                return nic
        return None


# ============================================================================
# Reconciliation Result
# ============================================================================


@dataclass
class Result:
    """
    Outcome of a reconciliation pass that did not raise.

    requeue_after set = reschedule after that many seconds ("not ready yet").
    requeue_after None = done until the next event.
    """
    requeue_after: Optional[float] = None

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


# ============================================================================
# Object Helpers
# ============================================================================


def is_being_deleted(obj: Dict) -> bool:
    return bool(obj.get('metadata', {}).get('deletionTimestamp'))


def has_finalizer(obj: Dict, finalizer: str) -> bool:
    return finalizer in (obj.get('metadata', {}).get('finalizers') or [])


def add_finalizer(obj: Dict, finalizer: str) -> bool:
    """Add finalizer in place. Returns True if the object changed."""
    metadata = obj.setdefault('metadata', {})
    finalizers = metadata.get('finalizers') or []
    if finalizer in finalizers:
        return False
    metadata['finalizers'] = finalizers + [finalizer]
    return True


def remove_finalizer(obj: Dict, finalizer: str) -> bool:
    """Remove finalizer in place. Returns True if the object changed."""
    metadata = obj.setdefault('metadata', {})
    finalizers = metadata.get('finalizers') or []
    if finalizer not in finalizers:
        return False
    metadata['finalizers'] = [f for f in finalizers if f != finalizer]
    return True


def controller_reference(pn: PrivateNetwork) -> Dict:
    """Owner reference marking a PrivateNetwork as controller of a child"""
    return {
        'apiVersion': VPC_API_VERSION,
        'kind': PRIVATE_NETWORK_KIND,
        'name': pn.name,
        'uid': pn.uid,
        'controller': True,
        'blockOwnerDeletion': True,
    }


def controller_owner_name(obj: Dict) -> Optional[str]:
    """Name of the PrivateNetwork controlling this object, if any"""
    for ref in obj.get('metadata', {}).get('ownerReferences') or []:
        if ref.get('kind') == PRIVATE_NETWORK_KIND and ref.get('controller'):
            return ref.get('name')
    return None


def is_owned_by(obj: Dict, pn: PrivateNetwork) -> bool:
    for ref in obj.get('metadata', {}).get('ownerReferences') or []:
        if ref.get('kind') == PRIVATE_NETWORK_KIND and ref.get(
                'uid') == pn.uid:
            return True
    return False


def build_network_interface(pn: PrivateNetwork, node_name: str,
                            address: str, nic_id: str,
                            finalizers: List[str]) -> Dict:
    """
    Build a new NetworkInterface body for (pn, node_name).

    Labels and annotations are inherited from the PrivateNetwork, then the
    two identity labels are set so they can never be overridden by the parent.
    """
    labels = dict(pn.labels)
    labels[PRIVATE_NETWORK_LABEL] = pn.name
    labels[NODE_LABEL] = node_name
    return {
        'apiVersion': VPC_API_VERSION,
        'kind': NETWORK_INTERFACE_KIND,
        'metadata': {
            'generateName': f"{pn.name}-",
            'labels': labels,
            'annotations': dict(pn.annotations),
            'ownerReferences': [controller_reference(pn)],
            'finalizers': list(finalizers),
        },
        'spec': {
            'nodeName': node_name,
            'address': address,
            'id': nic_id,
        },
    }
