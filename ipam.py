# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
IP address management for PrivateNetwork CIDRs.

A prefix is the allocation unit for one CIDR block and records which host
addresses are in use. Prefixes live in a storage backend:
- MemoryStorage: process-local, used for tests and single-replica setups
- ConfigMapStorage: one ConfigMap, one data key per prefix, so allocations
  survive controller restarts

Updates are optimistic: every stored prefix carries a version and a write
against a stale version raises ConflictError. Ipam retries allocation and
release on conflict, re-reading the prefix each time.
"""

import ipaddress
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from kubernetes import client

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 5


class IpamError(Exception):
    """Base class for address pool errors"""


class NotFoundError(IpamError):
    """Prefix or address does not exist"""


class PrefixExhaustedError(IpamError):
    """No free address left in the prefix"""


class ConflictError(IpamError):
    """Prefix was modified concurrently"""


@dataclass
class Prefix:
    """Allocator state for one CIDR"""
    cidr: str
    ips: Set[str] = field(default_factory=set)
    version: Optional[str] = None

    @property
    def network(self):
        return ipaddress.ip_network(self.cidr)

    @property
    def prefix_length(self) -> int:
        return self.network.prefixlen

    def to_json(self) -> str:
        return json.dumps({'cidr': self.cidr, 'ips': sorted(self.ips)})

    @classmethod
    def from_json(cls, data: str, version: Optional[str] = None) -> 'Prefix':
        raw = json.loads(data)
        return cls(cidr=raw['cidr'], ips=set(raw.get('ips', [])),
                   version=version)

    def next_free(self) -> Optional[str]:
        # hosts() already skips network and broadcast addresses
        for host in self.network.hosts():
            ip = str(host)
            if ip not in self.ips:
                return ip
        return None


def _normalize_cidr(cidr: str) -> str:
    try:
        return str(ipaddress.ip_network(cidr, strict=True))
    except ValueError as e:
        raise IpamError(f"invalid cidr {cidr}: {e}") from e


# ============================================================================
# Storage Backends
# ============================================================================


class MemoryStorage:
    """Process-local prefix storage"""

    def __init__(self):
        self._prefixes: Dict[str, Prefix] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()

    def read_prefix(self, cidr: str) -> Optional[Prefix]:
        with self._lock:
            prefix = self._prefixes.get(cidr)
            if prefix is None:
                return None
            return Prefix(cidr=prefix.cidr, ips=set(prefix.ips),
                          version=str(self._versions[cidr]))

    def create_prefix(self, prefix: Prefix) -> Prefix:
        with self._lock:
            if prefix.cidr in self._prefixes:
                raise ConflictError(f"prefix {prefix.cidr} already exists")
            self._prefixes[prefix.cidr] = Prefix(cidr=prefix.cidr,
                                                 ips=set(prefix.ips))
            self._versions[prefix.cidr] = 1
            return Prefix(cidr=prefix.cidr, ips=set(prefix.ips), version='1')

    def update_prefix(self, prefix: Prefix) -> Prefix:
        with self._lock:
            current = self._versions.get(prefix.cidr)
            if current is None:
                raise NotFoundError(f"prefix {prefix.cidr} not found")
            if prefix.version != str(current):
                raise ConflictError(
                    f"prefix {prefix.cidr} changed (version {prefix.version} != {current})"
                )
            self._prefixes[prefix.cidr] = Prefix(cidr=prefix.cidr,
                                                 ips=set(prefix.ips))
            self._versions[prefix.cidr] = current + 1
            return Prefix(cidr=prefix.cidr, ips=set(prefix.ips),
                          version=str(current + 1))

    def delete_prefix(self, cidr: str) -> None:
        with self._lock:
            if cidr not in self._prefixes:
                raise NotFoundError(f"prefix {cidr} not found")
            del self._prefixes[cidr]
            del self._versions[cidr]


class ConfigMapStorage:
    """
    Prefix storage in a single ConfigMap.

    Each prefix is a JSON document under a key derived from its CIDR
    ("10.0.0.0/24" -> "10.0.0.0_24"). The ConfigMap resourceVersion is the
    version of every prefix it holds, so any concurrent write to the map
    invalidates in-flight updates.
    """

    def __init__(self, v1_api: client.CoreV1Api, name: str, namespace: str):
        self.v1_api = v1_api
        self.name = name
        self.namespace = namespace

    @staticmethod
    def _key(cidr: str) -> str:
        return cidr.replace('/', '_').replace(':', '-')

    def _read(self) -> Optional[client.V1ConfigMap]:
        try:
            return self.v1_api.read_namespaced_config_map(
                name=self.name, namespace=self.namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def _replace(self, cm: client.V1ConfigMap) -> client.V1ConfigMap:
        try:
            return self.v1_api.replace_namespaced_config_map(
                name=self.name, namespace=self.namespace, body=cm)
        except client.exceptions.ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"configmap {self.namespace}/{self.name} changed") from e
            raise

    def read_prefix(self, cidr: str) -> Optional[Prefix]:
        cm = self._read()
        if cm is None:
            return None
        data = (cm.data or {}).get(self._key(cidr))
        if data is None:
            return None
        return Prefix.from_json(data, version=cm.metadata.resource_version)

    def create_prefix(self, prefix: Prefix) -> Prefix:
        cm = self._read()
        if cm is None:
            body = client.V1ConfigMap(
                metadata=client.V1ObjectMeta(name=self.name,
                                             namespace=self.namespace),
                data={self._key(prefix.cidr): prefix.to_json()})
            try:
                created = self.v1_api.create_namespaced_config_map(
                    namespace=self.namespace, body=body)
            except client.exceptions.ApiException as e:
                if e.status == 409:
                    raise ConflictError(
                        f"configmap {self.namespace}/{self.name} created concurrently"
                    ) from e
                raise
            logger.info("[IPAM] Created configmap %s/%s", self.namespace,
                        self.name)
            return Prefix(cidr=prefix.cidr, ips=set(prefix.ips),
                          version=created.metadata.resource_version)

        data = dict(cm.data or {})
        if self._key(prefix.cidr) in data:
            raise ConflictError(f"prefix {prefix.cidr} already exists")
        data[self._key(prefix.cidr)] = prefix.to_json()
        cm.data = data
        updated = self._replace(cm)
        return Prefix(cidr=prefix.cidr, ips=set(prefix.ips),
                      version=updated.metadata.resource_version)

    def update_prefix(self, prefix: Prefix) -> Prefix:
        cm = self._read()
        if cm is None or self._key(prefix.cidr) not in (cm.data or {}):
            raise NotFoundError(f"prefix {prefix.cidr} not found")
        if cm.metadata.resource_version != prefix.version:
            raise ConflictError(f"prefix {prefix.cidr} changed")
        data = dict(cm.data)
        data[self._key(prefix.cidr)] = prefix.to_json()
        cm.data = data
        updated = self._replace(cm)
        return Prefix(cidr=prefix.cidr, ips=set(prefix.ips),
                      version=updated.metadata.resource_version)

    def delete_prefix(self, cidr: str) -> None:
        cm = self._read()
        if cm is None or self._key(cidr) not in (cm.data or {}):
            raise NotFoundError(f"prefix {cidr} not found")
        data = dict(cm.data)
        del data[self._key(cidr)]
        cm.data = data
        self._replace(cm)


# ============================================================================
# Allocator
# ============================================================================


class Ipam:
    """Address pool over a prefix storage backend"""

    def __init__(self, storage):
        self.storage = storage

    def new_prefix(self, cidr: str) -> Prefix:
        """Ensure a prefix exists for cidr. Idempotent."""
        cidr = _normalize_cidr(cidr)
        existing = self.storage.read_prefix(cidr)
        if existing is not None:
            return existing
        try:
            prefix = self.storage.create_prefix(Prefix(cidr=cidr))
        except ConflictError:
            # Lost a creation race, the winner's prefix is just as good
            existing = self.storage.read_prefix(cidr)
            if existing is None:
                raise
            return existing
        logger.info("[IPAM] Created prefix %s", cidr)
        return prefix

    def get_prefix(self, cidr: str) -> Prefix:
        prefix = self.storage.read_prefix(_normalize_cidr(cidr))
        if prefix is None:
            raise NotFoundError(f"prefix {cidr} not found")
        return prefix

    def acquire_ip(self, cidr: str) -> str:
        """Allocate the next free host address of cidr (without prefix length)."""
        cidr = _normalize_cidr(cidr)
        for _ in range(MAX_CONFLICT_RETRIES):
            prefix = self.get_prefix(cidr)
            ip = prefix.next_free()
            if ip is None:
                raise PrefixExhaustedError(f"no more ips in prefix {cidr}")
            prefix.ips.add(ip)
            try:
                self.storage.update_prefix(prefix)
            except ConflictError:
                logger.debug("[IPAM] Conflict acquiring ip in %s, retrying",
                             cidr)
                continue
            logger.debug("[IPAM] Acquired %s from %s", ip, cidr)
            return ip
        raise ConflictError(
            f"unable to acquire ip in {cidr} after {MAX_CONFLICT_RETRIES} attempts"
        )

    def release_ip(self, cidr: str, ip: str) -> None:
        """Release ip back to cidr. Raises NotFoundError if it was not allocated."""
        cidr = _normalize_cidr(cidr)
        for _ in range(MAX_CONFLICT_RETRIES):
            prefix = self.get_prefix(cidr)
            if ip not in prefix.ips:
                raise NotFoundError(f"ip {ip} not found in prefix {cidr}")
            prefix.ips.discard(ip)
            try:
                self.storage.update_prefix(prefix)
            except ConflictError:
                logger.debug("[IPAM] Conflict releasing %s in %s, retrying",
                             ip, cidr)
                continue
            logger.debug("[IPAM] Released %s from %s", ip, cidr)
            return
        raise ConflictError(
            f"unable to release {ip} in {cidr} after {MAX_CONFLICT_RETRIES} attempts"
        )

    def delete_prefix(self, cidr: str) -> None:
        """Delete a prefix. It must not hold any allocated address."""
        cidr = _normalize_cidr(cidr)
        prefix = self.get_prefix(cidr)
        if prefix.ips:
            raise IpamError(
                f"prefix {cidr} has {len(prefix.ips)} ips, delete prefix not possible"
            )
        self.storage.delete_prefix(cidr)
        logger.info("[IPAM] Deleted prefix %s", cidr)
