# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Constants and configuration for the PrivateNetwork controller.

This module contains all constants used across the application:
- Custom resource coordinates (group, version, plurals)
- Labels and finalizers placed on NetworkInterface objects
- Node provider ID parsing
- Reconciliation timing
- Address pool (IPAM) storage defaults
"""

import re
from dataclasses import dataclass

# ============================================================================
# Custom Resource Configuration
# ============================================================================
VPC_GROUP = "vpc.scaleway.com"
VPC_VERSION = "v1alpha1"
VPC_API_VERSION = f"{VPC_GROUP}/{VPC_VERSION}"

PRIVATE_NETWORK_KIND = "PrivateNetwork"
PRIVATE_NETWORK_PLURAL = "privatenetworks"

NETWORK_INTERFACE_KIND = "NetworkInterface"
NETWORK_INTERFACE_PLURAL = "networkinterfaces"

# ============================================================================
# Labels and Finalizers
# ============================================================================
# Every NetworkInterface carries both labels so it can be listed per
# PrivateNetwork or per (PrivateNetwork, Node) pair.
PRIVATE_NETWORK_LABEL = "private-network"
NODE_LABEL = "node"

# Generic finalizer.
# - On a PrivateNetwork it is owned by this controller.
# - On a NetworkInterface it is owned by the node-side interface agent,
#   which clears it once the interface is unconfigured on the host.
FINALIZER = "scaleway.com/finalizer"

# Address finalizer, NetworkInterface only, owned by this controller.
# Cleared after the address is released and the private NIC detached.
IP_FINALIZER = "scaleway.com/finalizer-ip"

# ============================================================================
# Node Resolution
# ============================================================================
# Matches "scaleway://<product>/<zone>/<uuid>" or "scaleway://<uuid>".
PROVIDER_ID_PATTERN = (r"scaleway://((?P<product>.*?)/(?P<zone>.*?)/(?P<uuid>.*)"
                       r"|(?P<bare_uuid>.*))")

# ============================================================================
# Reconciliation Timing
# ============================================================================
# Fixed delay for "not ready yet" conditions (provider propagation lag,
# children still draining).
REQUEUE_AFTER: float = 30.0  # seconds

# Per-item exponential backoff applied to failed reconciliations
BACKOFF_BASE_DELAY: float = 0.005  # seconds
BACKOFF_MAX_DELAY: float = 1000.0  # seconds

DEFAULT_WORKERS = 2

# Watch reconnect delays
WATCH_RETRY_DELAY: float = 5.0  # seconds
WATCH_RECONNECT_DELAY: float = 1.0  # seconds

# ============================================================================
# Address Pool Configuration
# ============================================================================
IPAM_CONFIGMAP_NAME = "scaleway-k8s-vpc-ipam"
IPAM_CONFIGMAP_NAMESPACE = "kube-system"


@dataclass
class ControllerConfig:
    """Runtime settings handed to the reconciliation components."""
    requeue_after: float = REQUEUE_AFTER
    provider_id_pattern: str = PROVIDER_ID_PATTERN
    workers: int = DEFAULT_WORKERS

    @property
    def provider_id_regexp(self) -> re.Pattern:
        return re.compile(self.provider_id_pattern)
