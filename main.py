#!/usr/bin/env python3
# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
PrivateNetwork Controller - Entry Point

Parses command-line arguments, builds the Kubernetes, Scaleway and IPAM
clients and runs the PrivateNetworkController until interrupted.
"""

import argparse
import logging
import sys

from kubernetes import client, config
from scaleway import Client

import constants
from cloud import ScalewayCloud
from controller import PrivateNetworkController
from ipam import ConfigMapStorage, Ipam, MemoryStorage
from reconciler import PrivateNetworkReconciler
from store import ObjectStore

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s [%(levelname)s] %(message)s',
                    handlers=[logging.StreamHandler(sys.stdout)])
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=
        "Attach every cluster node to Scaleway private networks declared as "
        "PrivateNetwork resources, one NetworkInterface per node")
    parser.add_argument('--log-level',
                        default='info',
                        choices=[
                            'debug', 'info', 'warning', 'error', 'DEBUG',
                            'INFO', 'WARNING', 'ERROR'
                        ],
                        help='Log level (default: info)')
    parser.add_argument('--workers',
                        type=int,
                        default=constants.DEFAULT_WORKERS,
                        help='Number of concurrent reconciliation workers '
                        f'(default: {constants.DEFAULT_WORKERS})')
    parser.add_argument(
        '--requeue-after',
        type=float,
        default=constants.REQUEUE_AFTER,
        help='Seconds before retrying a PrivateNetwork that is not ready yet '
        f'(default: {constants.REQUEUE_AFTER})')
    parser.add_argument(
        '--ipam-storage',
        default='configmap',
        choices=['configmap', 'memory'],
        help='Where address allocations are kept: "configmap" persists them '
        'in the cluster, "memory" loses them on restart. Default: configmap')
    parser.add_argument('--ipam-configmap',
                        default=constants.IPAM_CONFIGMAP_NAME,
                        help='ConfigMap holding address allocations '
                        f'(default: {constants.IPAM_CONFIGMAP_NAME})')
    parser.add_argument('--ipam-namespace',
                        default=constants.IPAM_CONFIGMAP_NAMESPACE,
                        help='Namespace of the IPAM ConfigMap '
                        f'(default: {constants.IPAM_CONFIGMAP_NAMESPACE})')
    parser.add_argument(
        '--scw-zone',
        default='',
        help='Default Scaleway zone when a node provider ID carries none '
        '(default: from SCW_DEFAULT_ZONE / Scaleway config)')
    return parser.parse_args(argv)


def main():
    """Main entry point for the PrivateNetwork controller."""
    args = parse_args()

    logging.getLogger().setLevel(getattr(logging, args.log_level.upper()))

    # Suppress verbose client logs
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    try:
        config.load_kube_config()
    except Exception:
        config.load_incluster_config()
    custom_api = client.CustomObjectsApi()
    v1_api = client.CoreV1Api()

    scw_client = Client.from_config_file_and_env()
    if args.scw_zone:
        scw_client.default_zone = args.scw_zone
    logger.info(f"[INIT] Scaleway default zone: {scw_client.default_zone}")

    if args.ipam_storage == 'configmap':
        storage = ConfigMapStorage(v1_api, args.ipam_configmap,
                                   args.ipam_namespace)
        logger.info(
            f"[INIT] IPAM storage: configmap {args.ipam_namespace}/{args.ipam_configmap}"
        )
    else:
        storage = MemoryStorage()
        logger.warning(
            "[INIT] IPAM storage: memory, allocations are lost on restart")

    controller_config = constants.ControllerConfig(
        requeue_after=args.requeue_after, workers=args.workers)

    store = ObjectStore(custom_api, v1_api)
    reconciler = PrivateNetworkReconciler(store=store,
                                          ipam=Ipam(storage),
                                          cloud=ScalewayCloud(scw_client),
                                          config=controller_config)
    controller = PrivateNetworkController(reconciler=reconciler,
                                          store=store,
                                          custom_api=custom_api,
                                          v1_api=v1_api,
                                          config=controller_config)
    controller.run()


if __name__ == "__main__":
    main()
