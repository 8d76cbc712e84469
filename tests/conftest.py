"""Shared fixtures: one PrivateNetwork pn-a (10.0.0.0/24) and one node-1."""

import pytest

from constants import ControllerConfig
from ipam import Ipam, MemoryStorage
from reconciler import PrivateNetworkReconciler
from tests.fakes import FakeCloud, FakeStore, make_node, make_private_network

SERVER_ID = "11111111-2222-3333-4444-555555555555"


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def cloud():
    return FakeCloud()


@pytest.fixture
def ipam():
    return Ipam(MemoryStorage())


@pytest.fixture
def config():
    return ControllerConfig(requeue_after=30.0)


@pytest.fixture
def reconciler(store, ipam, cloud, config):
    return PrivateNetworkReconciler(store=store,
                                    ipam=ipam,
                                    cloud=cloud,
                                    config=config)


@pytest.fixture
def cluster(store, cloud):
    """pn-a known to the cloud, node-1 backed by a resolvable server"""
    cloud.networks.add("net-1")
    cloud.add_server(SERVER_ID, "node-1")
    store.add_node(
        make_node("node-1", f"scaleway://instance/fr-par-1/{SERVER_ID}"))
    store.add_private_network(
        make_private_network("pn-a",
                             labels={"team": "net"},
                             annotations={"note": "hello"}))
    return store, cloud
