"""Reconciliation scenarios for a PrivateNetwork."""

import pytest
from kubernetes import client

from constants import FINALIZER, IP_FINALIZER
from ipam import IpamError, NotFoundError
from models import Result, has_finalizer
from tests.conftest import SERVER_ID
from tests.fakes import make_node, make_private_network


def interfaces_of(store, network: str):
    return [
        o for o in store.interfaces.values()
        if o['metadata']['labels'].get('private-network') == network
    ]


class TestNormalReconcile:

    def test_missing_network_is_terminal(self, reconciler) -> None:
        assert reconciler.reconcile("nope") == Result()

    def test_single_node_gets_one_interface(self, cluster, reconciler,
                                            ipam) -> None:
        store, _ = cluster

        assert reconciler.reconcile("pn-a") == Result()

        nics = interfaces_of(store, "pn-a")
        assert len(nics) == 1
        nic = nics[0]
        assert nic['metadata']['labels']['private-network'] == 'pn-a'
        assert nic['metadata']['labels']['node'] == 'node-1'
        assert nic['spec']['address'] == '10.0.0.1/24'
        assert nic['status']['macAddress']
        assert has_finalizer(store.private_networks["pn-a"], FINALIZER)
        assert ipam.get_prefix("10.0.0.0/24").ips == {"10.0.0.1"}

    def test_one_interface_per_node(self, cluster, reconciler) -> None:
        store, cloud = cluster
        cloud.add_server("srv-2", "node-2")
        cloud.add_server("srv-3", "node-3")
        store.add_node(make_node("node-2", "scaleway://srv-2"))
        store.add_node(make_node("node-3"))

        reconciler.reconcile("pn-a")
        reconciler.reconcile("pn-a")

        nics = interfaces_of(store, "pn-a")
        assert sorted(n['spec']['nodeName'] for n in nics) == [
            'node-1', 'node-2', 'node-3'
        ]
        assert len({n['spec']['address'] for n in nics}) == 3
        assert len(cloud.created_nics) == 3

    def test_new_node_is_picked_up(self, cluster, reconciler) -> None:
        store, cloud = cluster
        reconciler.reconcile("pn-a")

        cloud.add_server("srv-2", "node-2")
        store.add_node(make_node("node-2"))
        reconciler.reconcile("pn-a")

        assert len(interfaces_of(store, "pn-a")) == 2

    def test_removed_node_keeps_its_interface(self, cluster,
                                              reconciler) -> None:
        store, _ = cluster
        reconciler.reconcile("pn-a")
        store.remove_node("node-1")

        assert reconciler.reconcile("pn-a") == Result()
        assert len(interfaces_of(store, "pn-a")) == 1

    def test_network_unknown_to_cloud_requeues(self, cluster, reconciler,
                                               config) -> None:
        store, cloud = cluster
        cloud.networks.clear()

        result = reconciler.reconcile("pn-a")

        assert result == Result(requeue_after=config.requeue_after)
        assert store.interfaces == {}
        # Finalizer is in place before anything can be created
        assert has_finalizer(store.private_networks["pn-a"], FINALIZER)

    def test_duplicate_interfaces_abort_the_pass(self, cluster, reconciler,
                                                 config) -> None:
        store, cloud = cluster
        body = {
            'metadata': {
                'labels': {
                    'private-network': 'pn-a',
                    'node': 'node-1'
                }
            },
            'spec': {}
        }
        store.add_interface(body, "dup-1")
        store.add_interface(body, "dup-2")

        result = reconciler.reconcile("pn-a")

        assert result == Result(requeue_after=config.requeue_after)
        assert len(store.interfaces) == 2
        assert cloud.created_nics == []

    def test_unresolvable_node_requeues(self, cluster, reconciler,
                                        config) -> None:
        store, _ = cluster
        store.add_node(make_node("ghost"))

        result = reconciler.reconcile("pn-a")

        assert result == Result(requeue_after=config.requeue_after)

    def test_invalid_cidr_raises(self, store, cloud, reconciler) -> None:
        store.add_private_network(make_private_network(cidr="10.0.0.1/24"))
        with pytest.raises(IpamError):
            reconciler.reconcile("pn-a")

    def test_store_conflict_propagates(self, cluster, reconciler,
                                       monkeypatch) -> None:
        store, _ = cluster

        def conflict(obj):
            raise client.exceptions.ApiException(status=409,
                                                 reason="Conflict")

        monkeypatch.setattr(store, "update_private_network", conflict)
        with pytest.raises(client.exceptions.ApiException):
            reconciler.reconcile("pn-a")
        assert store.interfaces == {}


class TestDeletion:

    @pytest.fixture
    def converged(self, cluster, reconciler):
        store, cloud = cluster
        reconciler.reconcile("pn-a")
        store.request_private_network_deletion("pn-a")
        return store, cloud

    def test_two_phase_deletion(self, converged, reconciler, ipam,
                                config) -> None:
        store, cloud = converged
        (name, ) = store.interfaces

        # Phase 1: child only marked for deletion
        assert reconciler.reconcile("pn-a") == Result(
            requeue_after=config.requeue_after)
        child = store.interfaces[name]
        assert child['metadata'].get('deletionTimestamp')
        assert ipam.get_prefix("10.0.0.0/24").ips == {"10.0.0.1"}
        assert cloud.deleted_nics == []

        # Nothing happens while the interface agent holds its finalizer
        assert reconciler.reconcile("pn-a") == Result(
            requeue_after=config.requeue_after)
        assert name in store.interfaces
        assert cloud.deleted_nics == []

        # Phase 2: agent is done, address and NIC are cleaned up
        store.clear_interface_finalizer(name, FINALIZER)
        assert reconciler.reconcile("pn-a") == Result(
            requeue_after=config.requeue_after)
        assert name not in store.interfaces
        assert ipam.get_prefix("10.0.0.0/24").ips == set()
        assert len(cloud.deleted_nics) == 1
        assert cloud.servers[SERVER_ID].private_nics == []
        assert "pn-a" in store.private_networks

        # Phase 3: no child left, prefix and network go away
        assert reconciler.reconcile("pn-a") == Result()
        assert store.removed_networks == ["pn-a"]
        with pytest.raises(NotFoundError):
            ipam.get_prefix("10.0.0.0/24")

        assert store.removed_with_children == []

    def test_network_never_removed_before_children(self, converged,
                                                   reconciler) -> None:
        store, _ = converged
        for _ in range(5):
            reconciler.reconcile("pn-a")
        assert "pn-a" in store.private_networks
        assert store.removed_networks == []

    def test_cleanup_tolerates_released_address(self, converged, reconciler,
                                                ipam) -> None:
        store, _ = converged
        (name, ) = store.interfaces
        reconciler.reconcile("pn-a")
        store.clear_interface_finalizer(name, FINALIZER)
        ipam.release_ip("10.0.0.0/24", "10.0.0.1")

        reconciler.reconcile("pn-a")

        assert name not in store.interfaces

    def test_cleanup_without_node_skips_nic(self, converged, reconciler) -> None:
        store, cloud = converged
        (name, ) = store.interfaces
        reconciler.reconcile("pn-a")
        store.clear_interface_finalizer(name, FINALIZER)
        store.remove_node("node-1")

        reconciler.reconcile("pn-a")

        assert name not in store.interfaces
        assert cloud.deleted_nics == []

    def test_cleanup_when_nic_already_detached(self, converged,
                                               reconciler) -> None:
        store, cloud = converged
        (name, ) = store.interfaces
        reconciler.reconcile("pn-a")
        store.clear_interface_finalizer(name, FINALIZER)
        cloud.servers[SERVER_ID].private_nics.clear()

        reconciler.reconcile("pn-a")

        assert name not in store.interfaces
        assert cloud.deleted_nics == []

    def test_prefix_already_deleted(self, store, cloud, reconciler,
                                    ipam) -> None:
        cloud.networks.add("net-1")
        store.add_private_network(make_private_network())
        reconciler.reconcile("pn-a")
        store.request_private_network_deletion("pn-a")
        real_delete = ipam.delete_prefix

        def already_gone(cidr):
            real_delete(cidr)
            raise NotFoundError(cidr)

        ipam.delete_prefix = already_gone
        assert reconciler.reconcile("pn-a") == Result()
        assert store.removed_networks == ["pn-a"]

    def test_deleting_without_finalizer_is_terminal(self, store, cloud,
                                                    reconciler) -> None:
        obj = make_private_network()
        obj['metadata']['finalizers'] = ['someone-else/finalizer']
        store.add_private_network(obj)
        store.request_private_network_deletion("pn-a")

        assert reconciler.reconcile("pn-a") == Result()
        assert store.private_networks["pn-a"]['metadata']['finalizers'] == [
            'someone-else/finalizer'
        ]

    def test_ip_finalizer_removed_only_once(self, converged, reconciler,
                                            ipam) -> None:
        store, cloud = converged
        (name, ) = store.interfaces
        reconciler.reconcile("pn-a")
        # Another finalizer keeps the child around after cleanup
        store.interfaces[name]['metadata']['finalizers'].append('other/x')
        store.clear_interface_finalizer(name, FINALIZER)

        reconciler.reconcile("pn-a")
        reconciler.reconcile("pn-a")

        assert store.interfaces[name]['metadata']['finalizers'] == ['other/x']
        assert len(cloud.deleted_nics) == 1
        assert not has_finalizer(store.interfaces[name], IP_FINALIZER)
