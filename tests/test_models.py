"""Tests for object views and finalizer/owner helpers."""

from constants import FINALIZER, IP_FINALIZER
from models import (
    CloudServer,
    NetworkInterface,
    PrivateNetwork,
    PrivateNic,
    Result,
    add_finalizer,
    build_network_interface,
    controller_owner_name,
    has_finalizer,
    is_being_deleted,
    is_owned_by,
    remove_finalizer,
)
from tests.fakes import make_private_network


def _pn(**kwargs) -> PrivateNetwork:
    obj = make_private_network(**kwargs)
    obj['metadata']['uid'] = 'uid-pn'
    return PrivateNetwork.from_object(obj)


class TestFinalizers:

    def test_add_is_idempotent(self) -> None:
        obj = {'metadata': {}}
        assert add_finalizer(obj, FINALIZER) is True
        assert add_finalizer(obj, FINALIZER) is False
        assert obj['metadata']['finalizers'] == [FINALIZER]

    def test_remove_keeps_other_finalizers(self) -> None:
        obj = {'metadata': {'finalizers': [FINALIZER, IP_FINALIZER]}}
        assert remove_finalizer(obj, FINALIZER) is True
        assert remove_finalizer(obj, FINALIZER) is False
        assert has_finalizer(obj, IP_FINALIZER)
        assert not has_finalizer(obj, FINALIZER)

    def test_deletion_marker(self) -> None:
        assert not is_being_deleted({'metadata': {}})
        assert is_being_deleted(
            {'metadata': {
                'deletionTimestamp': '2026-01-01T00:00:00Z'
            }})


class TestPrivateNetwork:

    def test_from_object_parses_optional_fields(self) -> None:
        obj = make_private_network()
        obj['spec']['ipam'] = {
            'type': 'static',
            'static': {
                'availableRanges': ['10.0.0.10-10.0.0.20']
            }
        }
        obj['spec']['routes'] = [{'to': '10.1.0.0/16', 'via': '10.0.0.1'}]
        pn = PrivateNetwork.from_object(obj)

        assert pn.name == 'pn-a'
        assert pn.network_id == 'net-1'
        assert pn.cidr == '10.0.0.0/24'
        assert pn.ipam.type == 'static'
        assert pn.ipam.available_ranges == ['10.0.0.10-10.0.0.20']
        assert pn.routes[0].to == '10.1.0.0/16'
        assert pn.routes[0].via == '10.0.0.1'

    def test_optional_fields_absent(self) -> None:
        pn = _pn()
        assert pn.ipam is None
        assert pn.routes == []
        assert not pn.is_being_deleted


class TestBuildNetworkInterface:

    def test_labels_annotations_owner_and_finalizers(self) -> None:
        pn = _pn(labels={'team': 'net', 'node': 'spoofed'},
                 annotations={'note': 'x'})
        body = build_network_interface(pn, 'node-1', '10.0.0.1/24', 'pnic-1',
                                       [FINALIZER, IP_FINALIZER])
        metadata = body['metadata']

        assert metadata['generateName'] == 'pn-a-'
        assert metadata['labels'] == {
            'team': 'net',
            'private-network': 'pn-a',
            'node': 'node-1',
        }
        assert metadata['annotations'] == {'note': 'x'}
        assert metadata['finalizers'] == [FINALIZER, IP_FINALIZER]
        assert body['spec'] == {
            'nodeName': 'node-1',
            'address': '10.0.0.1/24',
            'id': 'pnic-1',
        }
        assert controller_owner_name(body) == 'pn-a'
        assert is_owned_by(body, pn)

    def test_does_not_share_parent_dicts(self) -> None:
        pn = _pn(labels={'team': 'net'})
        body = build_network_interface(pn, 'node-1', '10.0.0.1/24', 'pnic-1',
                                       [])
        body['metadata']['labels']['team'] = 'other'
        assert pn.labels['team'] == 'net'


class TestNetworkInterface:

    def test_ip_strips_prefix_length(self) -> None:
        nic = NetworkInterface.from_object({
            'metadata': {
                'name': 'pn-a-1'
            },
            'spec': {
                'nodeName': 'node-1',
                'address': '10.0.0.7/24',
                'id': 'pnic-1'
            },
            'status': {
                'macAddress': '02:00:00:00:00:01'
            },
        })
        assert nic.ip == '10.0.0.7'
        assert nic.mac_address == '02:00:00:00:00:01'


class TestCloudServer:

    def test_find_private_nic(self) -> None:
        server = CloudServer(id='s', name='node-1', zone='fr-par-1',
                             private_nics=[
                                 PrivateNic(id='a', private_network_id='net-0',
                                            mac_address='m0'),
                                 PrivateNic(id='b', private_network_id='net-1',
                                            mac_address='m1'),
                             ])
        assert server.find_private_nic('net-1').id == 'b'
        assert server.find_private_nic('net-9') is None


def test_result_requeue_flag() -> None:
    assert not Result().requeue
    assert Result(requeue_after=30.0).requeue
