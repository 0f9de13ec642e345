# /*
# Copyright 2026 The OpenAether Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Tests for the Scaleway provider."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, create_autospec

import pytest
from scaleway.instance.v1 import VolumeServerTemplate, VolumeVolumeType
from scaleway.instance.v1.custom_api import InstanceUtilsV1API
from scaleway.ipam.v1 import IpamV1API
from scaleway.vpc.v2 import VpcV2API

from talos_manager.config import ClusterConfig, NodeDistribution
from talos_manager.constants import FIREWALL_RULES
from talos_manager.errors import ProvisioningError
from talos_manager.providers import base
from talos_manager.providers import scaleway as scaleway_provider
from talos_manager.providers.scaleway import ScalewayProvider


@pytest.fixture
def applied(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    nodes: list[str] = []
    monkeypatch.setattr(base, "wait_for_talos_api", lambda host: True)
    monkeypatch.setattr(base, "apply_machine_config", lambda cfg, node: nodes.append(node))
    return nodes


@pytest.fixture
def apis(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    instance = create_autospec(InstanceUtilsV1API, instance=True)
    instance.list_security_groups.return_value = SimpleNamespace(security_groups=[])
    instance.create_security_group.return_value = SimpleNamespace(
        security_group=SimpleNamespace(id="sg-1", name="edge-sg"),
    )
    addresses = iter(range(1, 50))

    def _create_ip(**kwargs):
        n = next(addresses)
        return SimpleNamespace(ip=SimpleNamespace(id=f"ip-{n}", address=f"51.15.0.{n}"))

    instance.create_ip.side_effect = _create_ip
    instance.create_volume.side_effect = lambda **kw: SimpleNamespace(
        volume=SimpleNamespace(id=f"vol-{kw['name']}", name=kw["name"]),
    )
    instance.create_server.side_effect = lambda **kw: SimpleNamespace(server=SimpleNamespace(id=f"srv-{kw['name']}"))
    instance.create_private_nic.side_effect = lambda **kw: SimpleNamespace(
        private_nic=SimpleNamespace(id=f"nic-{kw['server_id']}", private_network_id=kw["private_network_id"]),
    )

    vpc = create_autospec(VpcV2API, instance=True)
    vpc.list_vp_cs.return_value = SimpleNamespace(vpcs=[])
    vpc.create_vpc.return_value = SimpleNamespace(id="vpc-1")
    vpc.list_private_networks.return_value = SimpleNamespace(private_networks=[])
    vpc.create_private_network.return_value = SimpleNamespace(id="pn-1")

    ipam = create_autospec(IpamV1API, instance=True)
    private = iter(range(10, 60))
    ipam.list_i_ps.side_effect = lambda **kw: SimpleNamespace(
        ips=[SimpleNamespace(address=f"172.16.0.{next(private)}/22")],
    )

    monkeypatch.setattr(scaleway_provider, "InstanceUtilsV1API", lambda client: instance)
    monkeypatch.setattr(scaleway_provider, "VpcV2API", lambda client: vpc)
    monkeypatch.setattr(scaleway_provider, "IpamV1API", lambda client: ipam)
    return SimpleNamespace(instance=instance, vpc=vpc, ipam=ipam)


def _provider() -> ScalewayProvider:
    return ScalewayProvider(client=MagicMock())


class TestScalewayNetworking:
    def test_configure(self, apis: SimpleNamespace) -> None:
        provider = _provider()
        provider.configure_networking("edge", ClusterConfig())
        provider.configure_networking("edge", ClusterConfig())

        apis.vpc.create_vpc.assert_called_once()
        vpc = apis.vpc.create_vpc.call_args.kwargs
        assert vpc["enable_routing"] is True
        assert vpc["enable_transitivity"] is False
        assert apis.vpc.create_private_network.call_args.kwargs["vpc_id"] == "vpc-1"
        group = apis.instance.create_security_group.call_args.kwargs
        assert group["inbound_default_policy"] == "drop"
        assert group["outbound_default_policy"] == "accept"
        assert group["stateful"] is True
        assert apis.instance.create_security_group_rule.call_count == len(FIREWALL_RULES)
        assert apis.instance.create_ip.call_count == 1
        assert provider.get_public_endpoint() == "51.15.0.1"

    def test_rules(self, apis: SimpleNamespace) -> None:
        _provider().configure_networking("edge", ClusterConfig())
        calls = [c.kwargs for c in apis.instance.create_security_group_rule.call_args_list]
        rules = {c["dest_port_from"]: c for c in calls}
        assert rules[6443]["dest_port_to"] is None
        assert rules[6443]["protocol"] == "tcp"
        assert rules[2379]["dest_port_to"] == 2380
        assert rules[2379]["ip_range"] == "10.0.0.0/8"
        assert rules[8472]["protocol"] == "udp"
        assert [c["position"] for c in calls] == list(range(1, len(FIREWALL_RULES) + 1))
        assert all(c["direction"] == "inbound" and c["action"] == "accept" for c in calls)

    def test_existing_resources_reused(self, apis: SimpleNamespace) -> None:
        apis.vpc.list_vp_cs.return_value = SimpleNamespace(vpcs=[SimpleNamespace(id="vpc-old")])
        apis.vpc.list_private_networks.return_value = SimpleNamespace(private_networks=[SimpleNamespace(id="pn-old")])
        apis.instance.list_security_groups.return_value = SimpleNamespace(
            security_groups=[SimpleNamespace(id="sg-old", name="edge-sg")],
        )
        _provider().configure_networking("edge", ClusterConfig())
        apis.vpc.create_vpc.assert_not_called()
        apis.vpc.create_private_network.assert_not_called()
        apis.instance.create_security_group.assert_not_called()
        assert apis.vpc.list_private_networks.call_args.kwargs["vpc_id"] == "vpc-old"

    def test_api_failure_is_wrapped(self, apis: SimpleNamespace) -> None:
        apis.vpc.list_vp_cs.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(ProvisioningError, match=r"\[scaleway\] configure-networking failed: quota exceeded"):
            _provider().configure_networking("edge", ClusterConfig())


class TestScalewayNodes:
    def test_provision(self, apis: SimpleNamespace, applied: list[str], machine_secrets) -> None:
        provider = _provider()
        cfg = ClusterConfig(node_distribution="scaleway:1:1")
        provider.configure_networking("edge", cfg)
        nodes, first_cp = provider.provision_nodes(
            "edge", cfg, NodeDistribution("scaleway", 1, 1), 2, machine_secrets, "cp: 1\n", "w: 1\n",
        )
        assert [n.name for n in nodes] == ["edge-cp-2", "edge-worker-3"]
        assert first_cp == "51.15.0.1"
        assert [n.public_ip for n in nodes] == ["51.15.0.1", "51.15.0.2"]
        assert applied == ["51.15.0.1", "51.15.0.2"]

        volume = apis.instance.create_volume.call_args_list[0].kwargs
        assert volume["name"] == "edge-cp-2-ephemeral"
        assert volume["size"] == 25 * 1000 ** 3
        assert volume["volume_type"] == VolumeVolumeType.L_SSD
        server = apis.instance.create_server.call_args_list[0].kwargs
        assert server["public_ips"] == ["ip-1"]
        assert server["security_group"] == "sg-1"
        assert server["dynamic_ip_required"] is False
        assert server["protected"] is False
        assert server["tags"] == ["openaether", "controlplane"]
        assert server["volumes"] == {
            "1": VolumeServerTemplate(volume_type=VolumeVolumeType.L_SSD, id="vol-edge-cp-2-ephemeral", name="edge-cp-2-ephemeral"),
        }
        apis.instance.create_private_nic.assert_any_call(server_id="srv-edge-cp-2", private_network_id="pn-1", zone="fr-par-1")
        apis.instance.server_action.assert_any_call(server_id="srv-edge-worker-3", zone="fr-par-1", action="poweron")

    def test_internal_ip_comes_from_private_network(
        self, apis: SimpleNamespace, applied: list[str], machine_secrets,
    ) -> None:
        nodes, _ = _provider().provision_nodes(
            "edge", ClusterConfig(), NodeDistribution("scaleway", 1, 1), 0, machine_secrets, "cp: 1\n", "w: 1\n",
        )
        assert [n.internal_ip for n in nodes] == ["172.16.0.10", "172.16.0.11"]
        assert all(n.internal_ip != n.public_ip for n in nodes)
        lookup = apis.ipam.list_i_ps.call_args_list[0].kwargs
        assert lookup["resource_id"] == "nic-srv-edge-cp-0"
        assert lookup["private_network_id"] == "pn-1"

    def test_create_failure_names_the_node(self, apis: SimpleNamespace, applied: list[str], machine_secrets) -> None:
        apis.instance.create_server.side_effect = RuntimeError("out of stock")
        with pytest.raises(ProvisioningError, match=r"node edge-cp-0 \(controlplane\) create failed: RuntimeError: out of stock"):
            _provider().provision_nodes(
                "edge", ClusterConfig(), NodeDistribution("scaleway", 1, 0), 0, machine_secrets, "cp: 1\n", "w: 1\n",
            )
