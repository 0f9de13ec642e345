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

"""Tests for the provider base class and the local Docker provider."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import docker
import pytest
import yaml

from talos_manager.config import ClusterConfig, NodeDistribution
from talos_manager.errors import ProvisioningError, TalosError
from talos_manager.providers import base
from talos_manager.providers.base import NodeRole, node_name
from talos_manager.providers.docker import (
    DockerProvider,
    render_haproxy_config,
    transform_for_containers,
)

MACHINE_CONFIG = """version: v1alpha1
machine:
  type: controlplane
  install:
    disk: /dev/sda
  certSANs:
    - 10.0.0.1
cluster:
  apiServer:
    certSANs:
      - 10.0.0.1
  network:
    cni:
      name: flannel
---
apiVersion: v1alpha1
kind: HostnameConfig
auto: stable
"""


@pytest.fixture
def applied(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, str]]:
    calls: list[tuple[str, str]] = []
    monkeypatch.setattr(base, "wait_for_talos_api", lambda host: True)
    monkeypatch.setattr(base, "apply_machine_config", lambda cfg, node: calls.append((node, cfg)))
    return calls


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.networks.list.return_value = []
    client.containers.get.side_effect = docker.errors.NotFound("no such container")
    counter = iter(range(2, 100))

    def _run(image, name, **kwargs):
        container = MagicMock()
        container.name = name
        container.id = f"id-{name}"
        container.attrs = {"NetworkSettings": {"Networks": {
            kwargs.get("network", ""): {"IPAddress": f"172.20.0.{next(counter)}"},
        }}}
        return container

    client.containers.run.side_effect = _run
    return client


def test_node_name() -> None:
    assert node_name("edge", NodeRole.CONTROL_PLANE, 0) == "edge-cp-0"
    assert node_name("edge", NodeRole.WORKER, 7) == "edge-worker-7"


class TestTransformForContainers:
    def test_machine_document(self) -> None:
        docs = list(yaml.safe_load_all(transform_for_containers(MACHINE_CONFIG)))
        machine_doc = docs[0]
        assert "install" not in machine_doc["machine"]
        assert machine_doc["machine"]["certSANs"] == ["10.0.0.1", "127.0.0.1"]
        assert machine_doc["cluster"]["apiServer"]["certSANs"] == ["10.0.0.1", "127.0.0.1"]
        assert machine_doc["cluster"]["network"]["cni"] == {"name": "none"}
        assert machine_doc["cluster"]["proxy"] == {"disabled": True}

    def test_other_documents_unchanged(self) -> None:
        docs = list(yaml.safe_load_all(transform_for_containers(MACHINE_CONFIG)))
        assert docs[1] == {"apiVersion": "v1alpha1", "kind": "HostnameConfig", "auto": "stable"}

    def test_idempotent_san(self) -> None:
        once = transform_for_containers(MACHINE_CONFIG)
        twice = yaml.safe_load(transform_for_containers(once).split("---")[0])
        assert twice["machine"]["certSANs"].count("127.0.0.1") == 1


class TestHaproxyConfig:
    def test_backends(self) -> None:
        cfg = render_haproxy_config(["edge-cp-0", "edge-cp-1"], ["edge-worker-2"])
        assert "frontend k8s_api\n    bind *:6443" in cfg
        assert "    server cp-1 edge-cp-1:6443 check" in cfg
        assert "    server cp-0 edge-cp-0:50000 check" in cfg
        assert "    server worker-0 edge-worker-2:443 check" in cfg
        assert "backend ingress_http_backend\n    balance roundrobin" in cfg
        assert "edge-worker-2:6443" not in cfg


class TestDockerProvider:
    def test_networks(self, client: MagicMock) -> None:
        provider = DockerProvider(client=client)
        provider.configure_networking("edge", ClusterConfig())
        provider.configure_networking("edge", ClusterConfig())
        created = [c.args[0] for c in client.networks.create.call_args_list]
        assert created == ["openaether-net-internet", "openaether-net-cloud-a", "openaether-net-cloud-b"]

    def test_existing_network_reused(self, client: MagicMock) -> None:
        existing = MagicMock()
        existing.name = "openaether-net-internet"
        client.networks.list.side_effect = lambda names: [existing] if names == ["openaether-net-internet"] else []
        DockerProvider(client=client).configure_networking("edge", ClusterConfig())
        assert client.networks.create.call_count == 2

    def test_provision_names_and_zones(self, client: MagicMock, applied, machine_secrets) -> None:
        provider = DockerProvider(client=client)
        nodes, first_cp = provider.provision_nodes(
            "edge", ClusterConfig(), NodeDistribution("docker", 1, 2), 3, machine_secrets,
            MACHINE_CONFIG, "machine:\n  type: worker\n",
        )
        assert [n.name for n in nodes] == ["edge-cp-3", "edge-worker-4", "edge-worker-5"]
        assert [n.role for n in nodes] == [NodeRole.CONTROL_PLANE, NodeRole.WORKER, NodeRole.WORKER]
        assert first_cp == nodes[0].internal_ip == "172.20.0.2"
        assert {n.public_ip for n in nodes} == {"127.0.0.1"}
        assert nodes[0].resource_id == "id-edge-cp-3"

        zones = [c.args[0] for c in client.networks.get.call_args_list]
        assert zones == ["openaether-net-cloud-a", "openaether-net-cloud-a", "openaether-net-cloud-b"]

        run = client.containers.run.call_args_list[0]
        assert run.args[0] == "ghcr.io/siderolabs/talos:v1.11.6"
        assert run.kwargs["privileged"] is True
        assert run.kwargs["environment"] == {"PLATFORM": "container"}

        assert [node for node, _ in applied] == ["172.20.0.2", "172.20.0.3", "172.20.0.4"]
        assert "install" not in yaml.safe_load(applied[0][1].split("---")[0])["machine"]

    def test_workers_only(self, client: MagicMock, applied, machine_secrets) -> None:
        nodes, first_cp = DockerProvider(client=client).provision_nodes(
            "edge", ClusterConfig(), NodeDistribution("docker", 0, 1), 0, machine_secrets, "a: 1\n", "b: 2\n",
        )
        assert first_cp is None
        assert nodes[0].name == "edge-worker-0"

    def test_create_failure_is_wrapped(self, client: MagicMock, applied, machine_secrets) -> None:
        client.containers.run.side_effect = docker.errors.APIError("image not found")
        with pytest.raises(ProvisioningError) as excinfo:
            DockerProvider(client=client).provision_nodes(
                "edge", ClusterConfig(), NodeDistribution("docker", 1, 0), 0, machine_secrets, "a: 1\n", "b: 2\n",
            )
        assert str(excinfo.value).startswith("[docker] node edge-cp-0 (controlplane) create failed: APIError")
        assert excinfo.value.step == "create"

    def test_apply_failure_is_wrapped(
        self, monkeypatch: pytest.MonkeyPatch, client: MagicMock, applied, machine_secrets,
    ) -> None:
        def _fail(cfg: str, node: str) -> None:
            raise TalosError("talosctl apply-config failed: timeout")

        monkeypatch.setattr(base, "apply_machine_config", _fail)
        with pytest.raises(ProvisioningError, match="apply-config failed: talosctl apply-config failed") as excinfo:
            DockerProvider(client=client).provision_nodes(
                "edge", ClusterConfig(), NodeDistribution("docker", 0, 1), 0, machine_secrets, "a: 1\n", "b: 2\n",
            )
        assert excinfo.value.node == "edge-worker-0"

    def test_finalize_starts_load_balancer(self, client: MagicMock, applied, machine_secrets, tmp_path: Path) -> None:
        provider = DockerProvider(client=client)
        cfg = ClusterConfig()
        nodes, _ = provider.provision_nodes(
            "edge", cfg, NodeDistribution("docker", 1, 1), 0, machine_secrets, "a: 1\n", "b: 2\n",
        )
        provider.finalize("edge", cfg, nodes, tmp_path)

        haproxy_cfg = (tmp_path / "haproxy" / "haproxy.cfg").read_text()
        assert "server cp-0 edge-cp-0:6443 check" in haproxy_cfg
        assert "server worker-0 edge-worker-1:80 check" in haproxy_cfg

        lb = client.containers.run.call_args_list[-1]
        assert lb.args[0] == "haproxy:alpine"
        assert lb.kwargs["name"] == "openaether-local-lb"
        assert lb.kwargs["ports"] == {"6443/tcp": 6443, "50000/tcp": 50000, "80/tcp": 80, "443/tcp": 443}
