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

"""Local provider running Talos nodes as Docker containers behind HAProxy."""

from __future__ import annotations

from pathlib import Path

import docker
import yaml
from docker.types import Mount
from rich.panel import Panel

from talos_manager import console, logger
from talos_manager.config import ClusterConfig
from talos_manager.constants import (
    HAPROXY_CONFIG_DIR,
    HAPROXY_CONTAINER_CONFIG_PATH,
    HAPROXY_IMAGE,
    HTTP_PORT,
    HTTPS_PORT,
    KUBERNETES_API_PORT,
    LB_PUBLISHED_PORTS,
    LOOPBACK_ADDRESS,
    PROVIDER_DOCKER,
    TALOS_API_PORT,
    TALOS_CONTAINER_TMPFS,
    TALOS_CONTAINER_VOLUMES,
    TALOS_IMAGE,
)
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode

CLUSTER_LABEL = "openaether.cluster"
ROLE_LABEL = "openaether.role"


def internet_network_name(config: ClusterConfig) -> str:
    return f"{config.docker.network_name}-internet"


def zone_network_name(config: ClusterConfig, zone: str) -> str:
    return f"{config.docker.network_name}-{zone}"


def _append_unique(values: list | None, value: str) -> list:
    values = list(values or [])
    if value not in values:
        values.append(value)
    return values


def transform_for_containers(machine_config: str) -> str:
    """Adapt a rendered machine configuration to run inside a container.

    Removes ``machine.install`` (containers have no install disk), adds the
    host loopback to both certificate SAN lists, and disables the default
    CNI and kube-proxy. Documents without a ``machine`` section are kept
    unchanged.

    Args:
        machine_config: Rendered machine configuration (one or more YAML documents).

    Returns:
        The transformed configuration.
    """
    documents = [doc for doc in yaml.safe_load_all(machine_config) if doc is not None]
    for doc in documents:
        if not isinstance(doc, dict) or "machine" not in doc:
            continue
        machine = doc["machine"] = doc.get("machine") or {}
        machine.pop("install", None)
        machine["certSANs"] = _append_unique(machine.get("certSANs"), LOOPBACK_ADDRESS)

        cluster = doc["cluster"] = doc.get("cluster") or {}
        api_server = cluster["apiServer"] = cluster.get("apiServer") or {}
        api_server["certSANs"] = _append_unique(api_server.get("certSANs"), LOOPBACK_ADDRESS)
        network = cluster["network"] = cluster.get("network") or {}
        network["cni"] = {"name": "none"}
        proxy = cluster["proxy"] = cluster.get("proxy") or {}
        proxy["disabled"] = True
    return yaml.safe_dump_all(documents, sort_keys=False)


def render_haproxy_config(control_planes: list[str], workers: list[str]) -> str:
    """Render the HAProxy configuration fronting the local cluster.

    Args:
        control_planes: Control-plane container names (Docker DNS names).
        workers: Worker container names.

    Returns:
        HAProxy configuration text.
    """
    lines = [
        "defaults",
        "    mode tcp",
        "    timeout connect 5s",
        "    timeout client 1m",
        "    timeout server 1m",
        "",
    ]

    def _section(frontend: str, port: int, prefix: str, targets: list[str]) -> None:
        lines.extend([
            f"frontend {frontend}",
            f"    bind *:{port}",
            f"    default_backend {frontend}_backend",
            "",
            f"backend {frontend}_backend",
            "    balance roundrobin",
        ])
        lines.extend(f"    server {prefix}-{i} {name}:{port} check" for i, name in enumerate(targets))
        lines.append("")

    _section("k8s_api", KUBERNETES_API_PORT, "cp", control_planes)
    _section("talos_api", TALOS_API_PORT, "cp", control_planes)
    _section("ingress_http", HTTP_PORT, "worker", workers)
    _section("ingress_https", HTTPS_PORT, "worker", workers)
    return "\n".join(lines)


class DockerProvider(ClusterProvider):
    """Simulates a multi-zone cluster with Talos containers on bridge networks."""

    is_local = True

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client
        self._configured = False

    @property
    def name(self) -> str:
        return PROVIDER_DOCKER

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _ensure_network(self, name: str, cluster_name: str) -> None:
        existing = [net for net in self.client.networks.list(names=[name]) if net.name == name]
        if existing:
            console.print(f"[yellow]   Reusing network {name}[/yellow]")
            return
        self.client.networks.create(name, driver="bridge", labels={CLUSTER_LABEL: cluster_name})
        console.print(f"[green]  \u2713 Created network {name}[/green]")

    def _remove_existing_container(self, name: str) -> None:
        try:
            self.client.containers.get(name).remove(force=True)
            console.print(f"[yellow]   Removed existing container {name}[/yellow]")
        except docker.errors.NotFound:
            pass

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        """Create the shared internet network and one network per simulated zone."""
        if self._configured:
            return
        self._ensure_network(internet_network_name(config), cluster_name)
        for zone in config.docker.clouds:
            self._ensure_network(zone_network_name(config, zone), cluster_name)
        self._configured = True

    def get_public_endpoint(self) -> str:
        return LOOPBACK_ADDRESS

    def transform_machine_config(self, machine_config: str, role: NodeRole) -> str:
        return transform_for_containers(machine_config)

    def bootstrap_address(self, node: ProvisionedNode) -> str:
        return node.internal_ip

    def _container_ip(self, container, network: str) -> str:
        container.reload()
        networks = container.attrs.get("NetworkSettings", {}).get("Networks", {}) or {}
        address = (networks.get(network) or {}).get("IPAddress")
        if address:
            return address
        for settings in networks.values():
            if settings.get("IPAddress"):
                return settings["IPAddress"]
        raise RuntimeError(f"container {container.name} has no IP address")

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        internet = internet_network_name(config)
        zone = config.docker.clouds[local_index % len(config.docker.clouds)]
        self._remove_existing_container(name)

        mounts = [
            Mount(target="/dev", source="/dev", type="bind"),
            Mount(target="/run/udev", source="/run/udev", type="bind", read_only=True),
            *(Mount(target=path, source=None, type="volume") for path in TALOS_CONTAINER_VOLUMES),
        ]
        container = self.client.containers.run(
            f"{TALOS_IMAGE}:{config.talos_version}",
            name=name,
            hostname=name,
            detach=True,
            privileged=True,
            read_only=True,
            tmpfs=dict(TALOS_CONTAINER_TMPFS),
            mounts=mounts,
            environment={"PLATFORM": "container"},
            cgroupns="private",
            restart_policy={"Name": "unless-stopped"},
            network=internet,
            labels={CLUSTER_LABEL: cluster_name, ROLE_LABEL: role.value},
        )
        self.client.networks.get(zone_network_name(config, zone)).connect(container)
        address = self._container_ip(container, internet)
        logger.info("Container %s (%s) is at %s in zone %s", name, role.value, address, zone)

        self.apply_config(address, machine_config)
        return ProvisionedNode(
            name=name,
            role=role,
            provider=self.name,
            internal_ip=address,
            public_ip=LOOPBACK_ADDRESS,
            resource_id=container.id,
        )

    def finalize(self, cluster_name: str, config: ClusterConfig, nodes: list[ProvisionedNode], workdir: Path) -> None:
        """Start the HAProxy load balancer in front of the local nodes."""
        console.print(Panel.fit("Starting local load balancer", style="bold blue"))
        control_planes = [n.name for n in nodes if n.role is NodeRole.CONTROL_PLANE]
        workers = [n.name for n in nodes if n.role is NodeRole.WORKER]

        config_dir = workdir / HAPROXY_CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)
        config_file = config_dir / "haproxy.cfg"
        config_file.write_text(render_haproxy_config(control_planes, workers))

        self._remove_existing_container(config.cluster_endpoint)
        self.client.containers.run(
            HAPROXY_IMAGE,
            name=config.cluster_endpoint,
            hostname=config.cluster_endpoint,
            detach=True,
            network=internet_network_name(config),
            ports={f"{port}/tcp": port for port in LB_PUBLISHED_PORTS},
            volumes={str(config_file.resolve()): {"bind": HAPROXY_CONTAINER_CONFIG_PATH, "mode": "ro"}},
            restart_policy={"Name": "unless-stopped"},
            labels={CLUSTER_LABEL: cluster_name},
        )
        console.print(f"[green]\u2705 Load balancer {config.cluster_endpoint} is running[/green]")
