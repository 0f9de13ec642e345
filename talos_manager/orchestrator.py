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

"""Orchestration of a full cluster run across one or more providers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from rich.panel import Panel

from talos_manager import console, logger
from talos_manager.artifacts import build_kubeconfig, build_talosconfig, rewrite_loopback_server
from talos_manager.components import CiliumConfig, install_cilium
from talos_manager.config import ClusterConfig, NodeDistribution
from talos_manager.constants import PROVIDER_DOCKER, STATUS_PROVISIONED
from talos_manager.errors import ClusterConfigError, ProvisioningError
from talos_manager.providers.base import ClusterProvider, ProvisionedNode
from talos_manager.providers.registry import ProviderRegistry, default_registry
from talos_manager.readiness import wait_for_cluster_ready
from talos_manager.talos import bootstrap_cluster, generate_secrets, render_machine_configs
from talos_manager.utils import require_command


class ClusterPhase(str, Enum):
    """Milestones of a cluster run, in order."""

    SECRETS_GENERATED = "secrets-generated"
    ENDPOINT_RESOLVED = "endpoint-resolved"
    CONFIGS_RENDERED = "configs-rendered"
    NODES_PROVISIONED = "nodes-provisioned"
    BOOTSTRAPPED = "bootstrapped"
    READY = "ready"
    CNI_INSTALLED = "cni-installed"


@dataclass(frozen=True)
class ProvisionStep:
    """One provider's share of the cluster and the index of its first node."""

    provider: ClusterProvider
    distribution: NodeDistribution
    global_node_index: int


@dataclass
class ClusterOutputs:
    """Result of a successful run.

    Attributes:
        cloud_provider: Providers used, comma separated.
        multi_provider: Whether the run used a node distribution.
        node_distribution: Topology summary.
        skipped_distribution_entries: Distribution entries the parser dropped.
        total_nodes: Number of nodes created.
        cilium_version: Installed Cilium chart version.
        wireguard_enabled: Whether Cilium encrypts traffic with WireGuard.
        bootstrap_address: Address of the node etcd was bootstrapped on.
        kubeconfig: Admin kubeconfig document.
        talosconfig: Talos client configuration document.
        nodes: Every node created.
        status: Final status.
    """

    cloud_provider: str
    multi_provider: bool
    node_distribution: str
    skipped_distribution_entries: int
    total_nodes: int
    cilium_version: str
    wireguard_enabled: bool
    bootstrap_address: str
    kubeconfig: str
    talosconfig: str
    nodes: list[ProvisionedNode] = field(default_factory=list)
    status: str = STATUS_PROVISIONED

    def exports(self) -> dict[str, Any]:
        """Metadata suitable for printing or serializing; excludes the bundles."""
        data = asdict(self)
        data.pop("kubeconfig")
        data.pop("talosconfig")
        data["nodes"] = [
            {**asdict(node), "role": node.role.value} for node in self.nodes
        ]
        return data


# ============================================================================
# Planning
# ============================================================================

def select_provider(registry: ProviderRegistry, name: str) -> ClusterProvider:
    """Resolve the single-provider selection, falling back to docker for unknown names."""
    provider, found = registry.get(name)
    if found:
        return provider
    console.print(f"[yellow]\u26a0\ufe0f  Unknown cloud provider '{name}', defaulting to {PROVIDER_DOCKER}[/yellow]")
    return registry.require(PROVIDER_DOCKER)


def plan_provisioning(config: ClusterConfig, registry: ProviderRegistry) -> list[ProvisionStep]:
    """Turn the configuration into an ordered provisioning plan.

    Args:
        config: Resolved cluster configuration.
        registry: Providers available to the run.

    Returns:
        One step per distribution entry (a single step in single-provider
        mode), with contiguous global node indices.

    Raises:
        UnknownProviderError: If a distribution entry names an unknown provider.
        ClusterConfigError: If the plan has no control-plane node.
    """
    if config.is_multi_provider():
        steps: list[ProvisionStep] = []
        index = 0
        for entry in config.nodes:
            steps.append(ProvisionStep(registry.require(entry.provider), entry, index))
            index += entry.total
    else:
        provider = select_provider(registry, config.cloud_provider)
        entry = NodeDistribution(provider.name, config.control_plane_nodes, config.worker_nodes)
        steps = [ProvisionStep(provider, entry, 0)]

    if not any(step.distribution.control_planes > 0 for step in steps):
        raise ClusterConfigError(f"Cluster needs at least one control-plane node ({config.summary()})")
    return steps


def _announce(phase: ClusterPhase, message: str) -> None:
    logger.info("Phase %s", phase.value)
    console.print(Panel.fit(message, style="bold blue"))


def check_prerequisites() -> None:
    """Check the CLI tools a run shells out to."""
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in ("talosctl", "kubectl", "helm"):
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def resolve_endpoint(
    config: ClusterConfig,
    provider: ClusterProvider,
    configured: set[str],
) -> str:
    """Host embedded in the machine configs as the cluster endpoint.

    Local providers use the configured internal endpoint (the load balancer
    name). Cloud providers configure networking first and use their
    reserved public address.

    Raises:
        ProvisioningError: If the provider has no public address.
    """
    if provider.is_local:
        return config.cluster_endpoint
    provider.configure_networking(config.cluster_name, config)
    configured.add(provider.name)
    endpoint = provider.get_public_endpoint()
    if not endpoint:
        raise ProvisioningError(provider.name, "resolve-endpoint", "provider returned no public endpoint")
    return endpoint


# ============================================================================
# Public API
# ============================================================================

def create_talos_cluster(
    config: ClusterConfig,
    registry: ProviderRegistry | None = None,
    *,
    workdir: Path,
) -> ClusterOutputs:
    """Provision, bootstrap and prepare a Talos cluster.

    Steps run strictly in order and the first failure aborts the run;
    resources that were already created are left in place.

    Args:
        config: Resolved cluster configuration.
        registry: Providers available to the run; the built-in set by default.
        workdir: Directory for generated secrets, configs and the load balancer config.

    Returns:
        Exported metadata and both client configuration bundles.
    """
    registry = registry or default_registry()
    steps = plan_provisioning(config, registry)
    bootstrap_step = next(step for step in steps if step.distribution.control_planes > 0)
    primary = bootstrap_step.provider
    console.print(f"[yellow]\u2139\ufe0f  {config.summary()}[/yellow]")

    secrets = generate_secrets(config, workdir / "secrets")
    _announce(ClusterPhase.SECRETS_GENERATED, f"Machine secrets written to {secrets.secrets_file}")

    configured: set[str] = set()
    endpoint = resolve_endpoint(config, primary, configured)
    _announce(ClusterPhase.ENDPOINT_RESOLVED, f"Cluster endpoint: {endpoint}")

    machine_configs = render_machine_configs(config, endpoint, secrets, workdir / "configs")
    _announce(ClusterPhase.CONFIGS_RENDERED, "Provisioning nodes")

    nodes: list[ProvisionedNode] = []
    nodes_by_provider: dict[str, list[ProvisionedNode]] = {}
    providers: dict[str, ClusterProvider] = {}
    bootstrap_address: str | None = None
    for step in steps:
        provider = step.provider
        if provider.name not in configured:
            provider.configure_networking(config.cluster_name, config)
            configured.add(provider.name)
        created, first_cp = provider.provision_nodes(
            config.cluster_name,
            config,
            step.distribution,
            step.global_node_index,
            secrets,
            machine_configs.controlplane,
            machine_configs.worker,
        )
        if step is bootstrap_step:
            bootstrap_address = first_cp
        providers[provider.name] = provider
        nodes_by_provider.setdefault(provider.name, []).extend(created)
        nodes.extend(created)

    if not bootstrap_address:
        raise ProvisioningError(primary.name, "provision", "no control-plane node was created")

    for name, provider_nodes in nodes_by_provider.items():
        providers[name].finalize(config.cluster_name, config, provider_nodes, workdir)
    _announce(ClusterPhase.NODES_PROVISIONED, f"Bootstrapping at {bootstrap_address}")

    bootstrap_cluster(secrets, bootstrap_address)

    kubeconfig = build_kubeconfig(
        config.cluster_name,
        primary.get_public_endpoint(),
        secrets.kubernetes_ca_cert,
        secrets.kubernetes_ca_key,
    )
    if primary.is_local:
        kubeconfig = rewrite_loopback_server(kubeconfig, config.cluster_public_endpoint)
    _announce(ClusterPhase.BOOTSTRAPPED, "Waiting for cluster readiness")

    wait_for_cluster_ready(kubeconfig)
    talosconfig = build_talosconfig(config.cluster_name, bootstrap_address, secrets.client)
    _announce(ClusterPhase.READY, "Installing CNI")

    cilium = CiliumConfig(
        k8s_service_host=config.cluster_endpoint if primary.is_local else bootstrap_address,
        version=config.cilium_version,
        enable_wireguard=config.enable_wireguard,
    )
    install_cilium(cilium, kubeconfig)
    logger.info("Phase %s", ClusterPhase.CNI_INSTALLED.value)

    return ClusterOutputs(
        cloud_provider=", ".join(providers),
        multi_provider=config.is_multi_provider(),
        node_distribution=config.summary(),
        skipped_distribution_entries=config.skipped_distribution_entries,
        total_nodes=len(nodes),
        cilium_version=config.cilium_version,
        wireguard_enabled=config.enable_wireguard,
        bootstrap_address=bootstrap_address,
        kubeconfig=kubeconfig,
        talosconfig=talosconfig,
        nodes=nodes,
    )
