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

"""Configuration classes, node distribution parsing, and config display."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from talos_manager import console
from talos_manager.constants import (
    DEFAULT_CILIUM_VERSION,
    DEFAULT_CLOUD_PROVIDER,
    DEFAULT_CLUSTER_DOMAIN,
    DEFAULT_CLUSTER_ENDPOINT,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CLUSTER_PUBLIC_ENDPOINT,
    DEFAULT_CONTROL_PLANE_NODES,
    DEFAULT_DOCKER_CLOUDS,
    DEFAULT_DOCKER_NETWORK,
    DEFAULT_KUBERNETES_VERSION,
    DEFAULT_OS_AUTH_URL,
    DEFAULT_OS_USER_DOMAIN_NAME,
    DEFAULT_OSC_IMAGE_ID,
    DEFAULT_OSC_INSTANCE_TYPE,
    DEFAULT_OSC_REGION,
    DEFAULT_OVH_FLAVOR,
    DEFAULT_OVH_NETWORK,
    DEFAULT_OVH_REGION,
    DEFAULT_SCW_INSTANCE_TYPE,
    DEFAULT_SCW_REGION,
    DEFAULT_SCW_ZONE,
    DEFAULT_TALOS_VERSION,
    DEFAULT_WORKER_NODES,
)


# ============================================================================
# Node distribution
# ============================================================================

@dataclass(frozen=True)
class NodeDistribution:
    """One provider's share of the cluster topology.

    Attributes:
        provider: Registry name of the provider hosting these nodes.
        control_planes: Number of control-plane nodes on the provider.
        workers: Number of worker nodes on the provider.
    """

    provider: str
    control_planes: int
    workers: int

    @property
    def total(self) -> int:
        return self.control_planes + self.workers


class ParsedDistribution(NamedTuple):
    """Result of parsing a node distribution string."""

    entries: list[NodeDistribution]
    skipped: int


def _parse_count(raw: str) -> int:
    """Parse a node count, coercing anything unusable to 0."""
    try:
        value = int(raw.strip())
    except ValueError:
        return 0
    return max(value, 0)


def parse_node_distribution(text: str) -> ParsedDistribution:
    """Parse ``provider:cp:workers,...`` into node distribution entries.

    Parsing is lenient: an entry without exactly three colon-separated
    fields is dropped, a count that is not an integer becomes 0, and an
    entry whose counts are both 0 is dropped. Blank entries (e.g. from a
    trailing comma) are ignored without being counted.

    Args:
        text: Raw distribution string, e.g. ``docker:2:3,ovh:1:2``.

    Returns:
        The parsed entries in input order and the number of entries dropped.
    """
    entries: list[NodeDistribution] = []
    skipped = 0
    if not text or not text.strip():
        return ParsedDistribution(entries, skipped)

    for raw_entry in text.split(","):
        raw_entry = raw_entry.strip()
        if not raw_entry:
            continue
        parts = [part.strip() for part in raw_entry.split(":")]
        if len(parts) != 3:
            skipped += 1
            continue
        control_planes = _parse_count(parts[1])
        workers = _parse_count(parts[2])
        if control_planes == 0 and workers == 0:
            skipped += 1
            continue
        entries.append(NodeDistribution(parts[0], control_planes, workers))
    return ParsedDistribution(entries, skipped)


# ============================================================================
# Provider configuration classes
# ============================================================================

class DockerConfig(BaseSettings):
    """Local container runtime settings, auto-loaded from DOCKER_* env vars.

    Attributes:
        network_name: Base name for the simulated networks.
        clouds: Simulated zones; each gets its own bridge network.
    """

    model_config = SettingsConfigDict(env_prefix="DOCKER_", env_file=".env", extra="ignore")

    network_name: str = DEFAULT_DOCKER_NETWORK
    clouds: list[str] = Field(default_factory=lambda: list(DEFAULT_DOCKER_CLOUDS), min_length=1)


class ScalewayConfig(BaseSettings):
    """Scaleway settings, auto-loaded from SCW_* env vars."""

    model_config = SettingsConfigDict(env_prefix="SCW_", env_file=".env", extra="ignore")

    region: str = DEFAULT_SCW_REGION
    zone: str = DEFAULT_SCW_ZONE
    project_id: str = ""
    instance_type: str = DEFAULT_SCW_INSTANCE_TYPE
    snapshot_id: str = ""
    access_key: str = ""
    secret_key: str = ""


class OpenStackCredentials(BaseSettings):
    """Keystone credentials, auto-loaded from the standard OS_* env vars."""

    model_config = SettingsConfigDict(env_prefix="OS_", env_file=".env", extra="ignore")

    auth_url: str = DEFAULT_OS_AUTH_URL
    tenant_id: str = ""
    tenant_name: str = ""
    username: str = ""
    password: str = ""
    user_domain_name: str = DEFAULT_OS_USER_DOMAIN_NAME


class OvhConfig(BaseSettings):
    """OVH Public Cloud settings, auto-loaded from OVH_* env vars.

    Attributes:
        region: OpenStack region name (e.g. ``GRA11``).
        flavor: Instance flavor name.
        image_id: Glance image holding the Talos OpenStack build.
        network: Name of the private network created for the cluster.
        credentials: Keystone credentials loaded from OS_* env vars.
    """

    model_config = SettingsConfigDict(env_prefix="OVH_", env_file=".env", extra="ignore")

    region: str = DEFAULT_OVH_REGION
    flavor: str = DEFAULT_OVH_FLAVOR
    image_id: str = ""
    network: str = DEFAULT_OVH_NETWORK
    credentials: OpenStackCredentials = Field(default_factory=OpenStackCredentials)


class OutscaleConfig(BaseSettings):
    """Outscale settings, auto-loaded from OSC_* env vars."""

    model_config = SettingsConfigDict(env_prefix="OSC_", env_file=".env", extra="ignore")

    region: str = DEFAULT_OSC_REGION
    instance_type: str = DEFAULT_OSC_INSTANCE_TYPE
    image_id: str = DEFAULT_OSC_IMAGE_ID
    subnet_id: str = ""
    keypair: str = ""
    access_key: str = ""
    secret_key: str = ""


class DenvrConfig(BaseSettings):
    """Denvr Dataworks settings. No provider API is wired up yet."""

    model_config = SettingsConfigDict(env_prefix="DENVR_", env_file=".env", extra="ignore")


# ============================================================================
# Cluster configuration
# ============================================================================

class ClusterConfig(BaseSettings):
    """Cluster-wide configuration, auto-loaded from the environment and ``.env``.

    ``node_distribution`` holds the raw ``NODE_DISTRIBUTION`` text; a
    non-empty parse switches the whole run into multi-provider mode, in
    which ``cloud_provider``, ``control_plane_nodes`` and ``worker_nodes``
    are ignored.

    Attributes:
        cluster_name: Cluster name, also the prefix of every resource name.
        kubernetes_version: Kubernetes version installed by Talos.
        talos_version: Talos version used to render machine configs.
        cluster_endpoint: Internal endpoint nodes use to reach the API.
        cluster_public_endpoint: Endpoint written into the user kubeconfig.
        cluster_domain: Kubernetes DNS domain.
        control_plane_nodes: Legacy single-provider control-plane count.
        worker_nodes: Legacy single-provider worker count.
        node_distribution: Raw ``provider:cp:workers,...`` text.
        cloud_provider: Legacy single-provider selection.
        enable_wireguard: Whether Cilium encrypts traffic with WireGuard.
        cilium_version: Cilium Helm chart version.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    cluster_name: str = Field(default=DEFAULT_CLUSTER_NAME, min_length=1)
    kubernetes_version: str = Field(default=DEFAULT_KUBERNETES_VERSION, pattern=r"^v?[\d.]+(-[\w.]+)?$")
    talos_version: str = Field(default=DEFAULT_TALOS_VERSION, pattern=r"^v[\d.]+(-[\w.]+)?$")
    cluster_endpoint: str = DEFAULT_CLUSTER_ENDPOINT
    cluster_public_endpoint: str = DEFAULT_CLUSTER_PUBLIC_ENDPOINT
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN
    control_plane_nodes: int = Field(default=DEFAULT_CONTROL_PLANE_NODES, ge=0)
    worker_nodes: int = Field(default=DEFAULT_WORKER_NODES, ge=0)
    node_distribution: str = ""
    cloud_provider: str = DEFAULT_CLOUD_PROVIDER
    enable_wireguard: bool = True
    cilium_version: str = DEFAULT_CILIUM_VERSION

    docker: DockerConfig = Field(default_factory=DockerConfig)
    scaleway: ScalewayConfig = Field(default_factory=ScalewayConfig)
    ovh: OvhConfig = Field(default_factory=OvhConfig)
    outscale: OutscaleConfig = Field(default_factory=OutscaleConfig)
    denvr: DenvrConfig = Field(default_factory=DenvrConfig)

    def _parsed(self) -> ParsedDistribution:
        return parse_node_distribution(self.node_distribution)

    @property
    def nodes(self) -> list[NodeDistribution]:
        """Parsed node distribution entries, empty in single-provider mode."""
        return self._parsed().entries

    @property
    def skipped_distribution_entries(self) -> int:
        """Number of distribution entries the parser dropped."""
        return self._parsed().skipped

    def is_multi_provider(self) -> bool:
        return len(self.nodes) > 0

    def total_control_planes(self) -> int:
        if self.is_multi_provider():
            return sum(entry.control_planes for entry in self.nodes)
        return self.control_plane_nodes

    def total_workers(self) -> int:
        if self.is_multi_provider():
            return sum(entry.workers for entry in self.nodes)
        return self.worker_nodes

    def total_nodes(self) -> int:
        return self.total_control_planes() + self.total_workers()

    def providers_used(self) -> list[str]:
        """Provider names in distribution order (duplicates removed)."""
        if not self.is_multi_provider():
            return [self.cloud_provider or DEFAULT_CLOUD_PROVIDER]
        return list(dict.fromkeys(entry.provider for entry in self.nodes))

    def summary(self) -> str:
        """Human readable topology summary.

        Returns:
            ``single-provider: 3 CP, 2 Workers`` or
            ``multi-provider: [docker:2CP+3W, ovh:1CP+2W]``, followed by the
            number of dropped distribution entries when there are any.
        """
        if self.is_multi_provider():
            parts = [f"{e.provider}:{e.control_planes}CP+{e.workers}W" for e in self.nodes]
            text = f"multi-provider: [{', '.join(parts)}]"
        else:
            text = f"single-provider: {self.control_plane_nodes} CP, {self.worker_nodes} Workers"
        skipped = self.skipped_distribution_entries
        if skipped:
            text += f" (skipped {skipped} malformed distribution entries)"
        return text

    def __str__(self) -> str:
        return self.summary()


# ============================================================================
# Config display
# ============================================================================

def display_config(config: ClusterConfig) -> None:
    """Print the resolved configuration.

    Args:
        config: Resolved cluster configuration.
    """
    lines = [
        f"Cluster:            {config.cluster_name}",
        f"Topology:           {config.summary()}",
        f"Providers:          {', '.join(config.providers_used())}",
        f"Talos / Kubernetes: {config.talos_version} / {config.kubernetes_version}",
        f"Endpoint:           {config.cluster_endpoint} (public {config.cluster_public_endpoint})",
        f"Cilium:             {config.cilium_version} (wireguard: {config.enable_wireguard})",
    ]
    console.print(Panel.fit("\n".join(lines), title="Configuration", style="bold blue"))
    if config.skipped_distribution_entries:
        console.print(
            f"[yellow]\u26a0\ufe0f  Ignored {config.skipped_distribution_entries} malformed "
            f"NODE_DISTRIBUTION entries[/yellow]"
        )
