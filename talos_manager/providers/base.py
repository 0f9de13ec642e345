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

"""Provider contract shared by every infrastructure backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from talos_manager import console, logger
from talos_manager.config import ClusterConfig, NodeDistribution
from talos_manager.errors import ProvisioningError, TalosError
from talos_manager.talos import MachineSecrets, apply_machine_config, wait_for_talos_api


class NodeRole(str, Enum):
    """Kubernetes role of a Talos node."""

    CONTROL_PLANE = "controlplane"
    WORKER = "worker"

    @property
    def name_prefix(self) -> str:
        return "cp" if self is NodeRole.CONTROL_PLANE else "worker"


@dataclass(frozen=True)
class ProvisionedNode:
    """A node that exists and has had its machine configuration applied.

    Attributes:
        name: Node name, ``{cluster}-{cp|worker}-{global index}``.
        role: Control plane or worker.
        provider: Registry name of the provider that created the node.
        internal_ip: Address on the provider's private network.
        public_ip: Address reachable from outside the provider.
        resource_id: Provider handle for the node (container, server or VM id).
    """

    name: str
    role: NodeRole
    provider: str
    internal_ip: str
    public_ip: str
    resource_id: str = ""


def node_name(cluster_name: str, role: NodeRole, index: int) -> str:
    return f"{cluster_name}-{role.name_prefix}-{index}"


class ClusterProvider(ABC):
    """Infrastructure backend able to host Talos nodes.

    Subclasses implement networking, per-node creation and the public
    endpoint. Node ordering, naming, config selection and error reporting
    live here so every backend behaves identically.
    """

    is_local: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable registry key, also recorded on every node."""

    @abstractmethod
    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        """Create (or find) the provider's network, firewall and reserved address.

        Must be safe to call more than once.
        """

    @abstractmethod
    def get_public_endpoint(self) -> str:
        """Address external callers use, or ``""`` before networking is configured."""

    @abstractmethod
    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        """Create one node and apply *machine_config* to it.

        Called by :meth:`provision_nodes` once per node, control planes first.
        Exceptions are wrapped in :class:`ProvisioningError` naming the node.
        """

    def transform_machine_config(self, machine_config: str, role: NodeRole) -> str:
        """Adjust a rendered machine configuration for this provider."""
        return machine_config

    def finalize(self, cluster_name: str, config: ClusterConfig, nodes: list[ProvisionedNode], workdir: Path) -> None:
        """Hook run after all of this provider's nodes exist, before bootstrap."""

    def apply_config(self, address: str, machine_config: str) -> None:
        """Wait for the Talos API on *address*, then apply *machine_config*."""
        wait_for_talos_api(address)
        apply_machine_config(machine_config, address)

    def provision_nodes(
        self,
        cluster_name: str,
        config: ClusterConfig,
        distribution: NodeDistribution,
        global_node_index: int,
        secrets: MachineSecrets,
        cp_config: str,
        worker_config: str,
    ) -> tuple[list[ProvisionedNode], str | None]:
        """Create this provider's share of the cluster.

        Control planes are created first, then workers. Names use a running
        index starting at *global_node_index*, so indices stay unique and
        contiguous across providers.

        Args:
            cluster_name: Cluster name used as the resource name prefix.
            config: Resolved cluster configuration.
            distribution: Number of control planes and workers to create.
            global_node_index: Index of the first node created here.
            secrets: Machine secrets the rendered configs were built from.
            cp_config: Rendered control-plane machine configuration.
            worker_config: Rendered worker machine configuration.

        Returns:
            Tuple of (created nodes, address of the first control plane or None).

        Raises:
            ProvisioningError: If any node cannot be created or configured.
        """
        logger.debug("Provisioning %s nodes with secrets from %s", self.name, secrets.secrets_file)
        plan = [
            (NodeRole.CONTROL_PLANE, distribution.control_planes, cp_config),
            (NodeRole.WORKER, distribution.workers, worker_config),
        ]
        nodes: list[ProvisionedNode] = []
        first_cp_address: str | None = None
        index = global_node_index
        for role, count, rendered in plan:
            if count <= 0:
                continue
            machine_config = self.transform_machine_config(rendered, role)
            for local_index in range(count):
                name = node_name(cluster_name, role, index)
                try:
                    node = self._provision_node(cluster_name, config, name, role, local_index, machine_config)
                except ProvisioningError:
                    raise
                except TalosError as err:
                    raise ProvisioningError(self.name, "apply-config", str(err), node=name, role=role.value) from err
                except Exception as err:
                    raise ProvisioningError(
                        self.name, "create", f"{type(err).__name__}: {err}", node=name, role=role.value,
                    ) from err
                if role is NodeRole.CONTROL_PLANE and first_cp_address is None:
                    first_cp_address = self.bootstrap_address(node)
                console.print(f"[green]  \u2713 {node.name} ({role.value}) at {node.public_ip}[/green]")
                nodes.append(node)
                index += 1
        return nodes, first_cp_address

    def bootstrap_address(self, node: ProvisionedNode) -> str:
        """Address talosctl uses to reach *node* for bootstrap."""
        return node.public_ip
