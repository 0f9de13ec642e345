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

"""Denvr Dataworks placeholder provider."""

from __future__ import annotations

from talos_manager import logger
from talos_manager.config import ClusterConfig, NodeDistribution
from talos_manager.constants import PROVIDER_DENVR
from talos_manager.errors import ProvisioningError
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode
from talos_manager.talos import MachineSecrets


class DenvrProvider(ClusterProvider):
    """Registered so distributions naming ``denvr`` resolve; creates nothing."""

    @property
    def name(self) -> str:
        return PROVIDER_DENVR

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        logger.warning("Denvr provider is not implemented; no networking created for %s", cluster_name)

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
        logger.warning(
            "Denvr provider is not implemented; skipping %d control planes and %d workers",
            distribution.control_planes, distribution.workers,
        )
        return [], None

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        raise ProvisioningError(self.name, "create", "provider is not implemented", node=name, role=role.value)

    def get_public_endpoint(self) -> str:
        return ""
