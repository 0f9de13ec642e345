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

"""OVH Public Cloud provider, a named OpenStack target."""

from __future__ import annotations

from pathlib import Path

from talos_manager.config import ClusterConfig
from talos_manager.constants import PROVIDER_OVH
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode
from talos_manager.providers.openstack import OpenStackProvider, OpenStackTarget


class OvhProvider(ClusterProvider):
    """Delegates every operation to an OpenStack provider built from OVH settings.

    The wrapped provider is created on first use, because the OVH settings
    only arrive with the cluster configuration.
    """

    def __init__(self, connection=None) -> None:
        self._connection = connection
        self._openstack: OpenStackProvider | None = None

    @property
    def name(self) -> str:
        return PROVIDER_OVH

    def _delegate(self, config: ClusterConfig) -> OpenStackProvider:
        if self._openstack is None:
            self._openstack = OpenStackProvider(
                OpenStackTarget.from_ovh(config.ovh),
                name=self.name,
                connection=self._connection,
            )
        return self._openstack

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        self._delegate(config).configure_networking(cluster_name, config)

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        delegate = self._delegate(config)
        if not delegate.configured:
            delegate.configure_networking(cluster_name, config)
        return delegate._provision_node(cluster_name, config, name, role, local_index, machine_config)

    def get_public_endpoint(self) -> str:
        if self._openstack is None:
            return ""
        return self._openstack.get_public_endpoint()

    def finalize(self, cluster_name: str, config: ClusterConfig, nodes: list[ProvisionedNode], workdir: Path) -> None:
        self._delegate(config).finalize(cluster_name, config, nodes, workdir)
