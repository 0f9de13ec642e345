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

"""Error types raised while provisioning a cluster."""

from __future__ import annotations


class ClusterError(RuntimeError):
    """Base class for every provisioning failure."""


class ClusterConfigError(ClusterError):
    """The resolved configuration cannot produce a working cluster."""


class UnknownProviderError(ClusterError):
    """A node distribution names a provider that is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown provider '{name}'. Available providers: {', '.join(available)}"
        )


class ProvisioningError(ClusterError):
    """A provider failed to create networking or a node."""

    def __init__(self, provider: str, step: str, detail: str, node: str | None = None,
                 role: str | None = None) -> None:
        self.provider = provider
        self.step = step
        self.node = node
        self.role = role
        target = f" node {node} ({role})" if node else ""
        super().__init__(f"[{provider}]{target} {step} failed: {detail}")


class TalosError(ClusterError):
    """A talosctl invocation failed."""


class ReadinessError(ClusterError):
    """The Kubernetes API or its nodes did not become available in time."""


class ArtifactError(ClusterError):
    """Certificate or client configuration material could not be built."""
