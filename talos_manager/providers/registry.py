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

"""Provider registry mapping provider names to provider instances."""

from __future__ import annotations

from talos_manager.errors import UnknownProviderError
from talos_manager.providers.base import ClusterProvider
from talos_manager.providers.denvr import DenvrProvider
from talos_manager.providers.docker import DockerProvider
from talos_manager.providers.outscale import OutscaleProvider
from talos_manager.providers.ovh import OvhProvider
from talos_manager.providers.scaleway import ScalewayProvider


class ProviderRegistry:
    """Name-to-provider map consulted once per distribution entry."""

    def __init__(self, providers: dict[str, ClusterProvider] | None = None) -> None:
        self._providers: dict[str, ClusterProvider] = dict(providers or {})

    def register(self, name: str, provider: ClusterProvider) -> None:
        """Add *provider* under *name*, replacing any existing entry."""
        self._providers[name] = provider

    def get(self, name: str) -> tuple[ClusterProvider | None, bool]:
        """Look up a provider.

        Args:
            name: Provider name as written in the node distribution.

        Returns:
            Tuple of (provider or None, whether it was found).
        """
        provider = self._providers.get(name)
        return provider, provider is not None

    def require(self, name: str) -> ClusterProvider:
        """Look up a provider, failing on unknown names.

        Raises:
            UnknownProviderError: If *name* is not registered.
        """
        provider, found = self.get(name)
        if not found:
            raise UnknownProviderError(name, self.names())
        return provider

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers


def default_registry() -> ProviderRegistry:
    """Registry with a fresh instance of every built-in provider."""
    return ProviderRegistry({
        "docker": DockerProvider(),
        "scaleway": ScalewayProvider(),
        "ovh": OvhProvider(),
        "outscale": OutscaleProvider(),
        "denvr": DenvrProvider(),
    })
