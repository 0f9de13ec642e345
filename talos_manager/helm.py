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

"""Helm release installation against an explicit kubeconfig."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import sh
import yaml

from talos_manager import logger
from talos_manager.constants import HELM_DEFAULT_TIMEOUT_SECONDS
from talos_manager.errors import ClusterError
from talos_manager.utils import ephemeral_file


@dataclass(frozen=True)
class HelmRelease:
    """A chart release to install or upgrade.

    Attributes:
        name: Release name.
        chart: Chart name (resolved against *repository* when set).
        namespace: Target namespace.
        version: Chart version, or empty for the latest.
        repository: Chart repository URL.
        values: Values passed through a temporary values file.
        create_namespace: Whether helm creates *namespace*.
        wait: Whether helm waits for the release's resources.
        timeout: Seconds helm allows each operation.
    """

    name: str
    chart: str
    namespace: str
    version: str = ""
    repository: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    create_namespace: bool = False
    wait: bool = False
    timeout: int = HELM_DEFAULT_TIMEOUT_SECONDS


def helm_upgrade_args(release: HelmRelease, kubeconfig_path: str, values_path: str) -> list[str]:
    """Build ``helm upgrade --install`` arguments for *release*."""
    args = ["upgrade", "--install", release.name, release.chart, "--namespace", release.namespace]
    if release.repository:
        args += ["--repo", release.repository]
    if release.version:
        args += ["--version", release.version]
    args += [
        "--kubeconfig", kubeconfig_path,
        "--values", values_path,
        "--timeout", f"{release.timeout}s",
    ]
    if release.create_namespace:
        args.append("--create-namespace")
    if release.wait:
        args.append("--wait")
    return args


def install_release(release: HelmRelease, kubeconfig: str) -> None:
    """Install or upgrade *release* on the cluster *kubeconfig* points at.

    Args:
        release: Release to install.
        kubeconfig: Kubeconfig document.

    Raises:
        ClusterError: If helm exits non-zero.
    """
    with ephemeral_file(kubeconfig, suffix=".yaml") as kubeconfig_path, \
            ephemeral_file(yaml.safe_dump(release.values, sort_keys=False), suffix=".yaml") as values_path:
        args = helm_upgrade_args(release, kubeconfig_path, values_path)
        logger.info("Running helm %s", " ".join(args[:4]))
        try:
            sh.helm(*args)
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip() if err.stderr else str(err)
            raise ClusterError(f"Helm release {release.name} failed: {stderr}") from err
