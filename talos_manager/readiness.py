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

"""Readiness gate blocking until the Kubernetes API answers and nodes register."""

from __future__ import annotations

from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from talos_manager import console, logger
from talos_manager.constants import (
    API_READY_MAX_RETRIES,
    NODES_READY_MAX_RETRIES,
    READY_POLL_INTERVAL_SECONDS,
)
from talos_manager.errors import ReadinessError
from talos_manager.utils import ephemeral_file, run_kubectl


def _wait_for_api(kubeconfig_path: str, attempts: int, interval: float) -> bool:
    """Poll ``kubectl cluster-info``; return whether it ever succeeded."""

    @retry(stop=stop_after_attempt(attempts), wait=wait_fixed(interval), reraise=True)
    def _probe() -> None:
        ok, _, stderr = run_kubectl(["cluster-info"], kubeconfig=kubeconfig_path)
        if not ok:
            raise RuntimeError(stderr.strip() or "cluster-info failed")

    try:
        _probe()
    except RuntimeError as err:
        logger.warning("Kubernetes API not answering after %d attempts: %s", attempts, err)
        return False
    return True


def _wait_for_nodes(kubeconfig_path: str, attempts: int, interval: float) -> int:
    """Poll ``kubectl get nodes`` until at least one node is listed."""

    @retry(stop=stop_after_attempt(attempts), wait=wait_fixed(interval), reraise=True)
    def _probe() -> int:
        ok, stdout, stderr = run_kubectl(["get", "nodes", "--no-headers"], kubeconfig=kubeconfig_path)
        count = len([line for line in stdout.splitlines() if line.strip()]) if ok else 0
        if count == 0:
            raise RuntimeError(stderr.strip() or "no nodes registered yet")
        return count

    try:
        return _probe()
    except RuntimeError as err:
        raise ReadinessError(f"No nodes became visible in time: {err}") from err


def wait_for_cluster_ready(
    kubeconfig: str,
    *,
    api_attempts: int = API_READY_MAX_RETRIES,
    node_attempts: int = NODES_READY_MAX_RETRIES,
    interval: float = READY_POLL_INTERVAL_SECONDS,
) -> int:
    """Block until the Kubernetes API answers and at least one node is listed.

    An API server that never answers ``cluster-info`` is only logged: node
    listing is still attempted, since it is the condition that matters.

    Args:
        kubeconfig: Kubeconfig document used to reach the cluster.
        api_attempts: Maximum ``cluster-info`` probes.
        node_attempts: Maximum ``get nodes`` probes.
        interval: Seconds between probes.

    Returns:
        The number of nodes listed.

    Raises:
        ReadinessError: If no node is listed within the node probe window.
    """
    console.print(Panel.fit("Waiting for the Kubernetes API", style="bold blue"))
    with ephemeral_file(kubeconfig, suffix=".yaml") as kubeconfig_path:
        if _wait_for_api(kubeconfig_path, api_attempts, interval):
            console.print("[green]\u2705 Kubernetes API is answering[/green]")
        else:
            console.print("[yellow]\u26a0\ufe0f  Kubernetes API did not answer, checking nodes anyway[/yellow]")
        count = _wait_for_nodes(kubeconfig_path, node_attempts, interval)
    console.print(f"[green]\u2705 {count} nodes registered[/green]")
    return count
