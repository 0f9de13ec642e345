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

"""Cilium CNI installation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rich.panel import Panel

from talos_manager import console
from talos_manager.constants import (
    CILIUM_INSTALL_TIMEOUT_SECONDS,
    DEFAULT_CILIUM_VERSION,
    HELM_CHART_CILIUM,
    HELM_RELEASE_CILIUM,
    HELM_REPO_CILIUM_URL,
    KUBERNETES_API_PORT,
    NS_KUBE_SYSTEM,
)
from talos_manager.helm import HelmRelease, install_release


@dataclass(frozen=True)
class CiliumConfig:
    """Cilium install options.

    Attributes:
        k8s_service_host: API server host Cilium talks to directly (no kube-proxy).
        k8s_service_port: API server port.
        version: Cilium chart version.
        enable_wireguard: Encrypt pod traffic with WireGuard.
        enable_hubble: Deploy Hubble with relay and UI.
    """

    k8s_service_host: str
    k8s_service_port: int = KUBERNETES_API_PORT
    version: str = DEFAULT_CILIUM_VERSION
    enable_wireguard: bool = True
    enable_hubble: bool = True


def cilium_values(cfg: CiliumConfig) -> dict[str, Any]:
    """Helm values for a kube-proxy-free Cilium on Talos."""
    values: dict[str, Any] = {
        "kubeProxyReplacement": True,
        "k8sServiceHost": cfg.k8s_service_host,
        "k8sServicePort": cfg.k8s_service_port,
        "bpf": {"masquerade": True},
        "ipam": {"mode": "kubernetes"},
        "operator": {"replicas": 1},
        "securityContext": {"privileged": True},
        "rollOutCiliumPods": True,
    }
    if cfg.enable_wireguard:
        values["encryption"] = {"enabled": True, "type": "wireguard"}
    if cfg.enable_hubble:
        values["hubble"] = {
            "enabled": True,
            "relay": {"enabled": True},
            "ui": {"enabled": True},
        }
    return values


def cilium_release(cfg: CiliumConfig) -> HelmRelease:
    return HelmRelease(
        name=HELM_RELEASE_CILIUM,
        chart=HELM_CHART_CILIUM,
        namespace=NS_KUBE_SYSTEM,
        version=cfg.version,
        repository=HELM_REPO_CILIUM_URL,
        values=cilium_values(cfg),
        create_namespace=False,
        wait=False,
        timeout=CILIUM_INSTALL_TIMEOUT_SECONDS,
    )


def install_cilium(cfg: CiliumConfig, kubeconfig: str) -> None:
    """Install Cilium using Helm.

    Args:
        cfg: Cilium install options.
        kubeconfig: Kubeconfig document for the target cluster.
    """
    console.print(Panel.fit("Installing Cilium", style="bold blue"))
    console.print(f"[yellow]Version: {cfg.version}, API server: {cfg.k8s_service_host}:{cfg.k8s_service_port}[/yellow]")
    install_release(cilium_release(cfg), kubeconfig)
    console.print("[green]\u2705 Cilium installed[/green]")
