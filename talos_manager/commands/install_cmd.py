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

"""Install subcommands (cilium)."""

from __future__ import annotations

from pathlib import Path

import typer

from talos_manager.components import CiliumConfig, install_cilium
from talos_manager.constants import DEFAULT_CILIUM_VERSION, KUBERNETES_API_PORT
from talos_manager.utils import require_command

app = typer.Typer(help="Install components.")


@app.command()
def cilium(
    kubeconfig: Path = typer.Option(..., "--kubeconfig", exists=True, dir_okay=False, help="Kubeconfig of the target cluster"),
    k8s_host: str = typer.Option(..., "--k8s-host", help="API server host Cilium connects to"),
    k8s_port: int = typer.Option(KUBERNETES_API_PORT, "--k8s-port", help="API server port"),
    version: str = typer.Option(DEFAULT_CILIUM_VERSION, "--version", help="Cilium Helm chart version"),
    wireguard: bool = typer.Option(True, "--wireguard/--no-wireguard", help="Encrypt pod traffic with WireGuard"),
) -> None:
    """Install Cilium via Helm on an existing cluster."""
    require_command("helm")
    cfg = CiliumConfig(
        k8s_service_host=k8s_host,
        k8s_service_port=k8s_port,
        version=version,
        enable_wireguard=wireguard,
    )
    install_cilium(cfg, kubeconfig.read_text())
