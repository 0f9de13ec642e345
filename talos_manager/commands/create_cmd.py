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

"""Create subcommands (cluster)."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.panel import Panel

from talos_manager import console
from talos_manager.config import ClusterConfig, display_config
from talos_manager.constants import KUBECONFIG_FILENAME, TALOSCONFIG_FILENAME
from talos_manager.orchestrator import check_prerequisites, create_talos_cluster
from talos_manager.utils import write_private_file

app = typer.Typer(help="Create infrastructure resources.")


@app.command("cluster")
def cluster(
    cloud_provider: str | None = typer.Option(None, "--cloud-provider", help="Single-provider selection"),
    nodes: str | None = typer.Option(None, "--nodes", help="Node distribution, e.g. docker:1:2,ovh:1:1"),
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="Cluster name"),
    output_dir: Path = typer.Option(Path("."), "--output-dir", help="Where kubeconfig and talosconfig are written"),
    workdir: Path = typer.Option(Path(".talos-manager"), "--workdir", help="Directory for generated secrets and configs"),
) -> None:
    """Provision a Talos cluster and write its client configurations."""
    cfg = ClusterConfig()
    overrides: dict = {}
    if cloud_provider is not None:
        overrides["cloud_provider"] = cloud_provider
    if nodes is not None:
        overrides["node_distribution"] = nodes
    if cluster_name is not None:
        overrides["cluster_name"] = cluster_name
    if overrides:
        cfg = cfg.model_copy(update=overrides)

    display_config(cfg)
    check_prerequisites()
    outputs = create_talos_cluster(cfg, workdir=workdir)

    output_dir.mkdir(parents=True, exist_ok=True)
    kubeconfig_path = write_private_file(output_dir / KUBECONFIG_FILENAME, outputs.kubeconfig)
    talosconfig_path = write_private_file(output_dir / TALOSCONFIG_FILENAME, outputs.talosconfig)

    console.print(Panel.fit(json.dumps(outputs.exports(), indent=2), title="Cluster", style="bold blue"))
    console.print(f"[green]\u2705 Kubeconfig written to {kubeconfig_path}[/green]")
    console.print(f"[green]\u2705 Talosconfig written to {talosconfig_path}[/green]")
