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

"""Config subcommands (show, kubeconfig)."""

from __future__ import annotations

from pathlib import Path

import typer

from talos_manager.artifacts import rewrite_loopback_server
from talos_manager.config import ClusterConfig, display_config
from talos_manager.talos import fetch_kubeconfig
from talos_manager.utils import require_command

app = typer.Typer(help="Inspect configuration.")


@app.command()
def show() -> None:
    """Print the configuration resolved from the environment and .env."""
    display_config(ClusterConfig())


@app.command()
def kubeconfig(
    talosconfig: Path = typer.Option(..., "--talosconfig", exists=True, dir_okay=False, help="Talos client configuration"),
    node: str = typer.Option(..., "--node", help="Control-plane node address"),
    endpoint: str | None = typer.Option(None, "--endpoint", help="Talos API endpoint (defaults to the node)"),
    public_endpoint: str | None = typer.Option(None, "--public-endpoint", help="Host replacing loopback API servers"),
) -> None:
    """Fetch the admin kubeconfig from Talos and print it to stdout."""
    require_command("talosctl")
    document = fetch_kubeconfig(talosconfig, node, endpoint)
    if public_endpoint:
        document = rewrite_loopback_server(document, public_endpoint)
    typer.echo(document)
