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

"""
cli.py - Talos cluster provisioning across local and cloud providers.

Subcommands:
    create     Create a Talos cluster (docker, scaleway, ovh, outscale, or a mix)
    install    Install components on an existing cluster (cilium)
    config     Show resolved configuration, fetch a kubeconfig

Examples:
    # Local cluster in Docker containers
    talos-manager create cluster

    # Cluster spread across Docker and OVH
    talos-manager create cluster --nodes docker:1:2,ovh:1:1

    # Inspect what the environment and .env resolve to
    talos-manager config show
"""

from __future__ import annotations

import logging
import sys

import typer

from talos_manager import console
from talos_manager.commands import config_cmd, create_cmd, install_cmd

app = typer.Typer(
    help="Talos Kubernetes cluster provisioning.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(create_cmd.app, name="create")
app.add_typer(install_cmd.app, name="install")
app.add_typer(config_cmd.app, name="config")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
