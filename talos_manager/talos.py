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

"""Talos machine secrets, machine configs, config apply, and bootstrap via talosctl."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass
from pathlib import Path

import sh
import yaml
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from talos_manager import console, logger
from talos_manager.config import ClusterConfig
from talos_manager.constants import (
    APPLY_CONFIG_MAX_RETRIES,
    APPLY_CONFIG_RETRY_WAIT_SECONDS,
    BOOTSTRAP_MAX_RETRIES,
    BOOTSTRAP_RETRY_WAIT_SECONDS,
    KUBERNETES_API_PORT,
    TALOS_API_MAX_RETRIES,
    TALOS_API_POLL_INTERVAL_SECONDS,
    TALOS_API_PORT,
    TALOS_API_SETTLE_SECONDS,
)
from talos_manager.errors import TalosError
from talos_manager.utils import ephemeral_file

SECRETS_FILENAME = "secrets.yaml"
GENERATED_TALOSCONFIG_FILENAME = "talosconfig.generated"
CONFIG_PATCH_FILENAME = "cluster-patch.yaml"
CONTROLPLANE_FILENAME = "controlplane.yaml"
WORKER_FILENAME = "worker.yaml"

# Cilium replaces both kube-proxy and the default Flannel CNI.
CLUSTER_CONFIG_PATCH = {
    "cluster": {
        "network": {"cni": {"name": "none"}},
        "proxy": {"disabled": True},
    },
}


# ============================================================================
# Data types
# ============================================================================

@dataclass(frozen=True)
class ClientConfiguration:
    """Talos API client credentials (base64-encoded PEM, as talosconfig stores them).

    Attributes:
        ca: Talos OS CA certificate.
        crt: Admin client certificate.
        key: Admin client private key.
    """

    ca: str
    crt: str
    key: str


@dataclass(frozen=True)
class MachineSecrets:
    """Cluster-wide secrets generated once per run and shared by every node.

    Attributes:
        secrets_file: Path of the talosctl secrets bundle.
        talosconfig_file: Path of the talosconfig generated from the bundle.
        kubernetes_ca_cert: Kubernetes CA certificate (base64-encoded PEM).
        kubernetes_ca_key: Kubernetes CA private key (base64-encoded PEM).
        client: Talos API client credentials.
    """

    secrets_file: Path
    talosconfig_file: Path
    kubernetes_ca_cert: str
    kubernetes_ca_key: str
    client: ClientConfiguration


@dataclass(frozen=True)
class MachineConfigs:
    """Rendered per-role machine configuration documents."""

    controlplane: str
    worker: str

    def for_role(self, role: str) -> str:
        return self.controlplane if role == "controlplane" else self.worker


def _talosctl(*args: str) -> str:
    """Run talosctl and return its stdout.

    Raises:
        TalosError: If talosctl exits non-zero.
    """
    try:
        return str(sh.talosctl(*args))
    except sh.ErrorReturnCode as err:
        stderr = err.stderr.decode(errors="replace").strip() if err.stderr else ""
        subcommand = next((a for a in args if not a.startswith("-") and "/" not in a), "")
        raise TalosError(f"talosctl {subcommand} failed: {stderr or err}") from err


def cluster_url(endpoint: str) -> str:
    """Kubernetes API URL for a host name or address."""
    return f"https://{endpoint}:{KUBERNETES_API_PORT}"


# ============================================================================
# Secrets and machine configs
# ============================================================================

def _load_client_configuration(talosconfig_file: Path, context: str) -> ClientConfiguration:
    """Read the client credentials of *context* from a talosconfig file."""
    data = yaml.safe_load(talosconfig_file.read_text()) or {}
    contexts = data.get("contexts") or {}
    ctx = contexts.get(context) or contexts.get(data.get("context", "")) or {}
    try:
        return ClientConfiguration(ca=ctx["ca"], crt=ctx["crt"], key=ctx["key"])
    except KeyError as err:
        raise TalosError(f"talosconfig {talosconfig_file} has no client credential '{err.args[0]}'") from err


def generate_secrets(config: ClusterConfig, workdir: Path) -> MachineSecrets:
    """Generate the machine secrets bundle and its client configuration.

    Args:
        config: Cluster configuration (name, endpoint, versions).
        workdir: Directory receiving the generated files.

    Returns:
        The loaded machine secrets.

    Raises:
        TalosError: If talosctl fails or its output is incomplete.
    """
    workdir.mkdir(parents=True, exist_ok=True)
    secrets_file = workdir / SECRETS_FILENAME
    talosconfig_file = workdir / GENERATED_TALOSCONFIG_FILENAME
    secrets_file.unlink(missing_ok=True)

    _talosctl("gen", "secrets", "--output-file", str(secrets_file))
    _talosctl(
        "gen", "config", config.cluster_name, cluster_url(config.cluster_endpoint),
        "--with-secrets", str(secrets_file),
        "--talos-version", config.talos_version,
        "--output-types", "talosconfig",
        "--output", str(talosconfig_file),
        "--force",
    )

    bundle = yaml.safe_load(secrets_file.read_text()) or {}
    k8s_ca = (bundle.get("certs") or {}).get("k8s") or {}
    if not k8s_ca.get("crt") or not k8s_ca.get("key"):
        raise TalosError(f"secrets bundle {secrets_file} has no Kubernetes CA")

    secrets = MachineSecrets(
        secrets_file=secrets_file,
        talosconfig_file=talosconfig_file,
        kubernetes_ca_cert=k8s_ca["crt"],
        kubernetes_ca_key=k8s_ca["key"],
        client=_load_client_configuration(talosconfig_file, config.cluster_name),
    )
    logger.info("Generated machine secrets in %s", workdir)
    return secrets


def render_machine_configs(
    config: ClusterConfig,
    endpoint: str,
    secrets: MachineSecrets,
    workdir: Path,
) -> MachineConfigs:
    """Render the control-plane and worker machine configurations.

    Args:
        config: Cluster configuration (name, versions, DNS domain).
        endpoint: Host embedded in the cluster endpoint URL.
        secrets: Machine secrets shared by every node.
        workdir: Directory receiving the rendered files.

    Returns:
        Both rendered configuration documents.
    """
    workdir.mkdir(parents=True, exist_ok=True)
    patch_file = workdir / CONFIG_PATCH_FILENAME
    patch_file.write_text(yaml.safe_dump(CLUSTER_CONFIG_PATCH, sort_keys=False))

    _talosctl(
        "gen", "config", config.cluster_name, cluster_url(endpoint),
        "--with-secrets", str(secrets.secrets_file),
        "--kubernetes-version", config.kubernetes_version.lstrip("v"),
        "--talos-version", config.talos_version,
        "--dns-domain", config.cluster_domain,
        "--config-patch", f"@{patch_file}",
        "--with-docs=false",
        "--with-examples=false",
        "--output-types", "controlplane,worker",
        "--output", str(workdir),
        "--force",
    )
    return MachineConfigs(
        controlplane=(workdir / CONTROLPLANE_FILENAME).read_text(),
        worker=(workdir / WORKER_FILENAME).read_text(),
    )


# ============================================================================
# Node operations
# ============================================================================

def wait_for_talos_api(
    host: str,
    port: int = TALOS_API_PORT,
    attempts: int = TALOS_API_MAX_RETRIES,
    interval: float = TALOS_API_POLL_INTERVAL_SECONDS,
    settle: float = TALOS_API_SETTLE_SECONDS,
) -> bool:
    """Wait until the Talos API accepts TCP connections on *host*.

    Args:
        host: Node address.
        port: Talos API port.
        attempts: Maximum number of connection attempts.
        interval: Seconds between attempts.
        settle: Seconds to wait after the port opens, while apid finishes starting.

    Returns:
        True if the port opened, False if every attempt failed.
    """

    @retry(stop=stop_after_attempt(attempts), wait=wait_fixed(interval), retry=retry_if_exception_type(OSError))
    def _probe() -> None:
        with socket.create_connection((host, port), timeout=2):
            pass

    try:
        _probe()
    except RetryError:
        logger.warning("Talos API on %s:%d did not open after %d attempts", host, port, attempts)
        return False
    if settle:
        time.sleep(settle)
    return True


@retry(
    stop=stop_after_attempt(APPLY_CONFIG_MAX_RETRIES),
    wait=wait_fixed(APPLY_CONFIG_RETRY_WAIT_SECONDS),
    reraise=True,
)
def apply_machine_config(machine_config: str, node: str) -> None:
    """Apply a machine configuration to a node in maintenance mode.

    Args:
        machine_config: Rendered machine configuration document.
        node: Address the node's Talos API is reachable at.

    Raises:
        TalosError: If the apply still fails after all retries.
    """
    with ephemeral_file(machine_config, suffix=".yaml") as config_file:
        _talosctl("apply-config", "--insecure", "--nodes", node, "--file", config_file)


@retry(
    stop=stop_after_attempt(BOOTSTRAP_MAX_RETRIES),
    wait=wait_fixed(BOOTSTRAP_RETRY_WAIT_SECONDS),
    reraise=True,
)
def _bootstrap(talosconfig: Path, node: str, endpoint: str) -> None:
    _talosctl(
        "--talosconfig", str(talosconfig),
        "bootstrap",
        "--nodes", node,
        "--endpoints", endpoint,
    )


def bootstrap_cluster(secrets: MachineSecrets, node: str, endpoint: str | None = None) -> None:
    """Bootstrap etcd on the first control-plane node.

    Args:
        secrets: Machine secrets holding the client configuration.
        node: Address of the first control-plane node.
        endpoint: Talos API endpoint used to reach *node*; defaults to *node*.

    Raises:
        TalosError: If bootstrap fails after all retries.
    """
    console.print(f"[yellow]\u2139\ufe0f  Bootstrapping cluster at {node}...[/yellow]")
    _bootstrap(secrets.talosconfig_file, node, endpoint or node)
    console.print("[green]\u2705 Cluster bootstrapped[/green]")


def fetch_kubeconfig(talosconfig: Path, node: str, endpoint: str | None = None) -> str:
    """Retrieve the admin kubeconfig Talos generates for the cluster.

    Args:
        talosconfig: Path of a talosconfig with access to the cluster.
        node: Control-plane node address.
        endpoint: Talos API endpoint used to reach *node*; defaults to *node*.

    Returns:
        The kubeconfig document.
    """
    return _talosctl(
        "--talosconfig", str(talosconfig),
        "kubeconfig", "-",
        "--nodes", node,
        "--endpoints", endpoint or node,
    )
