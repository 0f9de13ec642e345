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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load pinned versions and images from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "openaether"
DEFAULT_CLUSTER_ENDPOINT = "openaether-local-lb"
DEFAULT_CLUSTER_PUBLIC_ENDPOINT = "127.0.0.1"
DEFAULT_CLUSTER_DOMAIN = "cluster.local"
DEFAULT_CONTROL_PLANE_NODES = 3
DEFAULT_WORKER_NODES = 2
DEFAULT_CLOUD_PROVIDER = "docker"
DEFAULT_TALOS_VERSION = dep_value("talos", "version", default="v1.11.6")
DEFAULT_KUBERNETES_VERSION = dep_value("kubernetes", "version", default="v1.32.0")

# -- Provider names --
PROVIDER_DOCKER = "docker"
PROVIDER_OVH = "ovh"
PROVIDER_SCALEWAY = "scaleway"
PROVIDER_OUTSCALE = "outscale"
PROVIDER_DENVR = "denvr"

# -- Docker (local) defaults --
DEFAULT_DOCKER_NETWORK = "openaether-net"
DEFAULT_DOCKER_CLOUDS = ["cloud-a", "cloud-b"]
TALOS_IMAGE = dep_value("talos", "image", default="ghcr.io/siderolabs/talos")
HAPROXY_IMAGE = dep_value("haproxy", "image", default="haproxy:alpine")
HAPROXY_CONFIG_DIR = "haproxy"
HAPROXY_CONTAINER_CONFIG_PATH = "/usr/local/etc/haproxy/haproxy.cfg"
LOOPBACK_ADDRESS = "127.0.0.1"
LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")
TALOS_CONTAINER_TMPFS = {"/run": "rw", "/system": "rw", "/tmp": "rw"}
TALOS_CONTAINER_VOLUMES = (
    "/system/state",
    "/var",
    "/etc/cni",
    "/etc/kubernetes",
    "/usr/libexec/kubernetes",
    "/opt",
)

# -- Scaleway defaults --
DEFAULT_SCW_REGION = "fr-par"
DEFAULT_SCW_ZONE = "fr-par-1"
DEFAULT_SCW_INSTANCE_TYPE = "DEV1-M"
SCW_EPHEMERAL_VOLUME_SIZE_GB = 25
SCW_EPHEMERAL_VOLUME_TYPE = "l_ssd"

# -- OVH / OpenStack defaults --
DEFAULT_OVH_REGION = "GRA11"
DEFAULT_OVH_FLAVOR = "b2-7"
DEFAULT_OVH_NETWORK = "openaether-net"
DEFAULT_OS_AUTH_URL = "https://auth.cloud.ovh.net/v3"
DEFAULT_OS_USER_DOMAIN_NAME = "Default"
OVH_EXTERNAL_NETWORK = "Ext-Net"
OPENSTACK_SUBNET_CIDR = "10.0.0.0/24"
OPENSTACK_DNS_NAMESERVERS = ["8.8.8.8", "8.8.4.4"]
SECURITY_GROUP_DESCRIPTION = "OpenAether Talos cluster security group"

# -- Outscale defaults --
DEFAULT_OSC_REGION = "eu-west-2"
DEFAULT_OSC_INSTANCE_TYPE = "tinav5.c2r4p1"
DEFAULT_OSC_IMAGE_ID = "ami-ce7e9d99"
OUTSCALE_NET_CIDR = "10.0.0.0/16"
OUTSCALE_SUBNET_CIDR = "10.0.1.0/24"

# -- Ports --
KUBERNETES_API_PORT = 6443
TALOS_API_PORT = 50000
HTTP_PORT = 80
HTTPS_PORT = 443
LB_PUBLISHED_PORTS = (KUBERNETES_API_PORT, TALOS_API_PORT, HTTP_PORT, HTTPS_PORT)
ANY_IPV4 = "0.0.0.0/0"
PRIVATE_RANGE = "10.0.0.0/8"


@dataclass(frozen=True)
class FirewallRule:
    """One inbound port range opened by every cloud provider.

    Attributes:
        description: Human readable purpose of the rule.
        protocol: ``tcp`` or ``udp``.
        port_from: First port of the range.
        port_to: Last port of the range (inclusive).
        cidr: Source range allowed through.
    """

    description: str
    protocol: str
    port_from: int
    port_to: int
    cidr: str = ANY_IPV4


FIREWALL_RULES = (
    FirewallRule("SSH", "tcp", 22, 22),
    FirewallRule("Talos API", "tcp", 50000, 50001),
    FirewallRule("Kubernetes API", "tcp", 6443, 6443),
    FirewallRule("etcd", "tcp", 2379, 2380, PRIVATE_RANGE),
    FirewallRule("Kubelet", "tcp", 10250, 10250, PRIVATE_RANGE),
    FirewallRule("HTTP", "tcp", 80, 80),
    FirewallRule("HTTPS", "tcp", 443, 443),
    FirewallRule("WireGuard", "udp", 51871, 51871),
    FirewallRule("VXLAN", "udp", 8472, 8472),
)

# -- Readiness polling --
API_READY_MAX_RETRIES = 60
NODES_READY_MAX_RETRIES = 30
READY_POLL_INTERVAL_SECONDS = 5

# -- Talos API polling --
TALOS_API_MAX_RETRIES = 60
TALOS_API_POLL_INTERVAL_SECONDS = 1
TALOS_API_SETTLE_SECONDS = 10
APPLY_CONFIG_MAX_RETRIES = 30
APPLY_CONFIG_RETRY_WAIT_SECONDS = 10
BOOTSTRAP_MAX_RETRIES = 12
BOOTSTRAP_RETRY_WAIT_SECONDS = 5

# -- Cilium --
DEFAULT_CILIUM_VERSION = dep_value("cilium", "version", default="1.14.5")
HELM_REPO_CILIUM_URL = dep_value("cilium", "repository", default="https://helm.cilium.io/")
HELM_CHART_CILIUM = dep_value("cilium", "chart", default="cilium")
HELM_RELEASE_CILIUM = "cilium"
CILIUM_INSTALL_TIMEOUT_SECONDS = 600
HELM_DEFAULT_TIMEOUT_SECONDS = 300

# -- Namespaces --
NS_KUBE_SYSTEM = "kube-system"

# -- Artifacts --
ADMIN_USER = "admin"
ADMIN_COMMON_NAME = "kubernetes-admin"
ADMIN_ORGANIZATION = "system:masters"
ADMIN_CERT_VALIDITY_DAYS = 365
ADMIN_KEY_SIZE = 2048
PEM_SNIPPET_LENGTH = 50
KUBECONFIG_FILENAME = "kubeconfig"
TALOSCONFIG_FILENAME = "talosconfig"
STATUS_PROVISIONED = "provisioned"
