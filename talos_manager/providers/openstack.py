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

"""Generic OpenStack provider (network, router, security group, floating IPs, servers)."""

from __future__ import annotations

from dataclasses import dataclass

import openstack

from talos_manager import console, logger
from talos_manager.config import ClusterConfig, OpenStackCredentials, OvhConfig
from talos_manager.constants import (
    FIREWALL_RULES,
    OPENSTACK_DNS_NAMESERVERS,
    OPENSTACK_SUBNET_CIDR,
    OVH_EXTERNAL_NETWORK,
    SECURITY_GROUP_DESCRIPTION,
)
from talos_manager.errors import ProvisioningError
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode


@dataclass(frozen=True)
class OpenStackTarget:
    """Where and how nodes are created on an OpenStack cloud.

    Attributes:
        region: Region name.
        flavor: Flavor name for every node.
        image_id: Glance image with the Talos OpenStack build.
        network: Name of the private network created for the cluster.
        external_network: Public network floating IPs are allocated from.
        credentials: Keystone credentials.
    """

    region: str
    flavor: str
    image_id: str
    network: str
    external_network: str
    credentials: OpenStackCredentials

    @classmethod
    def from_ovh(cls, ovh: OvhConfig) -> OpenStackTarget:
        return cls(
            region=ovh.region,
            flavor=ovh.flavor,
            image_id=ovh.image_id,
            network=ovh.network,
            external_network=OVH_EXTERNAL_NETWORK,
            credentials=ovh.credentials,
        )


def get_connection(target: OpenStackTarget) -> openstack.connection.Connection:
    """Open an authenticated connection for *target*."""
    creds = target.credentials
    return openstack.connect(
        auth_url=creds.auth_url,
        project_id=creds.tenant_id or None,
        project_name=creds.tenant_name or None,
        username=creds.username,
        password=creds.password,
        user_domain_name=creds.user_domain_name,
        project_domain_name=creds.user_domain_name,
        region_name=target.region,
    )


class OpenStackProvider(ClusterProvider):
    """Creates Talos servers with floating IPs on any OpenStack cloud.

    The first floating IP is reserved while configuring networking so the
    cluster endpoint is known before any server exists; it is attached to
    the first node this provider creates.
    """

    def __init__(self, target: OpenStackTarget, name: str = "openstack", connection=None) -> None:
        self.target = target
        self._name = name
        self._conn = connection
        self._network = None
        self._external = None
        self._security_group = None
        self._reserved_ip = None
        self._reserved_claimed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def conn(self):
        if self._conn is None:
            self._conn = get_connection(self.target)
        return self._conn

    @property
    def configured(self) -> bool:
        return self._network is not None

    # ------------------------------------------------------------------
    # Networking
    # ------------------------------------------------------------------

    def _ensure_router(self, cluster_name: str, subnet) -> None:
        router_name = f"{cluster_name}-router"
        router = self.conn.network.find_router(router_name)
        if router is not None:
            return
        router = self.conn.network.create_router(
            name=router_name,
            external_gateway_info={"network_id": self._external.id},
        )
        self.conn.network.add_interface_to_router(router, subnet_id=subnet.id)

    def _ensure_security_group(self, cluster_name: str):
        sg_name = f"{cluster_name}-sg"
        group = self.conn.network.find_security_group(sg_name)
        if group is not None:
            return group
        group = self.conn.network.create_security_group(name=sg_name, description=SECURITY_GROUP_DESCRIPTION)
        for rule in FIREWALL_RULES:
            self.conn.network.create_security_group_rule(
                security_group_id=group.id,
                direction="ingress",
                ethertype="IPv4",
                protocol=rule.protocol,
                port_range_min=rule.port_from,
                port_range_max=rule.port_to,
                remote_ip_prefix=rule.cidr,
                description=rule.description,
            )
        return group

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        """Create network, subnet, router, security group, and reserve the first floating IP."""
        if self.configured:
            return
        net = self.conn.network
        try:
            external = net.find_network(self.target.external_network)
            if external is None:
                raise ProvisioningError(
                    self.name, "configure-networking",
                    f"external network '{self.target.external_network}' not found",
                )
            self._external = external

            network = net.find_network(self.target.network) or net.create_network(name=self.target.network)
            subnet_name = f"{self.target.network}-subnet"
            subnet = net.find_subnet(subnet_name) or net.create_subnet(
                name=subnet_name,
                network_id=network.id,
                ip_version=4,
                cidr=OPENSTACK_SUBNET_CIDR,
                dns_nameservers=list(OPENSTACK_DNS_NAMESERVERS),
            )
            self._ensure_router(cluster_name, subnet)
            self._security_group = self._ensure_security_group(cluster_name)
            self._reserved_ip = net.create_ip(floating_network_id=external.id)
        except ProvisioningError:
            raise
        except openstack.exceptions.SDKException as err:
            raise ProvisioningError(self.name, "configure-networking", str(err)) from err
        self._network = network
        console.print(
            f"[green]  \u2713 {self.name} network {self.target.network} ready, "
            f"endpoint {self._reserved_ip.floating_ip_address}[/green]"
        )

    def get_public_endpoint(self) -> str:
        if self._reserved_ip is None:
            return ""
        return self._reserved_ip.floating_ip_address

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _allocate_ip(self):
        if self._reserved_ip is not None and not self._reserved_claimed:
            self._reserved_claimed = True
            return self._reserved_ip
        return self.conn.network.create_ip(floating_network_id=self._external.id)

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        fip = self._allocate_ip()
        flavor = self.conn.compute.find_flavor(self.target.flavor, ignore_missing=False)
        server = self.conn.compute.create_server(
            name=name,
            image_id=self.target.image_id,
            flavor_id=flavor.id,
            networks=[{"uuid": self._network.id}],
            security_groups=[{"name": self._security_group.name}],
            metadata={"role": role.value, "cluster": cluster_name},
        )
        server = self.conn.compute.wait_for_server(server)
        port = next(iter(self.conn.network.ports(device_id=server.id)), None)
        if port is None:
            raise ProvisioningError(self.name, "attach-floating-ip", "server has no port", node=name, role=role.value)
        self.conn.network.update_ip(fip, port_id=port.id)
        internal_ip = port.fixed_ips[0]["ip_address"] if port.fixed_ips else ""
        public_ip = fip.floating_ip_address
        logger.info("Server %s (%s) has floating IP %s", name, server.id, public_ip)

        self.apply_config(public_ip, machine_config)
        return ProvisionedNode(
            name=name,
            role=role,
            provider=self.name,
            internal_ip=internal_ip,
            public_ip=public_ip,
            resource_id=server.id,
        )
