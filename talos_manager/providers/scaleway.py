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

"""Scaleway provider (VPC, private network, security group, instances)."""

from __future__ import annotations

from scaleway import Client
from scaleway.instance.v1 import (
    SecurityGroupPolicy,
    SecurityGroupRuleAction,
    SecurityGroupRuleDirection,
    SecurityGroupRuleProtocol,
    ServerAction,
    VolumeServerTemplate,
    VolumeVolumeType,
)
from scaleway.instance.v1.custom_api import InstanceUtilsV1API
from scaleway.ipam.v1 import IpamV1API
from scaleway.vpc.v2 import VpcV2API

from talos_manager import console, logger
from talos_manager.config import ClusterConfig, ScalewayConfig
from talos_manager.constants import (
    FIREWALL_RULES,
    PROVIDER_SCALEWAY,
    SCW_EPHEMERAL_VOLUME_SIZE_GB,
    SCW_EPHEMERAL_VOLUME_TYPE,
    SECURITY_GROUP_DESCRIPTION,
)
from talos_manager.errors import ProvisioningError
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode

RESOURCE_TAG = "openaether"


def get_client(settings: ScalewayConfig) -> Client:
    """Build a Scaleway client from explicit keys, falling back to SCW_* env/config."""
    if settings.access_key and settings.secret_key:
        return Client(
            access_key=settings.access_key,
            secret_key=settings.secret_key,
            default_project_id=settings.project_id or None,
            default_region=settings.region,
            default_zone=settings.zone,
        )
    return Client.from_config_file_and_env()


class ScalewayProvider(ClusterProvider):
    """Creates Talos instances from a snapshot, each with a routed public IP."""

    def __init__(self, client: Client | None = None) -> None:
        self._client = client
        self._instance: InstanceUtilsV1API | None = None
        self._vpc: VpcV2API | None = None
        self._ipam: IpamV1API | None = None
        self._private_network = None
        self._security_group = None
        self._reserved_ip = None
        self._reserved_claimed = False

    @property
    def name(self) -> str:
        return PROVIDER_SCALEWAY

    def _apis(self, settings: ScalewayConfig) -> tuple[InstanceUtilsV1API, VpcV2API, IpamV1API]:
        if self._instance is None or self._vpc is None or self._ipam is None:
            client = self._client or get_client(settings)
            self._instance = InstanceUtilsV1API(client)
            self._vpc = VpcV2API(client)
            self._ipam = IpamV1API(client)
        return self._instance, self._vpc, self._ipam

    # ------------------------------------------------------------------
    # Networking
    # ------------------------------------------------------------------

    def _ensure_private_network(self, cluster_name: str, settings: ScalewayConfig):
        _, vpc_api, _ = self._apis(settings)
        tags = [RESOURCE_TAG, cluster_name]
        vpc_name = f"{cluster_name}-vpc"
        vpc = next(iter(vpc_api.list_vp_cs(region=settings.region, name=vpc_name).vpcs), None)
        if vpc is None:
            vpc = vpc_api.create_vpc(
                enable_routing=True,
                enable_transitivity=False,
                region=settings.region,
                name=vpc_name,
                project_id=settings.project_id or None,
                tags=tags,
            )
        pn_name = f"{cluster_name}-pn"
        existing = vpc_api.list_private_networks(region=settings.region, name=pn_name, vpc_id=vpc.id)
        network = next(iter(existing.private_networks), None)
        if network is None:
            network = vpc_api.create_private_network(
                default_route_propagation_enabled=True,
                region=settings.region,
                name=pn_name,
                project_id=settings.project_id or None,
                vpc_id=vpc.id,
                tags=tags,
            )
        return network

    def _ensure_security_group(self, cluster_name: str, settings: ScalewayConfig):
        instance_api, _, _ = self._apis(settings)
        sg_name = f"{cluster_name}-sg"
        found = instance_api.list_security_groups(zone=settings.zone, name=sg_name).security_groups
        group = next((sg for sg in found if sg.name == sg_name), None)
        if group is not None:
            return group
        group = instance_api.create_security_group(
            description=SECURITY_GROUP_DESCRIPTION,
            stateful=True,
            zone=settings.zone,
            name=sg_name,
            project=settings.project_id or None,
            tags=[RESOURCE_TAG, cluster_name],
            inbound_default_policy=SecurityGroupPolicy.DROP,
            outbound_default_policy=SecurityGroupPolicy.ACCEPT,
        ).security_group
        for position, rule in enumerate(FIREWALL_RULES, start=1):
            instance_api.create_security_group_rule(
                security_group_id=group.id,
                protocol=SecurityGroupRuleProtocol(rule.protocol.lower()),
                direction=SecurityGroupRuleDirection.INBOUND,
                action=SecurityGroupRuleAction.ACCEPT,
                ip_range=rule.cidr,
                position=position,
                editable=True,
                zone=settings.zone,
                dest_port_from=rule.port_from,
                dest_port_to=rule.port_to if rule.port_to != rule.port_from else None,
            )
        return group

    def _create_ip(self, cluster_name: str, settings: ScalewayConfig):
        instance_api, _, _ = self._apis(settings)
        return instance_api.create_ip(
            zone=settings.zone,
            project=settings.project_id or None,
            tags=[RESOURCE_TAG, cluster_name],
            type_="routed_ipv4",
        ).ip

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        """Create VPC, private network, security group, and reserve the first IP."""
        if self._private_network is not None:
            return
        settings = config.scaleway
        try:
            private_network = self._ensure_private_network(cluster_name, settings)
            self._security_group = self._ensure_security_group(cluster_name, settings)
            self._reserved_ip = self._create_ip(cluster_name, settings)
        except Exception as err:
            raise ProvisioningError(self.name, "configure-networking", str(err)) from err
        self._private_network = private_network
        console.print(f"[green]  \u2713 scaleway network ready, endpoint {self._reserved_ip.address}[/green]")

    def get_public_endpoint(self) -> str:
        if self._reserved_ip is None:
            return ""
        return self._reserved_ip.address

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _private_address(self, settings: ScalewayConfig, private_nic) -> str:
        """First IPAM address of *private_nic*, without its prefix length."""
        _, _, ipam_api = self._apis(settings)
        ips = ipam_api.list_i_ps(
            region=settings.region,
            private_network_id=private_nic.private_network_id,
            resource_id=private_nic.id,
        ).ips
        if not ips:
            return ""
        return ips[0].address.split("/", 1)[0]

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        settings = config.scaleway
        instance_api, _, _ = self._apis(settings)
        if self._private_network is None:
            self.configure_networking(cluster_name, config)

        if not self._reserved_claimed:
            self._reserved_claimed = True
            ip = self._reserved_ip
        else:
            ip = self._create_ip(cluster_name, settings)

        volume = instance_api.create_volume(
            zone=settings.zone,
            name=f"{name}-ephemeral",
            project=settings.project_id or None,
            volume_type=VolumeVolumeType(SCW_EPHEMERAL_VOLUME_TYPE),
            size=SCW_EPHEMERAL_VOLUME_SIZE_GB * 1000 ** 3,
        ).volume
        server = instance_api.create_server(
            zone=settings.zone,
            commercial_type=settings.instance_type,
            name=name,
            dynamic_ip_required=False,
            image=settings.snapshot_id,
            volumes={
                "1": VolumeServerTemplate(
                    volume_type=VolumeVolumeType(SCW_EPHEMERAL_VOLUME_TYPE),
                    id=volume.id,
                    name=volume.name,
                ),
            },
            protected=False,
            public_ips=[ip.id],
            project=settings.project_id or None,
            tags=[RESOURCE_TAG, role.value],
            security_group=self._security_group.id,
        ).server
        private_nic = instance_api.create_private_nic(
            server_id=server.id,
            private_network_id=self._private_network.id,
            zone=settings.zone,
        ).private_nic
        instance_api.server_action(server_id=server.id, zone=settings.zone, action=ServerAction.POWERON)
        internal_ip = self._private_address(settings, private_nic) if private_nic is not None else ""
        logger.info("Scaleway server %s (%s) is at %s, private %s", name, server.id, ip.address, internal_ip)

        self.apply_config(ip.address, machine_config)
        return ProvisionedNode(
            name=name,
            role=role,
            provider=self.name,
            internal_ip=internal_ip,
            public_ip=ip.address,
            resource_id=server.id,
        )
