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

"""Outscale provider (Net, subnet, internet service, route table, security group, VMs)."""

from __future__ import annotations

from osc_sdk_python import Gateway
from tenacity import RetryError, retry, stop_after_attempt, wait_fixed

from talos_manager import console, logger
from talos_manager.config import ClusterConfig, OutscaleConfig
from talos_manager.constants import (
    ANY_IPV4,
    FIREWALL_RULES,
    OUTSCALE_NET_CIDR,
    OUTSCALE_SUBNET_CIDR,
    PROVIDER_OUTSCALE,
    SECURITY_GROUP_DESCRIPTION,
)
from talos_manager.errors import ProvisioningError
from talos_manager.providers.base import ClusterProvider, NodeRole, ProvisionedNode

VM_RUNNING_MAX_RETRIES = 60
VM_RUNNING_POLL_INTERVAL_SECONDS = 5


def get_gateway(settings: OutscaleConfig) -> Gateway:
    """Build an OAPI gateway from explicit keys, falling back to the default profile."""
    if settings.access_key and settings.secret_key:
        return Gateway(access_key=settings.access_key, secret_key=settings.secret_key, region=settings.region)
    return Gateway(region=settings.region)


def _tags(name: str, **extra: str) -> list[dict[str, str]]:
    return [{"Key": "Name", "Value": name}, *({"Key": k, "Value": v} for k, v in extra.items())]


class OutscaleProvider(ClusterProvider):
    """Creates Talos VMs in a dedicated Net, each with a linked public IP."""

    def __init__(self, gateway: Gateway | None = None) -> None:
        self._gateway = gateway
        self._subnet_id: str | None = None
        self._security_group_id: str | None = None
        self._reserved_ip: dict | None = None
        self._reserved_claimed = False

    @property
    def name(self) -> str:
        return PROVIDER_OUTSCALE

    def gateway(self, settings: OutscaleConfig) -> Gateway:
        if self._gateway is None:
            self._gateway = get_gateway(settings)
        return self._gateway

    # ------------------------------------------------------------------
    # Networking
    # ------------------------------------------------------------------

    def _create_net(self, gw: Gateway, cluster_name: str, settings: OutscaleConfig) -> tuple[str, str]:
        """Create Net, subnet, internet access and routing; return (net id, subnet id)."""
        net_id = gw.CreateNet(IpRange=OUTSCALE_NET_CIDR)["Net"]["NetId"]
        # Public IPs are attached to VMs in this Net automatically.
        gw.CreateTags(
            ResourceIds=[net_id],
            Tags=_tags(f"{cluster_name}-net", **{"osc.fcu.eip.auto-attach": "true"}),
        )
        subnet_id = gw.CreateSubnet(
            NetId=net_id,
            IpRange=OUTSCALE_SUBNET_CIDR,
            SubregionName=f"{settings.region}a",
        )["Subnet"]["SubnetId"]
        gw.CreateTags(ResourceIds=[subnet_id], Tags=_tags(f"{cluster_name}-subnet"))

        internet_service_id = gw.CreateInternetService()["InternetService"]["InternetServiceId"]
        gw.LinkInternetService(InternetServiceId=internet_service_id, NetId=net_id)
        route_table_id = gw.CreateRouteTable(NetId=net_id)["RouteTable"]["RouteTableId"]
        gw.CreateRoute(RouteTableId=route_table_id, DestinationIpRange=ANY_IPV4, GatewayId=internet_service_id)
        gw.LinkRouteTable(RouteTableId=route_table_id, SubnetId=subnet_id)
        return net_id, subnet_id

    def _existing_subnet(self, gw: Gateway, subnet_id: str) -> tuple[str, str]:
        subnets = gw.ReadSubnets(Filters={"SubnetIds": [subnet_id]}).get("Subnets") or []
        if not subnets:
            raise ProvisioningError(self.name, "configure-networking", f"subnet {subnet_id} not found")
        return subnets[0]["NetId"], subnet_id

    def _ensure_security_group(self, gw: Gateway, cluster_name: str, net_id: str) -> str:
        sg_name = f"{cluster_name}-sg"
        found = gw.ReadSecurityGroups(
            Filters={"SecurityGroupNames": [sg_name], "NetIds": [net_id]},
        ).get("SecurityGroups") or []
        if found:
            return found[0]["SecurityGroupId"]
        sg_id = gw.CreateSecurityGroup(
            SecurityGroupName=sg_name,
            Description=SECURITY_GROUP_DESCRIPTION,
            NetId=net_id,
        )["SecurityGroup"]["SecurityGroupId"]
        for rule in FIREWALL_RULES:
            gw.CreateSecurityGroupRule(
                Flow="Inbound",
                SecurityGroupId=sg_id,
                IpProtocol=rule.protocol,
                FromPortRange=rule.port_from,
                ToPortRange=rule.port_to,
                IpRange=rule.cidr,
            )
        return sg_id

    def configure_networking(self, cluster_name: str, config: ClusterConfig) -> None:
        """Create the Net and security group, and reserve the first public IP.

        An existing subnet is reused when ``OSC_SUBNET_ID`` is set.
        """
        if self._subnet_id is not None:
            return
        settings = config.outscale
        gw = self.gateway(settings)
        try:
            if settings.subnet_id:
                net_id, subnet_id = self._existing_subnet(gw, settings.subnet_id)
            else:
                net_id, subnet_id = self._create_net(gw, cluster_name, settings)
            self._security_group_id = self._ensure_security_group(gw, cluster_name, net_id)
            self._reserved_ip = gw.CreatePublicIp()["PublicIp"]
        except ProvisioningError:
            raise
        except Exception as err:
            raise ProvisioningError(self.name, "configure-networking", str(err)) from err
        self._subnet_id = subnet_id
        console.print(f"[green]  \u2713 outscale Net {net_id} ready, endpoint {self._reserved_ip['PublicIp']}[/green]")

    def get_public_endpoint(self) -> str:
        if self._reserved_ip is None:
            return ""
        return self._reserved_ip["PublicIp"]

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _wait_running(self, gw: Gateway, vm_id: str) -> dict:
        @retry(
            stop=stop_after_attempt(VM_RUNNING_MAX_RETRIES),
            wait=wait_fixed(VM_RUNNING_POLL_INTERVAL_SECONDS),
        )
        def _poll() -> dict:
            vms = gw.ReadVms(Filters={"VmIds": [vm_id]}).get("Vms") or []
            if not vms or vms[0].get("State") != "running":
                raise RuntimeError(f"VM {vm_id} is not running yet")
            return vms[0]

        try:
            return _poll()
        except RetryError as err:
            raise RuntimeError(f"VM {vm_id} did not reach the running state") from err

    def _provision_node(
        self,
        cluster_name: str,
        config: ClusterConfig,
        name: str,
        role: NodeRole,
        local_index: int,
        machine_config: str,
    ) -> ProvisionedNode:
        settings = config.outscale
        gw = self.gateway(settings)
        if self._subnet_id is None:
            self.configure_networking(cluster_name, config)

        if not self._reserved_claimed:
            self._reserved_claimed = True
            public_ip = self._reserved_ip
        else:
            public_ip = gw.CreatePublicIp()["PublicIp"]

        request = {
            "ImageId": settings.image_id,
            "VmType": settings.instance_type,
            "SubnetId": self._subnet_id,
            "SecurityGroupIds": [self._security_group_id],
            "MinVmsCount": 1,
            "MaxVmsCount": 1,
        }
        if settings.keypair:
            request["KeypairName"] = settings.keypair
        vm = gw.CreateVms(**request)["Vms"][0]
        gw.CreateTags(ResourceIds=[vm["VmId"]], Tags=_tags(name, Role=role.value))
        vm = self._wait_running(gw, vm["VmId"])
        gw.LinkPublicIp(VmId=vm["VmId"], PublicIpId=public_ip["PublicIpId"])
        gw.CreateTags(ResourceIds=[public_ip["PublicIpId"]], Tags=_tags(name))
        logger.info("Outscale VM %s (%s) is at %s", name, vm["VmId"], public_ip["PublicIp"])

        self.apply_config(public_ip["PublicIp"], machine_config)
        return ProvisionedNode(
            name=name,
            role=role,
            provider=self.name,
            internal_ip=vm.get("PrivateIp", ""),
            public_ip=public_ip["PublicIp"],
            resource_id=vm["VmId"],
        )
