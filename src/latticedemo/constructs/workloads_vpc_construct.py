from typing import Dict, Mapping, Optional, Sequence

from aws_cdk import (
    aws_ec2 as ec2,
)
from constructs import Construct

DEFAULT_GATEWAY_ENDPOINTS = {
    "S3": ec2.GatewayVpcEndpointAwsService.S3,
    "S3Express": ec2.GatewayVpcEndpointAwsService.S3_EXPRESS,
    "DynamoDB": ec2.GatewayVpcEndpointAwsService.DYNAMODB,
}


class WorkloadsVpc(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        enable_internet_access: bool = False,
        interface_endpoints: Optional[Sequence[ec2.InterfaceVpcEndpointAwsService]] = None,
        gateway_endpoints: Optional[Mapping[str, ec2.GatewayVpcEndpointAwsService]] = None,
        max_azs: int = 3,
        **kwargs,
    ) -> None:
        super().__init__(scope, id, **kwargs)

        subnet_configuration = []

        # Public subnets only when the workloads may reach the internet
        if enable_internet_access:
            subnet_configuration.append(
                ec2.SubnetConfiguration(name="public", subnet_type=ec2.SubnetType.PUBLIC, cidr_mask=24)
            )

        # Private subnets are always created, one per AZ
        subnet_configuration.append(
            ec2.SubnetConfiguration(name="private", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS, cidr_mask=24)
        )

        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            max_azs=max_azs,
            create_internet_gateway=enable_internet_access,
            nat_gateways=1 if enable_internet_access else 0,
            subnet_configuration=subnet_configuration,
            flow_logs={
                "VpcFlowLogs": ec2.FlowLogOptions(
                    destination=ec2.FlowLogDestination.to_cloud_watch_logs(),
                    traffic_type=ec2.FlowLogTrafficType.ALL,
                )
            },
            enable_dns_hostnames=True,
            enable_dns_support=True,
        )

        self.interface_endpoints: Dict[str, ec2.InterfaceVpcEndpoint] = {}
        for service in interface_endpoints or []:
            self.add_interface_vpc_endpoint(service)

        self.gateway_endpoints: Dict[str, ec2.GatewayVpcEndpoint] = {}
        for name, service in (gateway_endpoints or DEFAULT_GATEWAY_ENDPOINTS).items():
            self.gateway_endpoints[name] = self.vpc.add_gateway_endpoint(f"{name}GatewayEndpoint", service=service)

        self.private_subnets_with_egress = self.vpc.select_subnets(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)

    def add_interface_vpc_endpoint(self, service: ec2.InterfaceVpcEndpointAwsService) -> ec2.InterfaceVpcEndpoint:
        endpoint = self.vpc.add_interface_endpoint(f"{service.short_name}InterfaceEndpoint", service=service)
        self.interface_endpoints[service.short_name] = endpoint
        return endpoint
