import os

from aws_cdk import (
    Stack,
    Tags,
)
from aws_cdk import (
    aws_ec2 as ec2,
)
from aws_cdk import (
    aws_ecr_assets as ecr_assets,
)
from aws_cdk import (
    aws_ecs as ecs,
)
from aws_cdk import (
    aws_route53 as route53,
)
from constructs import Construct

from latticedemo.constructs.app_server_construct import AppServerConstruct
from latticedemo.constructs.function_construct import LambdaVpcFunctionConstruct
from latticedemo.constructs.lattice_construct import LatticeConstruct
from latticedemo.constructs.workloads_vpc_construct import WorkloadsVpc
from latticedemo.lattice.records import AuthMode

APPSERVER_IMAGE_DIR = os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "appserver"))


class VpcLatticeDemoStack(Stack):
    """
    Demo of VPC Lattice exposing an ECS app server and a Lambda function.

    Both workloads live in an isolated VPC without internet access and are
    published through one service network. The account's default VPC (or the
    VPC named by the ``consumer_vpc_id`` context value) joins the network as a
    consumer.
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Retrieve the 'tags' context value (expected to be a dict)
        # And apply to all resources in the stack
        context_tags = self.node.try_get_context("tags")
        if context_tags and isinstance(context_tags, dict):
            for key, value in context_tags.items():
                Tags.of(self).add(key, value)

        # Workloads VPC; endpoints let the tasks pull images and ship logs
        self.workloads_vpc = WorkloadsVpc(
            self,
            "WorkloadsVpc",
            enable_internet_access=False,
            interface_endpoints=[
                ec2.InterfaceVpcEndpointAwsService.ECR,
                ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
                ec2.InterfaceVpcEndpointAwsService.CLOUDWATCH_LOGS,
                ec2.InterfaceVpcEndpointAwsService.ECS,
            ],
        )

        self.lambda_function = LambdaVpcFunctionConstruct(self, "LambdaFunction", vpc=self.workloads_vpc.vpc)

        self.app_server = AppServerConstruct(
            self,
            "AppServer",
            vpc=self.workloads_vpc.vpc,
            container_image=self._app_server_image(),
        )

        # Lattice setup
        self.lattice = LatticeConstruct(self, "VpcLattice", enable_access_logs=True)

        consumer_vpc_id = self.node.try_get_context("consumer_vpc_id")
        if consumer_vpc_id:
            consumer_vpc = ec2.Vpc.from_lookup(self, "ConsumerVPC", vpc_id=consumer_vpc_id)
        else:
            consumer_vpc = ec2.Vpc.from_lookup(self, "DefaultVPC", is_default=True)
        self.lattice.associate_vpc(consumer_vpc, "consumer-asscn")

        lattice_config = self.node.try_get_context("lattice") or {}
        hosted_zone = None
        zone_config = lattice_config.get("hosted_zone")
        if zone_config:
            hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
                self,
                "LatticeHostedZone",
                hosted_zone_id=zone_config["id"],
                zone_name=zone_config["name"],
            )

        self.appserver_service = self.lattice.create_alb_lattice_service(
            application_load_balancer=self.app_server.alb,
            service_name="appserver",
            vpc=self.workloads_vpc.vpc,
            enable_access_logs=True,
            custom_domain_name=lattice_config.get("custom_domain"),
            certificate_arn=lattice_config.get("certificate_arn"),
            hosted_zone=hosted_zone,
        )
        self.lambda_service = self.lattice.create_lambda_lattice_service(
            handler=self.lambda_function.lambda_function,
            service_name="lambda",
            auth_type=AuthMode.IAM,
        )

    def _app_server_image(self) -> ecs.ContainerImage:
        registry_image = self.node.try_get_context("appserver_image")
        if registry_image:
            return ecs.ContainerImage.from_registry(registry_image)
        return ecs.ContainerImage.from_asset(APPSERVER_IMAGE_DIR, platform=ecr_assets.Platform.LINUX_ARM64)
