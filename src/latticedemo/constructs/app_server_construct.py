# app_server_construct.py
from typing import Optional

from aws_cdk import CfnOutput
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import (
    aws_ec2 as ec2,
)
from aws_cdk import (
    aws_ecs as ecs,
)
from aws_cdk import (
    aws_elasticloadbalancingv2 as elbv2,
)
from aws_cdk import (
    aws_iam as iam,
)
from aws_cdk import (
    aws_logs as logs,
)
from aws_cdk import (
    aws_route53 as route53,
)
from aws_cdk import (
    aws_route53_targets as route53_targets,
)
from constructs import Construct


class AppServerConstruct(Construct):
    """
    Internal Application Load Balancer in front of a Fargate service.

    The load balancer listens on HTTP:80, which is where the service network
    forwards traffic. When both ``hosted_zone`` and ``domain_name`` are given,
    an HTTPS:443 listener with a DNS-validated certificate and an alias record
    are added for clients inside the VPC.

    Attributes:
        alb (elbv2.ApplicationLoadBalancer): The internal load balancer.
        service (ecs.FargateService): The Fargate service behind it.
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc,
        container_image: ecs.ContainerImage,
        container_port: int = 80,
        health_check_path: str = "/",
        hosted_zone: Optional[route53.IHostedZone] = None,
        domain_name: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, id, **kwargs)

        # Security group for the ALB
        alb_security_group = ec2.SecurityGroup(
            self,
            "AlbSecurityGroup",
            vpc=vpc,
            allow_all_outbound=True,
            description="Security group for the app server ALB",
        )
        alb_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(), connection=ec2.Port.tcp(443), description="Allow HTTPS traffic"
        )
        alb_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(), connection=ec2.Port.tcp(80), description="Allow HTTP traffic"
        )

        self.alb = elbv2.ApplicationLoadBalancer(
            self,
            "AppServerALB",
            vpc=vpc,
            internet_facing=False,
            security_group=alb_security_group,
        )

        target_group = elbv2.ApplicationTargetGroup(
            self,
            "AppServerTargetGroup",
            vpc=vpc,
            port=container_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(path=health_check_path, healthy_http_codes="200"),
        )

        self.alb.add_listener(
            "AppServerHttpListener",
            port=80,
            protocol=elbv2.ApplicationProtocol.HTTP,
            default_target_groups=[target_group],
            open=False,
        )

        if hosted_zone and domain_name:
            certificate = acm.Certificate(
                self,
                "AppServerAlbCertificate",
                domain_name=domain_name,
                validation=acm.CertificateValidation.from_dns(hosted_zone),
            )
            self.alb.add_listener(
                "AppServerHttpsListener",
                port=443,
                protocol=elbv2.ApplicationProtocol.HTTPS,
                default_target_groups=[target_group],
                certificates=[certificate],
                open=False,
            )
            route53.ARecord(
                self,
                "AppServerAliasRecord",
                zone=hosted_zone,
                target=route53.RecordTarget.from_alias(route53_targets.LoadBalancerTarget(self.alb)),
                record_name=domain_name,
            )

        # Security group for the ECS tasks
        ecs_security_group = ec2.SecurityGroup(
            self,
            "EcsSecurityGroup",
            vpc=vpc,
            allow_all_outbound=True,
            description="Security group for app server ECS tasks",
        )
        ecs_security_group.add_ingress_rule(
            peer=alb_security_group,
            connection=ec2.Port.tcp(container_port),
            description="Allow traffic from the ALB",
        )

        task_role = iam.Role(
            self,
            "AppServerTaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )

        execution_role = iam.Role(
            self,
            "AppServerTaskExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy")
            ],
        )

        cluster = ecs.Cluster(self, "AppServerCluster", vpc=vpc)

        # ARM64 (Graviton) task definition
        task_definition = ecs.FargateTaskDefinition(
            self,
            "AppServerTaskDef",
            memory_limit_mib=512,
            cpu=256,
            task_role=task_role,
            execution_role=execution_role,
            runtime_platform=ecs.RuntimePlatform(
                cpu_architecture=ecs.CpuArchitecture.ARM64,
                operating_system_family=ecs.OperatingSystemFamily.LINUX,
            ),
        )

        task_definition.add_container(
            "AppServerContainer",
            image=container_image,
            port_mappings=[ecs.PortMapping(container_port=container_port)],
            logging=ecs.LogDriver.aws_logs(
                stream_prefix="AppServer",
                log_retention=logs.RetentionDays.ONE_WEEK,
            ),
        )

        self.service = ecs.FargateService(
            self,
            "AppServerService",
            cluster=cluster,
            task_definition=task_definition,
            desired_count=1,
            assign_public_ip=False,
            security_groups=[ecs_security_group],
            min_healthy_percent=0,
        )
        target_group.add_target(
            self.service.load_balancer_target(container_name="AppServerContainer", container_port=container_port)
        )

        CfnOutput(self, "AppServerAlbDnsName", value=self.alb.load_balancer_dns_name)
