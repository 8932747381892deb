from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from aws_cdk import Annotations, CfnOutput
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import (
    aws_ec2 as ec2,
)
from aws_cdk import (
    aws_elasticloadbalancingv2 as elbv2,
)
from aws_cdk import (
    aws_iam as iam,
)
from aws_cdk import (
    aws_lambda as _lambda,
)
from aws_cdk import (
    aws_logs as logs,
)
from aws_cdk import (
    aws_route53 as route53,
)
from aws_cdk import (
    aws_vpclattice as vpclattice,
)
from constructs import Construct

from latticedemo.errors import ConfigurationError
from latticedemo.lattice.composer import compose_service_exposure, plan_service_association, plan_vpc_membership
from latticedemo.lattice.records import (
    AlbTarget,
    AuthMode,
    ExposureConfig,
    ExposurePlan,
    FunctionTarget,
    NetworkFabric,
    TargetType,
    ZoneRef,
)

LATTICE_SERVICE_PRINCIPAL = "vpc-lattice.amazonaws.com"


@dataclass
class ExposedLatticeService:
    """CDK resources created for one exposed service, alongside the plan they came from."""

    plan: ExposurePlan
    service: vpclattice.CfnService
    target_group: vpclattice.CfnTargetGroup
    listener: vpclattice.CfnListener
    association: vpclattice.CfnServiceNetworkServiceAssociation
    certificate: Optional[acm.ICertificate] = None
    auth_policy: Optional[vpclattice.CfnAuthPolicy] = None
    log_group: Optional[logs.ILogGroup] = None
    access_log_subscription: Optional[vpclattice.CfnAccessLogSubscription] = None
    dns_record: Optional[route53.CnameRecord] = None
    invoke_permission: Optional[_lambda.CfnPermission] = None


class LatticeConstruct(Construct):
    """
    A VPC Lattice service network plus the services published through it.

    VPCs join with ``associate_vpc``. Backends are published with
    ``create_service`` (or the ALB / Lambda helpers), which plans the resources
    with ``compose_service_exposure`` and then declares them; invalid options
    raise ``ConfigurationError`` before anything is added to the tree.

    Attributes:
        service_network (vpclattice.CfnServiceNetwork): The shared service network.
        fabric (NetworkFabric): Plain description of the network handed to the composer.
        log_group (Optional[logs.LogGroup]): Network-level access log group, when enabled.
        services (Dict[str, ExposedLatticeService]): Exposed services by name.
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        enable_access_logs: bool = False,
        sharing_enabled: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(scope, id, **kwargs)

        self.service_network = vpclattice.CfnServiceNetwork(
            self,
            "ServiceNetwork",
            sharing_config=vpclattice.CfnServiceNetwork.SharingConfigProperty(enabled=sharing_enabled),
        )

        self.log_group = None
        if enable_access_logs:
            self.log_group = logs.LogGroup(self, "ServiceNetworkLogGroup", retention=logs.RetentionDays.ONE_DAY)
            vpclattice.CfnAccessLogSubscription(
                self,
                "ServiceNetworkAccessLogSubscription",
                destination_arn=self.log_group.log_group_arn,
                resource_identifier=self.service_network.attr_arn,
            )

        self.fabric = NetworkFabric(
            id=self.service_network.attr_id,
            sharing_enabled=sharing_enabled,
            access_log_sink=self.log_group.log_group_arn if self.log_group else None,
        )
        self.services: Dict[str, ExposedLatticeService] = {}
        self.vpc_associations: Dict[str, vpclattice.CfnServiceNetworkVpcAssociation] = {}
        # Keyed by the associated service's construct path
        self.service_associations: Dict[str, vpclattice.CfnServiceNetworkServiceAssociation] = {}

        CfnOutput(self, "ServiceNetworkId", value=self.service_network.attr_id)
        CfnOutput(self, "ServiceNetworkArn", value=self.service_network.attr_arn)

    def associate_vpc(
        self,
        vpc: ec2.IVpc,
        association_name: str,
        security_group_ids: Optional[Sequence[str]] = None,
    ) -> vpclattice.CfnServiceNetworkVpcAssociation:
        membership = plan_vpc_membership(
            self.fabric,
            vpc.vpc_id,
            association_name,
            security_group_ids=security_group_ids,
            existing_vpc_ids=self.vpc_associations.keys(),
        )

        group_ids = list(membership.security_group_ids)
        if membership.use_default_security_group:
            security_group = ec2.SecurityGroup(
                self,
                f"{association_name}-security-group",
                vpc=vpc,
                description=f"Service network access for {association_name}",
                allow_all_outbound=True,
            )
            security_group.add_ingress_rule(
                peer=ec2.Peer.ipv4(vpc.vpc_cidr_block),
                connection=ec2.Port.all_traffic(),
                description="Allow all traffic from within the VPC",
            )
            group_ids = [security_group.security_group_id]

        association = vpclattice.CfnServiceNetworkVpcAssociation(
            self,
            membership.logical_id,
            vpc_identifier=membership.vpc_id,
            service_network_identifier=self.service_network.attr_id,
            security_group_ids=group_ids,
        )
        self.vpc_associations[membership.vpc_id] = association
        return association

    def associate_service(
        self, service: vpclattice.CfnService, association_name: str
    ) -> vpclattice.CfnServiceNetworkServiceAssociation:
        """Associate a service created outside ``create_service``, e.g. by another ``LatticeConstruct``."""
        record = plan_service_association(
            self.fabric,
            service.node.path,
            service.node.id,
            association_name,
            associated_service_paths=self.service_associations.keys(),
        )
        if self.node.try_find_child(record.logical_id) is not None:
            raise ConfigurationError(
                f"An association named '{association_name}' already exists on this service network."
            )

        association = vpclattice.CfnServiceNetworkServiceAssociation(
            self,
            record.logical_id,
            service_identifier=service.attr_id,
            service_network_identifier=record.fabric_id,
        )
        self.service_associations[service.node.path] = association
        return association

    def create_service(self, config: ExposureConfig) -> ExposedLatticeService:
        plan = compose_service_exposure(self.fabric, config, existing_service_names=self.services.keys())
        for warning in plan.warnings:
            Annotations.of(self).add_warning_v2(f"latticedemo:{warning.code}", warning.message)

        name = plan.service.name
        hosted_zone = None
        # A provisioned certificate implies a DNS alias in the same zone
        zone_ref = plan.dns_alias.hosted_zone if plan.dns_alias else None
        if zone_ref:
            hosted_zone = self._import_hosted_zone(f"{name}-hosted-zone", zone_ref)

        certificate = None
        if plan.certificate and plan.certificate.provisioned:
            certificate = acm.Certificate(
                self,
                plan.certificate.logical_id,
                domain_name=plan.certificate.domain_name,
                validation=acm.CertificateValidation.from_dns(hosted_zone),
            )
        elif plan.certificate:
            certificate = acm.Certificate.from_certificate_arn(
                self, plan.certificate.logical_id, plan.certificate.certificate_arn
            )

        service = vpclattice.CfnService(
            self,
            plan.service.logical_id,
            auth_type=plan.service.auth_type,
            certificate_arn=certificate.certificate_arn if certificate else None,
            custom_domain_name=plan.service.custom_domain_name,
        )

        auth_policy = None
        if plan.auth_policy:
            auth_policy = vpclattice.CfnAuthPolicy(
                self,
                plan.auth_policy.logical_id,
                resource_identifier=service.attr_id,
                policy=plan.auth_policy.document(),
            )

        log_group = None
        access_log_subscription = None
        if plan.access_log:
            log_group = logs.LogGroup(
                self,
                plan.access_log.log_group_logical_id,
                retention=logs.RetentionDays.ONE_DAY,
            )
            access_log_subscription = vpclattice.CfnAccessLogSubscription(
                self,
                plan.access_log.logical_id,
                destination_arn=log_group.log_group_arn,
                resource_identifier=service.attr_arn,
            )

        target_group = self._create_target_group(plan)

        invoke_permission = None
        if plan.target_group.target_type is TargetType.LAMBDA:
            invoke_permission = _lambda.CfnPermission(
                self,
                f"{name}-invoke-permission",
                action="lambda:InvokeFunction",
                function_name=plan.target_group.target_id,
                principal=LATTICE_SERVICE_PRINCIPAL,
                source_arn=target_group.attr_arn,
            )

        listener = vpclattice.CfnListener(
            self,
            plan.listener.logical_id,
            service_identifier=service.attr_id,
            protocol=plan.listener.protocol,
            port=plan.listener.port,
            default_action=vpclattice.CfnListener.DefaultActionProperty(
                forward=vpclattice.CfnListener.ForwardProperty(
                    target_groups=[
                        vpclattice.CfnListener.WeightedTargetGroupProperty(
                            target_group_identifier=target_group.attr_id,
                            weight=plan.listener.weight,
                        )
                    ]
                )
            ),
        )

        dns_record = None
        if plan.dns_alias:
            dns_record = route53.CnameRecord(
                self,
                plan.dns_alias.logical_id,
                zone=hosted_zone,
                record_name=plan.dns_alias.record_name,
                domain_name=service.attr_dns_entry_domain_name,
            )

        association = vpclattice.CfnServiceNetworkServiceAssociation(
            self,
            plan.association.logical_id,
            service_identifier=service.attr_id,
            service_network_identifier=plan.association.fabric_id,
        )
        self.service_associations[service.node.path] = association

        CfnOutput(self, f"{name}-dns-name", value=service.attr_dns_entry_domain_name)

        exposed = ExposedLatticeService(
            plan=plan,
            service=service,
            target_group=target_group,
            listener=listener,
            association=association,
            certificate=certificate,
            auth_policy=auth_policy,
            log_group=log_group,
            access_log_subscription=access_log_subscription,
            dns_record=dns_record,
            invoke_permission=invoke_permission,
        )
        self.services[name] = exposed
        return exposed

    def create_alb_lattice_service(
        self,
        *,
        application_load_balancer: elbv2.IApplicationLoadBalancer,
        service_name: str,
        vpc: Optional[ec2.IVpc] = None,
        port: Optional[int] = None,
        auth_type: Union[AuthMode, str] = AuthMode.NONE,
        certificate_arn: Optional[str] = None,
        custom_domain_name: Optional[str] = None,
        hosted_zone: Optional[route53.IHostedZone] = None,
        enable_access_logs: bool = False,
        iam_policy_statements: Optional[Sequence[Union[iam.PolicyStatement, Dict[str, Any]]]] = None,
    ) -> ExposedLatticeService:
        target_vpc = vpc or application_load_balancer.vpc
        return self.create_service(
            ExposureConfig(
                service_name=service_name,
                backend=AlbTarget(
                    load_balancer_arn=application_load_balancer.load_balancer_arn,
                    vpc_id=target_vpc.vpc_id if target_vpc else "",
                    port=port,
                ),
                auth_mode=auth_type,
                certificate_arn=certificate_arn,
                custom_domain_name=custom_domain_name,
                hosted_zone=_zone_ref(hosted_zone),
                enable_access_logs=enable_access_logs,
                iam_policy_statements=_statements(iam_policy_statements),
            )
        )

    def create_lambda_lattice_service(
        self,
        *,
        handler: _lambda.IFunction,
        service_name: str,
        auth_type: Union[AuthMode, str] = AuthMode.NONE,
        certificate_arn: Optional[str] = None,
        custom_domain_name: Optional[str] = None,
        hosted_zone: Optional[route53.IHostedZone] = None,
        enable_access_logs: bool = False,
        iam_policy_statements: Optional[Sequence[Union[iam.PolicyStatement, Dict[str, Any]]]] = None,
    ) -> ExposedLatticeService:
        return self.create_service(
            ExposureConfig(
                service_name=service_name,
                backend=FunctionTarget(function_arn=handler.function_arn),
                auth_mode=auth_type,
                certificate_arn=certificate_arn,
                custom_domain_name=custom_domain_name,
                hosted_zone=_zone_ref(hosted_zone),
                enable_access_logs=enable_access_logs,
                iam_policy_statements=_statements(iam_policy_statements),
            )
        )

    def _create_target_group(self, plan: ExposurePlan) -> vpclattice.CfnTargetGroup:
        record = plan.target_group
        if record.target_type is TargetType.LAMBDA:
            return vpclattice.CfnTargetGroup(
                self,
                record.logical_id,
                type=record.target_type.value,
                targets=[vpclattice.CfnTargetGroup.TargetProperty(id=record.target_id)],
            )
        return vpclattice.CfnTargetGroup(
            self,
            record.logical_id,
            type=record.target_type.value,
            targets=[vpclattice.CfnTargetGroup.TargetProperty(id=record.target_id, port=record.port)],
            config=vpclattice.CfnTargetGroup.TargetGroupConfigProperty(
                port=record.port,
                protocol=record.protocol,
                vpc_identifier=record.vpc_id,
            ),
        )

    def _import_hosted_zone(self, id: str, zone_ref: ZoneRef) -> route53.IHostedZone:
        return route53.HostedZone.from_hosted_zone_attributes(
            self, id, hosted_zone_id=zone_ref.zone_id, zone_name=zone_ref.zone_name
        )


def _zone_ref(hosted_zone: Optional[route53.IHostedZone]) -> Optional[ZoneRef]:
    if hosted_zone is None:
        return None
    return ZoneRef(zone_id=hosted_zone.hosted_zone_id, zone_name=hosted_zone.zone_name)


def _statements(
    statements: Optional[Sequence[Union[iam.PolicyStatement, Dict[str, Any]]]],
) -> Optional[Tuple[Dict[str, Any], ...]]:
    if statements is None:
        return None
    return tuple(s.to_json() if isinstance(s, iam.PolicyStatement) else s for s in statements)
