"""Desired-state records for publishing backends through a VPC Lattice service network.

These are plain frozen values with no reference to CDK objects, so a plan can be
computed, compared and tested without synthesizing a stack.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

INVOKE_ACTION = "vpc-lattice-svcs:Invoke"
POLICY_VERSION = "2012-10-17"

LISTENER_PORT = 443
LISTENER_PROTOCOL = "HTTPS"
DEFAULT_ALB_PORT = 80
ALB_TARGET_PROTOCOL = "HTTP"
FORWARD_WEIGHT = 100


class AuthMode(str, Enum):
    NONE = "NONE"
    IAM = "IAM"

    @property
    def auth_type(self) -> str:
        """The value VPC Lattice expects in a service's AuthType."""
        return "AWS_IAM" if self is AuthMode.IAM else "NONE"


class TargetType(str, Enum):
    ALB = "ALB"
    LAMBDA = "LAMBDA"


@dataclass(frozen=True)
class ZoneRef:
    zone_id: str
    zone_name: str


@dataclass(frozen=True)
class AlbTarget:
    load_balancer_arn: str
    vpc_id: str
    port: Optional[int] = None


@dataclass(frozen=True)
class FunctionTarget:
    function_arn: str


Backend = Union[AlbTarget, FunctionTarget]


@dataclass(frozen=True)
class NetworkFabric:
    id: str
    sharing_enabled: bool = True
    access_log_sink: Optional[str] = None


@dataclass(frozen=True)
class ExposureConfig:
    service_name: str
    backend: Backend
    auth_mode: Union[AuthMode, str] = AuthMode.NONE
    certificate_arn: Optional[str] = None
    custom_domain_name: Optional[str] = None
    hosted_zone: Optional[ZoneRef] = None
    enable_access_logs: bool = False
    iam_policy_statements: Optional[Tuple[Dict[str, Any], ...]] = None


# Certificate resolution outcomes, produced by the validation pass.


@dataclass(frozen=True)
class NoCertificate:
    pass


@dataclass(frozen=True)
class ImportedCertificate:
    certificate_arn: str
    domain_name: str


@dataclass(frozen=True)
class ProvisionedCertificate:
    domain_name: str
    hosted_zone: ZoneRef


CertificateResolution = Union[NoCertificate, ImportedCertificate, ProvisionedCertificate]


@dataclass(frozen=True)
class ExposureWarning:
    code: str
    message: str


@dataclass(frozen=True)
class ResolvedExposure:
    service_name: str
    backend: Backend
    auth_mode: AuthMode
    certificate: CertificateResolution
    custom_domain_name: Optional[str]
    hosted_zone: Optional[ZoneRef]
    enable_access_logs: bool
    policy_statements: Tuple[Dict[str, Any], ...] = ()
    warnings: Tuple[ExposureWarning, ...] = ()


# Records making up an exposure plan.


@dataclass(frozen=True)
class CertificateRecord:
    logical_id: str
    domain_name: str
    certificate_arn: Optional[str] = None
    hosted_zone: Optional[ZoneRef] = None

    @property
    def provisioned(self) -> bool:
        return self.certificate_arn is None


@dataclass(frozen=True)
class ServiceRecord:
    logical_id: str
    name: str
    auth_type: str
    custom_domain_name: Optional[str] = None
    certificate_logical_id: Optional[str] = None


@dataclass(frozen=True)
class AuthPolicyRecord:
    logical_id: str
    service_logical_id: str
    statements: Tuple[Dict[str, Any], ...]

    def document(self) -> Dict[str, Any]:
        return {"Version": POLICY_VERSION, "Statement": [dict(statement) for statement in self.statements]}


@dataclass(frozen=True)
class AccessLogRecord:
    logical_id: str
    log_group_logical_id: str
    resource_logical_id: str


@dataclass(frozen=True)
class TargetGroupRecord:
    logical_id: str
    target_type: TargetType
    target_id: str
    port: Optional[int] = None
    protocol: Optional[str] = None
    vpc_id: Optional[str] = None


@dataclass(frozen=True)
class ListenerRecord:
    logical_id: str
    service_logical_id: str
    target_group_logical_id: str
    protocol: str = LISTENER_PROTOCOL
    port: int = LISTENER_PORT
    weight: int = FORWARD_WEIGHT


@dataclass(frozen=True)
class DnsAliasRecord:
    logical_id: str
    record_name: str
    hosted_zone: ZoneRef
    service_logical_id: str


@dataclass(frozen=True)
class AssociationRecord:
    logical_id: str
    fabric_id: str
    service_logical_id: str


@dataclass(frozen=True)
class VpcMembership:
    logical_id: str
    vpc_id: str
    fabric_id: str
    security_group_ids: Tuple[str, ...] = ()

    @property
    def use_default_security_group(self) -> bool:
        return not self.security_group_ids


@dataclass(frozen=True)
class ExposurePlan:
    service: ServiceRecord
    target_group: TargetGroupRecord
    listener: ListenerRecord
    association: AssociationRecord
    certificate: Optional[CertificateRecord] = None
    auth_policy: Optional[AuthPolicyRecord] = None
    access_log: Optional[AccessLogRecord] = None
    dns_alias: Optional[DnsAliasRecord] = None
    warnings: Tuple[ExposureWarning, ...] = ()

    @property
    def records(self) -> Tuple[Any, ...]:
        """All records in declaration order, skipping the ones not produced."""
        ordered = (
            self.certificate,
            self.service,
            self.auth_policy,
            self.access_log,
            self.target_group,
            self.listener,
            self.dns_alias,
            self.association,
        )
        return tuple(record for record in ordered if record is not None)
