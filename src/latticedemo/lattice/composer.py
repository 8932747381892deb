"""Rules deciding which resources publish a backend through a service network.

``compose_service_exposure`` runs a validation pass that resolves the options
into a ``ResolvedExposure`` and only then builds the records, so a
``ConfigurationError`` always means nothing was planned. Both passes are pure:
equal inputs give equal plans.
"""

import copy
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from latticedemo.errors import ConfigurationError
from latticedemo.lattice.records import (
    ALB_TARGET_PROTOCOL,
    DEFAULT_ALB_PORT,
    INVOKE_ACTION,
    AccessLogRecord,
    AlbTarget,
    AssociationRecord,
    AuthMode,
    AuthPolicyRecord,
    Backend,
    CertificateRecord,
    DnsAliasRecord,
    ExposureConfig,
    ExposurePlan,
    ExposureWarning,
    FunctionTarget,
    ImportedCertificate,
    ListenerRecord,
    NetworkFabric,
    NoCertificate,
    ProvisionedCertificate,
    ResolvedExposure,
    ServiceRecord,
    TargetGroupRecord,
    TargetType,
    VpcMembership,
)

MAX_PORT = 65535


def default_auth_statement() -> Dict[str, Any]:
    """Allow-all invoke statement used when an IAM service gets no explicit statements."""
    return {"Effect": "Allow", "Principal": "*", "Action": INVOKE_ACTION, "Resource": "*"}


def parse_auth_mode(value) -> AuthMode:
    if isinstance(value, AuthMode):
        return value
    normalized = str(value).strip().upper()
    # AWS_IAM is the spelling CloudFormation uses
    if normalized == "AWS_IAM":
        return AuthMode.IAM
    try:
        return AuthMode(normalized)
    except ValueError:
        raise ConfigurationError(f"Unknown auth mode '{value}'. Expected 'NONE' or 'IAM'.") from None


def _require_name(value, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{what} must be a non-empty string.")
    # Names end up in construct ids and uniqueness checks as given
    if value != value.strip():
        raise ConfigurationError(f"{what} '{value}' must not have leading or trailing whitespace.")
    return value


def _validate_backend(backend: Backend) -> Backend:
    if isinstance(backend, AlbTarget):
        if not backend.load_balancer_arn:
            raise ConfigurationError("ALB target needs a load balancer ARN.")
        if not backend.vpc_id:
            raise ConfigurationError("ALB target needs the VPC id of its load balancer.")
        port = DEFAULT_ALB_PORT if backend.port is None else backend.port
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= MAX_PORT:
            raise ConfigurationError(f"ALB target port must be between 1 and {MAX_PORT}, got {backend.port!r}.")
        return AlbTarget(load_balancer_arn=backend.load_balancer_arn, vpc_id=backend.vpc_id, port=port)
    if isinstance(backend, FunctionTarget):
        if not backend.function_arn:
            raise ConfigurationError("Function target needs a function ARN.")
        return backend
    raise ConfigurationError(f"Unsupported backend {type(backend).__name__}; expected AlbTarget or FunctionTarget.")


def _resolve_statements(
    service_name: str, auth_mode: AuthMode, statements: Optional[Sequence[Mapping]]
) -> Tuple[Tuple[Dict[str, Any], ...], Tuple[ExposureWarning, ...]]:
    if auth_mode is not AuthMode.IAM:
        if statements:
            warning = ExposureWarning(
                "policyStatementsIgnored",
                f"IAM policy statements for service '{service_name}' are ignored because its auth mode is NONE.",
            )
            return (), (warning,)
        return (), ()

    if statements is None:
        warning = ExposureWarning(
            "defaultAuthPolicy",
            f"Service '{service_name}' uses the default auth policy, which lets any principal invoke it.",
        )
        return (default_auth_statement(),), (warning,)

    if not statements:
        raise ConfigurationError(f"IAM policy statements for service '{service_name}' must not be empty.")
    for statement in statements:
        if not isinstance(statement, Mapping):
            raise ConfigurationError(
                f"IAM policy statements for service '{service_name}' must be mappings, got {type(statement).__name__}."
            )
    return tuple(copy.deepcopy(dict(statement)) for statement in statements), ()


def resolve_exposure(
    fabric: NetworkFabric, config: ExposureConfig, existing_service_names: Iterable[str] = ()
) -> ResolvedExposure:
    """Validate ``config`` and settle every cross-field choice before anything is declared."""
    service_name = _require_name(config.service_name, "Service name")
    if service_name in set(existing_service_names):
        raise ConfigurationError(f"A service named '{service_name}' is already exposed through this service network.")

    backend = _validate_backend(config.backend)
    auth_mode = parse_auth_mode(config.auth_mode)
    custom_domain_name = config.custom_domain_name or None
    certificate_arn = config.certificate_arn or None
    warnings = []

    if custom_domain_name is None:
        certificate = NoCertificate()
        if certificate_arn:
            warnings.append(
                ExposureWarning(
                    "certificateWithoutDomain",
                    f"Certificate {certificate_arn} is not used by service '{service_name}' "
                    "because no custom domain name is set.",
                )
            )
    elif certificate_arn:
        certificate = ImportedCertificate(certificate_arn=certificate_arn, domain_name=custom_domain_name)
    elif config.hosted_zone is not None:
        certificate = ProvisionedCertificate(domain_name=custom_domain_name, hosted_zone=config.hosted_zone)
    else:
        raise ConfigurationError(
            f"Service '{service_name}' sets custom domain '{custom_domain_name}' without a certificate ARN "
            "or a hosted zone, so no certificate can be imported or DNS-validated."
        )

    if custom_domain_name and config.hosted_zone is None:
        warnings.append(
            ExposureWarning(
                "customDomainWithoutHostedZone",
                f"No DNS record is created for '{custom_domain_name}' because no hosted zone was given; "
                "the domain has to be pointed at the service outside this stack.",
            )
        )

    statements, statement_warnings = _resolve_statements(service_name, auth_mode, config.iam_policy_statements)
    warnings.extend(statement_warnings)

    return ResolvedExposure(
        service_name=service_name,
        backend=backend,
        auth_mode=auth_mode,
        certificate=certificate,
        custom_domain_name=custom_domain_name,
        hosted_zone=config.hosted_zone,
        enable_access_logs=bool(config.enable_access_logs),
        policy_statements=statements,
        warnings=tuple(warnings),
    )


def _target_group(service_name: str, backend: Backend) -> TargetGroupRecord:
    logical_id = f"{service_name}-target-group"
    if isinstance(backend, AlbTarget):
        # TLS ends at the listener; the load balancer is reached over plain HTTP
        return TargetGroupRecord(
            logical_id,
            TargetType.ALB,
            backend.load_balancer_arn,
            port=backend.port,
            protocol=ALB_TARGET_PROTOCOL,
            vpc_id=backend.vpc_id,
        )
    return TargetGroupRecord(logical_id, TargetType.LAMBDA, backend.function_arn)


def build_plan(fabric: NetworkFabric, resolved: ResolvedExposure) -> ExposurePlan:
    name = resolved.service_name
    service_id = f"{name}-service"

    certificate = None
    if isinstance(resolved.certificate, ImportedCertificate):
        certificate = CertificateRecord(
            f"{name}-acm-certificate",
            resolved.certificate.domain_name,
            certificate_arn=resolved.certificate.certificate_arn,
        )
    elif isinstance(resolved.certificate, ProvisionedCertificate):
        certificate = CertificateRecord(
            f"{name}-acm-construct-certificate",
            resolved.certificate.domain_name,
            hosted_zone=resolved.certificate.hosted_zone,
        )

    service = ServiceRecord(
        service_id,
        name,
        resolved.auth_mode.auth_type,
        custom_domain_name=resolved.custom_domain_name,
        certificate_logical_id=certificate.logical_id if certificate else None,
    )

    auth_policy = None
    if resolved.auth_mode is AuthMode.IAM:
        auth_policy = AuthPolicyRecord(f"{name}-auth-policy", service_id, resolved.policy_statements)

    access_log = None
    if resolved.enable_access_logs:
        access_log = AccessLogRecord(f"{name}-access-log-subscription", f"{name}-log-group", service_id)

    target_group = _target_group(name, resolved.backend)
    listener = ListenerRecord(f"{name}-listener", service_id, target_group.logical_id)

    dns_alias = None
    if resolved.custom_domain_name and resolved.hosted_zone is not None:
        dns_alias = DnsAliasRecord(
            f"{name}-cname-record", resolved.custom_domain_name, resolved.hosted_zone, service_id
        )

    return ExposurePlan(
        service=service,
        target_group=target_group,
        listener=listener,
        association=AssociationRecord(f"ServiceNetworkServiceAssociation{name}", fabric.id, service_id),
        certificate=certificate,
        auth_policy=auth_policy,
        access_log=access_log,
        dns_alias=dns_alias,
        warnings=resolved.warnings,
    )


def compose_service_exposure(
    fabric: NetworkFabric, config: ExposureConfig, existing_service_names: Iterable[str] = ()
) -> ExposurePlan:
    return build_plan(fabric, resolve_exposure(fabric, config, existing_service_names))


def plan_vpc_membership(
    fabric: NetworkFabric,
    vpc_id: str,
    association_name: str,
    security_group_ids: Optional[Sequence[str]] = None,
    existing_vpc_ids: Iterable[str] = (),
) -> VpcMembership:
    """Plan joining ``vpc_id`` to the fabric.

    Supplied security group ids replace the default ingress-from-VPC group
    entirely; an empty or missing list means the default group is used.
    """
    _require_name(association_name, "Association name")
    if not vpc_id:
        raise ConfigurationError("VPC id must be set to associate a VPC with the service network.")
    if vpc_id in set(existing_vpc_ids):
        raise ConfigurationError(f"VPC {vpc_id} is already associated with this service network.")
    group_ids = tuple(dict.fromkeys(security_group_ids or ()))
    return VpcMembership(f"ServiceNetworkVpcAssociation{association_name}", vpc_id, fabric.id, group_ids)


def plan_service_association(
    fabric: NetworkFabric,
    service_path: str,
    service_id: str,
    association_name: str,
    associated_service_paths: Iterable[str] = (),
) -> AssociationRecord:
    """Plan attaching a service declared elsewhere to the fabric.

    ``service_path`` identifies the service across the construct tree; a
    service may be associated with one fabric only once.
    """
    _require_name(association_name, "Association name")
    if service_path in set(associated_service_paths):
        raise ConfigurationError(f"Service {service_path} is already associated with this service network.")
    return AssociationRecord(f"ServiceAssociation{association_name}", fabric.id, service_id)
