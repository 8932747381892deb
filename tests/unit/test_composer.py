"""Unit tests for the service exposure rules."""

import pytest

from latticedemo.errors import ConfigurationError, LatticeDemoError
from latticedemo.lattice.composer import (
    compose_service_exposure,
    default_auth_statement,
    parse_auth_mode,
    resolve_exposure,
)
from latticedemo.lattice.records import (
    AccessLogRecord,
    AlbTarget,
    AssociationRecord,
    AuthMode,
    AuthPolicyRecord,
    CertificateRecord,
    DnsAliasRecord,
    ExposureConfig,
    FunctionTarget,
    ImportedCertificate,
    ListenerRecord,
    NetworkFabric,
    NoCertificate,
    ProvisionedCertificate,
    ServiceRecord,
    TargetGroupRecord,
    TargetType,
    ZoneRef,
)

ALB_ARN = "arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/internal/abc"
FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:demo"
CERT_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"
ZONE = ZoneRef(zone_id="Z123", zone_name="example.com")


@pytest.fixture
def fabric():
    return NetworkFabric(id="sn-0123456789")


def alb_config(**overrides):
    options = {"service_name": "appserver", "backend": AlbTarget(ALB_ARN, "vpc-123")}
    options.update(overrides)
    return ExposureConfig(**options)


def lambda_config(**overrides):
    options = {"service_name": "lambda", "backend": FunctionTarget(FUNCTION_ARN)}
    options.update(overrides)
    return ExposureConfig(**options)


class TestAlbExposure:
    def test_minimal_alb_service(self, fabric):
        plan = compose_service_exposure(fabric, alb_config())

        assert plan.service == ServiceRecord("appserver-service", "appserver", "NONE")
        assert plan.target_group == TargetGroupRecord(
            "appserver-target-group", TargetType.ALB, ALB_ARN, port=80, protocol="HTTP", vpc_id="vpc-123"
        )
        assert plan.listener == ListenerRecord("appserver-listener", "appserver-service", "appserver-target-group")
        assert plan.listener.protocol == "HTTPS"
        assert plan.listener.port == 443
        assert plan.listener.weight == 100
        assert plan.association == AssociationRecord(
            "ServiceNetworkServiceAssociationappserver", "sn-0123456789", "appserver-service"
        )
        assert plan.certificate is None
        assert plan.auth_policy is None
        assert plan.access_log is None
        assert plan.dns_alias is None
        assert plan.warnings == ()

    def test_explicit_port_is_kept(self, fabric):
        plan = compose_service_exposure(fabric, alb_config(backend=AlbTarget(ALB_ARN, "vpc-123", port=8080)))
        assert plan.target_group.port == 8080

    @pytest.mark.parametrize("port", [0, 65536, -1, True, "80"])
    def test_invalid_port_rejected(self, fabric, port):
        with pytest.raises(ConfigurationError, match="port"):
            compose_service_exposure(fabric, alb_config(backend=AlbTarget(ALB_ARN, "vpc-123", port=port)))

    def test_missing_vpc_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="VPC"):
            compose_service_exposure(fabric, alb_config(backend=AlbTarget(ALB_ARN, "")))

    def test_missing_load_balancer_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="load balancer"):
            compose_service_exposure(fabric, alb_config(backend=AlbTarget("", "vpc-123")))


class TestLambdaExposure:
    def test_lambda_target_group_has_no_config(self, fabric):
        plan = compose_service_exposure(fabric, lambda_config())

        assert plan.target_group == TargetGroupRecord("lambda-target-group", TargetType.LAMBDA, FUNCTION_ARN)
        assert plan.target_group.port is None
        assert plan.target_group.vpc_id is None

    def test_iam_without_statements_gets_single_default_statement(self, fabric):
        plan = compose_service_exposure(fabric, lambda_config(auth_mode=AuthMode.IAM))

        assert plan.service.auth_type == "AWS_IAM"
        assert plan.auth_policy == AuthPolicyRecord("lambda-auth-policy", "lambda-service", (default_auth_statement(),))
        assert plan.auth_policy.document() == {
            "Version": "2012-10-17",
            "Statement": [
                {"Effect": "Allow", "Principal": "*", "Action": "vpc-lattice-svcs:Invoke", "Resource": "*"}
            ],
        }
        assert [w.code for w in plan.warnings] == ["defaultAuthPolicy"]

    def test_iam_with_statements_uses_them_verbatim(self, fabric):
        statement = {
            "Effect": "Allow",
            "Principal": {"AWS": "arn:aws:iam::123456789012:root"},
            "Action": "vpc-lattice-svcs:Invoke",
            "Resource": "*",
        }
        plan = compose_service_exposure(fabric, lambda_config(auth_mode="IAM", iam_policy_statements=(statement,)))

        assert plan.auth_policy.statements == (statement,)
        assert plan.warnings == ()

    def test_statements_are_copied(self, fabric):
        statement = {"Effect": "Allow", "Principal": "*", "Action": "vpc-lattice-svcs:Invoke", "Resource": "*"}
        plan = compose_service_exposure(fabric, lambda_config(auth_mode="IAM", iam_policy_statements=(statement,)))
        statement["Effect"] = "Deny"

        assert plan.auth_policy.statements[0]["Effect"] == "Allow"

    def test_iam_with_empty_statements_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="must not be empty"):
            compose_service_exposure(fabric, lambda_config(auth_mode="IAM", iam_policy_statements=()))

    def test_non_mapping_statement_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="mappings"):
            compose_service_exposure(fabric, lambda_config(auth_mode="IAM", iam_policy_statements=("allow",)))

    def test_statements_ignored_when_auth_is_none(self, fabric):
        plan = compose_service_exposure(
            fabric, lambda_config(iam_policy_statements=(default_auth_statement(),))
        )

        assert plan.auth_policy is None
        assert [w.code for w in plan.warnings] == ["policyStatementsIgnored"]


class TestCertificates:
    def test_no_domain_means_no_certificate_or_dns(self, fabric):
        plan = compose_service_exposure(fabric, alb_config(hosted_zone=ZONE))

        assert plan.certificate is None
        assert plan.dns_alias is None
        assert plan.service.custom_domain_name is None
        assert plan.service.certificate_logical_id is None

    def test_certificate_without_domain_is_ignored(self, fabric):
        resolved = resolve_exposure(fabric, alb_config(certificate_arn=CERT_ARN))

        assert resolved.certificate == NoCertificate()
        assert [w.code for w in resolved.warnings] == ["certificateWithoutDomain"]

    def test_provisioned_certificate_and_dns(self, fabric):
        plan = compose_service_exposure(
            fabric, alb_config(custom_domain_name="service.example.com", hosted_zone=ZONE)
        )

        assert plan.certificate == CertificateRecord(
            "appserver-acm-construct-certificate", "service.example.com", hosted_zone=ZONE
        )
        assert plan.certificate.provisioned
        assert plan.service.custom_domain_name == "service.example.com"
        assert plan.service.certificate_logical_id == "appserver-acm-construct-certificate"
        assert plan.dns_alias == DnsAliasRecord(
            "appserver-cname-record", "service.example.com", ZONE, "appserver-service"
        )
        assert plan.warnings == ()

    def test_imported_certificate_takes_precedence_over_zone(self, fabric):
        resolved = resolve_exposure(
            fabric, alb_config(custom_domain_name="service.example.com", certificate_arn=CERT_ARN, hosted_zone=ZONE)
        )
        assert resolved.certificate == ImportedCertificate(CERT_ARN, "service.example.com")

        plan = compose_service_exposure(
            fabric, alb_config(custom_domain_name="service.example.com", certificate_arn=CERT_ARN, hosted_zone=ZONE)
        )
        assert plan.certificate == CertificateRecord(
            "appserver-acm-certificate", "service.example.com", certificate_arn=CERT_ARN
        )
        assert not plan.certificate.provisioned
        assert plan.dns_alias is not None

    def test_imported_certificate_without_zone_skips_dns(self, fabric):
        plan = compose_service_exposure(
            fabric, alb_config(custom_domain_name="service.example.com", certificate_arn=CERT_ARN)
        )

        assert plan.certificate.certificate_arn == CERT_ARN
        assert plan.dns_alias is None
        assert [w.code for w in plan.warnings] == ["customDomainWithoutHostedZone"]

    def test_domain_without_certificate_or_zone_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="service.example.com"):
            compose_service_exposure(fabric, alb_config(custom_domain_name="service.example.com"))

    def test_provisioned_resolution_carries_zone(self, fabric):
        resolved = resolve_exposure(fabric, alb_config(custom_domain_name="service.example.com", hosted_zone=ZONE))
        assert resolved.certificate == ProvisionedCertificate("service.example.com", ZONE)


class TestNamesAndAuth:
    def test_duplicate_service_name_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="already exposed"):
            compose_service_exposure(fabric, alb_config(), existing_service_names=["appserver"])

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_service_name_rejected(self, fabric, name):
        with pytest.raises(ConfigurationError):
            compose_service_exposure(fabric, alb_config(service_name=name))

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("NONE", AuthMode.NONE),
            ("iam", AuthMode.IAM),
            ("AWS_IAM", AuthMode.IAM),
            (AuthMode.IAM, AuthMode.IAM),
        ],
    )
    def test_parse_auth_mode(self, value, expected):
        assert parse_auth_mode(value) is expected

    def test_padded_service_name_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="whitespace"):
            compose_service_exposure(fabric, alb_config(service_name=" appserver "))

    def test_padded_name_cannot_shadow_existing_service(self, fabric):
        with pytest.raises(ConfigurationError):
            compose_service_exposure(
                fabric, alb_config(service_name="appserver "), existing_service_names=["appserver"]
            )

    def test_unknown_auth_mode_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="Unknown auth mode"):
            compose_service_exposure(fabric, alb_config(auth_mode="COGNITO"))

    def test_unsupported_backend_rejected(self, fabric):
        with pytest.raises(ConfigurationError, match="Unsupported backend"):
            compose_service_exposure(fabric, alb_config(backend="arn:aws:ec2:instance/i-123"))

    def test_configuration_error_is_a_lattice_demo_error(self):
        assert issubclass(ConfigurationError, LatticeDemoError)


class TestPlan:
    def test_same_inputs_give_equal_plans(self, fabric):
        config = alb_config(
            custom_domain_name="service.example.com",
            hosted_zone=ZONE,
            auth_mode=AuthMode.IAM,
            enable_access_logs=True,
        )
        assert compose_service_exposure(fabric, config) == compose_service_exposure(fabric, config)

    def test_access_logs_off_means_no_log_record(self, fabric):
        plan = compose_service_exposure(fabric, alb_config())
        assert not any(isinstance(record, AccessLogRecord) for record in plan.records)

    def test_access_logs_on(self, fabric):
        plan = compose_service_exposure(fabric, alb_config(enable_access_logs=True))
        assert plan.access_log == AccessLogRecord(
            "appserver-access-log-subscription", "appserver-log-group", "appserver-service"
        )

    def test_records_in_declaration_order(self, fabric):
        plan = compose_service_exposure(
            fabric,
            alb_config(
                custom_domain_name="service.example.com",
                hosted_zone=ZONE,
                auth_mode=AuthMode.IAM,
                enable_access_logs=True,
            ),
        )
        assert [type(record) for record in plan.records] == [
            CertificateRecord,
            ServiceRecord,
            AuthPolicyRecord,
            AccessLogRecord,
            TargetGroupRecord,
            ListenerRecord,
            DnsAliasRecord,
            AssociationRecord,
        ]

    def test_minimal_plan_has_four_records(self, fabric):
        plan = compose_service_exposure(fabric, lambda_config())
        assert len(plan.records) == 4
