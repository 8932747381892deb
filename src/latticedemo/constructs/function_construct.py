import os
from typing import Optional, Sequence

from aws_cdk import Duration
from aws_cdk import (
    aws_ec2 as ec2,
)
from aws_cdk import (
    aws_lambda as _lambda,
)
from constructs import Construct

FUNCTIONS_DIR = os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "functions"))


class LambdaVpcFunctionConstruct(Construct):
    """Python Lambda function deployed into the private subnets of a VPC."""

    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc,
        code_path: str = os.path.join(FUNCTIONS_DIR, "demo"),
        security_groups: Optional[Sequence[ec2.ISecurityGroup]] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, id, **kwargs)

        self.lambda_function = _lambda.Function(
            self,
            "LambdaFunction",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="index.handler",
            code=_lambda.Code.from_asset(code_path),
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_groups=list(security_groups) if security_groups else None,
            timeout=Duration.seconds(10),
        )
