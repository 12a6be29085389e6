"""Lambda Component - one function per directory under src/lambdas."""

import json

import pulumi
import pulumi_aws as aws

from common.constants import ID_PART_LOG_GROUP, ID_PART_RETRY_CONFIG, ID_PART_SERVICE_ROLE
from common.naming import format_resource_id
from wiring.bundler import BundleResult
from wiring.permissions import assume_role_policy
from wiring.plan import LambdaSpec

LAMBDA_BASIC_EXECUTION_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
)


class FunctionsComponent(pulumi.ComponentResource):
    """Lambda functions built from bundled artifacts, with one role each."""

    def __init__(
        self,
        name: str,
        lambdas: dict[str, LambdaSpec],
        artifacts: dict[str, BundleResult],
        env_vars: dict | None = None,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:compute:Functions", name, None, opts)

        self.tags = tags or {}
        base_env_vars = env_vars or {}
        self.functions: dict[str, aws.lambda_.Function] = {}
        self.roles: dict[str, aws.iam.Role] = {}

        for lambda_name, spec in lambdas.items():
            settings = spec.settings
            role_id = format_resource_id(spec.resource_id, ID_PART_SERVICE_ROLE)

            role = aws.iam.Role(
                role_id,
                assume_role_policy=json.dumps(assume_role_policy("lambda.amazonaws.com")),
                tags=self.tags,
                opts=pulumi.ResourceOptions(parent=self),
            )

            aws.iam.RolePolicyAttachment(
                format_resource_id(role_id, "basic", "execution"),
                role=role.name,
                policy_arn=LAMBDA_BASIC_EXECUTION_POLICY_ARN,
                opts=pulumi.ResourceOptions(parent=self),
            )

            log_group = aws.cloudwatch.LogGroup(
                format_resource_id(spec.resource_id, ID_PART_LOG_GROUP),
                name=f"/aws/lambda/{spec.resource_id}",
                retention_in_days=14,
                tags=self.tags,
                opts=pulumi.ResourceOptions(parent=self),
            )

            variables = {**base_env_vars, **settings.environment}

            function = aws.lambda_.Function(
                spec.resource_id,
                name=spec.resource_id,
                code=pulumi.FileArchive(str(artifacts[lambda_name].artifact_dir)),
                handler=settings.handler,
                runtime=settings.runtime,
                memory_size=settings.memory,
                timeout=settings.timeout,
                role=role.arn,
                environment=(
                    aws.lambda_.FunctionEnvironmentArgs(variables=variables) if variables else None
                ),
                tags=self.tags,
                opts=pulumi.ResourceOptions(parent=self, depends_on=[log_group]),
            )

            if settings.retries is not None:
                aws.lambda_.FunctionEventInvokeConfig(
                    format_resource_id(spec.resource_id, ID_PART_RETRY_CONFIG),
                    function_name=function.name,
                    maximum_retry_attempts=settings.retries,
                    opts=pulumi.ResourceOptions(parent=self),
                )

            self.functions[lambda_name] = function
            self.roles[lambda_name] = role

        self.register_outputs(
            {"function_arns": {name: fn.arn for name, fn in self.functions.items()}}
        )
