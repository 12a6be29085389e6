"""IAM Component - Least-privilege policies for Lambda functions.

Grants each Lambda the actions listed under ``permissions.lambdas.<name>``:
- auth: Cognito user pool actions
- storage: DynamoDB actions on every table and its indexes
- database: Data API actions on the cluster and read access to its secret
- messaging: SES actions on the account's identities
"""

import json

import pulumi
import pulumi_aws as aws

from common.constants import ID_PART_POLICY
from common.naming import format_resource_id
from wiring.permissions import PermissionTargets, build_lambda_statements, policy_document
from wiring.plan import LambdaSpec


class LambdaPermissionsComponent(pulumi.ComponentResource):
    """One inline role policy per Lambda with declared permissions."""

    def __init__(
        self,
        name: str,
        lambdas: dict[str, LambdaSpec],
        roles: dict[str, aws.iam.Role],
        region: str,
        account_id: str,
        user_pool_arn: pulumi.Input[str] | None = None,
        table_arns: list[pulumi.Input[str]] | None = None,
        cluster_arn: pulumi.Input[str] | None = None,
        cluster_secret_arn: pulumi.Input[str] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:iam:LambdaPermissions", name, None, opts)

        table_arns = table_arns or []
        ses_identity_arn = f"arn:aws:ses:{region}:{account_id}:identity/*"
        self.policies: dict[str, aws.iam.RolePolicy] = {}

        # Resolved once and shared by every policy
        targets = pulumi.Output.all(
            user_pool_arn, cluster_arn, cluster_secret_arn, *table_arns
        ).apply(
            lambda args: PermissionTargets(
                user_pool_arn=args[0],
                cluster_arn=args[1],
                cluster_secret_arn=args[2],
                table_arns=list(args[3:]),
                ses_identity_arn=ses_identity_arn,
            )
        )

        for lambda_name, spec in lambdas.items():
            permissions = spec.permissions
            if not any(
                (permissions.auth, permissions.storage, permissions.database, permissions.messaging)
            ):
                continue

            policy = targets.apply(
                lambda t, lambda_name=lambda_name, permissions=permissions: json.dumps(
                    policy_document(build_lambda_statements(lambda_name, permissions, t))
                )
            )

            self.policies[lambda_name] = aws.iam.RolePolicy(
                format_resource_id(spec.resource_id, ID_PART_POLICY),
                role=roles[lambda_name].id,
                policy=policy,
                opts=pulumi.ResourceOptions(parent=self),
            )

        self.register_outputs({"policy_count": len(self.policies)})
