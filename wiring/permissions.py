"""IAM policy statements derived from the permissions map.

These functions work on plain ARNs; the Pulumi components resolve their
outputs first and serialise the result with ``json.dumps``.
"""

from dataclasses import dataclass, field

from common.config import LambdaPermissions
from common.constants import (
    ACTION_PREFIX,
    SECRET_READ_ACTIONS,
    SECRETS_MANAGER_PREFIX,
    PermissionCategory,
)
from common.errors import UnresolvedReferenceError

POLICY_VERSION = "2012-10-17"


@dataclass(frozen=True)
class PermissionTargets:
    """ARNs each permission category is scoped to."""

    user_pool_arn: str | None = None
    table_arns: list[str] = field(default_factory=list)
    cluster_arn: str | None = None
    cluster_secret_arn: str | None = None
    ses_identity_arn: str | None = None


def statement(actions: list[str], resources: list[str]) -> dict:
    return {"Effect": "Allow", "Action": actions, "Resource": resources}


def policy_document(statements: list[dict]) -> dict:
    return {"Version": POLICY_VERSION, "Statement": statements}


def prefixed_actions(category: PermissionCategory, actions: list[str]) -> list[str]:
    prefix = ACTION_PREFIX[category]
    return [action if action.startswith(prefix) else f"{prefix}{action}" for action in actions]


def _require(target: str | None, lambda_name: str, category: PermissionCategory) -> str:
    if not target:
        raise UnresolvedReferenceError(
            f"Lambda '{lambda_name}' declares {category.value} permissions but there is no "
            f"{category.value} resource to grant them on"
        )
    return target


def build_lambda_statements(
    lambda_name: str, permissions: LambdaPermissions, targets: PermissionTargets
) -> list[dict]:
    """One statement per non-empty permission category of a Lambda.

    Returns an empty list when every category is empty, in which case no
    policy should be created at all.
    """
    statements = []

    if permissions.auth:
        statements.append(
            statement(
                prefixed_actions(PermissionCategory.AUTH, permissions.auth),
                [_require(targets.user_pool_arn, lambda_name, PermissionCategory.AUTH)],
            )
        )

    if permissions.storage:
        if not targets.table_arns:
            _require(None, lambda_name, PermissionCategory.STORAGE)
        statements.append(
            statement(
                prefixed_actions(PermissionCategory.STORAGE, permissions.storage),
                [
                    resource
                    for arn in targets.table_arns
                    for resource in (arn, f"{arn}/index/*")
                ],
            )
        )

    if permissions.database:
        cluster_arn = _require(targets.cluster_arn, lambda_name, PermissionCategory.DATABASE)
        statements.append(
            statement(
                prefixed_actions(PermissionCategory.DATABASE, permissions.database),
                [cluster_arn],
            )
        )
        # Data API calls authenticate with the cluster secret
        statements.append(
            statement(
                [f"{SECRETS_MANAGER_PREFIX}{action}" for action in SECRET_READ_ACTIONS],
                [_require(targets.cluster_secret_arn, lambda_name, PermissionCategory.DATABASE)],
            )
        )

    if permissions.messaging:
        statements.append(
            statement(
                prefixed_actions(PermissionCategory.MESSAGING, permissions.messaging),
                [_require(targets.ses_identity_arn, lambda_name, PermissionCategory.MESSAGING)],
            )
        )

    return statements


def build_api_statements(api_arn: str, type_paths: list[str]) -> list[dict]:
    """``appsync:GraphQL`` on the given ``Type/fields/name`` paths of the API."""
    if not type_paths:
        return []
    return [
        statement(
            ["appsync:GraphQL"],
            [f"{api_arn}/types/{path.lstrip('/')}" for path in type_paths],
        )
    ]


def assume_role_policy(service: str) -> dict:
    return policy_document(
        [
            {
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ]
    )


def identity_pool_assume_role_policy(identity_pool_id: str, amr: str) -> dict:
    """Trust policy letting Cognito identities of one kind assume a role."""
    return policy_document(
        [
            {
                "Effect": "Allow",
                "Principal": {"Federated": "cognito-identity.amazonaws.com"},
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {"cognito-identity.amazonaws.com:aud": identity_pool_id},
                    "ForAnyValue:StringLike": {"cognito-identity.amazonaws.com:amr": amr},
                },
            }
        ]
    )
