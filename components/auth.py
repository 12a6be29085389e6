"""Auth Component - Cognito user pool, web client and identity pool.

Creates:
- User pool configured from the ``auth`` settings, with optional
  custom-message and pre-sign-up Lambda triggers
- Web client (no secret) for the frontend
- Identity pool with authenticated (and optionally unauthenticated) roles
  allowed to call the GraphQL API paths listed in ``permissions.auth``
"""

import json

import pulumi
import pulumi_aws as aws

from common.config import AuthPermissions, AuthSettings, CustomAttribute
from common.constants import (
    AUTH_TRIGGER_CUSTOM_MESSAGE,
    AUTH_TRIGGER_PRE_SIGNUP,
    ID_PART_IDENTITIES,
    ID_PART_POLICY,
    ID_PART_ROLE,
    ID_PART_ROLE_ATTACHMENT,
    ID_PART_TRIGGER_PERMISSION,
    ID_PART_USERS,
    ID_PART_WEB_CLIENT,
    STANDARD_ATTRIBUTE_NAMES,
    STANDARD_ATTRIBUTE_TYPES,
    AuthRole,
)
from common.naming import format_resource_id
from wiring.permissions import build_api_statements, identity_pool_assume_role_policy, policy_document


def _string_attribute(name: str, attribute: CustomAttribute) -> aws.cognito.UserPoolSchemaArgs:
    constraints = None
    if attribute.min_len is not None or attribute.max_len is not None:
        constraints = aws.cognito.UserPoolSchemaStringAttributeConstraintsArgs(
            min_length=str(attribute.min_len) if attribute.min_len is not None else None,
            max_length=str(attribute.max_len) if attribute.max_len is not None else None,
        )
    return aws.cognito.UserPoolSchemaArgs(
        name=name,
        attribute_data_type="String",
        mutable=attribute.mutable,
        string_attribute_constraints=constraints,
    )


def _number_attribute(name: str, attribute: CustomAttribute) -> aws.cognito.UserPoolSchemaArgs:
    constraints = None
    if attribute.min is not None or attribute.max is not None:
        constraints = aws.cognito.UserPoolSchemaNumberAttributeConstraintsArgs(
            min_value=str(attribute.min) if attribute.min is not None else None,
            max_value=str(attribute.max) if attribute.max is not None else None,
        )
    return aws.cognito.UserPoolSchemaArgs(
        name=name,
        attribute_data_type="Number",
        mutable=attribute.mutable,
        number_attribute_constraints=constraints,
    )


def _boolean_attribute(name: str, attribute: CustomAttribute) -> aws.cognito.UserPoolSchemaArgs:
    return aws.cognito.UserPoolSchemaArgs(
        name=name, attribute_data_type="Boolean", mutable=attribute.mutable
    )


def _datetime_attribute(name: str, attribute: CustomAttribute) -> aws.cognito.UserPoolSchemaArgs:
    return aws.cognito.UserPoolSchemaArgs(
        name=name, attribute_data_type="DateTime", mutable=attribute.mutable
    )


# Cognito prefixes custom attribute names with "custom:" itself
CUSTOM_ATTRIBUTE_FACTORIES = {
    "String": _string_attribute,
    "Number": _number_attribute,
    "Boolean": _boolean_attribute,
    "DateTime": _datetime_attribute,
}


def user_pool_schemas(settings: AuthSettings) -> list[aws.cognito.UserPoolSchemaArgs]:
    """Schema entries for the standard and custom attributes in ``settings``."""
    schemas = [
        aws.cognito.UserPoolSchemaArgs(
            name=STANDARD_ATTRIBUTE_NAMES[key],
            attribute_data_type=STANDARD_ATTRIBUTE_TYPES.get(
                STANDARD_ATTRIBUTE_NAMES[key], "String"
            ),
            required=attribute.required,
            mutable=attribute.mutable,
        )
        for key, attribute in settings.standard_attributes.items()
    ]
    schemas.extend(
        CUSTOM_ATTRIBUTE_FACTORIES[attribute.type](name, attribute)
        for name, attribute in settings.custom_attributes.items()
    )
    return schemas


def auto_verified_attributes(settings: AuthSettings) -> list[str]:
    return [
        name
        for name, on in (
            ("email", settings.auto_verify.email),
            ("phone_number", settings.auto_verify.phone),
        )
        if on
    ]


class AuthComponent(pulumi.ComponentResource):
    """Cognito user pool, web client and identity pool with its roles."""

    def __init__(
        self,
        name: str,
        stack_id: str,
        settings: AuthSettings,
        permissions: AuthPermissions,
        api_arn: pulumi.Input[str],
        region: str,
        account_id: str,
        triggers: dict[str, aws.lambda_.Function] | None = None,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:auth:Cognito", name, None, opts)

        self.tags = tags or {}
        self.region = region
        self.settings = settings
        triggers = triggers or {}

        user_pool_id = format_resource_id(stack_id, ID_PART_USERS)

        email_configuration = None
        if settings.email_configuration:
            email = settings.email_configuration
            email_configuration = aws.cognito.UserPoolEmailConfigurationArgs(
                email_sending_account="DEVELOPER",
                from_email_address=f"{email.from_name} <{email.from_address}>",
                source_arn=f"arn:aws:ses:{region}:{account_id}:identity/{email.from_address}",
            )

        password_policy = None
        if settings.password_policy:
            policy = settings.password_policy
            password_policy = aws.cognito.UserPoolPasswordPolicyArgs(
                minimum_length=policy.min_length,
                require_lowercase=policy.require_lowercase,
                require_uppercase=policy.require_uppercase,
                require_numbers=policy.require_digits,
                require_symbols=policy.require_symbols,
                temporary_password_validity_days=policy.temp_password_validity_days,
            )

        lambda_config = None
        custom_message = triggers.get(AUTH_TRIGGER_CUSTOM_MESSAGE)
        pre_sign_up = triggers.get(AUTH_TRIGGER_PRE_SIGNUP)
        if custom_message or pre_sign_up:
            lambda_config = aws.cognito.UserPoolLambdaConfigArgs(
                custom_message=custom_message.arn if custom_message else None,
                pre_sign_up=pre_sign_up.arn if pre_sign_up else None,
            )

        self.user_pool = aws.cognito.UserPool(
            user_pool_id,
            name=user_pool_id,
            username_attributes=settings.sign_in_aliases.username_attributes() or None,
            alias_attributes=settings.sign_in_aliases.alias_attributes() or None,
            auto_verified_attributes=auto_verified_attributes(settings) or None,
            password_policy=password_policy,
            admin_create_user_config=aws.cognito.UserPoolAdminCreateUserConfigArgs(
                allow_admin_create_user_only=not settings.self_sign_up_enabled,
            ),
            email_configuration=email_configuration,
            lambda_config=lambda_config,
            schemas=user_pool_schemas(settings) or None,
            tags={**self.tags, "Name": user_pool_id},
            opts=pulumi.ResourceOptions(parent=self),
        )

        # Cognito must be allowed to invoke each trigger
        for trigger_name, function in triggers.items():
            aws.lambda_.Permission(
                format_resource_id(stack_id, trigger_name, ID_PART_TRIGGER_PERMISSION),
                action="lambda:InvokeFunction",
                function=function.name,
                principal="cognito-idp.amazonaws.com",
                source_arn=self.user_pool.arn,
                opts=pulumi.ResourceOptions(parent=self),
            )

        web_client_id = format_resource_id(stack_id, ID_PART_WEB_CLIENT)
        self.user_pool_client = aws.cognito.UserPoolClient(
            web_client_id,
            name=web_client_id,
            user_pool_id=self.user_pool.id,
            # No client secret for public web app
            generate_secret=False,
            explicit_auth_flows=[
                "ALLOW_USER_SRP_AUTH",
                "ALLOW_REFRESH_TOKEN_AUTH",
            ],
            prevent_user_existence_errors="ENABLED",
            opts=pulumi.ResourceOptions(parent=self),
        )

        identity_pool_id = format_resource_id(stack_id, ID_PART_IDENTITIES)
        self.identity_pool = aws.cognito.IdentityPool(
            identity_pool_id,
            identity_pool_name=identity_pool_id,
            allow_unauthenticated_identities=settings.allow_unauthenticated_identities,
            cognito_identity_providers=[
                aws.cognito.IdentityPoolCognitoIdentityProviderArgs(
                    client_id=self.user_pool_client.id,
                    provider_name=self.user_pool.endpoint,
                    server_side_token_check=False,
                ),
            ],
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        role_types = [AuthRole.AUTHENTICATED]
        if settings.allow_unauthenticated_identities:
            role_types.append(AuthRole.UNAUTHENTICATED)

        self.roles: dict[AuthRole, aws.iam.Role] = {}
        for role_type in role_types:
            self.roles[role_type] = self._create_identity_role(
                identity_pool_id, role_type, permissions.for_role(role_type).api, api_arn
            )

        aws.cognito.IdentityPoolRoleAttachment(
            format_resource_id(identity_pool_id, ID_PART_ROLE_ATTACHMENT),
            identity_pool_id=self.identity_pool.id,
            roles={role_type.value: role.arn for role_type, role in self.roles.items()},
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.register_outputs(
            {
                "user_pool_id": self.user_pool.id,
                "user_pool_arn": self.user_pool.arn,
                "user_pool_client_id": self.user_pool_client.id,
                "identity_pool_id": self.identity_pool.id,
            }
        )

    def _create_identity_role(
        self,
        identity_pool_id: str,
        role_type: AuthRole,
        api_paths: list[str],
        api_arn: pulumi.Input[str],
    ) -> aws.iam.Role:
        role_id = format_resource_id(identity_pool_id, role_type.value, ID_PART_ROLE)

        role = aws.iam.Role(
            role_id,
            assume_role_policy=self.identity_pool.id.apply(
                lambda pool_id: json.dumps(
                    identity_pool_assume_role_policy(pool_id, role_type.value)
                )
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        if api_paths:
            aws.iam.RolePolicy(
                format_resource_id(role_id, ID_PART_POLICY),
                role=role.id,
                policy=pulumi.Output.from_input(api_arn).apply(
                    lambda arn: json.dumps(policy_document(build_api_statements(arn, api_paths)))
                ),
                opts=pulumi.ResourceOptions(parent=self),
            )

        return role

    def outputs(self) -> dict:
        return {
            "authIdentityPoolId": self.identity_pool.id,
            "authMandatorySignIn": not self.settings.allow_unauthenticated_identities,
            "authRegion": self.region,
            "authUserPoolArn": self.user_pool.arn,
            "authUserPoolId": self.user_pool.id,
            "authUserPoolWebClientId": self.user_pool_client.id,
        }
