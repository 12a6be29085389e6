"""Shared constants for the backend assembler."""

from enum import Enum


class DataSourceType(str, Enum):
    """Closed set of data source kinds encoded in template file names."""

    DYNAMODB = "ddb"
    POSTGRES = "pg"
    LAMBDA = "lambda"
    NONE = "none"


class TemplateKind(str, Enum):
    REQUEST = "req"
    RESPONSE = "res"
    SEQUENCE = "seq"


class AuthRole(str, Enum):
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class PermissionCategory(str, Enum):
    """Target-service categories a Lambda can be granted actions on."""

    AUTH = "auth"
    STORAGE = "storage"
    DATABASE = "database"
    MESSAGING = "messaging"


ACTION_PREFIX = {
    PermissionCategory.AUTH: "cognito-idp:",
    PermissionCategory.STORAGE: "dynamodb:",
    PermissionCategory.DATABASE: "rds-data:",
    PermissionCategory.MESSAGING: "ses:",
}

SECRETS_MANAGER_PREFIX = "secretsmanager:"
SECRET_READ_ACTIONS = ["GetSecretValue", "DescribeSecret"]

# Lambda directory names wired to user pool triggers
AUTH_TRIGGER_CUSTOM_MESSAGE = "auth-custom-message-trigger"
AUTH_TRIGGER_PRE_SIGNUP = "auth-pre-signup-trigger"

# Identifier parts
ID_PART_API = "Api"
ID_PART_CLUSTER = "Cluster"
ID_PART_DATA_SOURCE = "DataSource"
ID_PART_IDENTITIES = "Identities"
ID_PART_INVOCATION = "Invocation"
ID_PART_LOG_GROUP = "LogGroup"
ID_PART_MIGRATIONS = "Migrations"
ID_PART_POLICY = "Policy"
ID_PART_POSTGRES = "Postgres"
ID_PART_RETRY_CONFIG = "RetryConfig"
ID_PART_ROLE = "Role"
ID_PART_ROLE_ATTACHMENT = "RoleAttachment"
ID_PART_SECURITY_GROUP = "SecurityGroup"
ID_PART_SERVICE_ROLE = "ServiceRole"
ID_PART_SUBNET_GROUP = "SubnetGroup"
ID_PART_TRIGGER_PERMISSION = "TriggerPermission"
ID_PART_USERS = "Users"
ID_PART_VPC = "Vpc"
ID_PART_WEB_CLIENT = "WebClient"

MAPPING_TEMPLATE_DEFAULT_REQUEST = "null"
MAPPING_TEMPLATE_DEFAULT_RESPONSE = "$util.toJson($ctx.result)"

API_AUTHENTICATION_TYPE = "AWS_IAM"

# Environment variable names handed to Lambdas when Postgres is enabled
ENV_VAR_PG_CLUSTER_ARN = "pgClusterArn"
ENV_VAR_PG_CLUSTER_DB_NAME = "pgClusterDbName"
ENV_VAR_PG_CLUSTER_SECRET_ARN = "pgClusterSecretArn"

MIGRATIONS_TABLE_NAME = "a_cdk_migrations"
MIGRATIONS_ASSET_DIR = "migrations"

DEFAULT_LAMBDA_RUNTIME = "python3.12"
DEFAULT_LAMBDA_HANDLER = "index.handler"
DEFAULT_LAMBDA_MEMORY = 128
DEFAULT_LAMBDA_TIMEOUT = 10

# Standard user pool attributes by their camelCase config key
STANDARD_ATTRIBUTE_NAMES = {
    "address": "address",
    "birthdate": "birthdate",
    "email": "email",
    "emailVerified": "email_verified",
    "familyName": "family_name",
    "fullname": "name",
    "gender": "gender",
    "givenName": "given_name",
    "lastUpdateTime": "updated_at",
    "locale": "locale",
    "middleName": "middle_name",
    "nickname": "nickname",
    "phoneNumber": "phone_number",
    "phoneNumberVerified": "phone_number_verified",
    "preferredUsername": "preferred_username",
    "profilePage": "profile",
    "profilePicture": "picture",
    "timezone": "zoneinfo",
    "website": "website",
}

# Cognito fixes the data type of these standard attributes; the rest are String
STANDARD_ATTRIBUTE_TYPES = {
    "email_verified": "Boolean",
    "phone_number_verified": "Boolean",
    "updated_at": "Number",
}
