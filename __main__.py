"""Serverless Backend Assembler - Main Entry Point.

Declares a serverless GraphQL backend from a project that follows the
``src/`` layout convention:

- API: AWS AppSync (IAM auth) with resolvers from mapping-template files
- Auth: AWS Cognito user pool and identity pool
- Storage: DynamoDB tables and an optional Aurora PostgreSQL cluster
- Compute: one Lambda per directory under ``src/lambdas``
"""

import logging

import pulumi

from common.config import get_settings, load_context, load_project_settings
from common.errors import AssemblerError
from components.backend import assemble

# Get configuration
config = pulumi.Config()
aws_config = pulumi.Config("aws")
aws_region = aws_config.require("region")  # Get from aws:region config
assembler_settings = get_settings()

logging.basicConfig(
    level=assembler_settings.log_level.upper(),
    format="%(levelname)s %(name)s: %(message)s",
)

# Stack config, overridden by context.<env>.json when present
raw_context = {
    "env": config.get("env") or pulumi.get_stack(),
    "namespace": config.get("namespace"),
    "auth": config.get_object("auth") or {},
    "lambdas": config.get_object("lambdas") or {},
    "permissions": config.get_object("permissions") or {},
}
unresolved_data_source = config.get("unresolvedDataSource")
if unresolved_data_source:
    raw_context["unresolvedDataSource"] = unresolved_data_source

try:
    context = load_context(
        raw_context,
        assembler_settings.root_dir,
        assembler_settings.context_file_pattern,
    )
    settings = load_project_settings(context)

    # Common tags for all resources
    common_tags = {
        "Project": settings.namespace,
        "Environment": settings.env,
        "ManagedBy": "pulumi",
    }

    # =============================================================================
    # Backend - plan, bundle, declare
    # =============================================================================
    backend = assemble(
        assembler_settings.root_dir,
        settings,
        region=aws_region,
        tags=common_tags,
    )
except AssemblerError as e:
    pulumi.log.error(str(e))
    raise

# =============================================================================
# Outputs
# =============================================================================
for key, value in backend.outputs.items():
    pulumi.export(key, value)
