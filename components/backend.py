"""Backend Component - the whole serverless backend of one stack.

Wires the per-family components together in dependency order:
tables -> postgres -> functions -> GraphQL API -> auth -> Lambda permissions,
then merges their outputs into one flat map.
"""

import logging
from pathlib import Path

import pulumi
import pulumi_aws as aws

from common.config import ProjectSettings
from common.constants import (
    API_AUTHENTICATION_TYPE,
    AUTH_TRIGGER_CUSTOM_MESSAGE,
    AUTH_TRIGGER_PRE_SIGNUP,
    ENV_VAR_PG_CLUSTER_ARN,
    ENV_VAR_PG_CLUSTER_DB_NAME,
    ENV_VAR_PG_CLUSTER_SECRET_ARN,
    MIGRATIONS_ASSET_DIR,
)
from components.auth import AuthComponent
from components.functions import FunctionsComponent
from components.graphql_api import GraphqlApiComponent
from components.iam import LambdaPermissionsComponent
from components.postgres import PostgresComponent
from components.tables import TablesComponent
from wiring.bundler import BundleJob, BundleResult, reset_work_dir, run_bundles
from wiring.layout import ProjectLayout
from wiring.outputs import lambda_output_key, merge_outputs
from wiring.plan import MIGRATIONS_HANDLER_FILE, BackendPlan, build_plan

logger = logging.getLogger(__name__)


def bundle_jobs(plan: BackendPlan) -> list[BundleJob]:
    """Artifacts the plan needs: one per Lambda plus the migrations runner."""
    jobs = [
        BundleJob(
            name=name,
            sources=((spec.source_dir, "."),),
            command=tuple(spec.settings.bundle_command) if spec.settings.bundle_command else None,
            cwd=spec.source_dir,
        )
        for name, spec in plan.lambdas.items()
    ]
    if plan.postgres:
        jobs.append(
            BundleJob(
                name=plan.postgres.migrations_lambda_id,
                sources=(
                    (MIGRATIONS_HANDLER_FILE, "index.py"),
                    (plan.postgres.migrations_dir, MIGRATIONS_ASSET_DIR),
                ),
            )
        )
    return jobs


class BackendComponent(pulumi.ComponentResource):
    """GraphQL API, auth, storage and functions declared from a plan."""

    def __init__(
        self,
        name: str,
        plan: BackendPlan,
        artifacts: dict[str, BundleResult],
        region: str,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:stack:Backend", name, None, opts)

        self.tags = tags or {}
        child_opts = pulumi.ResourceOptions(parent=self)
        account_id = aws.get_caller_identity().account_id

        # =================================================================
        # Storage
        # =================================================================
        self.tables = TablesComponent(
            f"{plan.stack_id}-tables",
            tables=plan.tables,
            tags=self.tags,
            opts=child_opts,
        )

        self.postgres = None
        pg_env_vars = None
        if plan.postgres:
            self.postgres = PostgresComponent(
                f"{plan.stack_id}-postgres",
                spec=plan.postgres,
                migrations_artifact=artifacts[plan.postgres.migrations_lambda_id],
                environment=plan.settings.env,
                tags=self.tags,
                opts=child_opts,
            )
            pg_env_vars = {
                ENV_VAR_PG_CLUSTER_ARN: self.postgres.cluster_arn,
                ENV_VAR_PG_CLUSTER_DB_NAME: self.postgres.database_name,
                ENV_VAR_PG_CLUSTER_SECRET_ARN: self.postgres.secret_arn,
            }

        # =================================================================
        # Compute
        # =================================================================
        self.functions = FunctionsComponent(
            f"{plan.stack_id}-functions",
            lambdas=plan.lambdas,
            artifacts=artifacts,
            env_vars=pg_env_vars,
            tags=self.tags,
            opts=child_opts,
        )

        # =================================================================
        # API
        # =================================================================
        self.api = GraphqlApiComponent(
            f"{plan.stack_id}-api",
            plan=plan,
            tables=self.tables.tables,
            functions=self.functions.functions,
            postgres=self.postgres,
            tags=self.tags,
            opts=child_opts,
        )

        # =================================================================
        # Auth
        # =================================================================
        triggers = {
            trigger: self.functions.functions[trigger]
            for trigger in (AUTH_TRIGGER_CUSTOM_MESSAGE, AUTH_TRIGGER_PRE_SIGNUP)
            if plan.auth_trigger(trigger)
        }
        self.auth = AuthComponent(
            f"{plan.stack_id}-auth",
            stack_id=plan.stack_id,
            settings=plan.settings.auth,
            permissions=plan.settings.permissions.auth,
            api_arn=self.api.api.arn,
            region=region,
            account_id=account_id,
            triggers=triggers,
            tags=self.tags,
            opts=child_opts,
        )

        # =================================================================
        # Lambda permissions
        # =================================================================
        self.permissions = LambdaPermissionsComponent(
            f"{plan.stack_id}-lambda-permissions",
            lambdas=plan.lambdas,
            roles=self.functions.roles,
            region=region,
            account_id=account_id,
            user_pool_arn=self.auth.user_pool.arn,
            table_arns=self.tables.table_arns,
            cluster_arn=self.postgres.cluster_arn if self.postgres else None,
            cluster_secret_arn=self.postgres.secret_arn if self.postgres else None,
            opts=child_opts,
        )

        api_outputs = {
            "apiArn": self.api.api.arn,
            "apiAuthenticationType": API_AUTHENTICATION_TYPE,
            "apiGraphqlEndpoint": self.api.api.uris["GRAPHQL"],
            "apiRegion": region,
        }
        lambda_outputs = {
            lambda_output_key(name): function.arn
            for name, function in self.functions.functions.items()
        }
        postgres_outputs = {}
        if self.postgres:
            postgres_outputs = {
                "postgresClusterArn": self.postgres.cluster_arn,
                "postgresSecretArn": self.postgres.secret_arn,
                "postgresDatabaseName": self.postgres.database_name,
            }

        self.outputs = merge_outputs(
            api_outputs, self.auth.outputs(), lambda_outputs, postgres_outputs
        )

        self.register_outputs(self.outputs)


def assemble(
    root_dir: Path,
    settings: ProjectSettings,
    region: str,
    tags: dict | None = None,
    work_dir: Path | None = None,
) -> BackendComponent:
    """Plan, bundle and declare the backend found under ``root_dir``.

    Every input is validated and every artifact built before the first
    resource is declared. Artifacts go to ``work_dir``, by default the
    project's build directory, which is emptied first.
    """
    layout = ProjectLayout(root_dir)
    plan = build_plan(layout, settings)
    artifacts = run_bundles(bundle_jobs(plan), work_dir or reset_work_dir(layout.build_dir))
    logger.info(f"Built {len(artifacts)} artifacts for {plan.stack_id}")

    return BackendComponent(plan.stack_id, plan=plan, artifacts=artifacts, region=region, tags=tags)
