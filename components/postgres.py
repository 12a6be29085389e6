"""Postgres Component - Aurora PostgreSQL Serverless v2 with the Data API.

Creates:
- An isolated VPC, subnet group and security group
- The cluster (Data API enabled, master password managed in Secrets Manager)
- A migrations Lambda invoked whenever the migration files change
"""

import json

import pulumi
import pulumi_aws as aws

from common.constants import (
    ID_PART_CLUSTER,
    ID_PART_INVOCATION,
    ID_PART_POLICY,
    ID_PART_SECURITY_GROUP,
    ID_PART_SERVICE_ROLE,
    ID_PART_SUBNET_GROUP,
    MIGRATIONS_ASSET_DIR,
    MIGRATIONS_TABLE_NAME,
    SECRET_READ_ACTIONS,
    SECRETS_MANAGER_PREFIX,
)
from common.naming import format_resource_id, param_case
from components.functions import LAMBDA_BASIC_EXECUTION_POLICY_ARN
from components.vpc import VPCComponent
from wiring.bundler import BundleResult
from wiring.permissions import assume_role_policy, policy_document, statement
from wiring.plan import PostgresSpec

ENGINE_VERSION = "16.4"
DATA_API_ACTIONS = [
    "rds-data:ExecuteStatement",
    "rds-data:BatchExecuteStatement",
    "rds-data:BeginTransaction",
    "rds-data:CommitTransaction",
    "rds-data:RollbackTransaction",
]


class PostgresComponent(pulumi.ComponentResource):
    """Aurora PostgreSQL cluster reachable through the RDS Data API."""

    def __init__(
        self,
        name: str,
        spec: PostgresSpec,
        migrations_artifact: BundleResult,
        environment: str,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:database:Postgres", name, None, opts)

        self.tags = tags or {}
        self.database_name = spec.database_name

        self.vpc = VPCComponent(
            spec.cluster_id,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.subnet_group = aws.rds.SubnetGroup(
            format_resource_id(spec.cluster_id, ID_PART_SUBNET_GROUP),
            subnet_ids=self.vpc.private_subnet_ids,
            description=f"Subnet group for {spec.cluster_id}",
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.security_group = aws.ec2.SecurityGroup(
            format_resource_id(spec.cluster_id, ID_PART_SECURITY_GROUP),
            vpc_id=self.vpc.vpc.id,
            description="Security group for PostgreSQL",
            ingress=[
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="tcp",
                    from_port=5432,
                    to_port=5432,
                    cidr_blocks=[self.vpc.vpc.cidr_block],
                    description="PostgreSQL from VPC",
                ),
            ],
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.cluster = aws.rds.Cluster(
            format_resource_id(spec.cluster_id, ID_PART_CLUSTER),
            cluster_identifier=param_case(spec.cluster_id),
            engine=aws.rds.EngineType.AURORA_POSTGRESQL,
            engine_mode="provisioned",  # Serverless v2 uses provisioned mode
            engine_version=ENGINE_VERSION,
            database_name=spec.database_name,
            master_username="postgres",
            manage_master_user_password=True,
            enable_http_endpoint=True,
            db_subnet_group_name=self.subnet_group.name,
            vpc_security_group_ids=[self.security_group.id],
            storage_encrypted=True,
            skip_final_snapshot=environment != "prod",
            final_snapshot_identifier=(
                f"{param_case(spec.cluster_id)}-final" if environment == "prod" else None
            ),
            deletion_protection=environment == "prod",
            serverlessv2_scaling_configuration=aws.rds.ClusterServerlessv2ScalingConfigurationArgs(
                min_capacity=0.5,
                max_capacity=16.0 if environment == "prod" else 4.0,
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.instance = aws.rds.ClusterInstance(
            format_resource_id(spec.cluster_id, "instance"),
            cluster_identifier=self.cluster.id,
            instance_class="db.serverless",
            engine=aws.rds.EngineType.AURORA_POSTGRESQL,
            engine_version=self.cluster.engine_version,
            publicly_accessible=False,
            db_subnet_group_name=self.subnet_group.name,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.cluster_arn = self.cluster.arn
        self.secret_arn = self.cluster.master_user_secrets.apply(
            lambda secrets: secrets[0].secret_arn
        )

        self._create_migrations(spec, migrations_artifact)

        self.register_outputs(
            {
                "cluster_arn": self.cluster_arn,
                "secret_arn": self.secret_arn,
                "database_name": self.database_name,
            }
        )

    def data_api_policy(self) -> pulumi.Output[str]:
        """Policy document granting Data API access to the cluster."""
        return pulumi.Output.all(self.cluster_arn, self.secret_arn).apply(
            lambda args: json.dumps(
                policy_document(
                    [
                        statement(DATA_API_ACTIONS, [args[0]]),
                        statement(
                            [f"{SECRETS_MANAGER_PREFIX}{a}" for a in SECRET_READ_ACTIONS],
                            [args[1]],
                        ),
                    ]
                )
            )
        )

    def _create_migrations(self, spec: PostgresSpec, artifact: BundleResult) -> None:
        role_id = format_resource_id(spec.migrations_lambda_id, ID_PART_SERVICE_ROLE)

        self.migrations_role = aws.iam.Role(
            role_id,
            assume_role_policy=json.dumps(assume_role_policy("lambda.amazonaws.com")),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.migrations_execution_attachment = aws.iam.RolePolicyAttachment(
            format_resource_id(role_id, "basic", "execution"),
            role=self.migrations_role.name,
            policy_arn=LAMBDA_BASIC_EXECUTION_POLICY_ARN,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.migrations_policy = aws.iam.RolePolicy(
            format_resource_id(role_id, ID_PART_POLICY),
            role=self.migrations_role.id,
            policy=self.data_api_policy(),
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.migrations_function = aws.lambda_.Function(
            spec.migrations_lambda_id,
            name=spec.migrations_lambda_id,
            code=pulumi.FileArchive(str(artifact.artifact_dir)),
            handler="index.handler",
            runtime="python3.12",
            memory_size=128,
            timeout=300,  # 5 minutes for migrations
            role=self.migrations_role.arn,
            environment=aws.lambda_.FunctionEnvironmentArgs(
                variables={
                    "clusterArn": self.cluster_arn,
                    "secretArn": self.secret_arn,
                    "databaseName": spec.database_name,
                    "migrationsTableName": MIGRATIONS_TABLE_NAME,
                    "migrationsDir": MIGRATIONS_ASSET_DIR,
                }
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        # Re-invoked whenever the set or content of migration files changes.
        # Runs only once its role grants exist.
        self.migrations_invocation = aws.lambda_.Invocation(
            format_resource_id(spec.migrations_lambda_id, ID_PART_INVOCATION),
            function_name=self.migrations_function.name,
            input=json.dumps({"RequestType": "Update"}),
            triggers={"migrations": spec.migrations_digest},
            opts=pulumi.ResourceOptions(
                parent=self,
                depends_on=[
                    self.instance,
                    self.migrations_execution_attachment,
                    self.migrations_policy,
                ],
            ),
        )
