"""GraphQL API Component - AppSync API wired from mapping-template files.

Creates:
- The GraphQL API (IAM authorization, schema read from the project)
- One data source per table, Lambda and Postgres cluster, plus ``none``
- Pipeline functions and unit/pipeline resolvers
"""

import json
import logging

import pulumi
import pulumi_aws as aws

from common.constants import (
    API_AUTHENTICATION_TYPE,
    ID_PART_API,
    ID_PART_POLICY,
    ID_PART_SERVICE_ROLE,
    MAPPING_TEMPLATE_DEFAULT_REQUEST,
    MAPPING_TEMPLATE_DEFAULT_RESPONSE,
    SECRET_READ_ACTIONS,
    SECRETS_MANAGER_PREFIX,
    DataSourceType,
)
from common.errors import UnresolvedReferenceError
from common.naming import format_resource_id
from components.postgres import DATA_API_ACTIONS, PostgresComponent
from wiring.descriptors import DataSourceRef
from wiring.permissions import assume_role_policy, policy_document, statement
from wiring.plan import BackendPlan

logger = logging.getLogger(__name__)

DYNAMODB_DATA_SOURCE_ACTIONS = [
    "dynamodb:BatchGetItem",
    "dynamodb:BatchWriteItem",
    "dynamodb:ConditionCheckItem",
    "dynamodb:DeleteItem",
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:Query",
    "dynamodb:Scan",
    "dynamodb:UpdateItem",
]


class GraphqlApiComponent(pulumi.ComponentResource):
    """AppSync GraphQL API with its data sources, functions and resolvers."""

    def __init__(
        self,
        name: str,
        plan: BackendPlan,
        tables: dict[str, aws.dynamodb.Table],
        functions: dict[str, aws.lambda_.Function],
        postgres: PostgresComponent | None = None,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:api:GraphQL", name, None, opts)

        self.tags = tags or {}
        self.api_id = format_resource_id(plan.stack_id, ID_PART_API)
        self._tables = tables
        self._functions = functions
        self._postgres = postgres

        self.api = aws.appsync.GraphQLApi(
            self.api_id,
            name=self.api_id,
            authentication_type=API_AUTHENTICATION_TYPE,
            schema=plan.schema_file.read_text(encoding="utf-8"),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.data_sources: dict[str, aws.appsync.DataSource] = {}
        for ref in plan.data_sources:
            self.data_sources[ref.resource_id] = self._create_data_source(ref)

        self.pipeline_functions: dict[str, aws.appsync.Function] = {}
        for function_id, descriptor in plan.functions.items():
            data_source = self.data_sources[descriptor.resolved_data_source.resource_id]
            self.pipeline_functions[function_id] = aws.appsync.Function(
                format_resource_id(self.api_id, function_id),
                api_id=self.api.id,
                name=function_id,
                data_source=data_source.name,
                request_mapping_template=(
                    descriptor.request_template or MAPPING_TEMPLATE_DEFAULT_REQUEST
                ),
                response_mapping_template=(
                    descriptor.response_template or MAPPING_TEMPLATE_DEFAULT_RESPONSE
                ),
                opts=pulumi.ResourceOptions(parent=self, depends_on=[data_source]),
            )

        self.resolvers: dict[str, aws.appsync.Resolver] = {}
        for resolver_id, descriptor in plan.resolvers.items():
            request_template = descriptor.request_template or MAPPING_TEMPLATE_DEFAULT_REQUEST
            response_template = descriptor.response_template or MAPPING_TEMPLATE_DEFAULT_RESPONSE

            if descriptor.is_pipeline:
                steps = [
                    self.pipeline_functions[format_resource_id(function_name)]
                    for function_name in descriptor.pipeline
                ]
                resolver = aws.appsync.Resolver(
                    format_resource_id(self.api_id, resolver_id),
                    api_id=self.api.id,
                    type=descriptor.type_name,
                    field=descriptor.field_name,
                    kind="PIPELINE",
                    pipeline_config=aws.appsync.ResolverPipelineConfigArgs(
                        functions=[step.function_id for step in steps],
                    ),
                    request_template=request_template,
                    response_template=response_template,
                    opts=pulumi.ResourceOptions(parent=self, depends_on=steps),
                )
            else:
                data_source = self.data_sources[descriptor.resolved_data_source.resource_id]
                resolver = aws.appsync.Resolver(
                    format_resource_id(self.api_id, resolver_id),
                    api_id=self.api.id,
                    type=descriptor.type_name,
                    field=descriptor.field_name,
                    kind="UNIT",
                    data_source=data_source.name,
                    request_template=request_template,
                    response_template=response_template,
                    opts=pulumi.ResourceOptions(parent=self, depends_on=[data_source]),
                )

            self.resolvers[resolver_id] = resolver

        logger.info(
            f"Declared API {self.api_id} with {len(self.data_sources)} data sources, "
            f"{len(self.pipeline_functions)} functions and {len(self.resolvers)} resolvers"
        )

        self.register_outputs(
            {
                "api_id": self.api.id,
                "api_arn": self.api.arn,
                "graphql_endpoint": self.api.uris["GRAPHQL"],
            }
        )

    def _service_role(self, ds_id: str, policy: pulumi.Input[str]) -> aws.iam.Role:
        role_id = format_resource_id(ds_id, ID_PART_SERVICE_ROLE)
        role = aws.iam.Role(
            role_id,
            assume_role_policy=json.dumps(assume_role_policy("appsync.amazonaws.com")),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )
        aws.iam.RolePolicy(
            format_resource_id(role_id, ID_PART_POLICY),
            role=role.id,
            policy=policy,
            opts=pulumi.ResourceOptions(parent=self),
        )
        return role

    def _create_data_source(self, ref: DataSourceRef) -> aws.appsync.DataSource:
        ds_id = ref.resource_id
        props: dict = {"api_id": self.api.id, "name": ds_id}

        if ref.type is DataSourceType.DYNAMODB:
            table = self._lookup(self._tables, ref)
            policy = table.arn.apply(
                lambda arn: json.dumps(
                    policy_document(
                        [statement(DYNAMODB_DATA_SOURCE_ACTIONS, [arn, f"{arn}/index/*"])]
                    )
                )
            )
            props["type"] = "AMAZON_DYNAMODB"
            props["service_role_arn"] = self._service_role(ds_id, policy).arn
            props["dynamodb_config"] = aws.appsync.DataSourceDynamodbConfigArgs(
                table_name=table.name,
            )

        elif ref.type is DataSourceType.LAMBDA:
            function = self._lookup(self._functions, ref)
            policy = function.arn.apply(
                lambda arn: json.dumps(
                    policy_document([statement(["lambda:InvokeFunction"], [arn, f"{arn}:*"])])
                )
            )
            props["type"] = "AWS_LAMBDA"
            props["service_role_arn"] = self._service_role(ds_id, policy).arn
            props["lambda_config"] = aws.appsync.DataSourceLambdaConfigArgs(
                function_arn=function.arn,
            )

        elif ref.type is DataSourceType.POSTGRES:
            if self._postgres is None:
                raise UnresolvedReferenceError(f"Data source '{ref}' requires Postgres")
            policy = pulumi.Output.all(
                self._postgres.cluster_arn, self._postgres.secret_arn
            ).apply(
                lambda args: json.dumps(
                    policy_document(
                        [
                            statement(DATA_API_ACTIONS, [args[0], f"{args[0]}:*"]),
                            statement(
                                [f"{SECRETS_MANAGER_PREFIX}{a}" for a in SECRET_READ_ACTIONS],
                                [args[1]],
                            ),
                        ]
                    )
                )
            )
            props["type"] = "RELATIONAL_DATABASE"
            props["service_role_arn"] = self._service_role(ds_id, policy).arn
            props["relational_database_config"] = aws.appsync.DataSourceRelationalDatabaseConfigArgs(
                http_endpoint_config=aws.appsync.DataSourceRelationalDatabaseConfigHttpEndpointConfigArgs(
                    aws_secret_store_arn=self._postgres.secret_arn,
                    db_cluster_identifier=self._postgres.cluster_arn,
                    database_name=self._postgres.database_name,
                ),
            )

        else:
            props["type"] = "NONE"

        return aws.appsync.DataSource(
            format_resource_id(self.api_id, ds_id),
            **props,
            opts=pulumi.ResourceOptions(parent=self),
        )

    @staticmethod
    def _lookup(resources: dict, ref: DataSourceRef):
        try:
            return resources[ref.name]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Data source '{ref}' has no backing resource"
            ) from None
