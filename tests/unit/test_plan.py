"""Unit tests for fail-fast planning."""

import logging

import pytest

from common.config import DataSourceFallback
from common.constants import DataSourceType
from common.errors import (
    IdentifierCollisionError,
    InvalidTemplateError,
    MalformedFileNameError,
    MissingFileError,
    UnresolvedReferenceError,
)
from wiring.descriptors import NONE_DATA_SOURCE, DataSourceRef
from wiring.layout import ProjectLayout
from wiring.plan import DataSourceRegistry, build_plan


class TestDataSourceRegistry:
    """Tests for data source registration and lookup."""

    def test_resolve_registered(self):
        """Test a registered reference resolves to itself."""
        registry = DataSourceRegistry()
        ref = DataSourceRef(DataSourceType.DYNAMODB, "orders")
        registry.register(ref)

        assert registry.resolve(DataSourceRef(DataSourceType.DYNAMODB, "orders"), "x") == ref
        assert list(registry) == [ref]
        assert len(registry) == 1

    def test_resolve_unknown_fails_by_default(self):
        """Test an unknown reference is an error unless configured otherwise."""
        registry = DataSourceRegistry()

        with pytest.raises(UnresolvedReferenceError) as exc_info:
            registry.resolve(DataSourceRef(DataSourceType.DYNAMODB, "missing"), "Resolver 'f'")

        assert "ddb.missing" in str(exc_info.value)

    def test_resolve_unknown_with_none_fallback(self, caplog):
        """Test the explicit none fallback substitutes and warns."""
        registry = DataSourceRegistry(DataSourceFallback.NONE)

        with caplog.at_level(logging.WARNING):
            resolved = registry.resolve(DataSourceRef(DataSourceType.LAMBDA, "gone"), "f")

        assert resolved == NONE_DATA_SOURCE
        assert "lambda.gone" in caplog.text

    def test_register_collision(self):
        """Test distinct references with one identifier are refused."""
        registry = DataSourceRegistry()
        registry.register(DataSourceRef(DataSourceType.DYNAMODB, "user-orders"))

        with pytest.raises(IdentifierCollisionError):
            registry.register(DataSourceRef(DataSourceType.DYNAMODB, "UserOrders"))


class TestBuildPlan:
    """Tests for build_plan."""

    def test_requires_schema(self, tmp_path, make_settings):
        """Test a missing schema file is fatal."""
        with pytest.raises(MissingFileError) as exc_info:
            build_plan(ProjectLayout(tmp_path), make_settings())

        assert "schema.graphql" in str(exc_info.value)

    def test_empty_project(self, project, make_settings):
        """Test a project with only a schema plans nothing but the none data source."""
        plan = build_plan(project.layout, make_settings())

        assert plan.stack_id == "MyAppDev"
        assert plan.tables == {}
        assert plan.lambdas == {}
        assert plan.postgres is None
        assert list(plan.data_sources) == [NONE_DATA_SOURCE]

    def test_plans_every_family(self, project, make_settings):
        """Test tables, lambdas, postgres and templates are all planned."""
        project.table("orders")
        project.lambda_dir("hello")
        project.migration("001.init.sql", "create table t (id int);")
        project.resolver("Query.order.req.ddb.orders", "REQ")
        project.resolver("Query.hello.req.lambda.hello", "REQ")
        project.resolver("Query.users.req.pg", "REQ")

        plan = build_plan(project.layout, make_settings())

        assert plan.tables["orders"].resource_id == "MyAppDevOrders"
        assert plan.lambdas["hello"].resource_id == "MyAppDevHello"
        assert plan.postgres.cluster_id == "MyAppDevPostgres"
        assert plan.postgres.database_name == "MyApp"
        assert plan.postgres.migrations_lambda_id == "MyAppDevPostgresMigrations"
        assert {str(ref) for ref in plan.data_sources} == {
            "none",
            "ddb.orders",
            "pg",
            "lambda.hello",
        }
        assert plan.resolvers["QueryUsers"].data_source == DataSourceRef(DataSourceType.POSTGRES)

    def test_unresolved_data_source_fails_before_any_resolver(self, project, make_settings):
        """Test a resolver naming a missing table aborts the whole plan."""
        project.resolver("Query.hello.req..", "REQ")
        project.resolver("Query.order.req.ddb.orders", "REQ")

        with pytest.raises(UnresolvedReferenceError) as exc_info:
            build_plan(project.layout, make_settings())

        assert "Query.order.req.ddb.orders" in str(exc_info.value)

    def test_unresolved_data_source_with_none_fallback(self, project, make_settings):
        """Test the explicit fallback plans the resolver against none."""
        project.resolver("Query.order.req.ddb.orders", "REQ")

        plan = build_plan(project.layout, make_settings(unresolvedDataSource="none"))

        assert plan.resolvers["QueryOrder"].data_source == NONE_DATA_SOURCE

    def test_unknown_pipeline_function(self, project, make_settings):
        """Test a sequence naming a missing function fails."""
        project.function("validate.req", "REQ")
        project.resolver("Mutation.signUp.seq", '["validate", "missing"]')

        with pytest.raises(UnresolvedReferenceError) as exc_info:
            build_plan(project.layout, make_settings())

        assert "missing" in str(exc_info.value)

    def test_pipeline_functions_resolved(self, project, make_settings):
        """Test pipeline functions and their data sources are resolved."""
        project.table("users")
        project.function("load-user.req.ddb.users", "REQ")
        project.resolver("Query.me.seq", '["load-user"]')

        plan = build_plan(project.layout, make_settings())

        assert plan.functions["LoadUser"].data_source == DataSourceRef(
            DataSourceType.DYNAMODB, "users"
        )
        assert plan.resolvers["QueryMe"].pipeline == ["load-user"]

    def test_malformed_file_name(self, project, make_settings):
        """Test a malformed template name aborts the plan."""
        project.resolver("Query.hello")

        with pytest.raises(MalformedFileNameError):
            build_plan(project.layout, make_settings())

    def test_invalid_table_definition(self, project, make_settings):
        """Test a table file without key attributes aborts the plan."""
        project.write(project.layout.dynamodb_tables_dir / "orders.json", '{"Foo": 1}')

        with pytest.raises(InvalidTemplateError) as exc_info:
            build_plan(project.layout, make_settings())

        assert "orders.json" in str(exc_info.value)

    def test_table_definition_not_utf8(self, project, make_settings):
        """Test an undecodable table file names the file."""
        project.layout.dynamodb_tables_dir.mkdir(parents=True)
        (project.layout.dynamodb_tables_dir / "orders.json").write_bytes(b"\xff\xfe bad")

        with pytest.raises(InvalidTemplateError) as exc_info:
            build_plan(project.layout, make_settings())

        assert "orders.json" in str(exc_info.value)

    def test_conflicting_key_attribute_types(self, project, make_settings):
        """Test an index redeclaring a key with another type aborts the plan."""
        project.table(
            "orders",
            {
                "KeyAttributes": {"PartitionKey": {"AttributeName": "id", "AttributeType": "S"}},
                "GlobalSecondaryIndexes": [
                    {
                        "IndexName": "byId",
                        "KeyAttributes": {
                            "PartitionKey": {"AttributeName": "id", "AttributeType": "N"}
                        },
                    }
                ],
            },
        )

        with pytest.raises(InvalidTemplateError) as exc_info:
            build_plan(project.layout, make_settings())

        assert "orders.json" in str(exc_info.value)
        assert "'id' declared as both S and N" in str(exc_info.value)

    def test_lambda_identifier_collision(self, project, make_settings):
        """Test two lambda directories formatting to one identifier fail."""
        project.lambda_dir("send-email")
        project.lambda_dir("send_email")

        with pytest.raises(IdentifierCollisionError):
            build_plan(project.layout, make_settings())

    def test_lambda_settings_without_directory(self, project, make_settings):
        """Test config for a lambda that does not exist fails."""
        with pytest.raises(UnresolvedReferenceError):
            build_plan(project.layout, make_settings(lambdas={"ghost": {"memory": 256}}))

    def test_permissions_without_directory(self, project, make_settings):
        """Test permissions for a lambda that does not exist fail."""
        settings = make_settings(permissions={"lambdas": {"ghost": {"storage": ["GetItem"]}}})

        with pytest.raises(UnresolvedReferenceError):
            build_plan(project.layout, settings)

    def test_storage_permissions_need_tables(self, project, make_settings):
        """Test storage permissions without tables fail."""
        project.lambda_dir("hello")
        settings = make_settings(permissions={"lambdas": {"hello": {"storage": ["GetItem"]}}})

        with pytest.raises(UnresolvedReferenceError):
            build_plan(project.layout, settings)

    def test_database_permissions_need_postgres(self, project, make_settings):
        """Test database permissions without a cluster fail."""
        project.lambda_dir("hello")
        settings = make_settings(
            permissions={"lambdas": {"hello": {"database": ["ExecuteStatement"]}}}
        )

        with pytest.raises(UnresolvedReferenceError):
            build_plan(project.layout, settings)

    def test_lambda_settings_applied(self, project, make_settings):
        """Test per-lambda runtime settings reach the plan."""
        project.lambda_dir("hello")

        plan = build_plan(
            project.layout, make_settings(lambdas={"hello": {"memory": 512, "retries": 1}})
        )

        assert plan.lambdas["hello"].settings.memory == 512
        assert plan.lambdas["hello"].settings.retries == 1

    def test_migrations_digest_changes_with_content(self, project, make_settings):
        """Test editing a migration changes the digest."""
        path = project.migration("001.init.sql", "select 1;")
        before = build_plan(project.layout, make_settings()).postgres.migrations_digest

        path.write_text("select 2;")
        after = build_plan(project.layout, make_settings()).postgres.migrations_digest

        assert before != after
