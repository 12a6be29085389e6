"""Fail-fast planning of a backend project.

:func:`build_plan` reads the whole layout, parses every file and resolves
every cross reference before a single cloud resource is declared, so a bad
input aborts the run with nothing registered.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from common.config import DataSourceFallback, LambdaPermissions, LambdaSettings, ProjectSettings
from common.constants import (
    AUTH_TRIGGER_CUSTOM_MESSAGE,
    AUTH_TRIGGER_PRE_SIGNUP,
    ID_PART_MIGRATIONS,
    ID_PART_POSTGRES,
    DataSourceType,
)
from common.errors import IdentifierCollisionError, MissingFileError, UnresolvedReferenceError
from common.naming import format_resource_id
from wiring.descriptors import (
    NONE_DATA_SOURCE,
    DataSourceRef,
    FunctionDescriptor,
    ResolverDescriptor,
    scan_functions,
    scan_resolvers,
)
from wiring.layout import ProjectLayout, list_dirs, list_files
from wiring.tables import TableConfig, load_table_config, table_name_from_file

logger = logging.getLogger(__name__)

MIGRATIONS_HANDLER_FILE = (
    Path(__file__).resolve().parent.parent
    / "assets"
    / "lambdas"
    / "postgres_migrations"
    / "index.py"
)


@dataclass(frozen=True)
class TableSpec:
    name: str
    resource_id: str
    config: TableConfig
    path: Path


@dataclass(frozen=True)
class LambdaSpec:
    name: str
    resource_id: str
    source_dir: Path
    settings: LambdaSettings
    permissions: LambdaPermissions


@dataclass(frozen=True)
class PostgresSpec:
    cluster_id: str
    database_name: str
    migrations_dir: Path
    migration_files: list[Path]
    migrations_lambda_id: str

    @property
    def migrations_digest(self) -> str:
        """Digest of migration names and contents; changes re-run the migrations."""
        digest = hashlib.sha256()
        for path in self.migration_files:
            digest.update(path.name.encode("utf-8"))
            digest.update(path.read_bytes())
        return digest.hexdigest()


class DataSourceRegistry:
    """Data sources known to the run, keyed by their formatted identifier."""

    def __init__(self, fallback: DataSourceFallback = DataSourceFallback.ERROR):
        self.fallback = fallback
        self._refs: dict[str, DataSourceRef] = {}

    def register(self, ref: DataSourceRef) -> None:
        existing = self._refs.get(ref.resource_id)
        if existing and existing != ref:
            raise IdentifierCollisionError(
                f"Data sources '{existing}' and '{ref}' both format to '{ref.resource_id}'"
            )
        self._refs[ref.resource_id] = ref

    def resolve(self, ref: DataSourceRef, referrer: str) -> DataSourceRef:
        """Return the registered data source ``ref`` points to.

        Raises:
            UnresolvedReferenceError: If it does not exist and the fallback is ``error``.
        """
        registered = self._refs.get(ref.resource_id)
        if registered:
            return registered

        if self.fallback is DataSourceFallback.NONE:
            logger.warning(f"{referrer}: data source '{ref}' not found, using '{NONE_DATA_SOURCE}'")
            return NONE_DATA_SOURCE

        raise UnresolvedReferenceError(
            f"{referrer}: data source '{ref}' ({ref.resource_id}) does not exist"
        )

    def __iter__(self):
        return iter(self._refs.values())

    def __len__(self) -> int:
        return len(self._refs)


@dataclass
class BackendPlan:
    """Everything needed to declare the backend, fully validated."""

    settings: ProjectSettings
    layout: ProjectLayout
    tables: dict[str, TableSpec] = field(default_factory=dict)
    lambdas: dict[str, LambdaSpec] = field(default_factory=dict)
    postgres: PostgresSpec | None = None
    data_sources: DataSourceRegistry = field(default_factory=DataSourceRegistry)
    functions: dict[str, FunctionDescriptor] = field(default_factory=dict)
    resolvers: dict[str, ResolverDescriptor] = field(default_factory=dict)

    @property
    def stack_id(self) -> str:
        return self.settings.stack_id

    @property
    def schema_file(self) -> Path:
        return self.layout.schema_file

    def auth_trigger(self, name: str) -> LambdaSpec | None:
        return self.lambdas.get(name)


def _check_unique(kind: str, ids: dict[str, str], resource_id: str, name: str) -> None:
    if resource_id in ids:
        raise IdentifierCollisionError(
            f"{kind} '{ids[resource_id]}' and '{name}' both format to '{resource_id}'"
        )
    ids[resource_id] = name


def _plan_tables(layout: ProjectLayout, stack_id: str) -> dict[str, TableSpec]:
    tables: dict[str, TableSpec] = {}
    ids: dict[str, str] = {}
    for path in list_files(layout.dynamodb_tables_dir):
        name = table_name_from_file(path)
        resource_id = format_resource_id(stack_id, name)
        _check_unique("Tables", ids, resource_id, path.name)
        tables[name] = TableSpec(
            name=name,
            resource_id=resource_id,
            config=load_table_config(path),
            path=path,
        )
    return tables


def _plan_lambdas(layout: ProjectLayout, settings: ProjectSettings) -> dict[str, LambdaSpec]:
    lambdas: dict[str, LambdaSpec] = {}
    ids: dict[str, str] = {}
    for source_dir in list_dirs(layout.lambdas_dir):
        name = source_dir.name
        resource_id = format_resource_id(settings.stack_id, name)
        _check_unique("Lambdas", ids, resource_id, name)
        lambdas[name] = LambdaSpec(
            name=name,
            resource_id=resource_id,
            source_dir=source_dir,
            settings=settings.lambda_settings(name),
            permissions=settings.permissions.lambdas.get(name) or LambdaPermissions(),
        )

    for section, names in (
        ("lambdas", settings.lambdas),
        ("permissions.lambdas", settings.permissions.lambdas),
    ):
        for name in names:
            if name not in lambdas:
                raise UnresolvedReferenceError(
                    f"Config '{section}.{name}' refers to a Lambda with no directory "
                    f"in {layout.lambdas_dir}"
                )
    return lambdas


def _plan_postgres(layout: ProjectLayout, settings: ProjectSettings) -> PostgresSpec | None:
    if not layout.postgres_enabled:
        return None

    cluster_id = format_resource_id(settings.stack_id, ID_PART_POSTGRES)
    return PostgresSpec(
        cluster_id=cluster_id,
        database_name=format_resource_id(settings.namespace),
        migrations_dir=layout.postgres_migrations_dir,
        migration_files=list_files(layout.postgres_migrations_dir),
        migrations_lambda_id=format_resource_id(cluster_id, ID_PART_MIGRATIONS),
    )


def _check_permission_targets(plan: BackendPlan) -> None:
    for spec in plan.lambdas.values():
        if spec.permissions.storage and not plan.tables:
            raise UnresolvedReferenceError(
                f"Lambda '{spec.name}' declares storage permissions but no tables exist"
            )
        if spec.permissions.database and not plan.postgres:
            raise UnresolvedReferenceError(
                f"Lambda '{spec.name}' declares database permissions but Postgres is not enabled"
            )


def build_plan(layout: ProjectLayout, settings: ProjectSettings) -> BackendPlan:
    """Scan ``layout`` and validate every descriptor and cross reference.

    Raises:
        AssemblerError: Any input problem; nothing has been declared yet.
    """
    if not layout.schema_file.is_file():
        raise MissingFileError(layout.schema_file, "GraphQL schema not found")

    plan = BackendPlan(
        settings=settings,
        layout=layout,
        data_sources=DataSourceRegistry(settings.unresolved_data_source),
    )
    plan.tables = _plan_tables(layout, settings.stack_id)
    plan.lambdas = _plan_lambdas(layout, settings)
    plan.postgres = _plan_postgres(layout, settings)

    # Register data sources with the same identifier used for lookups
    plan.data_sources.register(NONE_DATA_SOURCE)
    for name in plan.tables:
        plan.data_sources.register(DataSourceRef(DataSourceType.DYNAMODB, name))
    if plan.postgres:
        plan.data_sources.register(DataSourceRef(DataSourceType.POSTGRES))
    for name in plan.lambdas:
        plan.data_sources.register(DataSourceRef(DataSourceType.LAMBDA, name))

    plan.functions = scan_functions(layout.resolver_functions_dir)
    for function in plan.functions.values():
        function.data_source = plan.data_sources.resolve(
            function.resolved_data_source, f"Pipeline function '{function.origin.name}'"
        )

    plan.resolvers = scan_resolvers(layout.resolvers_dir)
    for resolver in plan.resolvers.values():
        referrer = f"Resolver '{resolver.origin.name}'"
        resolver.data_source = plan.data_sources.resolve(resolver.resolved_data_source, referrer)
        for function_name in resolver.pipeline or []:
            if format_resource_id(function_name) not in plan.functions:
                raise UnresolvedReferenceError(
                    f"{referrer}: pipeline function '{function_name}' does not exist"
                )

    _check_permission_targets(plan)

    for trigger in (AUTH_TRIGGER_CUSTOM_MESSAGE, AUTH_TRIGGER_PRE_SIGNUP):
        if trigger in plan.lambdas:
            logger.info(f"Lambda '{trigger}' will be attached as a user pool trigger")

    logger.info(
        f"Planned {plan.stack_id}: {len(plan.tables)} tables, {len(plan.lambdas)} lambdas, "
        f"postgres={'on' if plan.postgres else 'off'}, {len(plan.data_sources)} data sources, "
        f"{len(plan.functions)} pipeline functions, {len(plan.resolvers)} resolvers"
    )
    return plan
