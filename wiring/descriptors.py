"""Mapping-template file names and the descriptors built from them.

File names are a dot-delimited positional micro-format:

* resolvers: ``{Type}.{field}.{kind}[.{dsType}[.{dsName}]]``
* pipeline functions: ``{function}.{kind}[.{dsType}[.{dsName}]]``

where ``kind`` is ``req``, ``res`` or ``seq`` (resolvers only) and the data
source fields are optional. Several files contribute fragments to the same
descriptor; a kind may only be provided once per owner.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from common.constants import ID_PART_DATA_SOURCE, DataSourceType, TemplateKind
from common.errors import (
    DuplicateFragmentError,
    InvalidTemplateError,
    MalformedFileNameError,
)
from common.naming import camel_case, format_resource_id, pascal_case
from wiring.layout import list_files

logger = logging.getLogger(__name__)


def data_source_id(ds_type: DataSourceType, name: str = "") -> str:
    """Identifier of a data source; used both to create and to look one up."""
    return format_resource_id(ds_type.value, name, ID_PART_DATA_SOURCE)


@dataclass(frozen=True)
class DataSourceRef:
    """A ``{type}.{name}`` reference to a data source."""

    type: DataSourceType
    name: str = ""

    @property
    def resource_id(self) -> str:
        return data_source_id(self.type, self.name)

    def __str__(self) -> str:
        return f"{self.type.value}.{self.name}" if self.name else self.type.value


NONE_DATA_SOURCE = DataSourceRef(DataSourceType.NONE)


# =============================================================================
# File name parsing
# =============================================================================


@dataclass(frozen=True)
class ResolverFragment:
    type_name: str
    field_name: str
    kind: TemplateKind
    data_source: DataSourceRef | None
    path: Path

    @property
    def data_source_type(self) -> str:
        return self.data_source.type.value if self.data_source else ""

    @property
    def data_source_name(self) -> str:
        return self.data_source.name if self.data_source else ""


@dataclass(frozen=True)
class FunctionFragment:
    function_name: str
    kind: TemplateKind
    data_source: DataSourceRef | None
    path: Path


def _split_fields(path: Path, min_fields: int, max_fields: int) -> list[str]:
    fields = path.name.split(".")
    if not min_fields <= len(fields) <= max_fields:
        raise MalformedFileNameError(
            path,
            f"expected {min_fields} to {max_fields} dot-separated fields, got {len(fields)}",
        )
    return fields + [""] * (max_fields - len(fields))


def _parse_kind(path: Path, value: str, allowed: tuple[TemplateKind, ...]) -> TemplateKind:
    for kind in allowed:
        if kind.value == value:
            return kind
    expected = ", ".join(k.value for k in allowed)
    raise MalformedFileNameError(path, f"unknown template kind '{value}' (expected one of: {expected})")


def _parse_data_source(path: Path, ds_type: str, ds_name: str) -> DataSourceRef | None:
    if not ds_type:
        if ds_name:
            raise MalformedFileNameError(path, f"data source name '{ds_name}' given without a type")
        return None

    try:
        parsed_type = DataSourceType(ds_type)
    except ValueError:
        expected = ", ".join(t.value for t in DataSourceType)
        raise MalformedFileNameError(
            path, f"unknown data source type '{ds_type}' (expected one of: {expected})"
        ) from None

    if parsed_type is DataSourceType.NONE:
        return NONE_DATA_SOURCE
    if parsed_type is DataSourceType.POSTGRES:
        # There is a single Postgres cluster, the name is informational only
        return DataSourceRef(DataSourceType.POSTGRES)
    if not ds_name:
        raise MalformedFileNameError(path, f"data source type '{ds_type}' requires a name")
    return DataSourceRef(parsed_type, ds_name)


def parse_resolver_file_name(path: Path) -> ResolverFragment:
    """Parse ``{Type}.{field}.{kind}[.{dsType}[.{dsName}]]``.

    Raises:
        MalformedFileNameError: If the name does not follow the format.
    """
    path = Path(path)
    type_name, field_name, kind, ds_type, ds_name = _split_fields(path, 3, 5)
    if not type_name or not field_name:
        raise MalformedFileNameError(path, "type and field names must not be empty")

    return ResolverFragment(
        type_name=type_name,
        field_name=field_name,
        kind=_parse_kind(path, kind, tuple(TemplateKind)),
        data_source=_parse_data_source(path, ds_type, ds_name),
        path=path,
    )


def parse_function_file_name(path: Path) -> FunctionFragment:
    """Parse ``{function}.{kind}[.{dsType}[.{dsName}]]``.

    Raises:
        MalformedFileNameError: If the name does not follow the format.
    """
    path = Path(path)
    function_name, kind, ds_type, ds_name = _split_fields(path, 2, 4)
    if not function_name:
        raise MalformedFileNameError(path, "function name must not be empty")

    return FunctionFragment(
        function_name=function_name,
        kind=_parse_kind(path, kind, (TemplateKind.REQUEST, TemplateKind.RESPONSE)),
        data_source=_parse_data_source(path, ds_type, ds_name),
        path=path,
    )


# =============================================================================
# Descriptors
# =============================================================================


@dataclass
class _TemplateDescriptor:
    data_source: DataSourceRef | None = None
    request_template: str | None = None
    response_template: str | None = None
    sources: dict[TemplateKind, Path] = field(default_factory=dict)

    def add_fragment(
        self, owner: str, kind: TemplateKind, data_source: DataSourceRef | None, path: Path
    ) -> None:
        if kind in self.sources:
            raise DuplicateFragmentError(
                owner, path, f"'{kind.value}' already provided by '{self.sources[kind].name}'"
            )
        if data_source:
            if self.data_source and self.data_source != data_source:
                raise DuplicateFragmentError(
                    owner,
                    path,
                    f"data source '{data_source}' conflicts with '{self.data_source}'",
                )
            self.data_source = data_source
        self.sources[kind] = path

    @property
    def resolved_data_source(self) -> DataSourceRef:
        return self.data_source or NONE_DATA_SOURCE

    @property
    def origin(self) -> Path:
        return next(iter(self.sources.values()))


@dataclass
class FunctionDescriptor(_TemplateDescriptor):
    """A pipeline function assembled from its template files."""

    name: str = ""

    @property
    def resource_id(self) -> str:
        return self.name


@dataclass
class ResolverDescriptor(_TemplateDescriptor):
    """A resolver assembled from its template files."""

    type_name: str = ""
    field_name: str = ""
    pipeline: list[str] | None = None

    @property
    def resource_id(self) -> str:
        return format_resource_id(self.type_name, self.field_name)

    @property
    def is_pipeline(self) -> bool:
        return self.pipeline is not None


def read_template(path: Path) -> str:
    """Read a template file as UTF-8.

    Raises:
        InvalidTemplateError: If the file is not valid UTF-8.
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise InvalidTemplateError(path, f"not valid UTF-8: {e}") from e


def read_sequence_file(path: Path) -> list[str]:
    """Read a pipeline sequence file: a JSON array of function names."""
    try:
        sequence = json.loads(read_template(path))
    except json.JSONDecodeError as e:
        raise InvalidTemplateError(path, f"not valid JSON: {e}") from e

    if (
        not isinstance(sequence, list)
        or not sequence
        or not all(isinstance(name, str) and name for name in sequence)
    ):
        raise InvalidTemplateError(path, "expected a non-empty JSON array of function names")
    return sequence


def merge_resolver_fragments(fragments: list[ResolverFragment]) -> dict[str, ResolverDescriptor]:
    """Group resolver fragments by ``Type.field`` and read their templates.

    Raises:
        DuplicateFragmentError: If a kind is given twice or data sources conflict.
        InvalidTemplateError: If a sequence file is invalid or a pipeline names a data source.
    """
    descriptors: dict[str, ResolverDescriptor] = {}

    for fragment in fragments:
        type_name = pascal_case(fragment.type_name)
        field_name = camel_case(fragment.field_name)
        key = format_resource_id(type_name, field_name)
        descriptor = descriptors.setdefault(
            key, ResolverDescriptor(type_name=type_name, field_name=field_name)
        )
        descriptor.add_fragment(
            f"{type_name}.{field_name}", fragment.kind, fragment.data_source, fragment.path
        )

        if fragment.kind is TemplateKind.SEQUENCE:
            descriptor.pipeline = read_sequence_file(fragment.path)
        elif fragment.kind is TemplateKind.REQUEST:
            descriptor.request_template = read_template(fragment.path)
        else:
            descriptor.response_template = read_template(fragment.path)

        logger.debug(f"Parsed resolver fragment {fragment.path.name} -> {key}")

    for descriptor in descriptors.values():
        if descriptor.is_pipeline and descriptor.resolved_data_source != NONE_DATA_SOURCE:
            raise InvalidTemplateError(
                descriptor.sources[TemplateKind.SEQUENCE],
                f"pipeline resolver {descriptor.type_name}.{descriptor.field_name} "
                f"cannot also use data source '{descriptor.data_source}'",
            )

    return descriptors


def merge_function_fragments(fragments: list[FunctionFragment]) -> dict[str, FunctionDescriptor]:
    """Group pipeline function fragments by function name and read their templates.

    Raises:
        DuplicateFragmentError: If a kind is given twice or data sources conflict.
    """
    descriptors: dict[str, FunctionDescriptor] = {}

    for fragment in fragments:
        key = format_resource_id(fragment.function_name)
        descriptor = descriptors.setdefault(key, FunctionDescriptor(name=key))
        descriptor.add_fragment(key, fragment.kind, fragment.data_source, fragment.path)

        template = read_template(fragment.path)
        if fragment.kind is TemplateKind.REQUEST:
            descriptor.request_template = template
        else:
            descriptor.response_template = template

        logger.debug(f"Parsed pipeline function fragment {fragment.path.name} -> {key}")

    return descriptors


def scan_resolvers(directory: Path) -> dict[str, ResolverDescriptor]:
    """Parse and merge every resolver template file in ``directory``."""
    return merge_resolver_fragments([parse_resolver_file_name(p) for p in list_files(directory)])


def scan_functions(directory: Path) -> dict[str, FunctionDescriptor]:
    """Parse and merge every pipeline function template file in ``directory``."""
    return merge_function_fragments([parse_function_file_name(p) for p in list_files(directory)])
