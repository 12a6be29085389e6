"""Pytest configuration and fixtures.

Fixtures build throwaway project trees that follow the ``src/`` layout
convention, so planning and assembly can run against real files.
"""

import json
from pathlib import Path

import pytest

from common.config import ProjectSettings
from wiring.layout import ProjectLayout

SCHEMA = """\
type Query {
  hello: String
}
"""

HANDLER = "def handler(event, context):\n    return {}\n"


class ProjectBuilder:
    """Writes files into a project root using layout-relative helpers."""

    def __init__(self, root: Path):
        self.root = root
        self.layout = ProjectLayout(root)

    def write(self, path: Path, content: str = "") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def schema(self, content: str = SCHEMA) -> Path:
        return self.write(self.layout.schema_file, content)

    def table(self, name: str, config: dict | None = None) -> Path:
        config = config or {
            "KeyAttributes": {"PartitionKey": {"AttributeName": "id", "AttributeType": "S"}}
        }
        return self.write(self.layout.dynamodb_tables_dir / f"{name}.json", json.dumps(config))

    def lambda_dir(self, name: str, source: str = HANDLER) -> Path:
        directory = self.layout.lambdas_dir / name
        self.write(directory / "index.py", source)
        return directory

    def resolver(self, file_name: str, content: str = "{}") -> Path:
        return self.write(self.layout.resolvers_dir / file_name, content)

    def function(self, file_name: str, content: str = "{}") -> Path:
        return self.write(self.layout.resolver_functions_dir / file_name, content)

    def migration(self, file_name: str, sql: str = "select 1;") -> Path:
        return self.write(self.layout.postgres_migrations_dir / file_name, sql)


@pytest.fixture
def project(tmp_path) -> ProjectBuilder:
    """Project root with a GraphQL schema and nothing else."""
    builder = ProjectBuilder(tmp_path / "project")
    builder.schema()
    return builder


@pytest.fixture
def make_settings():
    """Factory for validated project settings."""

    def _make(**overrides) -> ProjectSettings:
        context = {"env": "dev", "namespace": "my-app", **overrides}
        return ProjectSettings.model_validate(context)

    return _make
