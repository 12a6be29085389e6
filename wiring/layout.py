"""Directory layout convention of a backend project."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectLayout:
    """Fixed paths of a backend project, all relative to an explicit root.

    The presence of each directory switches its resource family on; an
    absent directory means that family is skipped.
    """

    root_dir: Path

    def __post_init__(self):
        object.__setattr__(self, "root_dir", Path(self.root_dir).resolve())

    @property
    def src_dir(self) -> Path:
        return self.root_dir / "src"

    @property
    def dynamodb_tables_dir(self) -> Path:
        return self.src_dir / "databases" / "dynamodb" / "tables"

    @property
    def postgres_migrations_dir(self) -> Path:
        return self.src_dir / "databases" / "postgres" / "migrations"

    @property
    def lambdas_dir(self) -> Path:
        return self.src_dir / "lambdas"

    @property
    def resolvers_dir(self) -> Path:
        return self.src_dir / "graphql" / "resolvers"

    @property
    def resolver_functions_dir(self) -> Path:
        return self.resolvers_dir / "functions"

    @property
    def schema_file(self) -> Path:
        return self.src_dir / "graphql" / "schema.graphql"

    @property
    def build_dir(self) -> Path:
        """Bundled artifacts of the current run; recreated on every run."""
        return self.root_dir / ".pulumi-build"

    @property
    def postgres_enabled(self) -> bool:
        return self.postgres_migrations_dir.is_dir()


def list_files(directory: Path) -> list[Path]:
    """Regular, non-hidden files of ``directory`` sorted by name ([] if absent)."""
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def list_dirs(directory: Path) -> list[Path]:
    """Non-hidden sub-directories of ``directory`` sorted by name ([] if absent)."""
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_dir() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )
