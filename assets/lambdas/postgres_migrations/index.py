"""Postgres migrations Lambda handler.

Runs new ``*.sql`` files from the bundled migrations directory against the
Aurora cluster through the RDS Data API. Each file is keyed by its name up
to the first ``.`` and recorded in a tracking table once it has run, so a
file is applied at most once. Invoked on deploy whenever the migration
files change.
"""

import json
import logging
import os
from pathlib import Path

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def migration_key(file_name: str) -> str:
    return file_name.split(".")[0]


def pending_migrations(migrations_dir: Path, executed: set[str]) -> list[Path]:
    """Migration files not yet recorded, in name order."""
    return [
        path
        for path in sorted(migrations_dir.iterdir(), key=lambda p: p.name)
        if path.is_file()
        and not path.name.startswith(".")
        and migration_key(path.name) not in executed
    ]


class DataApi:
    """Thin wrapper over the ``rds-data`` client for one database."""

    def __init__(self, client, cluster_arn: str, secret_arn: str, database: str):
        self.client = client
        self.connection = {
            "resourceArn": cluster_arn,
            "secretArn": secret_arn,
            "database": database,
        }

    def execute(self, sql: str, parameters: list | None = None, transaction_id: str | None = None):
        kwargs = {**self.connection, "sql": sql, "includeResultMetadata": True}
        if parameters:
            kwargs["parameters"] = parameters
        if transaction_id:
            kwargs["transactionId"] = transaction_id
        return self.client.execute_statement(**kwargs)

    def begin(self) -> str:
        return self.client.begin_transaction(**self.connection)["transactionId"]

    def commit(self, transaction_id: str) -> None:
        self.client.commit_transaction(
            resourceArn=self.connection["resourceArn"],
            secretArn=self.connection["secretArn"],
            transactionId=transaction_id,
        )

    def rollback(self, transaction_id: str) -> None:
        self.client.rollback_transaction(
            resourceArn=self.connection["resourceArn"],
            secretArn=self.connection["secretArn"],
            transactionId=transaction_id,
        )


def executed_keys(db: DataApi, table_name: str) -> set[str]:
    db.execute(f'create table if not exists "{table_name}" ("migrationKey" text);')
    response = db.execute(f'select "migrationKey" from "{table_name}";')
    return {record[0]["stringValue"] for record in response.get("records", [])}


def apply_migration(db: DataApi, table_name: str, path: Path) -> None:
    """Run one migration file and record its key in the same transaction."""
    key = migration_key(path.name)
    transaction_id = db.begin()
    try:
        db.execute(path.read_text(encoding="utf-8"), transaction_id=transaction_id)
        db.execute(
            f'insert into "{table_name}" ("migrationKey") values (:key);',
            parameters=[{"name": "key", "value": {"stringValue": key}}],
            transaction_id=transaction_id,
        )
    except Exception:
        db.rollback(transaction_id)
        raise
    db.commit(transaction_id)


def handler(event: dict, context) -> dict:
    """Apply pending migrations.

    Args:
        event: Invocation payload; only ``RequestType: Update`` runs migrations
        context: Lambda context

    Returns:
        Summary with the keys that were applied
    """
    if event.get("RequestType") != "Update":
        return event

    table_name = os.environ["migrationsTableName"]
    migrations_dir = Path(os.environ.get("migrationsDir", "migrations"))
    if not migrations_dir.is_absolute():
        migrations_dir = Path(__file__).resolve().parent / migrations_dir

    db = DataApi(
        boto3.client("rds-data"),
        cluster_arn=os.environ["clusterArn"],
        secret_arn=os.environ["secretArn"],
        database=os.environ["databaseName"],
    )

    logger.info("Starting database migration...")
    executed = executed_keys(db, table_name)
    pending = pending_migrations(migrations_dir, executed)

    applied = []
    for path in pending:
        logger.info(f"Applying migration {path.name}")
        try:
            apply_migration(db, table_name, path)
        except Exception:
            logger.exception(f"Migration {path.name} failed")
            raise
        applied.append(migration_key(path.name))

    logger.info(f"Migration completed: {len(applied)} applied, {len(executed)} already executed")
    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                "status": "success",
                "applied": applied,
                "skipped": sorted(executed),
            }
        ),
    }
