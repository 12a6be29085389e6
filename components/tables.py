"""DynamoDB Component - one table per definition file."""

import pulumi
import pulumi_aws as aws

from wiring.plan import TableSpec
from wiring.tables import TableConfig


def _index_args(config: TableConfig) -> list[aws.dynamodb.TableGlobalSecondaryIndexArgs]:
    return [
        aws.dynamodb.TableGlobalSecondaryIndexArgs(
            name=gsi.index_name,
            hash_key=gsi.key_attributes.partition_key.attribute_name,
            range_key=(
                gsi.key_attributes.sort_key.attribute_name if gsi.key_attributes.sort_key else None
            ),
            projection_type=gsi.projection_type,
            non_key_attributes=gsi.non_key_attributes,
        )
        for gsi in config.global_secondary_indexes
    ]


class TablesComponent(pulumi.ComponentResource):
    """Pay-per-request DynamoDB tables keyed by table name."""

    def __init__(
        self,
        name: str,
        tables: dict[str, TableSpec],
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:database:DynamoDB", name, None, opts)

        self.tags = tags or {}
        self.tables: dict[str, aws.dynamodb.Table] = {}

        for table_name, spec in tables.items():
            config = spec.config
            sort_key = config.key_attributes.sort_key

            self.tables[table_name] = aws.dynamodb.Table(
                spec.resource_id,
                name=spec.resource_id,
                billing_mode="PAY_PER_REQUEST",
                hash_key=config.key_attributes.partition_key.attribute_name,
                range_key=sort_key.attribute_name if sort_key else None,
                attributes=[
                    aws.dynamodb.TableAttributeArgs(
                        name=attribute.attribute_name,
                        type=attribute.attribute_type,
                    )
                    for attribute in config.attribute_definitions()
                ],
                global_secondary_indexes=_index_args(config) or None,
                ttl=(
                    aws.dynamodb.TableTtlArgs(
                        attribute_name=config.time_to_live_attribute,
                        enabled=True,
                    )
                    if config.time_to_live_attribute
                    else None
                ),
                stream_enabled=config.stream_enabled or None,
                stream_view_type="NEW_AND_OLD_IMAGES" if config.stream_enabled else None,
                tags={**self.tags, "Name": spec.resource_id},
                opts=pulumi.ResourceOptions(parent=self),
            )

        self.register_outputs(
            {"table_names": {name: table.name for name, table in self.tables.items()}}
        )

    @property
    def table_arns(self) -> list[pulumi.Output[str]]:
        return [table.arn for table in self.tables.values()]
