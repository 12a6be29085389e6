"""DynamoDB table definition files (``src/databases/dynamodb/tables/<table>.json``).

Example::

    {
      "KeyAttributes": {
        "PartitionKey": {"AttributeName": "id", "AttributeType": "S"},
        "SortKey": {"AttributeName": "createdAt", "AttributeType": "N"}
      },
      "GlobalSecondaryIndexes": [
        {
          "IndexName": "byOwner",
          "KeyAttributes": {"PartitionKey": {"AttributeName": "ownerId", "AttributeType": "S"}}
        }
      ],
      "TimeToLiveAttribute": "expiresAt"
    }
"""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_pascal

from common.errors import InvalidTemplateError, MalformedFileNameError


class _TableModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="forbid")


class KeyAttribute(_TableModel):
    attribute_name: str = Field(min_length=1)
    attribute_type: Literal["S", "N", "B"]


class KeyAttributes(_TableModel):
    partition_key: KeyAttribute
    sort_key: KeyAttribute | None = None

    def attributes(self) -> list[KeyAttribute]:
        return [k for k in (self.partition_key, self.sort_key) if k]


class GlobalSecondaryIndex(_TableModel):
    index_name: str = Field(min_length=1)
    key_attributes: KeyAttributes
    projection_type: Literal["ALL", "KEYS_ONLY", "INCLUDE"] = "ALL"
    non_key_attributes: list[str] | None = None


class TableConfig(_TableModel):
    key_attributes: KeyAttributes
    global_secondary_indexes: list[GlobalSecondaryIndex] = Field(default_factory=list)
    time_to_live_attribute: str | None = None
    stream_enabled: bool = False

    @model_validator(mode="after")
    def _consistent_attribute_types(self) -> "TableConfig":
        seen: dict[str, str] = {}
        for key_attributes in self._all_key_attributes():
            for attribute in key_attributes.attributes():
                declared = seen.setdefault(attribute.attribute_name, attribute.attribute_type)
                if declared != attribute.attribute_type:
                    raise ValueError(
                        f"attribute '{attribute.attribute_name}' declared as both "
                        f"{declared} and {attribute.attribute_type}"
                    )
        return self

    def _all_key_attributes(self) -> list[KeyAttributes]:
        return [self.key_attributes] + [gsi.key_attributes for gsi in self.global_secondary_indexes]

    def attribute_definitions(self) -> list[KeyAttribute]:
        """Every distinct key attribute of the table and its indexes."""
        seen: dict[str, KeyAttribute] = {}
        for key_attributes in self._all_key_attributes():
            for attribute in key_attributes.attributes():
                seen.setdefault(attribute.attribute_name, attribute)
        return list(seen.values())


def table_name_from_file(path: Path) -> str:
    table_name = Path(path).name.split(".")[0]
    if not table_name:
        raise MalformedFileNameError(path, "table name must not be empty")
    return table_name


def load_table_config(path: Path) -> TableConfig:
    """Read and validate a table definition file.

    Raises:
        InvalidTemplateError: If the file is not valid JSON or not a valid table definition.
    """
    path = Path(path)
    try:
        return TableConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except UnicodeDecodeError as e:
        raise InvalidTemplateError(path, f"not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidTemplateError(path, f"not valid JSON: {e}") from e
    except ValidationError as e:
        raise InvalidTemplateError(path, f"invalid table definition: {e}") from e
