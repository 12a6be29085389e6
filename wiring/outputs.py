"""Flat output map of the provisioned backend."""

from collections.abc import Mapping
from typing import Any

from common.errors import OutputCollisionError
from common.naming import camel_case


def lambda_output_key(name: str) -> str:
    """Output key holding a Lambda's ARN, e.g. ``lambdaHelloArn``."""
    return camel_case(f"lambda-{name}-arn")


def merge_outputs(*maps: Mapping[str, Any]) -> dict[str, Any]:
    """Merge independently produced output maps into one.

    Raises:
        OutputCollisionError: If two maps provide the same key.
    """
    merged: dict[str, Any] = {}
    for outputs in maps:
        for key, value in outputs.items():
            if key in merged:
                raise OutputCollisionError(key)
            merged[key] = value
    return merged
