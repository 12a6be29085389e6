"""Unit tests for output aggregation."""

import pytest

from common.errors import OutputCollisionError
from wiring.outputs import lambda_output_key, merge_outputs


def test_lambda_output_key():
    """Test lambda ARN output keys are camelCased."""
    assert lambda_output_key("hello") == "lambdaHelloArn"
    assert lambda_output_key("auth-pre-signup-trigger") == "lambdaAuthPreSignupTriggerArn"


def test_merge_outputs():
    """Test disjoint maps merge into one flat map."""
    merged = merge_outputs({"apiArn": "a"}, {"authRegion": "r"}, {})

    assert merged == {"apiArn": "a", "authRegion": "r"}


def test_merge_outputs_collision():
    """Test a key produced twice is an error, not last-wins."""
    with pytest.raises(OutputCollisionError) as exc_info:
        merge_outputs({"apiArn": "a"}, {"apiArn": "b"})

    assert exc_info.value.key == "apiArn"
