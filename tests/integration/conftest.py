"""Integration fixtures; importing the mocks installs them."""

import pytest

from pulumi_mocks import MOCKS, BackendMocks


@pytest.fixture
def mocks() -> BackendMocks:
    """The installed mocks, with the resources declared so far."""
    return MOCKS
