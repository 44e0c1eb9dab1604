"""
Shared pytest fixtures for astraops tests.

This module provides:
- A valid deploy request body (wire shape) and its typed form
- A fresh job store per test
- Recorders for bus callbacks

Usage:
    Fixtures are auto-discovered by pytest; take them as arguments.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from astraops.core.events.memory import InMemoryLogBus
from astraops.jobs.models import DeployRequest
from astraops.jobs.store import JobStore

# =============================================================================
# Request bodies
# =============================================================================

_REQUEST_BODY: dict[str, Any] = {
    "accountId": "123456789012",
    "region": "us-west-2",
    "roleArn": "arn:aws:iam::123456789012:role/AstraOpsExecutionRole",
    "astraopsConfig": {
        "applicationName": "shop",
        "services": [
            {"name": "frontend", "image": "acme/shop-web:1.2.0", "port": 8080},
            {
                "name": "db",
                "image": "mongo:7",
                "port": 27017,
                "environment": {"MONGO_INITDB_DATABASE": "shop", "DEBUG": True},
                "storage": "5Gi",
            },
        ],
    },
}

_CREDENTIALS: dict[str, Any] = {
    "accessKeyId": "ASIAEXAMPLEKEY",
    "secretAccessKey": "secret-example",
    "sessionToken": "token-example",
    "expiration": "2030-01-01T00:00:00Z",
}


@pytest.fixture()
def request_body() -> dict[str, Any]:
    """A valid deploy/destroy body without caller credentials."""
    return copy.deepcopy(_REQUEST_BODY)


@pytest.fixture()
def request_body_with_credentials(request_body) -> dict[str, Any]:
    request_body["awsCredentials"] = dict(_CREDENTIALS)
    return request_body


@pytest.fixture()
def deploy_request(request_body) -> DeployRequest:
    return DeployRequest.model_validate(request_body)


@pytest.fixture()
def deploy_request_with_credentials(request_body_with_credentials) -> DeployRequest:
    return DeployRequest.model_validate(request_body_with_credentials)


# =============================================================================
# Store
# =============================================================================


@pytest.fixture()
def bus() -> InMemoryLogBus:
    return InMemoryLogBus()


@pytest.fixture()
def store(bus) -> JobStore:
    return JobStore(bus)
