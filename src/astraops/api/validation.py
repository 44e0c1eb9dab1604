"""Deploy request validation.

``validate_deploy_request`` checks a decoded JSON body and returns every
problem it finds, as human-readable messages naming the offending field.
``parse_deploy_request`` raises :class:`ValidationError` with those
messages, or returns the typed request.
"""

from __future__ import annotations

import re
from typing import Any

import pydantic

from astraops.core.errors import ValidationError
from astraops.jobs.models import DeployRequest

AWS_ACCOUNT_ID = re.compile(r"^\d{12}$")
AWS_REGION = re.compile(r"^[a-z]+-[a-z]+-\d+$")
IAM_ROLE_ARN = re.compile(r"^arn:aws:iam::\d{12}:role/[a-zA-Z0-9+=,.@_-]+$")

REQUIRED_FIELDS = ("accountId", "region", "roleArn", "astraopsConfig")


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_pattern(errors: list[str], body: dict[str, Any], field: str, pattern: re.Pattern[str], hint: str) -> None:
    if field not in body:
        return
    value = body[field]
    if not isinstance(value, str):
        errors.append(f"{field} must be a string")
    elif not pattern.match(value):
        errors.append(f"{field} must be {hint}")


def _check_credentials(errors: list[str], creds: Any) -> None:
    if not isinstance(creds, dict):
        errors.append("awsCredentials must be an object")
        return
    for key in ("accessKeyId", "secretAccessKey", "sessionToken"):
        if not _non_empty_string(creds.get(key)):
            errors.append(f"awsCredentials.{key} is required")
    expiration = creds.get("expiration")
    if expiration and not _non_empty_string(expiration):
        errors.append("awsCredentials.expiration must be a string if provided")


def _check_service(errors: list[str], index: int, service: Any) -> None:
    prefix = f"astraopsConfig.services[{index}]"
    if not isinstance(service, dict):
        errors.append(f"{prefix} must be an object")
        return

    if not _non_empty_string(service.get("name")):
        errors.append(f"{prefix}.name is required and must be a string")

    port = service.get("port")
    if not port or not _is_number(port):
        errors.append(f"{prefix}.port is required and must be a number")
    elif not 1 <= port <= 65535:
        errors.append(f"{prefix}.port must be between 1 and 65535")
    elif port != int(port):
        errors.append(f"{prefix}.port must be an integer")

    if not _non_empty_string(service.get("image")):
        errors.append(f'{prefix}.image is required and must be a non-empty string (e.g., "usuario/imagen:tag")')

    if "environment" in service and service["environment"] is not None and not isinstance(service["environment"], dict):
        errors.append(f"{prefix}.environment must be an object (key-value pairs)")

    if service.get("storage") is not None and not _non_empty_string(service["storage"]):
        errors.append(f"{prefix}.storage must be a string if provided")


def _check_config(errors: list[str], config: Any) -> None:
    if not isinstance(config, dict):
        errors.append("astraopsConfig must be an object")
        return
    if not _non_empty_string(config.get("applicationName")):
        errors.append("astraopsConfig.applicationName is required and must be a string")

    services = config.get("services")
    if not isinstance(services, list):
        errors.append("astraopsConfig.services is required and must be an array")
    elif not services:
        errors.append("astraopsConfig.services must contain at least one service")
    else:
        for index, service in enumerate(services):
            _check_service(errors, index, service)


def validate_deploy_request(body: Any) -> list[str]:
    """Every problem with *body*; an empty list means it is valid."""
    if not isinstance(body, dict):
        return ["Request body is required and must be a valid JSON object"]

    errors: list[str] = []
    missing = [field for field in REQUIRED_FIELDS if not body.get(field)]
    if missing:
        errors.append(f"Missing required fields: {', '.join(missing)}")

    _check_pattern(errors, body, "accountId", AWS_ACCOUNT_ID, 'a 12-digit AWS account ID (e.g., "123456789012")')
    _check_pattern(errors, body, "region", AWS_REGION, 'a valid AWS region (e.g., "us-west-2", "eu-central-1")')
    _check_pattern(
        errors,
        body,
        "roleArn",
        IAM_ROLE_ARN,
        'a valid IAM role ARN (e.g., "arn:aws:iam::123456789012:role/ExecutionRole")',
    )

    if body.get("awsCredentials") is not None:
        _check_credentials(errors, body["awsCredentials"])

    if body.get("astraopsConfig") is not None:
        _check_config(errors, body["astraopsConfig"])

    return errors


def parse_deploy_request(body: Any) -> DeployRequest:
    """Validate *body* and build the typed request.

    Raises
    ------
    ValidationError
        With one message per problem found.
    """
    violations = validate_deploy_request(body)
    if violations:
        raise ValidationError(violations)
    try:
        return DeployRequest.model_validate(body)
    except pydantic.ValidationError as exc:
        messages = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ValidationError(messages, cause=exc) from exc
