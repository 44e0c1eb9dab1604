"""Credential acquisition for deploy and monitoring runs.

Callers that already hold short-lived STS credentials pass them in the
request (``awsCredentials``) and they are used as-is.  Otherwise the
execution role is assumed with ``aws sts assume-role`` using whatever
identity the backend itself runs under.
"""

from __future__ import annotations

import json
import os
from typing import Protocol

from astraops.core.errors import CredentialsError, ToolNotFoundError
from astraops.core.logging import get_logger
from astraops.deploy.runner import Runner
from astraops.jobs.credentials import Credentials
from astraops.jobs.models import DeployRequest

log = get_logger(__name__)

SESSION_SECONDS = 3600


class CredentialProvider(Protocol):
    async def acquire(self, job_id: str, request: DeployRequest) -> Credentials: ...


def from_request(request: DeployRequest) -> Credentials | None:
    """Credentials carried by the request, if any."""
    supplied = request.aws_credentials
    if supplied is None:
        return None
    return Credentials(
        access_key_id=supplied.access_key_id,
        secret_access_key=supplied.secret_access_key,
        session_token=supplied.session_token,
        expiration=supplied.expiration,
    )


class StsCredentialProvider:
    """Obtain credentials from the request or by assuming ``roleArn``.

    Raises
    ------
    CredentialsError
        The role could not be assumed or the CLI answered with something
        that is not an ``AssumeRole`` response.
    """

    def __init__(self, runner: Runner, *, duration_seconds: int = SESSION_SECONDS) -> None:
        self.runner = runner
        self.duration_seconds = duration_seconds

    async def acquire(self, job_id: str, request: DeployRequest) -> Credentials:
        supplied = from_request(request)
        if supplied is not None:
            return supplied

        argv = [
            "aws", "sts", "assume-role",
            "--role-arn", request.role_arn,
            "--role-session-name", f"astraops-{job_id}",
            "--duration-seconds", str(self.duration_seconds),
            "--region", request.region,
            "--output", "json",
        ]
        try:
            result = await self.runner.run(job_id, argv, prefix="aws-sts:", env=dict(os.environ), capture=True)
        except ToolNotFoundError as exc:
            raise CredentialsError("aws CLI not available", cause=exc).with_context(job_id=job_id) from exc

        if not result.ok:
            raise CredentialsError(f"Failed to assume role {request.role_arn}").with_context(
                job_id=job_id, exit_code=result.exit_code
            )
        try:
            body = json.loads(result.stdout)
            raw = body["Credentials"]
            credentials = Credentials(
                access_key_id=raw["AccessKeyId"],
                secret_access_key=raw["SecretAccessKey"],
                session_token=raw["SessionToken"],
                expiration=raw.get("Expiration"),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise CredentialsError("Failed to obtain credentials from assumed role", cause=exc).with_context(
                job_id=job_id
            ) from exc

        log.info("sts.role_assumed", job_id=job_id, role_arn=request.role_arn)
        return credentials
