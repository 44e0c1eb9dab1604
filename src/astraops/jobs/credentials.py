"""Per-job cloud credentials, held in memory only.

The vault belongs to the orchestrator.  Credentials are stored when the
auth phase succeeds and erased on the job's terminal transition; they are
never persisted and never logged.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credentials:
    """Short-lived AWS credentials."""

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expiration: str | None = None

    def as_env(self, region: str) -> dict[str, str]:
        """Environment variables understood by every AWS-aware CLI."""
        return {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_SESSION_TOKEN": self.session_token,
            "AWS_DEFAULT_REGION": region,
            "AWS_REGION": region,
        }


class CredentialVault:
    """Thread-safe ``job_id -> Credentials`` map."""

    def __init__(self) -> None:
        self._items: dict[str, Credentials] = {}
        self._lock = threading.Lock()

    def put(self, job_id: str, credentials: Credentials) -> None:
        with self._lock:
            self._items[job_id] = credentials

    def get(self, job_id: str) -> Credentials | None:
        with self._lock:
            return self._items.get(job_id)

    def erase(self, job_id: str) -> bool:
        """Forget the job's credentials.  Returns False if none were held."""
        with self._lock:
            return self._items.pop(job_id, None) is not None

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
