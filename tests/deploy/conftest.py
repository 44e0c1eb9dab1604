"""
Fixtures for executor tests: a scripted process runner and instant sleeps.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from astraops.core.settings import AstraOpsBaseSettings
from astraops.deploy.runner import ProcessResult
from astraops.jobs.credentials import Credentials


class ScriptedRunner:
    """Runner double answering by argv prefix; records every call.

    ``on(["terraform", "plan"], ProcessResult(2))`` makes every command
    starting with those arguments return that result.  Several results
    are consumed in order, the last one repeating.  An exception is raised
    instead of returned.
    """

    def __init__(self) -> None:
        self.rules: list[tuple[list[str], list]] = []
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str] | None] = []

    def on(self, prefix: Sequence[str], *outcomes) -> ScriptedRunner:
        self.rules.insert(0, (list(prefix), list(outcomes)))
        return self

    def called(self, *prefix: str) -> list[list[str]]:
        return [argv for argv in self.calls if argv[: len(prefix)] == list(prefix)]

    async def run(self, job_id, argv, *, prefix, cwd=None, env=None, capture=False):
        argv = list(argv)
        self.calls.append(argv)
        self.envs.append(dict(env) if env is not None else None)
        for match, outcomes in self.rules:
            if argv[: len(match)] == match:
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        return ProcessResult(0)


class Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture()
def sleeps() -> Sleeps:
    return Sleeps()


@pytest.fixture()
def settings(tmp_path) -> AstraOpsBaseSettings:
    return AstraOpsBaseSettings(
        _env_file=None,
        k8s_scratch_dir=tmp_path / "k8s",
        terraform_dir=tmp_path / "tf",
    )


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(access_key_id="ASIAJOB", secret_access_key="job-secret", session_token="job-token")


@pytest.fixture()
def make_executor(store, deploy_request, credentials, runner, settings, sleeps):
    """Build an executor of the given class against a fresh job."""

    def _make(cls, request=None, **extra):
        request = request or deploy_request
        job = store.create_job(request)
        return cls(
            job.id,
            request,
            credentials,
            store=store,
            runner=runner,
            settings=settings,
            sleep=sleeps,
            **extra,
        )

    return _make
