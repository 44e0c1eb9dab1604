"""Process runner - spawns external tools and streams their output.

Each invocation runs as an ``asyncio`` subprocess.  stdout and stderr are
pumped concurrently, framed into lines, passed through a transform (path
redaction by default) and published as raw lines of the job, prefixed
with the tool that produced them (``terraform: Initializing...``).

The exit code is returned, never raised: phase executors decide what a
non-zero exit means.  A missing executable is the only error raised.

Key Concepts:
    LineFramer: incremental UTF-8 decoding + newline framing.  A final
        unterminated fragment is flushed as its own line at EOF.
    ProcessResult: exit code plus captured stdout for JSON probes.
    capture=True: stdout is collected instead of published (used for
        ``-o json`` queries whose output would be noise in the stream).

Related Modules:
    - :mod:`astraops.deploy.redaction` - default line transform
    - :mod:`astraops.deploy.executors` - the only callers
"""

from __future__ import annotations

import asyncio
import codecs
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Protocol

from astraops.core.errors import ToolNotFoundError
from astraops.core.logging import get_logger
from astraops.deploy.redaction import redact_paths
from astraops.jobs.store import JobStore

log = get_logger(__name__)

_READ_CHUNK = 64 * 1024

LineTransform = Callable[[str], str]


class LineFramer:
    """Split a byte stream into text lines.

    Example::

        framer = LineFramer()
        framer.feed(b"a\\nb")   # ["a"]
        framer.feed(b"c\\r\\n")  # ["bc"]
        framer.flush()          # []
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Emit whatever is left once the stream has closed."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        if rest:
            return [rest.rstrip("\r")]
        return []


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one process invocation."""

    exit_code: int
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Runner(Protocol):
    """What phase executors need from a process runner."""

    async def run(
        self,
        job_id: str,
        argv: Sequence[str],
        *,
        prefix: str,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult: ...


class ProcessRunner:
    """Runs commands and publishes their output through the job store.

    Parameters
    ----------
    store
        Receives every framed line via :meth:`JobStore.append_raw`.
    redact_marker
        Path segment kept by :func:`redact_paths`.
    transform
        Replaces the default redaction entirely when given.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        redact_marker: str = "iac",
        transform: LineTransform | None = None,
    ) -> None:
        self.store = store
        self.transform: LineTransform = transform or partial(redact_paths, marker=redact_marker)

    async def run(
        self,
        job_id: str,
        argv: Sequence[str],
        *,
        prefix: str,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        """Run *argv* to completion and return its exit code.

        Raises
        ------
        ToolNotFoundError
            The executable does not exist or is not executable.
        """
        log.debug("process.start", job_id=job_id, command=argv[0], args=len(argv) - 1)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else dict(os.environ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            raise ToolNotFoundError(f"Command not found: {argv[0]}", cause=exc).with_context(
                job_id=job_id, command=argv[0]
            ) from exc

        captured: list[str] = []
        stdout_sink = captured.append if capture else partial(self._publish, job_id, prefix)
        await asyncio.gather(
            self._pump(process.stdout, stdout_sink),  # type: ignore[arg-type]
            self._pump(process.stderr, partial(self._publish, job_id, prefix)),  # type: ignore[arg-type]
        )
        exit_code = await process.wait()
        log.debug("process.exit", job_id=job_id, command=argv[0], exit_code=exit_code)
        return ProcessResult(exit_code=exit_code, stdout="\n".join(captured))

    def _publish(self, job_id: str, prefix: str, line: str) -> None:
        out = self.transform(line)
        self.store.append_raw(job_id, f"{prefix} {out}" if prefix else out)

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, sink: Callable[[str], None]) -> None:
        framer = LineFramer()
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            for line in framer.feed(chunk):
                sink(line)
        for line in framer.flush():
            sink(line)
