"""Filesystem-path redaction for streamed tool output.

Tool output routinely contains absolute paths of the host running the
service.  Before a line is published every absolute path is collapsed to
its last segment, except paths that run through the project's
infrastructure tree (``.../iac/...``), which keep everything from that
marker onward so operators can still tell ``iac/terraform/main.tf`` from
``iac/k8s/main.tf``.

    >>> redact_paths("Error in /home/ci/work/iac/terraform/main.tf line 3")
    'Error in iac/terraform/main.tf line 3'
    >>> redact_paths("wrote /tmp/abc123/kubeconfig")
    'wrote kubeconfig'
"""

from __future__ import annotations

import re

# Two or more segments, not part of a URL, a relative path or a word.
_ABSOLUTE_PATH = re.compile(r"(?<![\w.:/~-])(?:/[\w.@+-]+){2,}")


def redact_paths(line: str, marker: str = "iac") -> str:
    """Collapse absolute paths in *line*.  See module docstring."""

    def _collapse(match: re.Match[str]) -> str:
        segments = match.group(0).strip("/").split("/")
        if marker and marker in segments[:-1]:
            return "/".join(segments[segments.index(marker):])
        return segments[-1]

    return _ABSOLUTE_PATH.sub(_collapse, line)
