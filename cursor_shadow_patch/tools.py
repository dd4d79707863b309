"""Blocking, all-or-nothing invocation of external tools."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from .errors import SubprocessFailed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 600

PathLike = Union[str, Path]


def run_tool(
    cmd: Sequence[PathLike],
    *,
    step: str,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> subprocess.CompletedProcess:
    """
    Run ``cmd`` to completion.

    Any non-zero exit, timeout or launch error raises SubprocessFailed
    naming ``step``; there are no retries.
    """
    args = [str(c) for c in cmd]
    logger.debug("%s: %s", step, " ".join(args))
    try:
        proc = subprocess.run(
            args,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise SubprocessFailed(step, args, f"timed out after {timeout:g}s") from e
    except OSError as e:
        raise SubprocessFailed(step, args, str(e)) from e

    if proc.returncode != 0:
        detail = (proc.stderr or "").strip() or f"exited with code {proc.returncode}"
        raise SubprocessFailed(step, args, detail)
    return proc
