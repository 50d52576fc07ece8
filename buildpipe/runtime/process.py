from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from buildpipe.core.errors import BuildTimeoutError, ProcessSpawnError, ToolchainNotFoundError

logger = logging.getLogger(__name__)

XCODEBUILD_RELATIVE = "Contents/Developer/usr/bin/xcodebuild"
STANDARD_XCODE_LOCATIONS = (
    "~/Downloads/Xcode.app",
    "/Applications/Xcode.app",
)

LineHandler = Callable[[str], Awaitable[None]]


def _xcode_select_path() -> Optional[str]:
    try:
        out = subprocess.run(
            ["xcode-select", "-p"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    dev_dir = (out.stdout or "").strip()
    if out.returncode != 0 or not dev_dir:
        return None
    return str(Path(dev_dir) / "usr/bin/xcodebuild")


def xcodebuild_candidates(configured: str = "") -> List[str]:
    candidates: List[str] = []
    if configured:
        candidates.append(os.path.expanduser(configured))
    for app in STANDARD_XCODE_LOCATIONS:
        candidates.append(str(Path(os.path.expanduser(app)) / XCODEBUILD_RELATIVE))
    selected = _xcode_select_path()
    if selected:
        candidates.append(selected)
    on_path = shutil.which("xcodebuild")
    if on_path:
        candidates.append(on_path)
    return list(dict.fromkeys(candidates))


def find_xcodebuild(configured: str = "") -> Tuple[str, List[str]]:
    """Return ``(path, searched)`` or raise :class:`ToolchainNotFoundError`."""
    searched = xcodebuild_candidates(configured)
    for candidate in searched:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate, searched
    raise ToolchainNotFoundError(searched or ["xcodebuild"])


def xcodebuild_args(xcodebuild: str, project_path: str, scheme: str, destination: str) -> List[str]:
    return [
        xcodebuild,
        "-project", project_path,
        "-scheme", scheme,
        "-destination", destination,
        "build",
        "CODE_SIGNING_ALLOWED=NO",
        "CODE_SIGNING_REQUIRED=NO",
        "CODE_SIGN_IDENTITY=",
    ]


async def _pump(stream: asyncio.StreamReader, on_line: LineHandler) -> None:
    while True:
        raw = await stream.readline()
        if not raw:
            return
        await on_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        # exited between the returncode check and the signal
        pass


async def run_streaming(
    argv: Sequence[str],
    *,
    cwd: str,
    on_line: LineHandler,
    timeout: Optional[float] = None,
    searched: Sequence[str] = (),
) -> int:
    """Run ``argv`` with stderr folded into stdout, one callback per line.

    Raises :class:`ProcessSpawnError` if the process cannot start and
    :class:`BuildTimeoutError` when ``timeout`` elapses. Any exit that leaves the child running
    kills and reaps it first.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise ProcessSpawnError(argv[0], str(e), searched) from e

    assert proc.stdout is not None

    async def _drain() -> int:
        await _pump(proc.stdout, on_line)
        return await proc.wait()

    try:
        return await asyncio.wait_for(_drain(), timeout=timeout or None)
    except asyncio.TimeoutError:
        logger.warning("Killing %s after %ss", argv[0], timeout)
        raise BuildTimeoutError(timeout or 0)
    finally:
        if proc.returncode is None:
            _kill(proc)
            await proc.wait()
