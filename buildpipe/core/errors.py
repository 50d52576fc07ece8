"""Domain exception hierarchy for buildpipe.

Services raise these so the exception handlers in ``buildpipe.api.errors``
can map them to HTTP status codes, and so the runner can tell infra
failures apart from compilation failures.
"""

from __future__ import annotations

from typing import Sequence


class BuildPipeError(Exception):
    """Base for all domain exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(BuildPipeError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class BadRequestError(BuildPipeError):
    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class ConflictError(BuildPipeError):
    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


# ---------------------------------------------------------------------------
# Synthesis / packaging
# ---------------------------------------------------------------------------


class NoSourceFilesError(BadRequestError):
    """The file set holds no Swift sources; nothing can be synthesized."""

    def __init__(self, message: str = "No Swift files to export. Build the app first."):
        super().__init__(message)


class InvalidSourcePathError(BadRequestError):
    """A source path is absolute or climbs out of the project folder."""

    def __init__(self, path: str):
        super().__init__(f"Invalid source path: {path!r} (paths must be relative, without '..')")
        self.path = path


class DescriptorIntegrityError(BuildPipeError):
    """The project graph references an id or path it does not declare."""

    def __init__(self, message: str = "Project descriptor has dangling references"):
        super().__init__(message, status_code=500)


class PackagingError(BuildPipeError):
    """Archive fetch or extraction failed."""

    def __init__(self, message: str = "Packaging failed"):
        super().__init__(message, status_code=502)


class ProjectNotFoundError(PackagingError):
    def __init__(self, expected: str, found: Sequence[str]):
        listing = ", ".join(found) if found else "(empty archive)"
        super().__init__(f"Project not found: expected {expected}; archive contains: {listing}")
        self.expected = expected
        self.found = list(found)


# ---------------------------------------------------------------------------
# Runner environment
# ---------------------------------------------------------------------------


class ToolchainNotFoundError(BuildPipeError):
    def __init__(self, searched: Sequence[str]):
        super().__init__(
            "xcodebuild not found (searched: "
            + ", ".join(searched)
            + "). Install Xcode and run: xcode-select -s /Applications/Xcode.app/Contents/Developer",
            status_code=503,
        )
        self.searched = list(searched)


class ProcessSpawnError(BuildPipeError):
    def __init__(self, executable: str, reason: str, searched: Sequence[str] = ()):
        where = f" (searched: {', '.join(searched)})" if searched else ""
        super().__init__(f"Could not start {executable}: {reason}{where}", status_code=503)
        self.executable = executable


class BuildTimeoutError(BuildPipeError):
    def __init__(self, seconds: float):
        super().__init__(f"Build timed out after {seconds:g}s and was terminated", status_code=504)
        self.seconds = seconds


# ---------------------------------------------------------------------------
# Poll client
# ---------------------------------------------------------------------------


class PollTimeoutError(BuildPipeError):
    """The wall-clock ceiling ran out while the chain was still progressing.

    This is not a build failure: the job identified by ``job_id`` may still
    finish later.
    """

    def __init__(self, job_id: str, attempts: int, elapsed: float):
        super().__init__(
            f"Build job {job_id} still not terminal after {elapsed:.0f}s ({attempts} attempt(s))",
            status_code=504,
        )
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed = elapsed


def format_error_response(*, error: str, detail: object = None, request_id: str = "") -> dict:
    body: dict = {"error": error, "detail": detail}
    if request_id:
        body["request_id"] = request_id
    return body
