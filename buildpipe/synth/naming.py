from __future__ import annotations

import re
from typing import List, Optional, Sequence

from buildpipe.core.config import settings
from buildpipe.core.errors import InvalidSourcePathError
from buildpipe.domain.models import SourceFile

NAME_PREFIX = "App"
MAX_NAME_LENGTH = 32

_BUNDLE_ID_RE = re.compile(r"^[a-z][a-z0-9]*(\.[a-z][a-z0-9]*)+$", re.IGNORECASE)
_NON_ASCII_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def sanitize_project_name(name: Optional[str], fallback: Optional[str] = None) -> str:
    """Turn a free-form app name into a target-safe identifier.

    ``"my todo app!"`` becomes ``"MyTodoApp"``; names that would start with
    a digit get the ``App`` prefix; empty or symbol-only input falls back.
    """
    fallback = fallback or settings.default_project_name
    raw = (name or "").strip()
    if not raw or raw.lower() == "untitled app":
        return fallback

    cleaned = "".join(ch for ch in raw if ch.isalnum() or ch.isspace() or ch == "-")
    parts = cleaned.split()
    joined = "".join(p[:1].upper() + p[1:] for p in parts)
    joined = _NON_ASCII_ALNUM_RE.sub("", joined)
    if not joined:
        return fallback
    if not joined[0].isalpha():
        joined = NAME_PREFIX + joined
    return joined[:MAX_NAME_LENGTH]


def is_valid_bundle_id(value: str) -> bool:
    return bool(_BUNDLE_ID_RE.match(value or ""))


def resolve_bundle_id(candidate: Optional[str], fallback: Optional[str] = None) -> str:
    fallback = fallback or settings.default_bundle_id
    value = (candidate or "").strip()
    return value if is_valid_bundle_id(value) else fallback


def sanitize_development_team(team: Optional[str]) -> str:
    return _NON_ASCII_ALNUM_RE.sub("", (team or "").upper())


def normalize_source_path(path: str) -> str:
    """``"./Views//Row.swift"`` -> ``"Views/Row.swift"``.

    Absolute paths, drive letters and ``..`` segments raise
    :class:`InvalidSourcePathError`.
    """
    raw = (path or "").replace("\\", "/")
    if raw.startswith("/") or _DRIVE_RE.match(raw):
        raise InvalidSourcePathError(path)
    parts = [p for p in raw.split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        raise InvalidSourcePathError(path)
    return "/".join(parts)


def normalize_source_files(files: Sequence[SourceFile]) -> List[SourceFile]:
    out: List[SourceFile] = []
    for f in files:
        normalized = normalize_source_path(f.path)
        out.append(f if f.path == normalized else f.model_copy(update={"path": normalized}))
    return out
