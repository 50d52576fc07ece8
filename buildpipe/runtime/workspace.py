from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import List

from buildpipe.core.errors import PackagingError, ProjectNotFoundError

logger = logging.getLogger(__name__)


def extract_archive(content: bytes, dest: Path) -> List[str]:
    """Unzip into ``dest``. Entries escaping ``dest`` are rejected."""
    root = dest.resolve()
    try:
        zf = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as e:
        raise PackagingError(f"Archive is not a valid zip: {e}") from e

    names: List[str] = []
    with zf:
        for info in zf.infolist():
            target = (root / info.filename).resolve()
            if target != root and root not in target.parents:
                raise PackagingError(f"Archive entry escapes workspace: {info.filename}")
            names.append(info.filename)
        zf.extractall(root)
    return names


def locate_project(root: Path, project_name: str) -> Path:
    """``<root>/<project_name>.xcodeproj``, or the only other project found."""
    expected = root / f"{project_name}.xcodeproj"
    if expected.is_dir():
        return expected

    found = sorted(p for p in root.rglob("*.xcodeproj") if p.is_dir())
    if found:
        logger.warning("Expected %s, using %s instead", expected.name, found[0].relative_to(root))
        return found[0]

    listing = sorted(str(p.relative_to(root)) for p in root.iterdir())
    raise ProjectNotFoundError(expected.name, listing)
