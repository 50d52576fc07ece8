from __future__ import annotations

import io
import logging
import uuid
import zipfile
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from buildpipe.domain.models import SourceFile
from buildpipe.synth.naming import resolve_bundle_id, sanitize_project_name
from buildpipe.synth.synthesizer import SynthesisResult, spec_for_request, synthesize

logger = logging.getLogger(__name__)

# fixed timestamp so the same inputs always give the same bytes
_ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True)
class ExportedArchive:
    filename: str
    content: bytes
    project_name: str
    synthesis: Optional[SynthesisResult] = None


def descriptor_path(project_name: str) -> str:
    return f"{project_name}.xcodeproj/project.pbxproj"


def _write(zf: zipfile.ZipFile, name: str, text: str) -> None:
    info = zipfile.ZipInfo(name, date_time=_ZIP_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    zf.writestr(info, text.encode("utf-8"))


def package(descriptor: str, files: Mapping[str, str], project_name: str) -> bytes:
    """Zip the descriptor and every file under ``<project_name>/``."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        _write(zf, descriptor_path(project_name), descriptor)
        for path in sorted(files):
            _write(zf, f"{project_name}/{path}", files[path])
    return buf.getvalue()


def archive_filename(project_name: str, token: Optional[str] = None) -> str:
    token = token or uuid.uuid4().hex[:12]
    return f"{project_name}-{token}.zip"


def export_project(
    files: Sequence[SourceFile],
    project_name: Optional[str] = None,
    bundle_id: Optional[str] = None,
    development_team: Optional[str] = None,
) -> ExportedArchive:
    name = sanitize_project_name(project_name)
    bundle = resolve_bundle_id(bundle_id)
    result = synthesize(files, spec_for_request(name, bundle, development_team))
    content = package(result.descriptor_text, result.files, name)
    logger.info(
        "Exported %s (%d files, baseline %s, widget=%s)",
        name,
        len(result.included_paths),
        result.deployment_baseline,
        result.widget_target is not None,
    )
    return ExportedArchive(
        filename=archive_filename(name),
        content=content,
        project_name=name,
        synthesis=result,
    )
