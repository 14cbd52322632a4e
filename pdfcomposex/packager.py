"""Assemble produced artifacts into a single file or a ZIP archive."""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Dict, Iterable, List, Sequence, Set

from .exceptions import PipelineError
from .types import OutputArtifact, OutputBundle, ZIP_MEDIA_TYPE

LOGGER = logging.getLogger("pdfcomposex.packager")

ARCHIVE_NAME = "converted_files.zip"


def _split_name(name: str) -> tuple[str, str]:
    base, dot, extension = name.rpartition(".")
    if not dot or not base:
        return name, ""
    return base, f".{extension}"


def unique_names(names: Iterable[str]) -> List[str]:
    """Return *names* with duplicates suffixed ``_1``, ``_2``... before the extension."""

    used: Set[str] = set()
    counters: Dict[str, int] = {}
    result: List[str] = []
    for name in names:
        candidate = name
        if candidate in used:
            base, extension = _split_name(name)
            counter = counters.get(name, 0)
            while candidate in used:
                counter += 1
                candidate = f"{base}_{counter}{extension}"
            counters[name] = counter
        used.add(candidate)
        result.append(candidate)
    return result


def build_archive(artifacts: Sequence[OutputArtifact], name: str = ARCHIVE_NAME) -> OutputArtifact:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for artifact in artifacts:
            archive.writestr(artifact.name, artifact.data)
    return OutputArtifact(name=name, data=buffer.getvalue(), media_type=ZIP_MEDIA_TYPE)


def package(artifacts: Sequence[OutputArtifact], *, archive_name: str = ARCHIVE_NAME) -> OutputBundle:
    """Return a single-artifact bundle, or an archive bundle for several artifacts."""

    if not artifacts:
        raise PipelineError("No files processed.")
    if len(artifacts) == 1:
        return OutputBundle(artifacts=list(artifacts), packaging="single")

    renamed = [
        OutputArtifact(name=name, data=artifact.data, media_type=artifact.media_type)
        for artifact, name in zip(artifacts, unique_names(a.name for a in artifacts))
    ]
    archive = build_archive(renamed, archive_name)
    LOGGER.info("Packaged %d files into %s", len(renamed), archive_name)
    return OutputBundle(artifacts=renamed, packaging="archive", archive=archive)


__all__ = ["ARCHIVE_NAME", "unique_names", "build_archive", "package"]
