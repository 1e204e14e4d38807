import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from crowdsync.placeholders import PATH_SEPARATOR


@dataclass
class ReconcileResult:
    """Extracted archive entries split into files to write and omitted entries."""
    to_write: Dict[str, str] = field(default_factory=dict)
    omitted: List[str] = field(default_factory=list)


@dataclass
class OmissionReport:
    """Omitted entries attributed to a remote source, and those without one."""
    with_sources: Dict[str, List[str]] = field(default_factory=dict)
    without_sources: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.with_sources and not self.without_sources


def to_archive_path(extracted_path: str, extraction_root: str) -> str:
    """Path of an extracted file relative to the extraction root, ``/``-separated."""
    relative = os.path.relpath(extracted_path, extraction_root)
    return relative.replace(os.sep, PATH_SEPARATOR)


def reconcile(extracted_paths: Iterable[str], expected_mapping: Dict[str, str],
              extraction_root: str, base_path: str) -> ReconcileResult:
    """
    Partition extracted archive entries against the expected mapping.

    Args:
        extracted_paths: Absolute paths of the extracted files.
        expected_mapping: Archive-relative export path to separator-anchored
            local path.
        extraction_root: Directory the archive was extracted into.
        base_path: Local base path destinations are joined with.

    Returns:
        ReconcileResult: ``to_write`` maps extracted paths to destinations,
        ordered by destination; ``omitted`` holds the archive paths of every
        other entry.
    """
    to_write: Dict[str, str] = {}
    omitted: List[str] = []
    for extracted in extracted_paths:
        archive_path = to_archive_path(extracted, extraction_root)
        local_path = expected_mapping.get(archive_path)
        if local_path is None:
            omitted.append(archive_path)
            continue
        to_write[extracted] = os.path.join(base_path, *local_path.strip(PATH_SEPARATOR).split(PATH_SEPARATOR))
    ordered = dict(sorted(to_write.items(), key=lambda item: item[1]))
    return ReconcileResult(to_write=ordered, omitted=omitted)


def classify_omitted(omitted: Iterable[str], all_project_translations: Dict[str, List[str]]) -> OmissionReport:
    """
    Attribute omitted archive entries to the remote sources they translate.

    An entry listed among a remote file's translation paths is grouped under
    that file (under every such file, if several claim it); the rest are
    reported as having no known source.

    Args:
        omitted: Archive-relative paths of omitted entries.
        all_project_translations: Remote source path to archive-relative
            translation paths.

    Returns:
        OmissionReport: Grouped entries, sources sorted by path.
    """
    known = {source: set(paths) for source, paths in all_project_translations.items()}
    with_sources: Dict[str, List[str]] = {}
    without_sources: List[str] = []
    for entry in omitted:
        normalized = entry.lstrip(PATH_SEPARATOR)
        found = False
        for source, paths in known.items():
            if normalized in paths:
                found = True
                with_sources.setdefault(source.lstrip(PATH_SEPARATOR), []).append(normalized)
        if not found:
            without_sources.append(normalized)
    return OmissionReport(with_sources=dict(sorted(with_sources.items())), without_sources=without_sources)
