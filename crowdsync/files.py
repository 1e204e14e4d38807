"""Local filesystem operations used by the synchronization commands."""
import logging
import os
import shutil
import zipfile
from typing import Iterable, Iterator, List

from crowdsync.errors import ArchiveError
from crowdsync.globbing import glob_to_regex

logger = logging.getLogger(__name__)


def match_glob(base_path: str, pattern: str, ignore_patterns: Iterable[str] = ()) -> Iterator[str]:
    """
    Lazily yield the files under ``base_path`` matching ``pattern``.

    A file is skipped when an ignore pattern matches it or one of its parent
    directories. Files are yielded in a stable, sorted walk order.

    Args:
        base_path (str): Directory the pattern is relative to.
        pattern (str): Source glob.
        ignore_patterns (Iterable[str]): Globs of files or directories to skip.

    Yields:
        str: Absolute paths of matching files.
    """
    regex = glob_to_regex(pattern)
    ignores = [glob_to_regex(ignore) for ignore in ignore_patterns]
    root_path = os.path.abspath(base_path)

    for root, dirs, filenames in os.walk(root_path):
        dirs.sort()
        for filename in sorted(filenames):
            absolute = os.path.join(root, filename)
            relative = os.path.relpath(absolute, root_path).replace(os.sep, '/')
            if not regex.match(relative):
                continue
            if _is_ignored(relative, ignores):
                logger.debug("Ignoring '%s'", relative)
                continue
            yield absolute


def _is_ignored(relative: str, ignores) -> bool:
    if not ignores:
        return False
    parts = relative.split('/')
    candidates = ['/'.join(parts[:i]) for i in range(1, len(parts) + 1)]
    return any(ignore.match(candidate) for ignore in ignores for candidate in candidates)


def write_stream(path: str, chunks: Iterable[bytes]) -> None:
    """Write a byte stream to ``path``, creating parent directories."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    try:
        with open(path, 'wb') as target:
            for chunk in chunks:
                target.write(chunk)
    except OSError as e:
        raise ArchiveError(f"Could not write file '{path}': {e}") from e


def extract_archive(archive_path: str, target_dir: str) -> List[str]:
    """
    Extract a ZIP archive into ``target_dir``.

    Args:
        archive_path (str): The downloaded archive.
        target_dir (str): Directory to extract into; created if missing.

    Returns:
        List[str]: Absolute paths of the extracted files.
    """
    target_root = os.path.abspath(target_dir)
    extracted: List[str] = []
    try:
        os.makedirs(target_root, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                destination = os.path.abspath(os.path.join(target_root, member.filename))
                if os.path.commonpath([target_root, destination]) != target_root:
                    raise ArchiveError(f"Archive entry '{member.filename}' escapes the extraction directory")
                if member.is_dir():
                    continue
                # zipfile sanitizes member names itself; keep the path it actually wrote
                extracted.append(os.path.abspath(archive.extract(member, target_root)))
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Could not extract archive '{archive_path}': {e}") from e
    return extracted


def copy_file(source: str, destination: str) -> None:
    parent = os.path.dirname(destination)
    if parent:
        os.makedirs(parent, exist_ok=True)
    shutil.copyfile(source, destination)


def delete_file(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


def delete_directory(path: str) -> None:
    if os.path.exists(path):
        shutil.rmtree(path)
