"""Remote path index for project directories, branches and files."""
import logging
from typing import Dict, Iterable, List, Optional

from crowdsync.errors import RemoteApiError
from crowdsync.language_mapping import LanguageMapping
from crowdsync.models import RemoteBranch, RemoteDirectory, RemoteFile
from crowdsync.placeholders import (
    DOUBLE_ASTERISK,
    PATH_SEPARATOR,
    PlaceholderResolver,
    anchor,
)

logger = logging.getLogger(__name__)

# Export pattern assumed for remote files that do not report one.
DEFAULT_EXPORT_PATTERN = "/%two_letters_code%/%original_path%/%original_file_name%"


class DirectoryIndexError(RemoteApiError):
    """A directory references a parent or branch missing from the snapshot."""

    def __init__(self, message: str):
        super().__init__(None, message)


def build_branch_paths(branches: Iterable[RemoteBranch]) -> Dict[int, str]:
    return {branch.id: PATH_SEPARATOR + branch.name for branch in branches}


def build_directory_paths(directories: Iterable[RemoteDirectory],
                          branches: Optional[Iterable[RemoteBranch]] = None) -> Dict[int, str]:
    """
    Build the absolute remote path of every directory.

    Parents are resolved iteratively: directories are visited in ascending id
    order, which resolves everything in one pass when parents were created
    before children, and passes repeat until nothing is left. When ``branches``
    is given, top-level directories are prefixed with their branch name.

    Args:
        directories: Directories of the project snapshot.
        branches: Branches of the snapshot, or None to ignore branch roots.

    Returns:
        Dict[int, str]: Directory id to a path such as ``/branch/dir/sub``.

    Raises:
        DirectoryIndexError: A parent or branch id does not resolve.
    """
    branch_paths = build_branch_paths(branches) if branches is not None else None
    pending = {directory.id: directory for directory in directories}
    paths: Dict[int, str] = {}

    while pending:
        progressed = False
        for directory_id in sorted(pending):
            directory = pending[directory_id]
            if directory.directory_id is None:
                prefix = _branch_prefix(directory, branch_paths)
            elif directory.directory_id in paths:
                prefix = paths[directory.directory_id]
            else:
                continue
            paths[directory_id] = prefix + PATH_SEPARATOR + directory.name
            del pending[directory_id]
            progressed = True
        if not progressed:
            unresolved = ", ".join(
                f"#{d.id} (parent #{d.directory_id})" for d in sorted(pending.values(), key=lambda d: d.id)
            )
            raise DirectoryIndexError(f"Directories with unresolved parents: {unresolved}")
    return paths


def _branch_prefix(node, branch_paths: Optional[Dict[int, str]]) -> str:
    if branch_paths is None or node.branch_id is None:
        return ""
    if node.branch_id not in branch_paths:
        raise DirectoryIndexError(f"'{node.name}' (#{node.id}) references unknown branch #{node.branch_id}")
    return branch_paths[node.branch_id]


def build_file_path(remote_file: RemoteFile, directory_paths: Dict[int, str],
                    branch_paths: Optional[Dict[int, str]] = None) -> str:
    """Absolute remote path of a file, e.g. ``/folder/second.po``."""
    if remote_file.directory_id is not None:
        if remote_file.directory_id not in directory_paths:
            raise DirectoryIndexError(
                f"File '{remote_file.name}' (#{remote_file.id}) references unknown directory "
                f"#{remote_file.directory_id}")
        prefix = directory_paths[remote_file.directory_id]
    else:
        prefix = _branch_prefix(remote_file, branch_paths)
    return prefix + PATH_SEPARATOR + remote_file.name


def directories_in_branch(directories: Iterable[RemoteDirectory],
                          branch_id: Optional[int]) -> List[RemoteDirectory]:
    """Directories whose top-level ancestor lives in ``branch_id`` (or in no branch)."""
    directories = list(directories)
    by_id = {directory.id: directory for directory in directories}

    def root_of(directory: RemoteDirectory) -> RemoteDirectory:
        seen = set()
        while directory.directory_id in by_id and directory.id not in seen:
            seen.add(directory.id)
            directory = by_id[directory.directory_id]
        return directory

    return [directory for directory in directories if root_of(directory).branch_id == branch_id]


def build_file_paths(files: Iterable[RemoteFile], directory_paths: Dict[int, str],
                     branch_id: Optional[int] = None) -> Dict[str, RemoteFile]:
    """
    Map the remote paths of the files of one branch (or of no branch) to the files.

    ``directory_paths`` must index the directories of that same branch only.
    """
    paths: Dict[str, RemoteFile] = {}
    for remote_file in files:
        if remote_file.directory_id is None:
            if remote_file.branch_id != branch_id:
                continue
        elif remote_file.directory_id not in directory_paths:
            continue
        paths[build_file_path(remote_file, directory_paths)] = remote_file
    return paths


def build_all_project_translations(
        files: Iterable[RemoteFile],
        directory_paths: Dict[int, str],
        branch_id: Optional[int],
        resolver: PlaceholderResolver,
        project_mapping: Optional[LanguageMapping],
        branches: Optional[Iterable[RemoteBranch]] = None
) -> Dict[str, List[str]]:
    """
    Index every remote file's translation export paths across project languages.

    Args:
        files: Remote files of the snapshot.
        directory_paths: Output of ``build_directory_paths`` (with branch
            prefixes when ``branch_id`` is None).
        branch_id: Only index files of this branch when given.
        resolver: Placeholder resolver bound to the project languages.
        project_mapping: The project-level language mapping.
        branches: Branches used to prefix files at a branch root.

    Returns:
        Dict[str, List[str]]: Remote source path to archive-relative
        translation paths.
    """
    branch_paths = build_branch_paths(branches) if branches is not None and branch_id is None else None
    translations: Dict[str, List[str]] = {}
    for remote_file in files:
        if branch_id is not None and remote_file.branch_id != branch_id:
            continue
        path = build_file_path(remote_file, directory_paths, branch_paths)
        branch_prefix = ""
        in_branch_path = path
        if branch_paths is not None and remote_file.branch_id in branch_paths:
            branch_prefix = branch_paths[remote_file.branch_id]
            in_branch_path = path[len(branch_prefix):]

        pattern = anchor(remote_file.export_pattern or DEFAULT_EXPORT_PATTERN)
        original_path = in_branch_path.rsplit(PATH_SEPARATOR, 1)[0].strip(PATH_SEPARATOR)
        pattern = pattern.replace(DOUBLE_ASTERISK, original_path, 1)
        pattern = resolver.replace_file_dependent(pattern, in_branch_path)

        translations[path] = [
            (branch_prefix + expanded).lstrip(PATH_SEPARATOR)
            for expanded in resolver.expand_languages(pattern, project_mapping)
        ]
    logger.debug("Indexed translations of %d remote file(s)", len(translations))
    return translations
