"""Upload of local sources and translations to the remote project."""
import logging
import os
import posixpath
import time
from typing import Any, Callable, Dict, List, Optional

from crowdsync.client import CrowdinClient
from crowdsync.errors import (
    AccessDeniedError,
    ConfigurationError,
    ExistsResponseError,
    RemoteApiError,
    WaitResponseError,
)
from crowdsync.events import EventKind, EventSink, StatusEvent, discard
from crowdsync.models import FileMappingEntry, ProjectSnapshot, RemoteBranch, RemoteDirectory
from crowdsync.placeholders import PATH_SEPARATOR, PlaceholderResolver
from crowdsync.project_files import build_directory_paths, build_file_paths, directories_in_branch
from crowdsync.translation_mapping import find_sources, iter_expected_translations

logger = logging.getLogger(__name__)

DIRECTORY_ATTEMPTS = 5
DIRECTORY_WAIT = 0.5


def common_directory_prefix(relative_paths: List[str]) -> str:
    """
    Longest directory prefix shared by every path, with a trailing separator.

    Returns an empty string when the paths share no directory.
    """
    directories = [posixpath.dirname(path) for path in relative_paths]
    if not directories or any(not directory for directory in directories):
        return ""
    common = posixpath.commonpath(directories)
    return common + PATH_SEPARATOR if common else ""


def remote_path_for(entry: FileMappingEntry, relative_source: str, prefix: str,
                    resolver: PlaceholderResolver) -> str:
    """Remote path of a local source, e.g. ``/folder/second.po``."""
    if entry.dest:
        remote = resolver.replace_file_dependent(entry.dest, relative_source)
    else:
        remote = relative_source[len(prefix):] if prefix and relative_source.startswith(prefix) \
            else relative_source
    return PATH_SEPARATOR + remote.replace("\\", PATH_SEPARATOR).strip(PATH_SEPARATOR)


def _source_prefix(relatives: List[str], preserve_hierarchy: bool) -> str:
    return "" if preserve_hierarchy else common_directory_prefix(relatives)


def _read_bytes(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


class RemoteTree:
    """
    Directory ids of one branch (or of the project root), by remote path.

    Missing directories are created on demand. A directory that already exists
    on the server is looked up again; a concurrent creation is waited out a
    bounded number of times.
    """

    def __init__(self, client: CrowdinClient, directories, branch_id: Optional[int] = None,
                 emit: EventSink = discard, sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.branch_id = branch_id
        self.emit = emit
        self.sleep = sleep
        self.ids: Dict[str, int] = {}
        self._index(directories)

    def _index(self, directories) -> None:
        in_branch = directories_in_branch(directories, self.branch_id)
        self.ids = {path: directory_id for directory_id, path in build_directory_paths(in_branch).items()}

    def directory_id(self, remote_directory: str) -> Optional[int]:
        """Id of ``remote_directory`` (e.g. ``/a/b``), creating missing levels."""
        segments = [s for s in remote_directory.split(PATH_SEPARATOR) if s]
        parent_id = None
        current = ""
        for segment in segments:
            current += PATH_SEPARATOR + segment
            if current not in self.ids:
                self.ids[current] = self._create(segment, parent_id, current).id
            parent_id = self.ids[current]
        return parent_id

    def _create(self, name: str, parent_id: Optional[int], path: str) -> RemoteDirectory:
        branch_id = self.branch_id if parent_id is None else None
        for attempt in range(1, DIRECTORY_ATTEMPTS + 1):
            try:
                directory = self.client.add_directory(name, directory_id=parent_id, branch_id=branch_id)
            except ExistsResponseError:
                self._index(self.client.list_directories())
                if path in self.ids:
                    logger.debug("Directory '%s' already exists", path)
                    return RemoteDirectory(id=self.ids[path], name=name, directory_id=parent_id,
                                           branch_id=branch_id)
                raise
            except WaitResponseError:
                if attempt >= DIRECTORY_ATTEMPTS:
                    raise
                logger.debug("Directory '%s' is being created elsewhere; waiting (Attempt %d/%d)",
                             path, attempt, DIRECTORY_ATTEMPTS)
                self.sleep(DIRECTORY_WAIT * attempt)
                continue
            self.emit(StatusEvent(EventKind.DIRECTORY_CREATED, f"Directory '{path}' created", path=path))
            return directory
        raise RemoteApiError(None, f"Could not create directory '{path}'")


def ensure_branch(client: CrowdinClient, snapshot: ProjectSnapshot, name: str,
                  emit: EventSink = discard) -> RemoteBranch:
    """Return the branch ``name``, creating it when the project has none."""
    branch = snapshot.find_branch_by_name(name)
    if branch is not None:
        return branch
    try:
        branch = client.add_branch(name)
    except ExistsResponseError:
        for existing in client.list_branches():
            if existing.name == name:
                return existing
        raise
    emit(StatusEvent(EventKind.BRANCH_CREATED, f"Branch '{name}' created", path=name))
    return branch


def upload_sources(config, client: CrowdinClient, branch_name: Optional[str] = None,
                   auto_update: bool = True, emit: EventSink = discard,
                   snapshot: Optional[ProjectSnapshot] = None,
                   sleep: Callable[[float], None] = time.sleep) -> List[str]:
    """
    Upload every configured source file to the project.

    Files already on the server are updated when ``auto_update`` is set and
    skipped otherwise; new files are added with the entry's export pattern.

    Args:
        config: The loaded ``AppConfig``.
        client: Remote access layer.
        branch_name: Upload into this branch, creating it if needed.
        auto_update: Update files that already exist remotely.
        emit: Event sink for status updates.
        snapshot: Already fetched project snapshot; fetched when None.
        sleep: Used while waiting out concurrent directory creation.

    Returns:
        List[str]: Remote paths of the uploaded files, in upload order.
    """
    if snapshot is None:
        emit(StatusEvent(EventKind.FETCH_STARTED, "Fetching project info"))
        snapshot = client.fetch_project_snapshot()
        emit(StatusEvent(EventKind.FETCH_FINISHED, "Fetched project info"))

    branch = ensure_branch(client, snapshot, branch_name, emit) if branch_name else None
    branch_id = branch.id if branch is not None else None

    tree = RemoteTree(client, snapshot.directories, branch_id, emit, sleep)
    in_branch = directories_in_branch(snapshot.directories, branch_id)
    remote_files = build_file_paths(snapshot.files, build_directory_paths(in_branch), branch_id)

    resolver = PlaceholderResolver(snapshot.project_languages, config.base_path)
    uploaded: List[str] = []
    for entry in config.files:
        sources = list(find_sources(entry, config.base_path, resolver, snapshot.language_mapping))
        if not sources:
            logger.warning("⚠️ No sources found for '%s'", entry.source)
            continue
        relatives = [resolver.to_relative(source) for source in sources]
        prefix = _source_prefix(relatives, config.preserve_hierarchy)

        for source, relative in zip(sources, relatives):
            remote_path = remote_path_for(entry, relative, prefix, resolver)
            existing = remote_files.get(remote_path)
            if existing is not None and not auto_update:
                logger.info("Skipping '%s': the file already exists in the project", remote_path)
                continue

            remote_directory, name = posixpath.split(remote_path)
            directory_id = tree.directory_id(remote_directory)
            storage_id = client.upload_storage(name, _read_bytes(source))
            export_options = {"exportPattern": entry.export_pattern}

            if existing is not None:
                client.update_source(existing.id, {"storageId": storage_id, "exportOptions": export_options})
                message = f"File '{remote_path}' updated"
            else:
                request: Dict[str, Any] = {"name": name, "storageId": storage_id}
                if directory_id is not None:
                    request["directoryId"] = directory_id
                elif branch_id is not None:
                    request["branchId"] = branch_id
                request["exportOptions"] = export_options
                client.add_source(request)
                message = f"File '{remote_path}' added"
            uploaded.append(remote_path)
            emit(StatusEvent(EventKind.SOURCE_UPLOADED, message, path=remote_path))
    return uploaded


def upload_translations(config, client: CrowdinClient, language: Optional[str] = None,
                        branch_name: Optional[str] = None, import_eq_suggestions: bool = False,
                        auto_approve_imported: bool = False, emit: EventSink = discard,
                        snapshot: Optional[ProjectSnapshot] = None) -> List[str]:
    """
    Upload the local translations of every configured source.

    Translation paths are computed exactly as for download, so a file written
    by a download is uploaded back against the same remote source.

    Returns:
        List[str]: Local paths of the uploaded translations, relative to the base path.

    Raises:
        AccessDeniedError: The token has no manager access to the project.
        ConfigurationError: Unknown language id or branch name.
    """
    if snapshot is None:
        emit(StatusEvent(EventKind.FETCH_STARTED, "Fetching project info"))
        snapshot = client.fetch_project_snapshot()
        emit(StatusEvent(EventKind.FETCH_FINISHED, "Fetched project info"))

    if not snapshot.is_manager_access:
        raise AccessDeniedError("Manager access to the project is required to upload translations")

    languages = snapshot.project_languages
    if language is not None:
        found = snapshot.find_language_by_id(language)
        if found is None:
            raise ConfigurationError(f"Language '{language}' does not exist in the project")
        languages = [found]

    branch_id = None
    if branch_name:
        branch = snapshot.find_branch_by_name(branch_name)
        if branch is None:
            raise ConfigurationError(f"Branch '{branch_name}' was not found in the project")
        branch_id = branch.id

    in_branch = directories_in_branch(snapshot.directories, branch_id)
    remote_files = build_file_paths(snapshot.files, build_directory_paths(in_branch), branch_id)
    resolver = PlaceholderResolver(snapshot.project_languages, config.base_path)
    project_mapping = snapshot.language_mapping

    uploaded: List[str] = []
    for entry in config.files:
        sources = list(find_sources(entry, config.base_path, resolver, project_mapping))
        relatives = [resolver.to_relative(source) for source in sources]
        prefix = _source_prefix(relatives, config.preserve_hierarchy)

        for source, relative in zip(sources, relatives):
            remote_path = remote_path_for(entry, relative, prefix, resolver)
            remote_file = remote_files.get(remote_path)
            if remote_file is None:
                logger.warning("⚠️ Source '%s' is not in the project; skipping its translations", remote_path)
                continue
            for expected in iter_expected_translations(languages, entry, [source], resolver, project_mapping):
                local = expected.local_path.lstrip(PATH_SEPARATOR)
                local_path = os.path.join(config.base_path, *local.split(PATH_SEPARATOR))
                if not os.path.isfile(local_path):
                    logger.warning("⚠️ Translation '%s' not found", local)
                    continue
                storage_id = client.upload_storage(posixpath.basename(local), _read_bytes(local_path))
                request: Dict[str, Any] = {"storageId": storage_id, "fileId": remote_file.id}
                if import_eq_suggestions:
                    request["importEqSuggestions"] = True
                if auto_approve_imported:
                    request["autoApproveImported"] = True
                client.upload_translations(expected.language_id, request)
                uploaded.append(local)
                emit(StatusEvent(EventKind.TRANSLATION_UPLOADED,
                                 f"Translation '{local}' uploaded for '{expected.language_id}'", path=local))
    return uploaded
