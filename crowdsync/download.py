"""
Download of project translations.

``synchronize_download`` fetches the project, computes where every expected
translation belongs locally, has the server build an archive, downloads and
extracts it, and copies the matched entries into place.
"""
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from crowdsync import files
from crowdsync.client import CrowdinClient, is_organization
from crowdsync.errors import (
    AccessDeniedError,
    BuildCancelledError,
    BuildFailedError,
    BuildTimeoutError,
    CleanupError,
    ConfigurationError,
)
from crowdsync.events import EventKind, EventSink, StatusEvent, discard
from crowdsync.models import BuildJob, ProjectSnapshot
from crowdsync.placeholders import PATH_SEPARATOR, PlaceholderResolver
from crowdsync.project_files import build_all_project_translations, build_directory_paths
from crowdsync.reconciler import OmissionReport, classify_omitted, reconcile, to_archive_path
from crowdsync.translation_mapping import build_expected_mapping

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_BUILD_TIMEOUT = 600.0


class BuildState(Enum):
    NOT_STARTED = "not_started"
    BUILDING = "building"
    FINISHED = "finished"
    DOWNLOADED = "downloaded"
    ERRORED = "errored"


@dataclass
class DownloadOptions:
    """Filters and switches of one download invocation."""
    language: Optional[str] = None
    branch: Optional[str] = None
    ignore_match: bool = False
    verbose: bool = False
    skip_untranslated_strings: bool = False
    skip_untranslated_files: bool = False
    export_only_approved: bool = False

    def validate(self) -> None:
        if self.skip_untranslated_strings and self.skip_untranslated_files:
            raise ConfigurationError(
                "Options 'skip_untranslated_strings' and 'skip_untranslated_files' cannot be used together")


@dataclass
class DownloadResult:
    written: List[str] = field(default_factory=list)
    omitted: OmissionReport = field(default_factory=OmissionReport)

    @property
    def written_count(self) -> int:
        return len(self.written)

    @property
    def omitted_with_sources(self) -> Dict[str, List[str]]:
        return self.omitted.with_sources

    @property
    def omitted_without_sources(self) -> List[str]:
        return self.omitted.without_sources


def build_request(options: DownloadOptions, organization: bool, language_id: Optional[str] = None,
                  branch_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Build the payload of a translation build request.

    Organization projects filter approvals by a minimum count, other projects
    by the ``exportApprovedOnly`` flag; exactly one of the two is ever sent.
    """
    request: Dict[str, Any] = {}
    if branch_id is not None:
        request["branchId"] = branch_id
    if language_id is not None:
        request["targetLanguageIds"] = [language_id]
    if options.skip_untranslated_strings:
        request["skipUntranslatedStrings"] = True
    if options.skip_untranslated_files:
        request["skipUntranslatedFiles"] = True
    if options.export_only_approved:
        if organization:
            request["exportWithMinApprovalsCount"] = 1
        else:
            request["exportApprovedOnly"] = True
    return request


class BuildOrchestrator:
    """
    Drives one remote build job from trigger to extracted archive.

    Polling waits on ``cancel_event`` between polls, so setting the event from
    another thread stops the loop; the remote build keeps running.

    Args:
        client: Remote access layer.
        emit: Event sink for progress updates.
        poll_interval: Seconds between polls.
        timeout: Seconds after which a build still in progress is abandoned.
        cancel_event: Event that cancels polling when set.
        clock: Monotonic time source.
    """

    def __init__(self, client: CrowdinClient, emit: EventSink = discard,
                 poll_interval: float = DEFAULT_POLL_INTERVAL, timeout: float = DEFAULT_BUILD_TIMEOUT,
                 cancel_event: Optional[threading.Event] = None, clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.emit = emit
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.state = BuildState.NOT_STARTED

    def build(self, request: Dict[str, Any], description: str = "Building translations archive") -> BuildJob:
        try:
            job = self.client.trigger_build(request)
            self.state = BuildState.BUILDING
            self.emit(StatusEvent(EventKind.BUILD_STARTED, description))
            logger.debug("Build #%s started with status '%s'", job.id, job.status)
            job = self._wait_for(job)
        except Exception:
            self.state = BuildState.ERRORED
            raise
        self.state = BuildState.FINISHED
        self.emit(StatusEvent(EventKind.BUILD_PROGRESS, progress=100))
        return job

    def _wait_for(self, job: BuildJob) -> BuildJob:
        deadline = self.clock() + self.timeout
        last_progress = 0
        while not job.is_finished:
            if job.is_failed:
                raise BuildFailedError(f"Build #{job.id} failed on the server")
            if job.progress != last_progress:
                last_progress = job.progress
                self.emit(StatusEvent(EventKind.BUILD_PROGRESS, progress=job.progress))
            if self.clock() >= deadline:
                raise BuildTimeoutError(
                    f"Build #{job.id} did not finish within {self.timeout:g} seconds (last progress {job.progress}%)")
            if self.cancel_event.wait(self.poll_interval):
                raise BuildCancelledError(f"Waiting for build #{job.id} was cancelled")
            job = self.client.poll_build(job.id)
        return job

    def download(self, build_id: int, archive_path: str, extract_dir: str) -> List[str]:
        """Download the build archive and extract it; returns the extracted paths."""
        try:
            url = self.client.resolve_download_url(build_id)
            self.emit(StatusEvent(EventKind.DOWNLOAD_STARTED, "Downloading translations archive"))
            self.client.download_to_file(url, archive_path)
            extracted = files.extract_archive(archive_path, extract_dir)
        except Exception:
            self.state = BuildState.ERRORED
            raise
        self.state = BuildState.DOWNLOADED
        logger.debug("Extracted %d file(s) from build #%s", len(extracted), build_id)
        return extracted


def _temporary_paths(base_path: str) -> Dict[str, str]:
    stamp = str(int(time.time() * 1000))
    return {
        "extract_dir": os.path.join(base_path, stamp),
        "archive": os.path.join(base_path, f"translations{stamp}.zip"),
    }


def _cleanup(paths: Dict[str, str]) -> None:
    """Remove the extraction directory and the archive; each removal is attempted."""
    failures: List[OSError] = []
    for remove, path in ((files.delete_directory, paths["extract_dir"]), (files.delete_file, paths["archive"])):
        try:
            remove(path)
        except OSError as e:
            logger.debug("Could not remove '%s': %s", path, e)
            failures.append(e)
    if failures:
        details = "; ".join(str(failure) for failure in failures)
        raise CleanupError(f"Could not remove temporary download files: {details}") from failures[0]


def synchronize_download(config, options: DownloadOptions, client: CrowdinClient,
                         emit: EventSink = discard, cancel_event: Optional[threading.Event] = None,
                         snapshot: Optional[ProjectSnapshot] = None) -> DownloadResult:
    """
    Download translations and write them next to their local sources.

    Args:
        config: The loaded ``AppConfig``.
        options: Language/branch filters and export switches.
        client: Remote access layer.
        emit: Event sink for status updates.
        cancel_event: Cancels the build poll loop when set.
        snapshot: Already fetched project snapshot; fetched when None.

    Returns:
        DownloadResult: Written destinations and the omission report.

    Raises:
        ConfigurationError: Unknown language id or branch name, or conflicting options.
        AccessDeniedError: The token has no manager access to the project.
    """
    options.validate()

    if snapshot is None:
        emit(StatusEvent(EventKind.FETCH_STARTED, "Fetching project info"))
        snapshot = client.fetch_project_snapshot()
        emit(StatusEvent(EventKind.FETCH_FINISHED, "Fetched project info"))

    if not snapshot.is_manager_access:
        raise AccessDeniedError("Manager access to the project is required to build translations")

    language = None
    if options.language is not None:
        language = snapshot.find_language_by_id(options.language)
        if language is None:
            raise ConfigurationError(f"Language '{options.language}' does not exist in the project")
    branch = None
    if options.branch is not None:
        branch = snapshot.find_branch_by_name(options.branch)
        if branch is None:
            raise ConfigurationError(f"Branch '{options.branch}' was not found in the project")

    base_path = config.base_path
    all_languages = snapshot.project_languages_with_in_context()
    resolver = PlaceholderResolver(all_languages, base_path)
    project_mapping = snapshot.language_mapping
    languages = [language] if language is not None else all_languages

    # Must run before extraction: the archive is unpacked below base_path.
    expected_mapping = build_expected_mapping(config.files, languages, base_path, resolver, project_mapping)
    logger.debug("Expecting %d translation file(s)", len(expected_mapping))

    request = build_request(
        options,
        organization=is_organization(config.base_url),
        language_id=language.id if language is not None else None,
        branch_id=branch.id if branch is not None else None,
    )
    orchestrator = BuildOrchestrator(
        client, emit,
        poll_interval=config.poll_interval,
        timeout=config.build_timeout,
        cancel_event=cancel_event,
    )
    description = (f"Building ZIP archive for language '{language.id}'" if language is not None
                   else "Building ZIP archive with the latest translations")
    job = orchestrator.build(request, description)

    paths = _temporary_paths(base_path)
    result = DownloadResult()
    succeeded = False
    try:
        extracted = orchestrator.download(job.id, paths["archive"], paths["extract_dir"])
        reconciled = reconcile(extracted, expected_mapping, paths["extract_dir"], base_path)
        for source, destination in reconciled.to_write.items():
            files.copy_file(source, destination)
            written = PATH_SEPARATOR + to_archive_path(destination, base_path)
            result.written.append(written)
            emit(StatusEvent(EventKind.FILE_WRITTEN, path=written))

        if reconciled.omitted and not options.ignore_match:
            directory_paths = (build_directory_paths(snapshot.directories) if branch is not None
                               else build_directory_paths(snapshot.directories, snapshot.branches))
            all_translations = build_all_project_translations(
                snapshot.files, directory_paths, branch.id if branch is not None else None,
                resolver, project_mapping, snapshot.branches)
            result.omitted = classify_omitted(reconciled.omitted, all_translations)
            for source, entries in result.omitted.with_sources.items():
                emit(StatusEvent(EventKind.OMITTED_WITH_SOURCE, path=source, items=tuple(entries)))
            if result.omitted.without_sources:
                emit(StatusEvent(EventKind.OMITTED_NO_SOURCE, items=tuple(result.omitted.without_sources)))
        succeeded = True
    finally:
        try:
            _cleanup(paths)
        except CleanupError:
            if succeeded:
                raise
            logger.error("Could not remove temporary download files after a failed download", exc_info=True)

    logger.debug("Wrote %d translation file(s)", result.written_count)
    return result
