"""
Status events emitted by the synchronization commands.

Commands never print; they call an event sink. ``ConsoleRenderer`` turns the
events into log lines and a tqdm progress bar, ``EventCollector`` records them.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from tqdm import tqdm

from crowdsync.logging_config import LOGGER_NAME


class EventKind(Enum):
    FETCH_STARTED = "fetch_started"
    FETCH_FINISHED = "fetch_finished"
    BUILD_STARTED = "build_started"
    BUILD_PROGRESS = "build_progress"
    DOWNLOAD_STARTED = "download_started"
    FILE_WRITTEN = "file_written"
    OMITTED_WITH_SOURCE = "omitted_with_source"
    OMITTED_NO_SOURCE = "omitted_no_source"
    BRANCH_CREATED = "branch_created"
    DIRECTORY_CREATED = "directory_created"
    SOURCE_UPLOADED = "source_uploaded"
    TRANSLATION_UPLOADED = "translation_uploaded"


@dataclass(frozen=True)
class StatusEvent:
    kind: EventKind
    message: str = ""
    progress: Optional[int] = None
    path: Optional[str] = None
    items: Tuple[str, ...] = ()


EventSink = Callable[[StatusEvent], None]


def discard(_event: StatusEvent) -> None:
    return None


class EventCollector:
    """Event sink that keeps every event, in order."""

    def __init__(self):
        self.events: List[StatusEvent] = []

    def __call__(self, event: StatusEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> List[StatusEvent]:
        return [event for event in self.events if event.kind is kind]

    def progress_values(self) -> List[int]:
        return [event.progress for event in self.of_kind(EventKind.BUILD_PROGRESS)]


class ConsoleRenderer:
    """
    Render events for a terminal.

    Args:
        verbose: Enumerate every omitted file under its source.
        plain: Print bare paths of written files and nothing else.
        no_progress: Do not draw the build progress bar.
        ignore_match: Do not report omitted files.
    """

    def __init__(self, verbose: bool = False, plain: bool = False, no_progress: bool = False,
                 ignore_match: bool = False, logger: Optional[logging.Logger] = None):
        self.verbose = verbose
        self.plain = plain
        self.no_progress = no_progress or plain
        self.ignore_match = ignore_match
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._bar: Optional[tqdm] = None
        self._omitted_header_shown = False

    def __call__(self, event: StatusEvent) -> None:
        kind = event.kind
        if kind is EventKind.BUILD_STARTED:
            if not self.plain:
                self.logger.info("✔️ %s", event.message)
            if not self.no_progress:
                self._bar = tqdm(total=100, desc="Building translations", unit="%")
        elif kind is EventKind.BUILD_PROGRESS:
            self._update_progress(event.progress or 0)
        elif kind is EventKind.FILE_WRITTEN:
            if self.plain:
                tqdm.write(event.path or "")
            else:
                self.logger.info("✔️ Extracted: '%s'", event.path)
        elif kind is EventKind.OMITTED_WITH_SOURCE:
            self._render_omitted_with_source(event)
        elif kind is EventKind.OMITTED_NO_SOURCE:
            if self.ignore_match or self.plain:
                return
            self.logger.warning("⚠️ Downloaded translations that have no matching local source:")
            for item in event.items:
                self.logger.warning("  - %s", item)
        elif not self.plain and event.message:
            self.logger.info("%s", event.message)

    def _update_progress(self, progress: int) -> None:
        if self._bar is None:
            if not self.plain:
                self.logger.debug("Building translations: %d%%", progress)
            return
        self._bar.update(max(0, progress - self._bar.n))
        if progress >= 100:
            self.close()

    def _render_omitted_with_source(self, event: StatusEvent) -> None:
        if self.ignore_match or self.plain:
            return
        if not self._omitted_header_shown:
            self.logger.warning("⚠️ Downloaded translations that are not matched by the local configuration:")
            self._omitted_header_shown = True
        self.logger.warning("  - %s (%d)", event.path, len(event.items))
        if self.verbose:
            for item in event.items:
                self.logger.warning("      - %s", item)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def draw_tree(paths: List[str]) -> List[str]:
    """
    Render ``/``-separated paths as the lines of a directory tree.

    Siblings keep the order in which they first appear, so sorted input gives
    a sorted tree.
    """
    root: dict = {}
    for path in paths:
        node = root
        for part in path.strip("/").split("/"):
            node = node.setdefault(part, {})
    lines: List[str] = []
    _draw_level(root, "", lines)
    return lines


def _draw_level(node: dict, indent: str, lines: List[str]) -> None:
    names = list(node)
    for i, name in enumerate(names):
        last = i == len(names) - 1
        lines.append(indent + ("└── " if last else "├── ") + name)
        _draw_level(node[name], indent + ("    " if last else "│   "), lines)
