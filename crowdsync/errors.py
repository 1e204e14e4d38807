"""Error types and the remote error classification table."""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional


class CrowdsyncError(Exception):
    """Base class for every error the synchronization commands raise."""


class ConfigurationError(CrowdsyncError):
    """Invalid configuration, unknown language id or unknown branch name."""


class AccessDeniedError(CrowdsyncError):
    """The token does not have manager access to the project."""


class RemoteApiError(CrowdsyncError):
    """An unclassified failure returned by the remote API."""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(f"{message} (status {status_code})" if status_code else message)
        self.status_code = status_code
        self.message = message


class ExistsResponseError(RemoteApiError):
    """The object being created already exists on the server."""


class WaitResponseError(RemoteApiError):
    """The server is busy creating the same object; retry later."""


class StorageNotReadyError(RemoteApiError):
    """A freshly uploaded storage object is not visible to the server yet."""


class BuildFailedError(CrowdsyncError):
    """The remote build job finished with a failure status."""


class BuildTimeoutError(CrowdsyncError):
    """The remote build job did not finish before the deadline."""


class BuildCancelledError(CrowdsyncError):
    """Polling was cancelled before the remote build finished."""


class ArchiveError(CrowdsyncError):
    """Writing or extracting the translation archive failed."""


class CleanupError(CrowdsyncError):
    """Temporary download artifacts could not be removed."""


class ErrorOutcome(Enum):
    ALREADY_EXISTS = "already_exists"
    WAIT = "wait"
    STORAGE_NOT_READY = "storage_not_ready"


@dataclass(frozen=True)
class ErrorRule:
    """Maps remote error payloads matching ``predicate`` to ``outcome``."""
    outcome: ErrorOutcome
    predicate: Callable[[Optional[int], str], bool]


def message_contains(*fragments: str) -> Callable[[Optional[int], str], bool]:
    """Build a predicate that matches when the message contains any fragment."""
    def predicate(_code: Optional[int], message: str) -> bool:
        return any(fragment in (message or "") for fragment in fragments)
    return predicate


# NOTE: these match server wording verbatim and break silently if the API
# rephrases its messages. Keep every pattern in this table.
CREATION_RULES: List[ErrorRule] = [
    ErrorRule(ErrorOutcome.ALREADY_EXISTS,
              message_contains("Name must be unique", "This file is currently being updated")),
    ErrorRule(ErrorOutcome.WAIT, message_contains("Already creating directory")),
]


def storage_rules(storage_id: int) -> List[ErrorRule]:
    """Rules for calls that reference the storage object ``storage_id``."""
    return [
        ErrorRule(ErrorOutcome.STORAGE_NOT_READY,
                  message_contains(f"File from storage with id #{storage_id} was not found")),
    ]


def classify_error(status_code: Optional[int], message: str,
                   rules: Iterable[ErrorRule]) -> Optional[ErrorOutcome]:
    """
    Return the outcome of the first rule matching the error, or None.

    Args:
        status_code: HTTP status code of the failed response.
        message: Flattened error message from the response payload.
        rules: Ordered classification rules.

    Returns:
        Optional[ErrorOutcome]: The matched outcome, None for unclassified errors.
    """
    for rule in rules:
        if rule.predicate(status_code, message):
            return rule.outcome
    return None


_OUTCOME_ERRORS = {
    ErrorOutcome.ALREADY_EXISTS: ExistsResponseError,
    ErrorOutcome.WAIT: WaitResponseError,
    ErrorOutcome.STORAGE_NOT_READY: StorageNotReadyError,
}


def error_for(status_code: Optional[int], message: str, rules: Iterable[ErrorRule]) -> RemoteApiError:
    """Build the exception matching the classified outcome of a failed call."""
    outcome = classify_error(status_code, message, rules)
    error_class = _OUTCOME_ERRORS.get(outcome, RemoteApiError)
    return error_class(status_code, message)
