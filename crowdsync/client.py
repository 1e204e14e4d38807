"""Crowdin API v2 client used by the synchronization commands."""
import logging
import random
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar
from urllib.parse import quote

import httpx

from crowdsync import files
from crowdsync.errors import (
    CREATION_RULES,
    ErrorRule,
    RemoteApiError,
    StorageNotReadyError,
    error_for,
    storage_rules,
)
from crowdsync.language_mapping import LanguageMapping
from crowdsync.models import (
    AccessLevel,
    BuildJob,
    Language,
    ProjectSnapshot,
    RemoteBranch,
    RemoteDirectory,
    RemoteFile,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.crowdin.com"
USER_AGENT = "crowdsync/0.1.0"
PAGE_LIMIT = 500
REQUEST_TIMEOUT = 60.0

# Fields only present in the project response when the token has manager access.
_MANAGER_FIELDS = ("languageMapping", "exportApprovedOnly", "autoSubstitution", "inContext")

_ORGANIZATION_URL = re.compile(r'^https?://(?P<organization>[^./]+)\.api\.crowdin\.com/?$')

T = TypeVar("T")


def get_organization(base_url: Optional[str]) -> Optional[str]:
    """Return the organization name of an enterprise base URL, or None."""
    if not base_url:
        return None
    match = _ORGANIZATION_URL.match(base_url.strip())
    return match.group("organization") if match else None


def is_organization(base_url: Optional[str]) -> bool:
    return get_organization(base_url) is not None


def extract_error_message(response: httpx.Response) -> str:
    """
    Flatten an API error payload into one message.

    Handles both ``{"error": {"code", "message"}}`` and validation payloads
    ``{"errors": [{"error": {"key", "errors": [{"code", "message"}]}}]}``.
    """
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    messages: List[str] = []
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            messages.append(str(error["message"]))
        for item in payload.get("errors") or []:
            inner = item.get("error", {}) if isinstance(item, dict) else {}
            for detail in inner.get("errors") or []:
                if detail.get("message"):
                    messages.append(str(detail["message"]))
    return "; ".join(messages) if messages else (response.text or response.reason_phrase)


class CrowdinClient:
    """
    Synchronous client for one Crowdin project.

    Failed calls raise ``RemoteApiError``, or one of its classified
    subclasses when the error matches the rule table passed for that call.
    """

    def __init__(
        self,
        api_token: str,
        project_id: int,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        storage_retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.project_id = int(project_id)
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.api_url = f"{self.base_url}/api/v2"
        self.storage_retry_attempts = max(1, storage_retry_attempts)
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "User-Agent": USER_AGENT,
        }
        self._http = http_client or httpx.Client(timeout=REQUEST_TIMEOUT)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "CrowdinClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- transport -----------------------------------------------------

    def _request(self, method: str, endpoint: str, *, rules: Iterable[ErrorRule] = (),
                 headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> Dict[str, Any]:
        """Make an authenticated request and return the decoded JSON body."""
        url = f"{self.api_url}{endpoint}"
        logger.debug("Making %s request to %s", method, url)
        request_headers = dict(self._headers)
        if headers:
            request_headers.update(headers)
        try:
            response = self._http.request(method, url, headers=request_headers, **kwargs)
        except httpx.HTTPError as err:
            raise RemoteApiError(None, f"Network error: {err}") from err

        if response.status_code >= 400:
            message = extract_error_message(response)
            logger.debug("%s %s failed with status %s: %s", method, endpoint, response.status_code, message)
            raise error_for(response.status_code, message, rules)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _data(self, method: str, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        return self._request(method, endpoint, **kwargs).get("data") or {}

    def _list_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_params = dict(params or {})
            page_params.update({"limit": PAGE_LIMIT, "offset": offset})
            page = self._request("GET", endpoint, params=page_params).get("data") or []
            items.extend(item.get("data", item) for item in page)
            if len(page) < PAGE_LIMIT:
                break
            offset += PAGE_LIMIT
        return items

    def _with_storage_retry(self, storage_id: int, call: Callable[[List[ErrorRule]], T]) -> T:
        """
        Run ``call``, retrying while the referenced storage is not visible yet.

        Backoff is exponential with jitter; after the last attempt the
        ``StorageNotReadyError`` propagates.
        """
        rules = storage_rules(storage_id)
        for attempt in range(1, self.storage_retry_attempts + 1):
            try:
                return call(rules)
            except StorageNotReadyError:
                if attempt >= self.storage_retry_attempts:
                    logger.error("Storage #%s still not found after %d attempts", storage_id, attempt)
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1)) + random.uniform(0, self.retry_base_delay)
                logger.info("Storage #%s not visible yet; retrying in %.2f seconds (Attempt %d/%d)",
                            storage_id, delay, attempt, self.storage_retry_attempts)
                self._sleep(delay)
        raise RemoteApiError(None, f"Storage #{storage_id} retry loop exited without a result")

    # --- project read model ---------------------------------------------

    def fetch_project_info(self) -> Dict[str, Any]:
        return self._data("GET", f"/projects/{self.project_id}")

    def list_supported_languages(self) -> List[Language]:
        return [Language.from_api(item) for item in self._list_all("/languages")]

    def list_files(self) -> List[RemoteFile]:
        return [RemoteFile.from_api(item) for item in self._list_all(f"/projects/{self.project_id}/files")]

    def list_directories(self) -> List[RemoteDirectory]:
        return [RemoteDirectory.from_api(item)
                for item in self._list_all(f"/projects/{self.project_id}/directories")]

    def list_branches(self) -> List[RemoteBranch]:
        return [RemoteBranch.from_api(item) for item in self._list_all(f"/projects/{self.project_id}/branches")]

    def fetch_project_snapshot(self) -> ProjectSnapshot:
        """Fetch project info, languages and the full file structure."""
        info = self.fetch_project_info()
        is_manager = any(name in info for name in _MANAGER_FIELDS)
        in_context_language_id = None
        if is_manager and info.get("inContext"):
            in_context_language_id = info.get("inContextPseudoLanguageId")
        snapshot = ProjectSnapshot(
            project_id=info.get("id", self.project_id),
            target_language_ids=tuple(info.get("targetLanguageIds") or ()),
            supported_languages=tuple(self.list_supported_languages()),
            access_level=AccessLevel.MANAGER if is_manager else AccessLevel.TRANSLATOR,
            language_mapping=LanguageMapping.from_server(info.get("languageMapping")) if is_manager else None,
            files=tuple(self.list_files()),
            directories=tuple(self.list_directories()),
            branches=tuple(self.list_branches()),
            in_context_language_id=in_context_language_id,
        )
        logger.debug("Fetched project #%s: %d file(s), %d directorie(s), %d branch(es)",
                     snapshot.project_id, len(snapshot.files), len(snapshot.directories), len(snapshot.branches))
        return snapshot

    def list_project_progress(self, language_id: str) -> List[Dict[str, Any]]:
        return self._list_all(f"/projects/{self.project_id}/languages/{language_id}/progress")

    # --- mutations -------------------------------------------------------

    def add_branch(self, name: str) -> RemoteBranch:
        data = self._data("POST", f"/projects/{self.project_id}/branches",
                          json={"name": name}, rules=CREATION_RULES)
        return RemoteBranch.from_api(data)

    def add_directory(self, name: str, directory_id: Optional[int] = None,
                      branch_id: Optional[int] = None) -> RemoteDirectory:
        payload: Dict[str, Any] = {"name": name}
        if directory_id is not None:
            payload["directoryId"] = directory_id
        if branch_id is not None:
            payload["branchId"] = branch_id
        data = self._data("POST", f"/projects/{self.project_id}/directories",
                          json=payload, rules=CREATION_RULES)
        return RemoteDirectory.from_api(data)

    def upload_storage(self, file_name: str, content: bytes) -> int:
        data = self._data(
            "POST", "/storages",
            content=content,
            headers={
                "Crowdin-API-FileName": quote(file_name),
                "Content-Type": "application/octet-stream",
            },
        )
        return data["id"]

    def add_source(self, request: Dict[str, Any]) -> RemoteFile:
        data = self._with_storage_retry(request["storageId"], lambda rules: self._data(
            "POST", f"/projects/{self.project_id}/files", json=request, rules=rules))
        return RemoteFile.from_api(data)

    def update_source(self, file_id: int, request: Dict[str, Any]) -> RemoteFile:
        data = self._with_storage_retry(request["storageId"], lambda rules: self._data(
            "PUT", f"/projects/{self.project_id}/files/{file_id}", json=request, rules=rules))
        return RemoteFile.from_api(data)

    def upload_translations(self, language_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._with_storage_retry(request["storageId"], lambda rules: self._data(
            "POST", f"/projects/{self.project_id}/translations/{language_id}", json=request, rules=rules))

    # --- builds ------------------------------------------------------------

    def trigger_build(self, request: Dict[str, Any]) -> BuildJob:
        data = self._data("POST", f"/projects/{self.project_id}/translations/builds", json=request)
        return BuildJob.from_api(data)

    def poll_build(self, build_id: int) -> BuildJob:
        data = self._data("GET", f"/projects/{self.project_id}/translations/builds/{build_id}")
        return BuildJob.from_api(data)

    def resolve_download_url(self, build_id: int) -> str:
        data = self._data("GET", f"/projects/{self.project_id}/translations/builds/{build_id}/download")
        return data["url"]

    def download_to_file(self, url: str, path: str) -> None:
        """Stream a pre-signed download URL into ``path``."""
        try:
            with self._http.stream("GET", url, headers={"User-Agent": USER_AGENT}) as response:
                if response.status_code >= 400:
                    raise RemoteApiError(response.status_code, f"Download of '{url}' failed")
                files.write_stream(path, response.iter_bytes())
        except httpx.HTTPError as err:
            raise RemoteApiError(None, f"Network error while downloading: {err}") from err
