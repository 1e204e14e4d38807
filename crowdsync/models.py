"""Read models for the remote project and the local file configuration."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from crowdsync.language_mapping import LanguageMapping, LOCALE_WITH_UNDERSCORE

BUILD_STATUS_FINISHED = "finished"
BUILD_STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Language:
    """A supported language and the locale attributes used by placeholders."""
    id: str
    name: str
    two_letters_code: str = ""
    three_letters_code: str = ""
    locale: str = ""
    android_code: str = ""
    osx_code: str = ""
    osx_locale: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Language":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            two_letters_code=data.get("twoLettersCode") or "",
            three_letters_code=data.get("threeLettersCode") or "",
            locale=data.get("locale") or "",
            android_code=data.get("androidCode") or "",
            osx_code=data.get("osxCode") or "",
            osx_locale=data.get("osxLocale") or "",
        )

    def attribute(self, kind: str) -> str:
        """Intrinsic value of this language for a placeholder kind."""
        if kind == LOCALE_WITH_UNDERSCORE:
            return self.locale.replace("-", "_")
        return getattr(self, kind)


@dataclass(frozen=True)
class RemoteBranch:
    id: int
    name: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteBranch":
        return cls(id=data["id"], name=data["name"])


@dataclass(frozen=True)
class RemoteDirectory:
    id: int
    name: str
    directory_id: Optional[int] = None
    branch_id: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteDirectory":
        return cls(
            id=data["id"],
            name=data["name"],
            directory_id=data.get("directoryId"),
            branch_id=data.get("branchId"),
        )


@dataclass(frozen=True)
class RemoteFile:
    id: int
    name: str
    directory_id: Optional[int] = None
    branch_id: Optional[int] = None
    export_pattern: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteFile":
        export_options = data.get("exportOptions") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            directory_id=data.get("directoryId"),
            branch_id=data.get("branchId"),
            export_pattern=export_options.get("exportPattern"),
        )


class AccessLevel(Enum):
    MANAGER = "manager"
    TRANSLATOR = "translator"


@dataclass(frozen=True)
class ProjectSnapshot:
    """
    Remote project state fetched once per command invocation.

    The snapshot is never mutated or refreshed; a new invocation fetches a new
    one.
    """
    project_id: int
    target_language_ids: Tuple[str, ...]
    supported_languages: Tuple[Language, ...]
    access_level: AccessLevel
    language_mapping: Optional[LanguageMapping] = None
    files: Tuple[RemoteFile, ...] = ()
    directories: Tuple[RemoteDirectory, ...] = ()
    branches: Tuple[RemoteBranch, ...] = ()
    in_context_language_id: Optional[str] = None

    @property
    def project_languages(self) -> List[Language]:
        """Supported languages that are also project targets."""
        targets = set(self.target_language_ids)
        return [language for language in self.supported_languages if language.id in targets]

    def project_languages_with_in_context(self) -> List[Language]:
        """
        Project languages plus the in-context pseudo-language, when the project has one.

        Builds export the pseudo-language next to the real targets, so download
        mappings expand over this list.
        """
        languages = self.project_languages
        if self.in_context_language_id is None:
            return languages
        if any(language.id == self.in_context_language_id for language in languages):
            return languages
        for language in self.supported_languages:
            if language.id == self.in_context_language_id:
                return languages + [language]
        return languages

    @property
    def is_manager_access(self) -> bool:
        return self.access_level is AccessLevel.MANAGER

    def find_language_by_id(self, language_id: str, project_only: bool = True) -> Optional[Language]:
        languages = self.project_languages if project_only else self.supported_languages
        for language in languages:
            if language.id == language_id:
                return language
        return None

    def find_branch_by_name(self, name: str) -> Optional[RemoteBranch]:
        for branch in self.branches:
            if branch.name == name:
                return branch
        return None


@dataclass(frozen=True)
class BuildJob:
    id: int
    status: str
    progress: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BuildJob":
        return cls(id=data["id"], status=data.get("status") or "", progress=int(data.get("progress") or 0))

    @property
    def is_finished(self) -> bool:
        return self.status.lower() == BUILD_STATUS_FINISHED.lower()

    @property
    def is_failed(self) -> bool:
        return self.status.lower() == BUILD_STATUS_FAILED.lower()


@dataclass
class FileMappingEntry:
    """One ``files`` entry of the configuration file."""
    source: str
    translation: str
    ignore: List[str] = field(default_factory=list)
    dest: Optional[str] = None
    languages_mapping: Optional[Dict[str, Dict[str, str]]] = None
    translation_replace: Dict[str, str] = field(default_factory=dict)

    @property
    def export_pattern(self) -> str:
        """Translation template with separators normalized for the server."""
        pattern = self.translation.replace("\\", "/")
        while "//" in pattern:
            pattern = pattern.replace("//", "/")
        return pattern

    def language_mapping(self) -> LanguageMapping:
        return LanguageMapping.from_config(self.languages_mapping)
