"""Language code override tables (project-level and file-level)."""
from typing import Dict, Optional

# Placeholder kinds that can be remapped, keyed by the names used both in the
# config file and in the server's project settings.
NAME = "name"
TWO_LETTERS_CODE = "two_letters_code"
THREE_LETTERS_CODE = "three_letters_code"
LOCALE = "locale"
LOCALE_WITH_UNDERSCORE = "locale_with_underscore"
ANDROID_CODE = "android_code"
OSX_CODE = "osx_code"
OSX_LOCALE = "osx_locale"

PLACEHOLDER_KINDS = (
    NAME,
    TWO_LETTERS_CODE,
    THREE_LETTERS_CODE,
    LOCALE,
    LOCALE_WITH_UNDERSCORE,
    ANDROID_CODE,
    OSX_CODE,
    OSX_LOCALE,
)


class LanguageMapping:
    """
    Table of ``placeholder kind -> language id -> replacement``.

    Instances are never mutated after construction; ``merge`` returns a new
    table.
    """

    def __init__(self, mapping: Optional[Dict[str, Dict[str, str]]] = None):
        self._mapping: Dict[str, Dict[str, str]] = {
            kind: dict(values) for kind, values in (mapping or {}).items() if values
        }

    @classmethod
    def from_config(cls, config_mapping: Optional[Dict[str, Dict[str, str]]]) -> "LanguageMapping":
        """Build from the config file layout: ``{kind: {language_id: value}}``."""
        if not config_mapping:
            return cls()
        return cls({
            kind: {str(language_id): str(value) for language_id, value in values.items()}
            for kind, values in config_mapping.items()
            if values
        })

    @classmethod
    def from_server(cls, server_mapping: Optional[Dict[str, Dict[str, str]]]) -> "LanguageMapping":
        """Build from the project settings layout: ``{language_id: {kind: value}}``."""
        mapping: Dict[str, Dict[str, str]] = {}
        for language_id, values in (server_mapping or {}).items():
            for kind, value in (values or {}).items():
                mapping.setdefault(kind, {})[language_id] = value
        return cls(mapping)

    @classmethod
    def merge(cls, file_level: Optional["LanguageMapping"],
              project_level: Optional["LanguageMapping"]) -> "LanguageMapping":
        """
        Merge two tables, file-level entries winning per (kind, language id).

        Args:
            file_level: Overrides defined on a file mapping entry.
            project_level: Overrides defined in the project settings.

        Returns:
            LanguageMapping: The effective table.
        """
        merged: Dict[str, Dict[str, str]] = {}
        for table in (project_level, file_level):
            if table is None:
                continue
            for kind, values in table._mapping.items():
                merged.setdefault(kind, {}).update(values)
        return cls(merged)

    def get(self, language_id: str, kind: str) -> Optional[str]:
        return self._mapping.get(kind, {}).get(language_id)

    def get_or_default(self, language_id: str, kind: str, default: str) -> str:
        value = self.get(language_id, kind)
        return value if value is not None else default

    def contains(self, language_id: str, kind: str) -> bool:
        return self.get(language_id, kind) is not None

    def is_empty(self) -> bool:
        return not self._mapping

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {kind: dict(values) for kind, values in self._mapping.items()}

    def __eq__(self, other):
        if not isinstance(other, LanguageMapping):
            return NotImplemented
        return self._mapping == other._mapping

    def __repr__(self):
        return f"LanguageMapping({self._mapping!r})"
