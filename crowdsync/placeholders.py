"""
Placeholder expansion for translation path templates.

Templates combine file-dependent placeholders (resolved from one source file
path) with language-dependent placeholders (resolved from a language's locale
attributes through a language mapping table).
"""
import os
import posixpath
import re
from typing import Dict, Iterable, Iterator, List, Optional

from crowdsync.globbing import glob_to_regex, normalize_pattern
from crowdsync.language_mapping import (
    ANDROID_CODE,
    LanguageMapping,
    LOCALE,
    LOCALE_WITH_UNDERSCORE,
    NAME,
    OSX_CODE,
    OSX_LOCALE,
    THREE_LETTERS_CODE,
    TWO_LETTERS_CODE,
)
from crowdsync.models import Language

PATH_SEPARATOR = "/"
DOUBLE_ASTERISK = "**"

PLACEHOLDER_ORIGINAL_FILE_NAME = "%original_file_name%"
PLACEHOLDER_FILE_NAME = "%file_name%"
PLACEHOLDER_FILE_EXTENSION = "%file_extension%"
PLACEHOLDER_ORIGINAL_PATH = "%original_path%"

LANGUAGE_PLACEHOLDERS: Dict[str, str] = {
    "%language%": NAME,
    "%two_letters_code%": TWO_LETTERS_CODE,
    "%three_letters_code%": THREE_LETTERS_CODE,
    "%locale%": LOCALE,
    "%locale_with_underscore%": LOCALE_WITH_UNDERSCORE,
    "%android_code%": ANDROID_CODE,
    "%osx_code%": OSX_CODE,
    "%osx_locale%": OSX_LOCALE,
}


def _collapse_separators(path: str) -> str:
    return re.sub(r'/{2,}', PATH_SEPARATOR, path)


def anchor(template: str) -> str:
    """Prefix the template with a separator unless it already starts with one."""
    if template.startswith(PATH_SEPARATOR):
        return template
    return PATH_SEPARATOR + template


def replace_double_asterisk(source_pattern: Optional[str], translation: str, source_file: str) -> str:
    """
    Substitute the directories matched by the source ``**`` into the translation.

    Only the first ``**`` of the source pattern is captured and only the first
    ``**`` of the translation template is replaced; any later ``**`` in the
    template is left as is.

    Args:
        source_pattern: The source glob from the configuration.
        translation: The translation template.
        source_file: Path of the matched source, relative to the base path.

    Returns:
        str: The template with the first ``**`` replaced.
    """
    if DOUBLE_ASTERISK not in translation:
        return translation
    relative = normalize_pattern(source_file)
    captured = ""
    if source_pattern and DOUBLE_ASTERISK in source_pattern:
        match = glob_to_regex(source_pattern, capture_double_star=True).match(relative)
        if match and match.group(1):
            captured = match.group(1)
            if match.end(1) == len(relative):
                # a trailing '**' also swallowed the file name
                captured = posixpath.dirname(captured)
            captured = captured.strip(PATH_SEPARATOR)
    return _collapse_separators(translation.replace(DOUBLE_ASTERISK, captured, 1))


def apply_translation_replace(path: str, translation_replace: Optional[Dict[str, str]]) -> str:
    """Apply literal find/replace pairs, in configuration order."""
    for find, replacement in (translation_replace or {}).items():
        path = path.replace(find, replacement)
    return path


class PlaceholderResolver:
    """Expands templates for the languages of one project snapshot."""

    def __init__(self, project_languages: Iterable[Language], base_path: str = ""):
        self.project_languages: List[Language] = list(project_languages)
        self.base_path = base_path

    def to_relative(self, file_path: str) -> str:
        """Return ``file_path`` relative to the base path, ``/``-separated, unanchored."""
        normalized = file_path.replace(os.sep, PATH_SEPARATOR)
        base = (self.base_path or "").replace(os.sep, PATH_SEPARATOR).rstrip(PATH_SEPARATOR)
        if base and normalized.startswith(base + PATH_SEPARATOR):
            normalized = normalized[len(base):]
        return normalized.lstrip(PATH_SEPARATOR)

    def replace_file_dependent(self, template: str, file_path: str) -> str:
        relative = self.to_relative(file_path)
        file_name = posixpath.basename(relative)
        stem, extension = posixpath.splitext(file_name)
        original_path = posixpath.dirname(relative).strip(PATH_SEPARATOR)
        result = (template
                  .replace(PLACEHOLDER_ORIGINAL_FILE_NAME, file_name)
                  .replace(PLACEHOLDER_FILE_NAME, stem)
                  .replace(PLACEHOLDER_FILE_EXTENSION, extension.lstrip("."))
                  .replace(PLACEHOLDER_ORIGINAL_PATH, original_path))
        return _collapse_separators(result)

    def replace_language_dependent(self, template: str, language_mapping: Optional[LanguageMapping],
                                   language: Language) -> str:
        mapping = language_mapping or LanguageMapping()
        result = template
        for placeholder, kind in LANGUAGE_PLACEHOLDERS.items():
            if placeholder in result:
                value = mapping.get_or_default(language.id, kind, language.attribute(kind))
                result = result.replace(placeholder, value)
        return result

    def expand_languages(self, template: str,
                         language_mapping: Optional[LanguageMapping]) -> Iterator[str]:
        """Lazily expand ``template`` once per project language."""
        for language in self.project_languages:
            yield self.replace_language_dependent(template, language_mapping, language)

    def expand(self, template: str, file_path: Optional[str] = None, language: Optional[Language] = None,
               language_mapping: Optional[LanguageMapping] = None) -> Iterator[str]:
        """
        Expand a template into one path, or one path per project language.

        Args:
            template: Template with placeholders; it is anchored with a separator first.
            file_path: Source file used for the file-dependent placeholders.
            language: Single language to expand for; all project languages when None.
            language_mapping: Effective language mapping table.

        Yields:
            str: The expanded paths.
        """
        anchored = anchor(template)
        if file_path is not None:
            anchored = self.replace_file_dependent(anchored, file_path)
        if language is not None:
            yield self.replace_language_dependent(anchored, language_mapping, language)
        else:
            yield from self.expand_languages(anchored, language_mapping)

    def expand_ignore_patterns(self, patterns: Iterable[str],
                               language_mapping: Optional[LanguageMapping] = None) -> List[str]:
        """Expand language placeholders in ignore patterns for every project language."""
        expanded: List[str] = []
        for pattern in patterns:
            if any(placeholder in pattern for placeholder in LANGUAGE_PLACEHOLDERS):
                candidates = self.expand_languages(pattern, language_mapping)
            else:
                candidates = [pattern]
            for candidate in candidates:
                if candidate not in expanded:
                    expanded.append(candidate)
        return expanded
