"""
Expected translation paths for local sources.

For every (local source file, target language) pair two paths are computed
from the same translation template:

- the export path, expanded with the project-level language mapping; this is
  where the server places the translation inside the build archive;
- the local path, expanded with the file-level mapping merged over the
  project-level one and passed through ``translation_replace``; this is where
  the translation is written on disk.
"""
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from crowdsync.files import match_glob
from crowdsync.language_mapping import LanguageMapping
from crowdsync.models import FileMappingEntry, Language
from crowdsync.placeholders import (
    PATH_SEPARATOR,
    PlaceholderResolver,
    anchor,
    apply_translation_replace,
    replace_double_asterisk,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectedTranslationPath:
    source_path: str
    language_id: str
    export_path: str
    local_path: str

    @property
    def archive_path(self) -> str:
        """Export path relative to the archive root."""
        return self.export_path.lstrip(PATH_SEPARATOR)


def find_sources(entry: FileMappingEntry, base_path: str, resolver: PlaceholderResolver,
                 project_mapping: Optional[LanguageMapping] = None) -> Iterator[str]:
    """Lazily match the local sources of a file entry, ignore patterns applied."""
    merged_mapping = LanguageMapping.merge(entry.language_mapping(), project_mapping)
    ignores = resolver.expand_ignore_patterns(entry.ignore, merged_mapping)
    return match_glob(base_path, entry.source, ignores)


def iter_expected_translations(
        languages: Iterable[Language],
        entry: FileMappingEntry,
        sources: Iterable[str],
        resolver: PlaceholderResolver,
        project_mapping: Optional[LanguageMapping]
) -> Iterator[ExpectedTranslationPath]:
    """
    Yield the expected translation paths of every source for every language.

    Args:
        languages: Languages to expand for.
        entry: The file mapping entry the sources were matched by.
        sources: Local source paths (absolute, under the resolver's base path).
        resolver: Placeholder resolver.
        project_mapping: Project-level language mapping from the server.

    Yields:
        ExpectedTranslationPath: One value per (language, source).
    """
    merged_mapping = LanguageMapping.merge(entry.language_mapping(), project_mapping)
    template = anchor(entry.translation)
    source_list = list(sources)

    for language in languages:
        project_template = resolver.replace_language_dependent(template, project_mapping, language)
        file_template = resolver.replace_language_dependent(template, merged_mapping, language)

        for source in source_list:
            relative = resolver.to_relative(source)
            export_path = replace_double_asterisk(entry.source, project_template, relative)
            export_path = resolver.replace_file_dependent(export_path, relative)
            local_path = replace_double_asterisk(entry.source, file_template, relative)
            local_path = resolver.replace_file_dependent(local_path, relative)
            local_path = apply_translation_replace(local_path, entry.translation_replace)
            yield ExpectedTranslationPath(
                source_path=relative,
                language_id=language.id,
                export_path=export_path,
                local_path=local_path,
            )


def build_translation_mapping(expected: Iterable[ExpectedTranslationPath],
                              mapping: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Collect expected paths into ``archive path -> local path``.

    When two sources produce the same archive path the first one observed is
    kept and later ones are dropped.

    Args:
        expected: Expected translation paths, in source/language order.
        mapping: Existing mapping to extend (first entries still win).

    Returns:
        Dict[str, str]: Archive-relative export path to separator-anchored
        local path.
    """
    result: Dict[str, str] = mapping if mapping is not None else {}
    for item in expected:
        key = item.archive_path
        if key in result:
            if result[key] != item.local_path:
                logger.debug("Translation path '%s' already mapped to '%s'; dropping '%s' from '%s'",
                             key, result[key], item.local_path, item.source_path)
            continue
        result[key] = item.local_path
    return result


def build_expected_mapping(
        entries: Iterable[FileMappingEntry],
        languages: List[Language],
        base_path: str,
        resolver: PlaceholderResolver,
        project_mapping: Optional[LanguageMapping]
) -> Dict[str, str]:
    """Build the archive-to-local mapping for every configured file entry."""
    mapping: Dict[str, str] = {}
    for entry in entries:
        sources = list(find_sources(entry, base_path, resolver, project_mapping))
        logger.debug("Source pattern '%s' matched %d file(s)", entry.source, len(sources))
        build_translation_mapping(
            iter_expected_translations(languages, entry, sources, resolver, project_mapping),
            mapping,
        )
    return mapping


def list_translations(
        entries: Iterable[FileMappingEntry],
        base_path: str,
        resolver: PlaceholderResolver,
        project_mapping: Optional[LanguageMapping],
        language: Optional[Language] = None,
        files_must_exist: bool = False
) -> List[str]:
    """
    List the local translation paths the configuration expects.

    Args:
        entries: File mapping entries.
        base_path: Local base path.
        resolver: Placeholder resolver bound to the project languages.
        project_mapping: Project-level language mapping.
        language: Restrict to one language.
        files_must_exist: Only list translations present on disk.

    Returns:
        List[str]: Sorted, de-duplicated paths relative to the base path.
    """
    languages = [language] if language is not None else resolver.project_languages
    paths = set()
    for entry in entries:
        sources = find_sources(entry, base_path, resolver, project_mapping)
        for item in iter_expected_translations(languages, entry, sources, resolver, project_mapping):
            relative = item.local_path.lstrip(PATH_SEPARATOR)
            if files_must_exist and not os.path.exists(os.path.join(base_path, relative)):
                continue
            paths.add(relative)
    return sorted(paths)
