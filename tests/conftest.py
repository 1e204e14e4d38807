import json
import os
import zipfile

import httpx
import pytest

from crowdsync.app_config import AppConfig
from crowdsync.models import (
    AccessLevel,
    FileMappingEntry,
    Language,
    ProjectSnapshot,
)

UKRAINIAN = Language(id="uk", name="Ukrainian", two_letters_code="uk", three_letters_code="ukr",
                     locale="uk-UA", android_code="uk-rUA", osx_code="uk.lproj", osx_locale="uk")
FRENCH = Language(id="fr", name="French", two_letters_code="fr", three_letters_code="fra",
                  locale="fr-FR", android_code="fr-rFR", osx_code="fr.lproj", osx_locale="fr")
GERMAN = Language(id="de", name="German", two_letters_code="de", three_letters_code="deu",
                  locale="de-DE", android_code="de-rDE", osx_code="de.lproj", osx_locale="de")
PORTUGUESE_BR = Language(id="pt-BR", name="Portuguese, Brazilian", two_letters_code="pt", three_letters_code="por",
                         locale="pt-BR", android_code="pt-rBR", osx_code="pt-BR.lproj", osx_locale="pt_BR")
# in-context pseudo-language
ACHOLI = Language(id="ach", name="Acholi", two_letters_code="ach", three_letters_code="ach",
                  locale="ach-UG", android_code="ach-rUG", osx_code="ach.lproj", osx_locale="ach")


class TempProject:
    """A throwaway local project tree."""

    def __init__(self, base_path):
        self.base_path = str(base_path)

    def add_file(self, relative, content="Hello, World!"):
        path = os.path.join(self.base_path, *relative.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def path(self, relative):
        return os.path.join(self.base_path, *relative.split("/"))

    def read(self, relative):
        with open(self.path(relative), encoding="utf-8") as f:
            return f.read()

    def listing(self):
        """Every file under the base path, relative and ``/``-separated."""
        found = []
        for root, _dirs, filenames in os.walk(self.base_path):
            for filename in filenames:
                relative = os.path.relpath(os.path.join(root, filename), self.base_path)
                found.append(relative.replace(os.sep, "/"))
        return sorted(found)


@pytest.fixture
def languages():
    return [UKRAINIAN, FRENCH, GERMAN, PORTUGUESE_BR]


@pytest.fixture
def make_snapshot():
    """Factory for project snapshots; target languages default to every given language."""
    def factory(languages=(UKRAINIAN,), targets=None, access_level=AccessLevel.MANAGER, **kwargs):
        languages = tuple(languages)
        target_ids = tuple(targets) if targets is not None else tuple(language.id for language in languages)
        return ProjectSnapshot(
            project_id=kwargs.pop("project_id", 42),
            target_language_ids=target_ids,
            supported_languages=languages,
            access_level=access_level,
            **kwargs,
        )
    return factory


@pytest.fixture
def project(tmp_path):
    base = tmp_path / "project"
    base.mkdir()
    return TempProject(base)


@pytest.fixture
def make_config():
    def factory(base_path, files, **kwargs):
        entries = [entry if isinstance(entry, FileMappingEntry) else FileMappingEntry(**entry) for entry in files]
        return AppConfig(
            project_id=kwargs.pop("project_id", 42),
            api_token=kwargs.pop("api_token", "token"),
            base_url=kwargs.pop("base_url", "https://api.crowdin.com"),
            base_path=str(base_path),
            preserve_hierarchy=kwargs.pop("preserve_hierarchy", False),
            files=entries,
            poll_interval=kwargs.pop("poll_interval", 0),
            **kwargs,
        )
    return factory


@pytest.fixture
def make_zip(tmp_path):
    """Write a ZIP archive from ``{archive path: text}`` and return its path."""
    counter = {"n": 0}

    def factory(entries):
        counter["n"] += 1
        path = os.path.join(str(tmp_path), f"fixture{counter['n']}.zip")
        with zipfile.ZipFile(path, "w") as archive:
            for name, content in entries.items():
                archive.writestr(name, content)
        return path
    return factory


@pytest.fixture
def json_response():
    def factory(data, status_code=200):
        return httpx.Response(status_code, content=json.dumps(data).encode("utf-8"),
                              headers={"Content-Type": "application/json"})
    return factory
