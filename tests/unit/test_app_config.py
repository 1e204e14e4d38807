"""Unit tests for the app_config module."""
import os
from unittest.mock import patch

import pytest
import yaml

from crowdsync.app_config import AppConfig, load_app_config
from crowdsync.errors import ConfigurationError
from crowdsync.models import FileMappingEntry


def write_config(directory, data):
    path = os.path.join(str(directory), "crowdin.yml")
    with open(path, "w", encoding="utf-8") as f:
        f.write(data if isinstance(data, str) else yaml.dump(data))
    return path


MINIMAL = {
    "project_id": 42,
    "api_token": "file-token",
    "files": [{"source": "/locales/en/*.po", "translation": "/locales/%two_letters_code%/%original_file_name%"}],
}


@pytest.fixture(autouse=True)
def clean_environment():
    with patch.dict(os.environ, {}, clear=True):
        with patch("crowdsync.app_config.setup_logger") as mock_logger:
            yield mock_logger


class TestAppConfig:
    def test_app_config_creation(self):
        config = AppConfig(
            project_id=1,
            api_token="t",
            base_url="https://api.crowdin.com",
            base_path="/work",
            preserve_hierarchy=True,
            files=[FileMappingEntry(source="*", translation="/%locale%/%original_file_name%")],
        )
        assert config.build_timeout == 600.0
        assert config.poll_interval == 0.1
        assert config.storage_retry_attempts == 3


class TestLoadAppConfig:
    def test_load_minimal_config(self, tmp_path):
        path = write_config(tmp_path, MINIMAL)

        config = load_app_config(path)

        assert config.project_id == 42
        assert config.api_token == "file-token"
        assert config.base_url == "https://api.crowdin.com"
        assert config.base_path == os.path.normpath(str(tmp_path))
        assert config.preserve_hierarchy is False
        assert config.files == [FileMappingEntry(
            source="/locales/en/*.po", translation="/locales/%two_letters_code%/%original_file_name%")]
        assert config.config_file == path

    def test_full_file_entry(self, tmp_path):
        data = dict(MINIMAL, base_path="src", preserve_hierarchy=True, build_timeout=30, poll_interval=1)
        data["files"] = [{
            "source": "**/*.xml",
            "translation": "values-%android_code%/%original_file_name%",
            "ignore": ["/build/**"],
            "dest": "/android/%original_file_name%",
            "languages_mapping": {"android_code": {"uk": "ua"}},
            "translation_replace": {"strings": "messages"},
        }]
        path = write_config(tmp_path, data)

        config = load_app_config(path)

        entry = config.files[0]
        assert config.base_path == os.path.join(str(tmp_path), "src")
        assert config.preserve_hierarchy is True
        assert config.build_timeout == 30.0
        assert config.poll_interval == 1.0
        assert entry.ignore == ["/build/**"]
        assert entry.dest == "/android/%original_file_name%"
        assert entry.language_mapping().get("uk", "android_code") == "ua"
        assert entry.translation_replace == {"strings": "messages"}

    def test_environment_overrides_credentials(self, tmp_path):
        path = write_config(tmp_path, MINIMAL)
        with patch.dict(os.environ, {"CROWDIN_PROJECT_ID": "7", "CROWDIN_PERSONAL_TOKEN": "env-token"}):
            config = load_app_config(path)
        assert config.project_id == 7
        assert config.api_token == "env-token"

    def test_named_environment_variables(self, tmp_path):
        data = {"project_id_env": "MY_PROJECT", "api_token_env": "MY_TOKEN", "files": MINIMAL["files"]}
        path = write_config(tmp_path, data)
        with patch.dict(os.environ, {"MY_PROJECT": "9", "MY_TOKEN": "named"}):
            config = load_app_config(path)
        assert (config.project_id, config.api_token) == (9, "named")

    def test_dotenv_next_to_config_is_loaded(self, tmp_path):
        data = {"files": MINIMAL["files"]}
        path = write_config(tmp_path, data)
        (tmp_path / ".env").write_text("CROWDIN_PROJECT_ID=5\nCROWDIN_PERSONAL_TOKEN=dotenv-token\n")

        config = load_app_config(path)

        assert config.project_id == 5
        assert config.api_token == "dotenv-token"

    def test_config_file_from_environment(self, tmp_path):
        path = write_config(tmp_path, MINIMAL)
        with patch.dict(os.environ, {"CROWDSYNC_CONFIG_FILE": path}):
            config = load_app_config()
        assert config.config_file == path

    def test_overrides_are_merged(self, tmp_path, clean_environment):
        data = dict(MINIMAL, logging={"log_level": "WARNING", "log_to_console": False})
        path = write_config(tmp_path, data)

        config = load_app_config(path, overrides={"logging": {"log_level": "DEBUG"}, "base_url": None})

        clean_environment.assert_called_once_with("DEBUG", None, False)
        assert config.base_url == "https://api.crowdin.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as excinfo:
            load_app_config(str(tmp_path / "missing.yml"))
        assert "not found" in str(excinfo.value)

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path, "files: [unclosed")
        with pytest.raises(ConfigurationError) as excinfo:
            load_app_config(path)
        assert isinstance(excinfo.value.__cause__, yaml.YAMLError)

    def test_empty_file(self, tmp_path):
        path = write_config(tmp_path, "")
        with pytest.raises(ConfigurationError):
            load_app_config(path)

    @pytest.mark.parametrize("data", [
        {"project_id": 1, "api_token": "t"},
        {"project_id": 1, "api_token": "t", "files": []},
        {"project_id": 1, "api_token": "t", "files": [{"source": "*"}]},
        {"project_id": 1, "api_token": "t", "files": MINIMAL["files"], "preserve_hierarchy": "yes"},
    ])
    def test_schema_violations(self, tmp_path, data):
        path = write_config(tmp_path, data)
        with pytest.raises(ConfigurationError) as excinfo:
            load_app_config(path)
        assert "Invalid configuration" in str(excinfo.value)

    def test_missing_credentials(self, tmp_path):
        path = write_config(tmp_path, {"project_id": 1, "files": MINIMAL["files"]})
        with pytest.raises(ConfigurationError) as excinfo:
            load_app_config(path)
        assert "API token" in str(excinfo.value)

    def test_non_numeric_project_id(self, tmp_path):
        path = write_config(tmp_path, dict(MINIMAL, project_id="abc"))
        with pytest.raises(ConfigurationError):
            load_app_config(path)
