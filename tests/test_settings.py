"""
Tests for SwcSettings loading and validation.

Layering: defaults < config file < SWC_* environment < overrides.
"""

import json
from dataclasses import FrozenInstanceError
from unittest.mock import patch

import pytest

from swc.config.settings import (
    DEFAULT_SETTINGS,
    ConfigError,
    SwcSettings,
    load_settings,
)


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "swc.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    return _write


def _load(**kwargs):
    kwargs.setdefault("environ", {})
    kwargs.setdefault("resolve_executables", False)
    return load_settings(**kwargs)


class TestDefaults:
    def test_defaults(self):
        settings = _load()
        assert settings == DEFAULT_SETTINGS
        assert settings.downloader_path == "yt-dlp"
        assert settings.transcoder_path == "ffmpeg"
        assert settings.max_concurrent_jobs == 2
        assert settings.retry_limit == 1
        assert settings.transient_exit_codes == (1,)
        assert settings.overwrite_existing is False

    def test_settings_are_immutable(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_SETTINGS.retry_limit = 5

    def test_effective_workspace_root(self, tmp_path):
        assert DEFAULT_SETTINGS.effective_workspace_root
        custom = DEFAULT_SETTINGS.with_updates(workspace_root=str(tmp_path))
        assert custom.effective_workspace_root == str(tmp_path)


class TestLayering:
    def test_config_file(self, config_file):
        path = config_file({"max_concurrent_jobs": 4, "output_dir": "/music"})
        settings = _load(config_path=path)
        assert settings.max_concurrent_jobs == 4
        assert settings.output_dir == "/music"

    def test_environment_beats_file(self, config_file):
        path = config_file({"max_concurrent_jobs": 4})
        settings = _load(config_path=path, environ={"SWC_MAX_CONCURRENT_JOBS": "6"})
        assert settings.max_concurrent_jobs == 6

    def test_overrides_beat_environment(self):
        settings = _load(
            environ={"SWC_RETRY_LIMIT": "3"},
            overrides={"retry_limit": 0, "output_dir": None},
        )
        assert settings.retry_limit == 0
        assert settings.output_dir == "."

    def test_unrelated_environment_ignored(self):
        settings = _load(environ={"SWC_NOT_A_SETTING": "x", "PATH": "/bin"})
        assert settings == DEFAULT_SETTINGS

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("1", True),
        ("off", False),
    ])
    def test_boolean_environment_values(self, raw, expected):
        settings = _load(environ={"SWC_OVERWRITE_EXISTING": raw})
        assert settings.overwrite_existing is expected

    def test_exit_code_list_from_environment(self):
        settings = _load(environ={"SWC_TRANSIENT_EXIT_CODES": "1, 101"})
        assert settings.transient_exit_codes == (1, 101)

    def test_empty_workspace_root_means_default(self):
        settings = _load(environ={"SWC_WORKSPACE_ROOT": ""})
        assert settings.workspace_root is None


class TestErrors:
    def test_unknown_key_in_file(self, config_file):
        path = config_file({"max_jobs": 3})
        with pytest.raises(ConfigError) as exc_info:
            _load(config_path=path)
        assert exc_info.value.key == "max_jobs"

    def test_invalid_value(self):
        with pytest.raises(ConfigError) as exc_info:
            _load(environ={"SWC_RETRY_LIMIT": "many"})
        assert exc_info.value.key == "retry_limit"
        assert str(exc_info.value).startswith("retry_limit:")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            _load(config_path=str(tmp_path / "missing.json"))

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "swc.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            _load(config_path=str(path))

    def test_file_must_hold_object(self, config_file):
        with pytest.raises(ConfigError, match="JSON object"):
            _load(config_path=config_file([1, 2]))

    @pytest.mark.parametrize("key,value", [
        ("max_concurrent_jobs", 0),
        ("download_timeout_seconds", 0),
        ("transcode_timeout_seconds", -1),
        ("retry_limit", -1),
        ("retry_backoff_seconds", -0.5),
        ("diagnostic_tail_lines", 0),
        ("downloader_path", ""),
    ])
    def test_out_of_range_values(self, key, value):
        with pytest.raises(ConfigError) as exc_info:
            SwcSettings.from_dict({key: value})
        assert exc_info.value.key == key

    def test_boolean_is_not_an_integer(self):
        with pytest.raises(ConfigError):
            SwcSettings.from_dict({"retry_limit": True})


class TestExecutableResolution:
    def test_bare_name_resolved_on_path(self):
        with patch("shutil.which", side_effect=lambda name: f"/opt/bin/{name}"):
            settings = load_settings(environ={})
        assert settings.downloader_path == "/opt/bin/yt-dlp"
        assert settings.transcoder_path == "/opt/bin/ffmpeg"

    def test_unresolved_name_kept(self):
        with patch("shutil.which", return_value=None):
            settings = load_settings(environ={})
        assert settings.downloader_path == "yt-dlp"

    def test_explicit_path_not_looked_up(self, tmp_path):
        tool = str(tmp_path / "yt-dlp")
        with patch("shutil.which") as which:
            settings = load_settings(
                environ={},
                overrides={"downloader_path": tool, "transcoder_path": tool},
            )
        which.assert_not_called()
        assert settings.downloader_path == tool


class TestSerialization:
    def test_to_dict_round_trips_through_from_dict(self):
        settings = DEFAULT_SETTINGS.with_updates(retry_limit=3, transient_exit_codes=(1, 2))
        assert SwcSettings.from_dict(settings.to_dict()) == settings
