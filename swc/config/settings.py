"""
SwcSettings: the single immutable configuration object for a run.

Layering (later wins):
1. Field defaults
2. JSON config file
3. SWC_* environment variables
4. Explicit overrides (CLI flags)

CRITICAL RULES:
1. Settings are IMMUTABLE once loaded; use with_updates() for a copy
2. Executable locations are resolved here, once, never by the runner
3. Unknown keys and out-of-range values raise ConfigError naming the key
"""

import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = "SWC_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Invalid or unreadable configuration."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


@dataclass(frozen=True)
class SwcSettings:
    """
    Complete, immutable run configuration.

    Attributes:
        downloader_path: Downloader executable (name or path)
        transcoder_path: Transcoder executable (name or path)
        max_concurrent_jobs: Scheduler admission limit
        download_timeout_seconds: Per-attempt download timeout
        transcode_timeout_seconds: Per-attempt transcode timeout
        retry_limit: Retries per stage for transient failures
        retry_backoff_seconds: Pause before a retry
        output_dir: Destination for delivered artifacts
        workspace_root: Parent of job workspaces (None = system temp dir)
        diagnostic_tail_lines: Output lines kept for diagnostics
        termination_grace_seconds: SIGTERM → SIGKILL window
        transient_exit_codes: Downloader exit codes treated as transient
        download_format: Downloader format selector
        overwrite_existing: Overwrite destination files instead of suffixing
    """

    downloader_path: str = "yt-dlp"
    transcoder_path: str = "ffmpeg"
    max_concurrent_jobs: int = 2
    download_timeout_seconds: float = 600.0
    transcode_timeout_seconds: float = 900.0
    retry_limit: int = 1
    retry_backoff_seconds: float = 2.0
    output_dir: str = "."
    workspace_root: Optional[str] = None
    diagnostic_tail_lines: int = 50
    termination_grace_seconds: float = 5.0
    transient_exit_codes: Tuple[int, ...] = field(default=(1,))
    download_format: str = "bestaudio/best"
    overwrite_existing: bool = False

    def validate(self) -> "SwcSettings":
        """Raise ConfigError on the first out-of-range value."""
        if not self.downloader_path:
            raise ConfigError("must not be empty", "downloader_path")
        if not self.transcoder_path:
            raise ConfigError("must not be empty", "transcoder_path")
        if self.max_concurrent_jobs < 1:
            raise ConfigError("must be at least 1", "max_concurrent_jobs")
        if self.download_timeout_seconds <= 0:
            raise ConfigError("must be greater than 0", "download_timeout_seconds")
        if self.transcode_timeout_seconds <= 0:
            raise ConfigError("must be greater than 0", "transcode_timeout_seconds")
        if self.retry_limit < 0:
            raise ConfigError("must be 0 or more", "retry_limit")
        if self.retry_backoff_seconds < 0:
            raise ConfigError("must be 0 or more", "retry_backoff_seconds")
        if self.diagnostic_tail_lines < 1:
            raise ConfigError("must be at least 1", "diagnostic_tail_lines")
        if self.termination_grace_seconds < 0:
            raise ConfigError("must be 0 or more", "termination_grace_seconds")
        if not self.download_format:
            raise ConfigError("must not be empty", "download_format")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["transient_exit_codes"] = list(self.transient_exit_codes)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SwcSettings":
        """
        Build settings from a plain mapping (e.g. parsed JSON).

        Raises:
            ConfigError: Unknown key or value of the wrong type
        """
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, raw in data.items():
            if key not in known:
                raise ConfigError("unknown setting", key)
            values[key] = _coerce(key, raw, cls._field_default(key))
        return cls(**values).validate()

    @classmethod
    def _field_default(cls, key: str) -> Any:
        return getattr(cls, key, None)

    def with_updates(self, **kwargs: Any) -> "SwcSettings":
        """
        Create a new SwcSettings with the given fields replaced.

        None values are ignored so unset CLI flags pass through.
        """
        current = self.to_dict()
        current.update({k: v for k, v in kwargs.items() if v is not None})
        return SwcSettings.from_dict(current)

    def resolve_executables(self) -> "SwcSettings":
        """Resolve bare executable names against PATH, once."""
        return self.with_updates(
            downloader_path=_resolve_executable(self.downloader_path),
            transcoder_path=_resolve_executable(self.transcoder_path),
        )

    @property
    def effective_workspace_root(self) -> str:
        return self.workspace_root or tempfile.gettempdir()


DEFAULT_SETTINGS = SwcSettings()


def _coerce(key: str, raw: Any, default: Any) -> Any:
    """Convert a raw config or environment value to the field's type."""
    try:
        if key == "workspace_root":
            return None if raw in (None, "") else str(raw)
        if key == "transient_exit_codes":
            if isinstance(raw, str):
                raw = [part for part in raw.replace(",", " ").split() if part]
            return tuple(int(code) for code in raw)
        if isinstance(default, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE_VALUES:
                return True
            if text in _FALSE_VALUES:
                return False
            raise ValueError(f"expected a boolean, got {raw!r}")
        if isinstance(default, int):
            if isinstance(raw, bool):
                raise ValueError(f"expected an integer, got {raw!r}")
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value {raw!r} ({e})", key) from e


def _resolve_executable(name: str) -> str:
    """
    Bare names are looked up on PATH; paths are returned unchanged.

    An unresolvable name is returned as given so the runner reports
    LAUNCH_FAILED with the name the user configured.
    """
    if os.sep in name or (os.altsep and os.altsep in name):
        return name
    found = shutil.which(name)
    if found is None:
        logger.warning(f"[Config] Executable '{name}' not found on PATH")
        return name
    return found


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file is not valid JSON: {config_path} ({e})") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {config_path}")
    return data


def _read_environment(environ: Mapping[str, str]) -> Dict[str, str]:
    names = {f.name for f in fields(SwcSettings)}
    values = {}
    for env_key, env_value in environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        key = env_key[len(ENV_PREFIX):].lower()
        if key in names:
            values[key] = env_value
    return values


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    resolve_executables: bool = True,
) -> SwcSettings:
    """
    Load settings from all layers.

    Args:
        config_path: Optional JSON config file
        environ: Environment mapping (defaults to os.environ)
        overrides: Explicit values; None entries are ignored
        resolve_executables: Resolve bare executable names on PATH

    Raises:
        ConfigError: On unreadable files, unknown keys or invalid values
    """
    data: Dict[str, Any] = DEFAULT_SETTINGS.to_dict()

    if config_path is not None:
        data.update(_read_config_file(Path(config_path)))
        logger.debug(f"[Config] Loaded {config_path}")

    data.update(_read_environment(os.environ if environ is None else environ))

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    settings = SwcSettings.from_dict(data)
    if resolve_executables:
        settings = settings.resolve_executables()
    return settings
