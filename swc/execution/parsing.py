"""
Downloader output parsing.

Downloaders announce the files they produce as free-form text. Parsing
that text is fragile, so it lives here behind a narrow interface:

    parser.feed_stdout(line)
    parser.feed_stderr(line)
    parser.files()      -> produced file paths, in reporting order
    parser.metadata()   -> title, format, duration when reported
    parser.error_message() -> the downloader's own error text, if any

The download stage asks the downloader to print tagged lines
(`swc-file`, `swc-meta`) and also understands the classic human-readable
progress lines as a fallback.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FILE_TAG = "swc-file"
META_TAG = "swc-meta"
FIELD_SEPARATOR = "\t"

# yt-dlp stderr: "WARNING: ..." lines are noise, "ERROR: ..." is the message
ERROR_PREFIX = "ERROR:"

_ANSI_ESCAPE_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
_DESTINATION_RE = re.compile(r"^\[[\w:]+\] Destination: (?P<path>.+)$")
_MERGER_RE = re.compile(r'^\[Merger\] Merging formats into "(?P<path>.+)"$')
_ALREADY_RE = re.compile(r"^\[download\] (?P<path>.+) has already been downloaded")

# Intermediate files that never survive post-processing
_FRAGMENT_SUFFIXES = (".part", ".ytdl", ".temp")
_FORMAT_ID_RE = re.compile(r"\.f\d+\.\w+$")


def clean_line(line: str) -> str:
    """Strip ANSI escapes and surrounding whitespace."""
    return _ANSI_ESCAPE_RE.sub("", line).strip()


class DownloadOutputParser(ABC):
    """Interface for extracting results from downloader output."""

    @abstractmethod
    def feed_stdout(self, line: str) -> None:
        pass

    @abstractmethod
    def feed_stderr(self, line: str) -> None:
        pass

    @abstractmethod
    def files(self) -> List[str]:
        pass

    @abstractmethod
    def metadata(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def error_message(self) -> Optional[str]:
        pass


class YtDlpOutputParser(DownloadOutputParser):
    """
    Parser for yt-dlp output.

    Tagged lines (authoritative):
        swc-meta<TAB>ext<TAB>duration<TAB>title
        swc-file<TAB>/abs/path/to/final.ext

    Fallback lines (used only when no tagged file line was seen):
        [download] Destination: /path/file.webm
        [ExtractAudio] Destination: /path/file.mp3
        [Merger] Merging formats into "/path/file.mkv"
        [download] /path/file.webm has already been downloaded
    """

    def __init__(self):
        self._tagged_files: List[str] = []
        self._fallback_files: List[str] = []
        self._metadata: Dict[str, Any] = {}
        self._error: Optional[str] = None

    def feed_stdout(self, line: str) -> None:
        if line.startswith(FILE_TAG + FIELD_SEPARATOR):
            path = line[len(FILE_TAG) + 1:].strip()
            if path and path not in self._tagged_files:
                self._tagged_files.append(path)
            return

        if line.startswith(META_TAG + FIELD_SEPARATOR):
            self._parse_meta(line[len(META_TAG) + 1:])
            return

        self._parse_progress_line(clean_line(line))

    def feed_stderr(self, line: str) -> None:
        text = clean_line(line)
        if text.startswith(ERROR_PREFIX):
            # Keep the first error; later ones are usually consequences
            if self._error is None:
                self._error = text[len(ERROR_PREFIX):].strip()
            return
        # Some builds print progress on stderr
        self._parse_progress_line(text)

    def files(self) -> List[str]:
        if self._tagged_files:
            return list(self._tagged_files)
        return [path for path in self._fallback_files if _is_final_file(path)]

    def metadata(self) -> Dict[str, Any]:
        return dict(self._metadata)

    def error_message(self) -> Optional[str]:
        return self._error

    def _parse_meta(self, payload: str) -> None:
        parts = payload.split(FIELD_SEPARATOR, 2)
        if len(parts) != 3:
            logger.debug(f"[Parser] Ignoring malformed meta line: {payload!r}")
            return
        ext, duration, title = parts
        if ext and ext != "NA":
            self._metadata["format"] = ext
        if duration and duration != "NA":
            try:
                self._metadata["duration"] = float(duration)
            except ValueError:
                pass
        if title and title != "NA":
            self._metadata["title"] = title

    def _parse_progress_line(self, text: str) -> None:
        for pattern in (_MERGER_RE, _DESTINATION_RE, _ALREADY_RE):
            match = pattern.match(text)
            if match:
                path = match.group("path").strip().strip('"')
                if path in self._fallback_files:
                    self._fallback_files.remove(path)
                self._fallback_files.append(path)
                return


def _is_final_file(path: str) -> bool:
    """Per-format streams (`name.f251.webm`) and partials are intermediates."""
    lower = path.lower()
    if lower.endswith(_FRAGMENT_SUFFIXES):
        return False
    return not _FORMAT_ID_RE.search(path)


def parse_probe_output(text: str) -> Dict[str, Any]:
    """
    Parse the JSON document printed by `yt-dlp -j`.

    Playlists print one document per line; the first entry is used.

    Raises:
        ValueError: If no JSON document is present
    """
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from downloader: {e}") from e
        if isinstance(data, dict):
            return data
    raise ValueError("Downloader produced no metadata document")
