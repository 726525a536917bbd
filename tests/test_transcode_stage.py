"""
Tests for the Transcode Stage.

Argument building and pass-through decisions are checked without
processes; runs use a fake transcoder script.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from swc.execution.errors import OutputMissingError, ProcessFailedError, StageErrorKind
from swc.execution.formats import get_format_spec
from swc.execution.results import StageName
from swc.execution.runner import ProcessRunner
from swc.execution.transcode import TranscodeStage


FAKE_TRANSCODER = """
import sys
with open(sys.argv[-1], "wb") as f:
    f.write(b"encoded")
"""

LAZY_TRANSCODER = """
pass
"""

FAILING_TRANSCODER = """
import sys
print("Invalid data found when processing input", file=sys.stderr)
sys.exit(1)
"""


class TestSkipDecision:
    """Source format == target format is a pass-through."""

    def test_same_format_skips(self):
        assert TranscodeStage.should_skip("mp3", "mp3")
        assert TranscodeStage.should_skip(".MP3", "mp3")

    def test_different_format_runs(self):
        assert not TranscodeStage.should_skip("webm", "mp3")

    def test_unknown_source_format_runs(self):
        assert not TranscodeStage.should_skip(None, "mp3")
        assert not TranscodeStage.should_skip("", "mp3")

    def test_skip_never_invokes_runner(self, tmp_path):
        """A skipped transcode returns the input unchanged."""
        runner = Mock(spec=ProcessRunner)
        stage = TranscodeStage(runner, "/usr/bin/ffmpeg", 10)
        source = tmp_path / "A.mp3"
        source.write_bytes(b"audio")

        result = stage.run(source, "mp3")

        runner.run.assert_not_called()
        assert result.skipped
        assert result.succeeded
        assert result.output_paths == [str(source)]

    def test_metadata_format_drives_skip(self, tmp_path):
        """The downloader's reported format wins over the file suffix."""
        runner = Mock(spec=ProcessRunner)
        stage = TranscodeStage(runner, "/usr/bin/ffmpeg", 10)
        source = tmp_path / "A.bin"
        source.write_bytes(b"audio")

        result = stage.run(source, "m4a", source_metadata={"format": "m4a"})

        assert result.skipped
        runner.run.assert_not_called()


class TestBuildArgs:
    """Transcoder command line."""

    def test_audio_target_drops_video(self, tmp_path):
        stage = TranscodeStage(ProcessRunner(), "/usr/bin/ffmpeg", 10)
        spec = get_format_spec("mp3")
        args = stage.build_args(tmp_path / "A.webm", tmp_path / "A.mp3", spec, quality="high")

        assert args[args.index("-i") + 1] == str(tmp_path / "A.webm")
        assert "-vn" in args
        assert args[-1] == str(tmp_path / "A.mp3")
        assert ["-q:a", "0"] == args[args.index("-q:a"):args.index("-q:a") + 2]

    def test_video_target_keeps_video(self, tmp_path):
        stage = TranscodeStage(ProcessRunner(), "/usr/bin/ffmpeg", 10)
        args = stage.build_args(tmp_path / "A.webm", tmp_path / "A.mp4", get_format_spec("mp4"))
        assert "-vn" not in args
        assert "libx264" in args

    def test_title_metadata(self, tmp_path):
        stage = TranscodeStage(ProcessRunner(), "/usr/bin/ffmpeg", 10)
        args = stage.build_args(
            tmp_path / "A.webm", tmp_path / "A.mp3", get_format_spec("mp3"), title="Song"
        )
        assert "title=Song" in args

    def test_never_overwrites_interactively(self, tmp_path):
        stage = TranscodeStage(ProcessRunner(), "/usr/bin/ffmpeg", 10)
        args = stage.build_args(tmp_path / "A.webm", tmp_path / "A.mp3", get_format_spec("mp3"))
        assert "-y" in args
        assert "-nostdin" in args


class TestOutputPath:
    def test_suffix_replaced(self):
        path = TranscodeStage.output_path_for(Path("/w/A.webm"), get_format_spec("mp3"))
        assert path == Path("/w/A.mp3")

    def test_never_equal_to_input(self):
        """Remuxing mkv → mkv-like targets must not write over the input."""
        path = TranscodeStage.output_path_for(Path("/w/A.mkv"), get_format_spec("mkv"))
        assert path != Path("/w/A.mkv")
        assert path.suffix == ".mkv"


@pytest.mark.posix
class TestTranscodeRun:
    """Running against fake transcoders."""

    def test_produces_output(self, make_executable, tmp_path):
        transcoder = make_executable("ffmpeg", FAKE_TRANSCODER)
        source = tmp_path / "A.webm"
        source.write_bytes(b"media")

        result = TranscodeStage(ProcessRunner(), transcoder, 10).run(source, "mp3")

        assert result.stage == StageName.TRANSCODE
        assert result.output_paths == [str(tmp_path / "A.mp3")]
        assert (tmp_path / "A.mp3").read_bytes() == b"encoded"
        assert result.metadata["source_format"] == "webm"

    def test_missing_output(self, make_executable, tmp_path):
        """Exit 0 without the named output is OUTPUT_MISSING."""
        transcoder = make_executable("ffmpeg", LAZY_TRANSCODER)
        source = tmp_path / "A.webm"
        source.write_bytes(b"media")

        with pytest.raises(OutputMissingError) as exc_info:
            TranscodeStage(ProcessRunner(), transcoder, 10).run(source, "mp3")
        assert exc_info.value.kind == StageErrorKind.OUTPUT_MISSING

    def test_transcoder_failure_propagates(self, make_executable, tmp_path):
        transcoder = make_executable("ffmpeg", FAILING_TRANSCODER)
        source = tmp_path / "A.webm"
        source.write_bytes(b"media")

        with pytest.raises(ProcessFailedError) as exc_info:
            TranscodeStage(ProcessRunner(), transcoder, 10).run(source, "mp3")
        assert exc_info.value.stage == "transcode"
        assert "Invalid data" in exc_info.value.diagnostics

    def test_unsupported_target_rejected(self, tmp_path):
        source = tmp_path / "A.webm"
        source.write_bytes(b"media")
        with pytest.raises(ValueError):
            TranscodeStage(ProcessRunner(), "/usr/bin/ffmpeg", 10).run(source, "xyz")
