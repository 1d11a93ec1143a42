"""
Unit tests for converter module (AudioEncoder class).
"""

import pytest
import subprocess
from fractions import Fraction
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch
from mutagen import MutagenError
from batch_encoder.converter import (
    AudioEncoder,
    EncoderError,
    EncoderNotFoundError,
    format_seconds,
)


def _fake_run(calls, returncode=0, stderr="", write_output=True):
    """Build a subprocess.run replacement that records commands."""
    def run(cmd, *args, **kwargs):
        calls.append({'cmd': cmd, 'timeout': kwargs.get('timeout')})
        if write_output and returncode == 0:
            Path(cmd[-1]).write_bytes(b"encoded")
        result = Mock()
        result.returncode = returncode
        result.stdout = ""
        result.stderr = stderr
        return result
    return run


@pytest.fixture
def source_file(temp_dir) -> Path:
    path = temp_dir / "in.flac"
    path.write_bytes(b"fLaC")
    return path


class TestAudioEncoderInitialization:
    """Tests for AudioEncoder initialization."""

    def test_encoder_init_default(self, mock_ffmpeg_available):
        """Test encoder initialization with default values."""
        encoder = AudioEncoder()

        assert encoder.ffmpeg_path == "ffmpeg"
        assert encoder.transcode_timeout == 600
        assert encoder.split_timeout == 600
        assert encoder.write_tags is True

    def test_encoder_init_ffmpeg_not_found(self, monkeypatch):
        """Test that initialization fails when ffmpeg is not found."""
        monkeypatch.setattr("shutil.which", lambda x: None)

        with pytest.raises(EncoderNotFoundError, match="ffmpeg not found"):
            AudioEncoder()

    def test_not_found_is_encoder_error(self, monkeypatch):
        """Test the exception hierarchy."""
        monkeypatch.setattr("shutil.which", lambda x: None)

        with pytest.raises(EncoderError):
            AudioEncoder()

    def test_from_config(self, sample_config, mock_ffmpeg_available):
        """Test building an encoder from the encoder config section."""
        sample_config.set('encoder.transcode_timeout', 120)
        sample_config.set('encoder.write_tags', False)

        encoder = AudioEncoder.from_config(sample_config)

        assert encoder.transcode_timeout == 120
        assert encoder.split_timeout == 600
        assert encoder.write_tags is False


class TestTranscodeFile:
    """Tests for transcode_file method."""

    def test_command_line(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test ffmpeg arguments and timeout for a whole-file transcode."""
        calls = []
        monkeypatch.setattr("subprocess.run", _fake_run(calls))
        encoder = AudioEncoder(transcode_timeout=42)
        output = temp_dir / "out" / "nested" / "in.mp3"

        encoder.transcode_file(source_file, output, ['-codec:a', 'libmp3lame', '-q:a', 0])

        assert calls[0]['cmd'] == [
            'ffmpeg', '-hide_banner', '-nostdin', '-y',
            '-i', str(source_file),
            '-codec:a', 'libmp3lame', '-q:a', '0',
            str(output),
        ]
        assert calls[0]['timeout'] == 42
        assert output.exists()

    def test_input_not_found(self, mock_ffmpeg_available, temp_dir):
        """Test transcoding a missing file."""
        encoder = AudioEncoder()

        with pytest.raises(EncoderError, match="Input file not found"):
            encoder.transcode_file(temp_dir / "missing.flac", temp_dir / "out.mp3", [])

    def test_nonzero_exit(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that ffmpeg failures carry the stderr tail."""
        calls = []
        monkeypatch.setattr(
            "subprocess.run", _fake_run(calls, returncode=1, stderr="line one\nInvalid data found\n")
        )
        encoder = AudioEncoder()

        with pytest.raises(EncoderError, match="code 1: line one\nInvalid data found"):
            encoder.transcode_file(source_file, temp_dir / "out.mp3", [])

    def test_timeout(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that an expired timeout surfaces as EncoderError."""
        def run(cmd, *args, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs['timeout'])

        monkeypatch.setattr("subprocess.run", run)
        encoder = AudioEncoder(transcode_timeout=5)

        with pytest.raises(EncoderError, match="timed out after 5s"):
            encoder.transcode_file(source_file, temp_dir / "out.mp3", [])

    def test_executable_vanished(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that a missing executable at run time is EncoderNotFoundError."""
        def run(cmd, *args, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr("subprocess.run", run)
        encoder = AudioEncoder()

        with pytest.raises(EncoderNotFoundError):
            encoder.transcode_file(source_file, temp_dir / "out.mp3", [])

    def test_missing_output(self, mock_ffmpeg_available, mock_ffmpeg_success, source_file, temp_dir):
        """Test success exit without an output file."""
        encoder = AudioEncoder()

        with pytest.raises(EncoderError, match="output file not found"):
            encoder.transcode_file(source_file, temp_dir / "out.mp3", [])

    def test_empty_output(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test success exit with a zero-byte output file."""
        def run(cmd, *args, **kwargs):
            Path(cmd[-1]).write_bytes(b"")
            return Mock(returncode=0, stdout="", stderr="")

        monkeypatch.setattr("subprocess.run", run)
        encoder = AudioEncoder()

        with pytest.raises(EncoderError, match="empty"):
            encoder.transcode_file(source_file, temp_dir / "out.mp3", [])


class TestSplitCueTrack:
    """Tests for split_cue_track method."""

    METADATA = {
        'title': 'First Song',
        'artist': 'Test Artist',
        'album': 'Test Album',
        'track': '1',
        'date': '',
    }

    def test_bounded_track(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test -ss/-to placement and stream mapping."""
        calls = []
        monkeypatch.setattr("subprocess.run", _fake_run(calls))
        encoder = AudioEncoder(split_timeout=30, write_tags=False)
        output = temp_dir / "01-First Song.mp3"

        encoder.split_cue_track(
            source_file, output, Fraction(0), Fraction(210), ['-q:a', '0'], self.METADATA
        )

        assert calls[0]['cmd'] == [
            'ffmpeg', '-hide_banner', '-nostdin', '-y',
            '-i', str(source_file),
            '-ss', '0.000000',
            '-to', '210.000000',
            '-map', '0:a', '-map_metadata', '-1',
            '-q:a', '0',
            str(output),
        ]
        assert calls[0]['timeout'] == 30

    def test_open_ended_track(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that the last track has no -to."""
        calls = []
        monkeypatch.setattr("subprocess.run", _fake_run(calls))
        encoder = AudioEncoder(write_tags=False)

        encoder.split_cue_track(
            source_file, temp_dir / "02.mp3", Fraction(210), None, [], self.METADATA
        )

        cmd = calls[0]['cmd']
        assert '-to' not in cmd
        assert cmd[cmd.index('-ss') + 1] == '210.000000'

    def test_writes_tags(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that non-empty metadata values are written with mutagen."""
        monkeypatch.setattr("subprocess.run", _fake_run([]))
        audio = MagicMock()
        audio.tags = None
        encoder = AudioEncoder()
        output = temp_dir / "01.mp3"

        with patch("mutagen.File", return_value=audio) as mock_file:
            encoder.split_cue_track(source_file, output, 0, 10, [], self.METADATA)

        mock_file.assert_called_once_with(output, easy=True)
        audio.add_tags.assert_called_once()
        audio.__setitem__.assert_any_call('title', 'First Song')
        audio.__setitem__.assert_any_call('artist', 'Test Artist')
        audio.__setitem__.assert_any_call('album', 'Test Album')
        audio.__setitem__.assert_any_call('tracknumber', '1')
        assert 'date' not in [call.args[0] for call in audio.__setitem__.call_args_list]
        audio.save.assert_called_once()

    def test_unsupported_container_is_left_untagged(
        self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir
    ):
        """Test that mutagen returning None is not an error."""
        monkeypatch.setattr("subprocess.run", _fake_run([]))
        encoder = AudioEncoder()

        with patch("mutagen.File", return_value=None):
            encoder.split_cue_track(source_file, temp_dir / "01.wav", 0, 10, [], self.METADATA)

    def test_tag_save_failure(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that mutagen failures become EncoderError."""
        monkeypatch.setattr("subprocess.run", _fake_run([]))
        audio = MagicMock()
        audio.save.side_effect = MutagenError("disk full")
        encoder = AudioEncoder()

        with patch("mutagen.File", return_value=audio):
            with pytest.raises(EncoderError, match="Could not write tags"):
                encoder.split_cue_track(source_file, temp_dir / "01.mp3", 0, 10, [], self.METADATA)

    def test_write_tags_disabled(self, mock_ffmpeg_available, monkeypatch, source_file, temp_dir):
        """Test that tagging can be turned off."""
        monkeypatch.setattr("subprocess.run", _fake_run([]))
        encoder = AudioEncoder(write_tags=False)

        with patch("mutagen.File") as mock_file:
            encoder.split_cue_track(source_file, temp_dir / "01.mp3", 0, 10, [], self.METADATA)

        mock_file.assert_not_called()


class TestGetVersion:
    """Tests for get_version method."""

    def test_first_line(self, mock_ffmpeg_available, monkeypatch):
        monkeypatch.setattr(
            "subprocess.run",
            lambda *a, **k: Mock(returncode=0, stdout="ffmpeg version 6.1\nbuilt with gcc\n", stderr="")
        )

        assert AudioEncoder().get_version() == "ffmpeg version 6.1"

    def test_failure_returns_none(self, mock_ffmpeg_available, monkeypatch):
        monkeypatch.setattr(
            "subprocess.run", lambda *a, **k: Mock(returncode=1, stdout="", stderr="boom")
        )

        assert AudioEncoder().get_version() is None


class TestFormatSeconds:
    """Tests for format_seconds."""

    @pytest.mark.parametrize("value,expected", [
        (0, "0.000000"),
        (Fraction(210), "210.000000"),
        (Fraction(70) + Fraction(37, 75), "70.493333"),
        (1.5, "1.500000"),
    ])
    def test_format(self, value, expected):
        assert format_seconds(value) == expected
