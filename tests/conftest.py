"""
Shared fixtures and configuration for pytest tests.
"""

import sys
import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator
from unittest.mock import Mock

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from batch_encoder.converter import EncoderError  # noqa: E402


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test outputs.
    Automatically cleaned up after test.
    """
    temp_path = Path(tempfile.mkdtemp(prefix="encoder_test_"))
    try:
        yield temp_path
    finally:
        if temp_path.exists():
            shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def source_root(temp_dir) -> Path:
    """Source root directory."""
    path = temp_dir / "source"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def output_root(temp_dir) -> Path:
    """Empty output directory."""
    path = temp_dir / "output"
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============================================================================
# Sample CUE Sheets and Source Trees
# ============================================================================

TWO_TRACK_CUE = """REM GENRE Rock
REM DATE 1994
PERFORMER "Test Artist"
TITLE "Test Album"
FILE "album.flac" WAVE
  TRACK 01 AUDIO
    TITLE "First Song"
    INDEX 01 00:00:00
  TRACK 02 AUDIO
    TITLE "Second Song"
    PERFORMER "Guest Artist"
    INDEX 00 03:28:50
    INDEX 01 03:30:00
"""

FOUR_TRACK_CUE = """PERFORMER "Band"
TITLE "Live"
FILE "live.flac" WAVE
  TRACK 01 AUDIO
    TITLE "Intro"
    INDEX 01 00:00:00
  TRACK 02 AUDIO
    TITLE "Song A"
    INDEX 01 01:10:37
  TRACK 03 AUDIO
    TITLE "Song B"
    INDEX 01 05:02:74
  TRACK 04 AUDIO
    TITLE "Outro"
    INDEX 01 09:45:00
"""


@pytest.fixture
def two_track_cue_text() -> str:
    return TWO_TRACK_CUE


@pytest.fixture
def four_track_cue_text() -> str:
    return FOUR_TRACK_CUE


@pytest.fixture
def cue_album_dir(source_root) -> Path:
    """
    Album directory with a CUE sheet and its audio image.

    Structure:
        CueAlbum/
            ├── album.cue
            ├── album.flac
            └── cover.jpg
    """
    album = source_root / "CueAlbum"
    album.mkdir(parents=True, exist_ok=True)
    (album / "album.cue").write_text(TWO_TRACK_CUE)
    (album / "album.flac").write_bytes(b"fLaC mock image")
    (album / "cover.jpg").write_bytes(b"\xff\xd8\xff\xe0")
    return album


@pytest.fixture
def plain_album_dir(source_root) -> Path:
    """
    Album directory with plain audio files and artwork in a subdirectory.

    Structure:
        A/
            ├── 01 - One.flac
            ├── 02 - Two.flac
            ├── notes.txt
            └── Scans/
                ├── 03 - Bonus.wav
                └── back.png
    """
    album = source_root / "A"
    (album / "Scans").mkdir(parents=True, exist_ok=True)
    (album / "01 - One.flac").write_bytes(b"mock flac")
    (album / "02 - Two.flac").write_bytes(b"mock flac")
    (album / "notes.txt").write_text("liner notes")
    (album / "Scans" / "03 - Bonus.wav").write_bytes(b"RIFF mock")
    (album / "Scans" / "back.png").write_bytes(b"\x89PNG")
    return album


@pytest.fixture
def four_track_cue_dir(source_root) -> Path:
    """Directory B with one four-track CUE album inside a subdirectory."""
    album = source_root / "B" / "Disc 1"
    album.mkdir(parents=True, exist_ok=True)
    (album / "live.cue").write_text(FOUR_TRACK_CUE)
    (album / "live.flac").write_bytes(b"fLaC mock image")
    return source_root / "B"


# ============================================================================
# Mock Fixtures for External Dependencies
# ============================================================================

class StubEncoder:
    """
    Stand-in for AudioEncoder that writes placeholder files and records calls.
    File names listed in ``fail_on`` raise EncoderError; so do track
    numbers listed in ``fail_tracks``.
    """

    def __init__(self, fail_on=None, fail_tracks=None):
        self.fail_on = set(fail_on or [])
        self.fail_tracks = set(fail_tracks or [])
        self.transcode_calls = []
        self.split_calls = []

    def transcode_file(self, input_path, output_path, ffmpeg_args):
        self.transcode_calls.append((Path(input_path), Path(output_path), list(ffmpeg_args)))
        if Path(input_path).name in self.fail_on:
            raise EncoderError("mock transcode failure")
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(b"encoded")

    def split_cue_track(self, input_path, output_path, start_time, end_time, ffmpeg_args, metadata):
        self.split_calls.append({
            'input_path': Path(input_path),
            'output_path': Path(output_path),
            'start_time': start_time,
            'end_time': end_time,
            'ffmpeg_args': list(ffmpeg_args),
            'metadata': dict(metadata),
        })
        if int(metadata['track']) in self.fail_tracks:
            raise EncoderError("mock split failure")
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(b"encoded track")


@pytest.fixture
def stub_encoder() -> StubEncoder:
    """Encoder stub that succeeds for every file."""
    return StubEncoder()


@pytest.fixture
def mock_ffmpeg_success(monkeypatch):
    """Mock successful ffmpeg execution."""
    def mock_run(*args, **kwargs):
        result = Mock()
        result.returncode = 0
        result.stdout = ""
        result.stderr = ""
        return result

    monkeypatch.setattr("subprocess.run", mock_run)


@pytest.fixture
def mock_ffmpeg_available(monkeypatch):
    """Mock ffmpeg being available in system."""
    monkeypatch.setattr("shutil.which", lambda x: "/usr/bin/ffmpeg" if x == "ffmpeg" else None)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config_dict(source_root) -> dict:
    """Sample configuration dictionary for testing."""
    return {
        'paths': {
            'root_directory': str(source_root),
        },
        'files': {
            'audio_extensions': ['.flac', '.wav', '.mp3', '.cue'],
        },
        'profiles': {
            'mp3': {
                'name': 'MP3 V0',
                'extension': 'mp3',
                'description': 'LAME VBR V0',
                'ffmpeg_args': ['-codec:a', 'libmp3lame', '-q:a', '0'],
            },
            'opus': {
                'name': 'Opus',
                'extension': '.opus',
                'description': 'Opus 160k',
                'ffmpeg_args': ['-codec:a', 'libopus', '-b:a', '160k'],
            },
        },
        'encoder': {
            'ffmpeg_path': 'ffmpeg',
            'transcode_timeout': 600,
            'split_timeout': 600,
            'write_tags': True,
        },
        'logging': {
            'level': 'INFO',
            'log_file': None,
            'error_log_file': None,
            'console_timestamps': True,
        },
    }


@pytest.fixture
def sample_config_file(temp_dir, sample_config_dict) -> Path:
    """Create a temporary YAML config file."""
    import yaml

    config_path = temp_dir / "test_config.yaml"
    with open(config_path, 'w') as f:
        yaml.dump(sample_config_dict, f)

    return config_path


@pytest.fixture
def sample_config(sample_config_file):
    """Loaded Config object."""
    from batch_encoder.config import Config
    return Config(config_path=sample_config_file)


# ============================================================================
# Logger Fixtures
# ============================================================================

@pytest.fixture
def temp_log_files(temp_dir) -> tuple[Path, Path]:
    """Create temporary log file paths."""
    log_file = temp_dir / "logs" / "test.log"
    error_log_file = temp_dir / "logs" / "test_errors.log"
    return log_file, error_log_file


# ============================================================================
# Pytest Configuration Hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "unit: Fast unit tests (default)"
    )
    config.addinivalue_line(
        "markers", "integration: End-to-end runs through the orchestrator"
    )
    config.addinivalue_line(
        "markers", "requires_ffmpeg: Tests that require ffmpeg to be installed"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test items during collection."""
    for item in items:
        if not any(item.iter_markers()):
            item.add_marker(pytest.mark.unit)
