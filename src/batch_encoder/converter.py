"""
Audio encoder for batch encoding runs.
Wraps ffmpeg for whole-file transcoding and CUE track extraction.
"""

import logging
import subprocess
import shutil
from fractions import Fraction
from pathlib import Path
from typing import Dict, List, Optional, Union

import mutagen
from mutagen import MutagenError


logger = logging.getLogger(__name__)

Seconds = Union[int, float, Fraction]

# metadata key -> mutagen "easy" tag name
TAG_KEYS = {
    'title': 'title',
    'artist': 'artist',
    'album': 'album',
    'track': 'tracknumber',
    'date': 'date',
    'genre': 'genre',
}


class EncoderError(Exception):
    """Exception raised when a transcode or split fails."""
    pass


class EncoderNotFoundError(EncoderError):
    """The ffmpeg binary cannot be executed."""
    pass


class AudioEncoder:
    """
    Runs ffmpeg to transcode files or extract CUE tracks.
    Every invocation is bounded by a hard timeout; on expiry the process
    is killed and the call fails.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        transcode_timeout: float = 600,
        split_timeout: float = 600,
        write_tags: bool = True
    ):
        """
        Initialize encoder.

        Args:
            ffmpeg_path: ffmpeg executable name or path
            transcode_timeout: Timeout in seconds for a whole-file transcode
            split_timeout: Timeout in seconds for a single track extraction
            write_tags: Tag extracted tracks with mutagen
        """
        self.ffmpeg_path = ffmpeg_path
        self.transcode_timeout = transcode_timeout
        self.split_timeout = split_timeout
        self.write_tags = write_tags

        if not self._check_ffmpeg():
            raise EncoderNotFoundError(
                "ffmpeg not found. Please install ffmpeg to use this tool."
            )

    @classmethod
    def from_config(cls, config) -> "AudioEncoder":
        """Build an encoder from the ``encoder`` section of a Config."""
        return cls(
            ffmpeg_path=config.get('encoder.ffmpeg_path', 'ffmpeg'),
            transcode_timeout=config.get('encoder.transcode_timeout', 600),
            split_timeout=config.get('encoder.split_timeout', 600),
            write_tags=config.get('encoder.write_tags', True)
        )

    def _check_ffmpeg(self) -> bool:
        """
        Check if ffmpeg is available.

        Returns:
            True if ffmpeg is available
        """
        return shutil.which(self.ffmpeg_path) is not None

    def get_version(self) -> Optional[str]:
        """Return the first line of ``ffmpeg -version``, or None."""
        try:
            result = subprocess.run(
                [self.ffmpeg_path, '-version'],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=30
            )
        except (OSError, subprocess.TimeoutExpired):
            return None

        if result.returncode != 0 or not result.stdout:
            return None
        return result.stdout.split('\n')[0]

    def transcode_file(self, input_path: Path, output_path: Path, ffmpeg_args: List[str]):
        """
        Transcode a whole audio file.

        Args:
            input_path: Source audio file
            output_path: Destination file (parent directories are created)
            ffmpeg_args: Encoder arguments passed verbatim

        Raises:
            EncoderError: If ffmpeg fails, times out or produces no output
            EncoderNotFoundError: If ffmpeg cannot be executed
        """
        input_path = Path(input_path)
        output_path = Path(output_path)

        if not input_path.exists():
            raise EncoderError(f"Input file not found: {input_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self.ffmpeg_path,
            '-hide_banner',
            '-nostdin',
            '-y',
            '-i', str(input_path),
            *[str(arg) for arg in ffmpeg_args],
            str(output_path)
        ]

        self._run_ffmpeg(cmd, self.transcode_timeout)
        self._verify_output(output_path)

    def split_cue_track(
        self,
        input_path: Path,
        output_path: Path,
        start_time: Seconds,
        end_time: Optional[Seconds],
        ffmpeg_args: List[str],
        metadata: Dict[str, str]
    ):
        """
        Extract one track from an audio image and tag it.

        Args:
            input_path: Audio image described by a CUE sheet
            output_path: Destination track file
            start_time: Track start in seconds
            end_time: Track end in seconds, or None for end of file
            ffmpeg_args: Encoder arguments passed verbatim
            metadata: Tags (title, artist, album, track, date[, genre])

        Raises:
            EncoderError: If ffmpeg fails, times out or produces no output
            EncoderNotFoundError: If ffmpeg cannot be executed
        """
        input_path = Path(input_path)
        output_path = Path(output_path)

        if not input_path.exists():
            raise EncoderError(f"Input file not found: {input_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self.ffmpeg_path,
            '-hide_banner',
            '-nostdin',
            '-y',
            '-i', str(input_path),
            '-ss', format_seconds(start_time),
        ]

        if end_time is not None:
            cmd.extend(['-to', format_seconds(end_time)])

        # Album-wide tags of the image must not leak into single tracks
        cmd.extend(['-map', '0:a', '-map_metadata', '-1'])
        cmd.extend(str(arg) for arg in ffmpeg_args)
        cmd.append(str(output_path))

        self._run_ffmpeg(cmd, self.split_timeout)
        self._verify_output(output_path)

        if self.write_tags:
            self._write_tags(output_path, metadata)

    def _run_ffmpeg(self, cmd: list, timeout: float):
        """
        Run ffmpeg command.

        Args:
            cmd: Command list
            timeout: Timeout in seconds

        Raises:
            EncoderError: On non-zero exit or timeout
            EncoderNotFoundError: If the executable is missing
        """
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise EncoderError(f"ffmpeg timed out after {timeout}s")
        except FileNotFoundError:
            raise EncoderNotFoundError(f"ffmpeg not found: {self.ffmpeg_path}")

        if result.returncode != 0:
            error_lines = (result.stderr or '').split('\n')
            error_msg = '\n'.join([
                line for line in error_lines[-10:]
                if line.strip()
            ])
            raise EncoderError(
                f"ffmpeg exited with code {result.returncode}: {error_msg}"
            )

    def _verify_output(self, output_path: Path):
        if not output_path.exists():
            raise EncoderError("Encoding completed but output file not found")
        if output_path.stat().st_size == 0:
            raise EncoderError("Encoding completed but output file is empty")

    def _write_tags(self, output_path: Path, metadata: Dict[str, str]):
        """
        Write track tags with mutagen.

        Containers mutagen cannot tag (e.g. WAV) are left untagged.
        """
        try:
            audio = mutagen.File(output_path, easy=True)
        except MutagenError as e:
            raise EncoderError(f"Could not open {output_path.name} for tagging: {e}")

        if audio is None:
            logger.warning(f"Cannot tag {output_path.name}: unsupported container")
            return

        if audio.tags is None:
            audio.add_tags()

        for key, tag in TAG_KEYS.items():
            value = metadata.get(key)
            if value:
                audio[tag] = str(value)

        try:
            audio.save()
        except MutagenError as e:
            raise EncoderError(f"Could not write tags to {output_path.name}: {e}")


def format_seconds(value: Seconds) -> str:
    """Render seconds for ffmpeg's -ss/-to (microsecond precision)."""
    return f"{float(value):.6f}"
