"""
CUE sheet processing.
Finds CUE+audio pairs in a directory tree and splits each album image
into individual encoded tracks through an injected split function.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from .converter import EncoderNotFoundError
from .cue_parser import parse_cue_file, sanitize_filename
from .file_utils import CUE_EXTENSION


logger = logging.getLogger(__name__)

# split_fn(input_path, output_path, start_seconds, end_seconds_or_none, ffmpeg_args, metadata)
SplitFunction = Callable[[Path, Path, Any, Optional[Any], List[str], Dict[str, str]], Any]


class CuePair(NamedTuple):
    """A CUE sheet and the audio image it describes."""
    cue_file: Path
    audio_file: Path


@dataclass
class CueResults:
    """Outcome of CUE processing for one source directory."""
    extracted_tracks: List[Path] = field(default_factory=list)
    processed_audio_files: List[Path] = field(default_factory=list)


def find_cue_files_with_audio(directory: Path, audio_extensions: List[str]) -> List[CuePair]:
    """
    Find all CUE sheets with a matching audio file (recursive).

    A CUE sheet matches the first sibling file sharing its base name with
    one of ``audio_extensions``, tried in order. Sheets without a match
    are left out. Unreadable directories are logged and skipped.

    Args:
        directory: Directory to scan
        audio_extensions: Audio extensions in preference order

    Returns:
        List of CuePair in directory-walk order
    """
    candidates = [ext for ext in audio_extensions if ext.lower() != CUE_EXTENSION]
    pairs = []
    stack = [Path(directory)]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.warning(f"Error scanning directory {current}: {e}")
            continue

        subdirectories = []
        for entry in entries:
            entry_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                subdirectories.append(entry_path)
            elif entry.is_file() and entry.name.lower().endswith(CUE_EXTENSION):
                base_name = entry.name[:-len(CUE_EXTENSION)]
                for ext in candidates:
                    audio_path = current / (base_name + ext)
                    if audio_path.is_file():
                        pairs.append(CuePair(entry_path, audio_path))
                        break

        # Reversed so the stack pops subdirectories in sorted order
        stack.extend(reversed(subdirectories))

    return pairs


def build_track_metadata(sheet, track) -> Dict[str, str]:
    """Tag values for one extracted track."""
    metadata = {
        'title': track.display_title,
        'artist': track.performer or sheet.album_artist or 'Unknown Artist',
        'album': sheet.album_title or 'Unknown Album',
        'track': str(track.number),
        'date': sheet.date or '',
    }
    if sheet.genre:
        metadata['genre'] = sheet.genre
    return metadata


def process_cue_file(
    cue_path: Path,
    audio_path: Path,
    output_dir: Path,
    profile: Dict[str, Any],
    split_fn: SplitFunction
) -> List[Path]:
    """
    Extract every track described by a CUE sheet.

    Failures are contained: a track that fails to split is logged and
    skipped, and a sheet that cannot be parsed yields no tracks.

    Args:
        cue_path: Path to the .cue file
        audio_path: Audio image the sheet describes
        output_dir: Directory to write tracks into
        profile: Encoding profile (extension, ffmpeg_args)
        split_fn: Function that extracts and encodes one track

    Returns:
        Paths of the tracks produced
    """
    try:
        sheet = parse_cue_file(cue_path)
    except EncoderNotFoundError:
        raise
    except Exception as e:
        logger.error(f"Failed to process CUE file {cue_path}: {e}")
        return []

    extension = str(profile['extension']).lstrip('.')
    ffmpeg_args = list(profile.get('ffmpeg_args', []))
    generated = []

    for track in sheet.tracks:
        file_name = f"{track.number:02d}-{sanitize_filename(track.display_title)}.{extension}"
        output_path = Path(output_dir) / file_name
        metadata = build_track_metadata(sheet, track)

        try:
            split_fn(
                audio_path,
                output_path,
                track.start_time,
                track.end_time,
                ffmpeg_args,
                metadata
            )
        except EncoderNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to extract track {track.number} from {cue_path}: {e}")
            continue

        logger.info(f"  ✓ Extracted track {track.number:02d} -> {file_name}")
        generated.append(output_path)

    return generated


def process_cue_files_in_directory(
    source_dir: Path,
    output_dir: Path,
    profile: Dict[str, Any],
    audio_extensions: List[str],
    split_fn: SplitFunction
) -> CueResults:
    """
    Process every CUE sheet found under a source directory.

    Tracks are written to the output location mirroring each sheet's
    position relative to ``source_dir``. An audio image only counts as
    consumed when at least one of its tracks was produced.

    Args:
        source_dir: Source directory
        output_dir: Mirrored output directory
        profile: Encoding profile
        audio_extensions: Audio extensions in preference order
        split_fn: Function that extracts and encodes one track

    Returns:
        CueResults with produced tracks and consumed audio files
    """
    source_dir = Path(source_dir)
    results = CueResults()

    for cue_file, audio_file in find_cue_files_with_audio(source_dir, audio_extensions):
        relative_dir = cue_file.parent.relative_to(source_dir)
        track_output_dir = Path(output_dir) / relative_dir

        logger.info(f"Splitting {cue_file.name} ({audio_file.name})")
        tracks = process_cue_file(cue_file, audio_file, track_output_dir, profile, split_fn)

        if tracks:
            results.extracted_tracks.extend(tracks)
            results.processed_audio_files.append(audio_file)

    return results
