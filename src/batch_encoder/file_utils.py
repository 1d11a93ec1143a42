"""
Directory utilities for encoding runs.
Lists audio files, mirrors non-audio files and checks output directories.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List


logger = logging.getLogger(__name__)

CUE_EXTENSION = '.cue'


@dataclass
class DirectoryStatus:
    """Existence/emptiness of a directory."""
    exists: bool
    empty: bool


def _normalize_extensions(extensions: Iterable[str]) -> set:
    return {ext.lower() for ext in extensions}


def _walk_sorted(root: Path):
    """os.walk with a deterministic order; unreadable subtrees are logged and skipped."""
    def on_error(error: OSError):
        logger.warning(f"Skipping unreadable directory {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        yield Path(dirpath), sorted(filenames)


def _require_directory(directory: Path):
    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")


def list_audio_files(directory: Path, extensions: Iterable[str]) -> List[Path]:
    """
    Recursively list audio files in a directory.

    CUE sheets are never returned even if the CUE extension is part of
    ``extensions``; they describe audio, they are not audio.

    Args:
        directory: Directory to scan
        extensions: Audio extensions (e.g., ['.flac', '.mp3', '.cue'])

    Returns:
        Absolute paths, sorted by directory then filename

    Raises:
        FileNotFoundError: If the directory does not exist
        NotADirectoryError: If the path is not a directory
    """
    directory = Path(directory)
    _require_directory(directory)

    audio_extensions = _normalize_extensions(extensions) - {CUE_EXTENSION}
    files = []

    for current_path, filenames in _walk_sorted(directory):
        for filename in filenames:
            file_path = current_path / filename
            if file_path.suffix.lower() in audio_extensions and file_path.is_file():
                files.append(file_path.absolute())

    return files


def copy_non_audio_files(
    source: Path,
    destination: Path,
    excluded_extensions: Iterable[str]
) -> int:
    """
    Copy every file whose extension is not excluded, preserving structure.

    Args:
        source: Source directory
        destination: Mirrored destination directory (created as needed)
        excluded_extensions: Extensions to skip (the audio extension set)

    Returns:
        Number of files copied

    Raises:
        FileNotFoundError: If the source directory does not exist
        OSError: If a file cannot be copied
    """
    source = Path(source)
    destination = Path(destination)
    _require_directory(source)

    excluded = _normalize_extensions(excluded_extensions)
    copied = 0

    destination.mkdir(parents=True, exist_ok=True)

    for current_path, filenames in _walk_sorted(source):
        for filename in filenames:
            file_path = current_path / filename
            if file_path.suffix.lower() in excluded or not file_path.is_file():
                continue

            target = destination / file_path.relative_to(source)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(file_path, target)
            copied += 1

    logger.debug(f"Copied {copied} non-audio file(s) from {source} to {destination}")
    return copied


def check_directory_empty(path: Path) -> DirectoryStatus:
    """
    Check whether a directory exists and is empty.

    Args:
        path: Directory to check

    Returns:
        DirectoryStatus; a path that is not a directory counts as missing
    """
    path = Path(path)
    if not path.is_dir():
        return DirectoryStatus(exists=False, empty=False)

    with os.scandir(path) as entries:
        empty = next(entries, None) is None

    return DirectoryStatus(exists=True, empty=empty)
