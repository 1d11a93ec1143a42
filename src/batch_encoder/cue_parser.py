"""
CUE sheet parser.
Reads a CUE sheet into album metadata and an ordered track list with
exact start/end offsets.
"""

import re
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import List, Optional

import chardet
import cueparser


FRAMES_PER_SECOND = 75
MAX_FILENAME_LENGTH = 200
INVALID_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')

# ASCII digits only
_TIMESTAMP_RE = re.compile(r'^(\d+):(\d+):(\d+)$', re.ASCII)

# Directive keywords are matched case-insensitively: every line's keyword
# (and the field name after REM) is upper-cased before parsing.
_DIRECTIVE_RE = re.compile(r'^(?P<indent>\s*)(?P<keyword>[A-Za-z]+)(?P<rest>.*)$')
_REM_FIELD_RE = re.compile(r'^(?P<space>\s+)(?P<field>[A-Za-z]+)')
_TRACK_LINE_RE = re.compile(r'^\s*TRACK\s+\d+', re.ASCII)
_INDEX_01_RE = re.compile(r'^\s*INDEX\s+01\s+(?P<timestamp>\S+)')
_OTHER_INDEX_RE = re.compile(r'^\s*INDEX\s+(?!01\b)\d+')
_REM_DATE_RE = re.compile(r'^\s*REM\s+DATE\s+"?(?P<date>\d+)')
_REM_GENRE_RE = re.compile(r'^\s*REM\s+GENRE\s+"?(?P<genre>[^"]*?)"?\s*$')


class CueParseError(Exception):
    """Raised when a CUE sheet cannot be read or contains no usable tracks."""
    pass


class CueFormatError(ValueError):
    """Raised for a malformed MM:SS:FF timestamp."""
    pass


@dataclass
class CueTrack:
    """One track of a CUE sheet. ``end_time`` of None means end of file."""
    number: int
    title: Optional[str] = None
    performer: Optional[str] = None
    start_time: Optional[Fraction] = None
    end_time: Optional[Fraction] = None

    @property
    def display_title(self) -> str:
        """Track title, falling back to 'Track <n>'."""
        return self.title or f"Track {self.number}"


@dataclass
class CueSheet:
    """Album-level metadata plus the ordered track list."""
    album_artist: Optional[str] = None
    album_title: Optional[str] = None
    date: Optional[str] = None
    genre: Optional[str] = None
    audio_file: Optional[str] = None
    tracks: List[CueTrack] = field(default_factory=list)


def cue_timestamp_to_seconds(timestamp: str) -> Fraction:
    """
    Convert a CUE timestamp (MM:SS:FF) to seconds.
    Frames are 1/75th of a second, so the result is kept as a Fraction.

    Args:
        timestamp: Timestamp string, e.g. "03:30:00"

    Returns:
        Exact time in seconds

    Raises:
        CueFormatError: If the timestamp is not three colon-separated integers
    """
    match = _TIMESTAMP_RE.match(timestamp.strip())
    if not match:
        raise CueFormatError(f"Invalid CUE timestamp format: {timestamp}")

    minutes, seconds, frames = (int(part) for part in match.groups())

    if frames >= FRAMES_PER_SECOND:
        raise CueFormatError(
            f"Invalid CUE timestamp format: {timestamp} "
            f"(frames must be below {FRAMES_PER_SECOND})"
        )

    return minutes * 60 + seconds + Fraction(frames, FRAMES_PER_SECOND)


def sanitize_filename(name: Optional[str]) -> str:
    """
    Make a track title safe to use as a filename.

    Args:
        name: Raw title

    Returns:
        Sanitized name, never empty
    """
    if not name:
        return 'track'

    sanitized = INVALID_FILENAME_CHARS.sub('-', name)
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    sanitized = sanitized[:MAX_FILENAME_LENGTH].rstrip()

    return sanitized or 'track'


def read_cue_text(cue_path: Path) -> str:
    """
    Read a CUE sheet as text.
    Falls back to charset detection for sheets that are not UTF-8
    (common for CP1251/Shift-JIS rips).
    """
    raw_data = Path(cue_path).read_bytes()
    if raw_data.startswith(b'\xef\xbb\xbf'):
        raw_data = raw_data[3:]

    try:
        return raw_data.decode('utf-8')
    except UnicodeDecodeError:
        pass

    result = chardet.detect(raw_data) or {}
    encoding = result.get('encoding') or 'latin-1'
    try:
        return raw_data.decode(encoding, errors='replace')
    except LookupError:
        return raw_data.decode('latin-1')


def _normalize_line(line: str) -> str:
    """Upper-case the directive keyword of a line (and the REM field name)."""
    line = line.rstrip()
    match = _DIRECTIVE_RE.match(line)
    if not match:
        return line

    keyword = match.group('keyword').upper()
    rest = match.group('rest')
    if keyword == 'REM':
        rest = _REM_FIELD_RE.sub(
            lambda m: m.group('space') + m.group('field').upper(), rest, count=1
        )
    return f"{match.group('indent')}{keyword}{rest}"


def _unquote(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1]
    return text or None


def parse_cue_file(cue_path: Path) -> CueSheet:
    """
    Parse a CUE sheet.

    Args:
        cue_path: Path to the .cue file

    Returns:
        CueSheet with tracks in sheet order and end times derived

    Raises:
        CueParseError: If the file cannot be read or parsed, has no
            tracks, or a track has no usable start time
        CueFormatError: If an INDEX 01 timestamp is malformed
    """
    try:
        content = read_cue_text(cue_path)
    except OSError as e:
        raise CueParseError(f"Failed to read CUE file {cue_path}: {e}") from e

    lines = [_normalize_line(line) for line in content.splitlines()]
    if not any(_TRACK_LINE_RE.match(line) for line in lines):
        raise CueParseError(f"No tracks found in CUE file: {cue_path}")

    # Only INDEX 01 marks a track start
    lines = [line for line in lines if not _OTHER_INDEX_RE.match(line)]
    for line in lines:
        index_match = _INDEX_01_RE.match(line)
        if index_match:
            cue_timestamp_to_seconds(index_match.group('timestamp'))

    parsed = cueparser.CueSheet()
    parsed.setOutputFormat('', '')
    parsed.setData('\n'.join(lines))
    try:
        parsed.parse()
    except Exception as e:
        raise CueParseError(f"Failed to parse CUE file {cue_path}: {e}") from e

    sheet = CueSheet(
        album_artist=_unquote(parsed.performer),
        album_title=_unquote(parsed.title),
        audio_file=_unquote(parsed.file),
    )

    for line in lines:
        date_match = _REM_DATE_RE.match(line)
        genre_match = _REM_GENRE_RE.match(line)
        if date_match:
            sheet.date = date_match.group('date')
        elif genre_match:
            sheet.genre = genre_match.group('genre').strip() or None

    for entry in parsed.tracks:
        offset = _unquote(entry.offset)
        try:
            number = int(entry.number)
        except (TypeError, ValueError) as e:
            raise CueParseError(f"Invalid track number in {cue_path}: {entry.number}") from e
        sheet.tracks.append(CueTrack(
            number=number,
            title=_unquote(entry.title),
            performer=_unquote(entry.performer),
            start_time=cue_timestamp_to_seconds(offset) if offset else None,
        ))

    if not sheet.tracks:
        raise CueParseError(f"No tracks found in CUE file: {cue_path}")

    _derive_end_times(sheet, cue_path)
    return sheet


def _derive_end_times(sheet: CueSheet, cue_path: Path):
    """Each track ends where the next begins; the last one is open-ended."""
    previous: Optional[CueTrack] = None
    for track in sheet.tracks:
        if track.start_time is None:
            raise CueParseError(
                f"Track {track.number} in {cue_path} has no INDEX 01"
            )
        if previous is not None:
            if track.start_time < previous.start_time:
                raise CueParseError(
                    f"Track {track.number} in {cue_path} starts before "
                    f"track {previous.number}"
                )
            previous.end_time = track.start_time
        previous = track

    sheet.tracks[-1].end_time = None
