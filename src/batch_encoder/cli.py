#!/usr/bin/env python3
"""
Batch Encoder - Main CLI Entry Point
Transcodes source directories (splitting CUE albums) into a mirrored output tree.
"""

import sys
from pathlib import Path
from typing import Optional, Tuple
import click

from .config import Config
from .converter import AudioEncoder, EncoderNotFoundError
from .cue_parser import CueFormatError, CueParseError, parse_cue_file
from .encoding_service import EncodingService, SubmissionError
from .job_manager import JobConflictError
from .logger import setup_logger


def _load_config(config_file: Optional[Path], **overrides) -> Config:
    """Load configuration, apply overrides and exit on validation errors."""
    try:
        config = Config(config_file)
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    config.update_from_args(**overrides)

    is_valid, errors = config.validate()
    if not is_valid:
        click.echo("Configuration errors:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    return config


def _resolve_output(config: Config, output_dir: Path) -> Path:
    """Relative output paths are taken from paths.output_root_directory when set."""
    output_root = config.get('paths.output_root_directory')
    if not output_dir.is_absolute() and output_root:
        return Path(output_root) / output_dir
    return output_dir.absolute()


def _format_progress(snapshot: dict) -> str:
    progress = snapshot.get('progress') or {}
    current = progress.get('current_file') or '-'
    return (
        f"[{progress.get('processed_files', 0)}/{progress.get('total_files', 0)}] "
        f"{snapshot['status']}: {current}"
    )


@click.group()
def main():
    """Batch Encoder - transcode music directories and split CUE albums."""


@main.command()
@click.argument('directories', nargs=-1, required=True)
@click.option('--output', '-o', 'output_dir', required=True, type=click.Path(path_type=Path),
              help='Output directory (must exist and be empty)')
@click.option('--profile', '-p', required=True, help='Encoding profile key')
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True, path_type=Path),
              help='Path to config.yaml')
@click.option('--root', 'root_directory', type=click.Path(path_type=Path),
              help='Override the source root directory')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Console log level')
@click.option('--poll-interval', default=1.0, show_default=True, type=float,
              help='Seconds between progress updates')
def encode(
    directories: Tuple[str, ...],
    output_dir: Path,
    profile: str,
    config_file: Optional[Path],
    root_directory: Optional[Path],
    log_level: Optional[str],
    poll_interval: float
):
    """
    Encode DIRECTORIES (relative to the source root) with PROFILE.
    """
    config = _load_config(
        config_file,
        root_directory=str(root_directory) if root_directory else None,
        log_level=log_level
    )

    logger = setup_logger(
        log_file=config.get('logging.log_file'),
        error_log_file=config.get('logging.error_log_file'),
        level=config.get('logging.level', 'INFO'),
        console_timestamps=config.get('logging.console_timestamps', True)
    )

    service = EncodingService(config, logger=logger)

    try:
        job = service.submit_job(list(directories), _resolve_output(config, output_dir), profile)
    except (SubmissionError, JobConflictError, EncoderNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Started job {job.id}")

    last_line = None
    while not service.wait(poll_interval):
        snapshot = service.get_encoding_progress(job.id)
        if snapshot:
            line = _format_progress(snapshot)
            if line != last_line:
                click.echo(line)
                last_line = line

    snapshot = service.get_encoding_progress(job.id)
    click.echo(_format_progress(snapshot))

    if snapshot['errors']:
        click.echo(f"\n{len(snapshot['errors'])} error(s):", err=True)
        for error in snapshot['errors']:
            click.echo(f"  - {error}", err=True)

    sys.exit(0 if snapshot['status'] == 'completed' else 1)


@main.command()
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True, path_type=Path),
              help='Path to config.yaml')
def profiles(config_file: Optional[Path]):
    """List configured encoding profiles."""
    config = _load_config(config_file)

    for key, profile in config.get_profiles().items():
        click.echo(f"{key:10s} {profile.get('name', key)} (.{str(profile['extension']).lstrip('.')})")
        if profile.get('description'):
            click.echo(f"{'':10s} {profile['description']}")


@main.command()
@click.argument('cue_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def cue(cue_file: Path):
    """Show the tracks described by CUE_FILE."""
    try:
        sheet = parse_cue_file(cue_file)
    except (CueParseError, CueFormatError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Artist: {sheet.album_artist or 'Unknown Artist'}")
    click.echo(f"Album:  {sheet.album_title or 'Unknown Album'}")
    if sheet.date:
        click.echo(f"Date:   {sheet.date}")
    if sheet.genre:
        click.echo(f"Genre:  {sheet.genre}")
    click.echo(f"File:   {sheet.audio_file or '-'}")
    click.echo("")

    for track in sheet.tracks:
        end = f"{float(track.end_time):9.2f}" if track.end_time is not None else "      end"
        click.echo(
            f"{track.number:02d}  {float(track.start_time):9.2f} -{end}  "
            f"{track.performer or sheet.album_artist or ''} - {track.display_title}"
        )


@main.command()
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True, path_type=Path),
              help='Path to config.yaml')
def check(config_file: Optional[Path]):
    """Verify configuration and ffmpeg installation."""
    config = _load_config(config_file)
    click.echo(f"  ✓ Configuration valid ({config.config_path})")

    try:
        encoder = AudioEncoder.from_config(config)
    except EncoderNotFoundError as e:
        click.echo(f"  ✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"  ✓ {encoder.get_version() or 'ffmpeg found'}")

    root = config.get_root_directory()
    if root.is_dir():
        click.echo(f"  ✓ Source root: {root}")
    else:
        click.echo(f"  ✗ Source root not found: {root}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
