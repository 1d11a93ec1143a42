"""
Encoding orchestration.

EncodingOrchestrator drives one job from start to finish: it mirrors
non-audio files, splits CUE-described albums, transcodes the remaining
audio files one at a time, and reports progress and errors through the
JobManager. EncodingService is the submission surface: it validates a
request, creates the job and runs the orchestrator on a background thread.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config
from .converter import AudioEncoder, EncoderNotFoundError
from .cue_processor import CueResults, process_cue_files_in_directory
from .file_utils import check_directory_empty, copy_non_audio_files, list_audio_files
from .job_manager import Job, JobConflictError, JobManager, JobStatus
from .logger import EncoderLogger, get_logger


class EncodingError(Exception):
    """Job-wide failure that aborts a run."""
    pass


class SubmissionError(ValueError):
    """A job request was rejected before a job was created."""
    pass


@dataclass
class WorkItem:
    """One file-level unit of work within a run."""
    source_path: Path
    source_dir: Path
    output_dir: Path
    relative_dir: str
    already_processed: bool = False

    @property
    def relative_path(self) -> Path:
        """Path shown in progress: CUE tracks relative to their output directory."""
        base = self.output_dir if self.already_processed else self.source_dir
        return self.source_path.relative_to(base)


class EncodingOrchestrator:
    """
    Runs a single encoding job to completion.
    Files are processed strictly one after another.
    """

    def __init__(
        self,
        config: Config,
        job_manager: JobManager,
        encoder: AudioEncoder,
        logger: Optional[EncoderLogger] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config: Configuration object
            job_manager: Owner of the job record
            encoder: Transcoder/splitter (anything with transcode_file and split_cue_track)
            logger: Logger instance
        """
        self.config = config
        self.job_manager = job_manager
        self.encoder = encoder
        self.logger = logger or get_logger()

    def start_encoding(self, job: Job) -> Job:
        """
        Run the job.

        Per-directory and per-file failures are recorded on the job and
        the run continues. Anything else marks the job as ``error``, is
        recorded, and is re-raised.

        Args:
            job: Job created by the JobManager

        Returns:
            Final snapshot of the job

        Raises:
            EncodingError: On a job-wide failure (unknown profile, bad output directory)
            EncoderNotFoundError: If ffmpeg cannot be executed
        """
        job_id = job.id

        try:
            self.job_manager.update_job_status(job_id, JobStatus.RUNNING)
            self.logger.log_job_start(job_id, job.directories, job.output_directory, job.profile)

            profile = self.config.get_profile(job.profile)
            if not profile:
                raise EncodingError(f"Profile {job.profile} not found")

            audio_extensions = self.config.get_audio_extensions()
            root_directory = self.config.get_root_directory().absolute()
            output_root = Path(job.output_directory).absolute()

            status = check_directory_empty(output_root)
            if not status.exists or not status.empty:
                raise EncodingError("Output directory must exist and be empty")

            work_items: List[WorkItem] = []
            for relative_dir in job.directories:
                work_items.extend(self._collect_directory(
                    job_id,
                    relative_dir,
                    root_directory / relative_dir,
                    output_root / relative_dir,
                    profile,
                    audio_extensions
                ))

            total_files = len(work_items)
            self.job_manager.update_job_progress(
                job_id,
                current_file=None,
                processed_files=0,
                total_files=total_files
            )
            self.logger.info(f"Queued {total_files} file(s) for encoding")

            processed = 0
            for index, item in enumerate(work_items, 1):
                self._process_item(job_id, item, profile, processed, total_files, index)
                processed += 1
                self.job_manager.update_job_progress(job_id, processed_files=processed)

            self.job_manager.update_job_progress(
                job_id,
                current_file=None,
                processed_files=total_files,
                total_files=total_files
            )
            final = self.job_manager.update_job_status(job_id, JobStatus.COMPLETED)

            self.logger.log_job_end(True, total_files, total_files, len(final.errors))
            return final

        except Exception as e:
            self.job_manager.update_job_status(job_id, JobStatus.ERROR)
            self.job_manager.add_job_error(job_id, str(e))
            self.logger.error(f"Job {job_id} failed: {e}")
            self.logger.log_job_end(False)
            raise

    def _collect_directory(
        self,
        job_id: str,
        relative_dir: str,
        source_dir: Path,
        output_dir: Path,
        profile: Dict[str, Any],
        audio_extensions: List[str]
    ) -> List[WorkItem]:
        """
        Prepare one source directory: copy non-audio files, split CUE
        albums and queue the remaining audio files.
        """
        self.logger.info(f"Scanning {relative_dir}")

        try:
            copied = copy_non_audio_files(source_dir, output_dir, audio_extensions)
            self.logger.debug(f"Copied {copied} non-audio file(s) for {relative_dir}")
        except OSError as e:
            self._record_error(
                job_id, f"Failed to copy non-audio files from {relative_dir}: {e}"
            )

        cue_results = CueResults()
        try:
            cue_results = process_cue_files_in_directory(
                source_dir,
                output_dir,
                profile,
                audio_extensions,
                self.encoder.split_cue_track
            )
        except EncoderNotFoundError:
            raise
        except Exception as e:
            self._record_error(
                job_id, f"Failed to process CUE files in {relative_dir}: {e}"
            )

        try:
            audio_files = list_audio_files(source_dir, audio_extensions)
        except OSError as e:
            self._record_error(
                job_id, f"Failed to list audio files in {relative_dir}: {e}"
            )
            return []

        consumed = {Path(path).absolute() for path in cue_results.processed_audio_files}
        items = [
            WorkItem(path, source_dir, output_dir, relative_dir)
            for path in audio_files
            if path.absolute() not in consumed
        ]
        items.extend(
            WorkItem(Path(track), source_dir, output_dir, relative_dir, already_processed=True)
            for track in cue_results.extracted_tracks
        )

        self.logger.info(
            f"{relative_dir}: {len(items) - len(cue_results.extracted_tracks)} file(s) to transcode, "
            f"{len(cue_results.extracted_tracks)} track(s) extracted from CUE sheets"
        )
        return items

    def _process_item(
        self,
        job_id: str,
        item: WorkItem,
        profile: Dict[str, Any],
        processed: int,
        total_files: int,
        index: int
    ):
        relative_path = item.relative_path

        self.job_manager.update_job_progress(
            job_id,
            current_file=str(relative_path),
            processed_files=processed,
            total_files=total_files
        )

        if item.already_processed:
            return

        extension = str(profile['extension']).lstrip('.')
        output_path = item.output_dir / relative_path.with_suffix(f".{extension}")

        self.logger.info(f"[{index}/{total_files}] Transcoding {item.relative_dir}/{relative_path}")
        try:
            self.encoder.transcode_file(
                item.source_path,
                output_path,
                list(profile.get('ffmpeg_args', []))
            )
        except EncoderNotFoundError:
            raise
        except Exception as e:
            self._record_error(job_id, f"Failed to transcode {relative_path}: {e}")
            return

        self.logger.info(f"  ✓ {relative_path} -> {output_path.name}")

    def _record_error(self, job_id: str, message: str):
        self.logger.error(message)
        self.job_manager.add_job_error(job_id, message)


class EncodingService:
    """
    Accepts encoding requests and runs them in the background.
    Only one job runs at a time; readers poll snapshots while it runs.
    """

    def __init__(
        self,
        config: Config,
        job_manager: Optional[JobManager] = None,
        encoder: Optional[AudioEncoder] = None,
        logger: Optional[EncoderLogger] = None
    ):
        """
        Initialize service.

        Args:
            config: Configuration object
            job_manager: Job state owner (a fresh one if omitted)
            encoder: Encoder to use (built from config on first submit if omitted)
            logger: Logger instance
        """
        self.config = config
        self.job_manager = job_manager or JobManager()
        self.encoder = encoder
        self.logger = logger or get_logger()
        self._thread: Optional[threading.Thread] = None

    def _get_encoder(self) -> AudioEncoder:
        if self.encoder is None:
            self.encoder = AudioEncoder.from_config(self.config)
        return self.encoder

    def submit_job(self, directories: List[str], output_directory: Path, profile: str) -> Job:
        """
        Validate a request, create the job and start it in the background.

        Args:
            directories: Source directories relative to the source root
            output_directory: Output directory (must exist and be empty)
            profile: Profile key

        Returns:
            Snapshot of the created (pending) job

        Raises:
            SubmissionError: If the request is invalid
            JobConflictError: If a job is already active
            EncoderNotFoundError: If ffmpeg is not available
        """
        if not directories or not isinstance(directories, (list, tuple)):
            raise SubmissionError("directories array is required and must not be empty")
        if not output_directory:
            raise SubmissionError("outputDirectory is required")
        if not profile:
            raise SubmissionError("profile is required")
        if self.config.get_profile(profile) is None:
            raise SubmissionError(f"Unknown profile: {profile}")

        if self.job_manager.is_encoding_active():
            raise JobConflictError(
                "A job is already running. Only one job at a time is allowed."
            )

        output_path = Path(output_directory).absolute()
        status = check_directory_empty(output_path)
        if not status.exists:
            raise SubmissionError("Output directory does not exist")
        if not status.empty:
            raise SubmissionError("Output directory must be empty before starting encoding")

        encoder = self._get_encoder()

        self.job_manager.clear_job()
        job = self.job_manager.create_job(list(directories), str(output_path), profile)

        orchestrator = EncodingOrchestrator(self.config, self.job_manager, encoder, self.logger)
        self._thread = threading.Thread(
            target=self._run,
            args=(orchestrator, job),
            name=f"encoding-{job.id[:8]}",
            daemon=True
        )
        self._thread.start()
        return job

    def _run(self, orchestrator: EncodingOrchestrator, job: Job):
        try:
            orchestrator.start_encoding(job)
        except Exception:
            # Already recorded on the job; the background thread only logs it
            self.logger.error(f"Encoding error in job {job.id}", exc_info=True)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the background run to finish.

        Returns:
            True if no run is in flight anymore
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def get_current_job(self) -> Optional[Dict[str, Any]]:
        """Polling snapshot of the current job, or None."""
        job = self.job_manager.get_current_job()
        return _progress_view(job) if job else None

    def get_encoding_progress(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Polling snapshot of a job by ID (only the current job resolves)."""
        job = self.job_manager.get_job(job_id)
        return _progress_view(job) if job else None


def _progress_view(job: Job) -> Dict[str, Any]:
    snapshot = job.to_dict()
    return {
        key: snapshot[key]
        for key in ('id', 'status', 'progress', 'errors', 'created_at', 'started_at', 'completed_at')
    }
