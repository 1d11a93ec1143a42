"""
Job state management for encoding runs.

A single in-memory job is tracked at a time. Every read and write goes
through JobManager, which serializes access with a lock and hands out
copies, so a poller never observes a half-updated job.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(Enum):
    """Status of an encoding job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobConflictError(Exception):
    """Raised when a job is created while another one is active."""
    pass


class JobNotFoundError(Exception):
    """Raised when a job ID does not match the current job."""
    pass


@dataclass
class JobProgress:
    """Progress of the current run."""
    current_file: Optional[str] = None
    processed_files: int = 0
    total_files: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_file': self.current_file,
            'processed_files': self.processed_files,
            'total_files': self.total_files,
        }


@dataclass
class Job:
    """One encoding run."""
    id: str
    directories: List[str]
    output_directory: str
    profile: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[JobProgress] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Full snapshot of the job."""
        return {
            'id': self.id,
            'directories': list(self.directories),
            'output_directory': self.output_directory,
            'profile': self.profile,
            'status': self.status.value,
            'progress': self.progress.to_dict() if self.progress else None,
            'errors': list(self.errors),
            'created_at': _isoformat(self.created_at),
            'started_at': _isoformat(self.started_at),
            'completed_at': _isoformat(self.completed_at),
        }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobManager:
    """
    Owns the single current job.

    Only one job may be pending or running at a time; creating a job is
    an atomic check-and-set against that rule. A finished job stays
    readable until it is cleared or replaced by a new one. No history is
    kept.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._current: Optional[Job] = None

    def create_job(self, directories: List[str], output_directory: str, profile: str) -> Job:
        """
        Create a new job in ``pending`` state.

        Args:
            directories: Source directories relative to the source root
            output_directory: Absolute output directory
            profile: Profile key

        Returns:
            Copy of the created job

        Raises:
            JobConflictError: If a job is already pending or running
        """
        with self._lock:
            if self._current is not None and self._current.status.is_active:
                raise JobConflictError(
                    "A job is already running. Only one job at a time is allowed."
                )

            self._current = Job(
                id=str(uuid.uuid4()),
                directories=list(directories),
                output_directory=str(output_directory),
                created_at=_utcnow(),
                profile=profile,
            )
            return copy.deepcopy(self._current)

    def get_current_job(self) -> Optional[Job]:
        """Copy of the current job, or None."""
        with self._lock:
            return copy.deepcopy(self._current)

    def get_job(self, job_id: str) -> Optional[Job]:
        """Copy of the current job if its ID matches, else None."""
        with self._lock:
            if self._current is not None and self._current.id == job_id:
                return copy.deepcopy(self._current)
            return None

    def _require(self, job_id: str) -> Job:
        if self._current is None or self._current.id != job_id:
            raise JobNotFoundError(f"Job {job_id} not found")
        return self._current

    def update_job_status(self, job_id: str, status: JobStatus) -> Job:
        """
        Transition a job to a new status, stamping timestamps once.

        Args:
            job_id: Job ID
            status: New status (JobStatus or its string value)

        Returns:
            Copy of the updated job

        Raises:
            JobNotFoundError: If no job matches
            ValueError: If status is not a known job status
        """
        status = JobStatus(status)

        with self._lock:
            job = self._require(job_id)
            job.status = status
            # Stamps never go backwards, even if the wall clock does
            now = max(_utcnow(), job.created_at)

            if status == JobStatus.RUNNING and job.started_at is None:
                job.started_at = now

            if status.is_terminal and job.completed_at is None:
                if job.started_at is None:
                    job.started_at = now
                job.completed_at = max(now, job.started_at)

            return copy.deepcopy(job)

    def update_job_progress(self, job_id: str, **fields) -> Job:
        """
        Merge fields into the job's progress; omitted fields keep their values.

        Args:
            job_id: Job ID
            **fields: Any of current_file, processed_files, total_files

        Returns:
            Copy of the updated job

        Raises:
            JobNotFoundError: If no job matches
            TypeError: If an unknown progress field is given
        """
        with self._lock:
            job = self._require(job_id)
            job.progress = replace(job.progress or JobProgress(), **fields)
            return copy.deepcopy(job)

    def add_job_error(self, job_id: str, message: str) -> Job:
        """
        Append an error message to the job.

        Raises:
            JobNotFoundError: If no job matches
        """
        with self._lock:
            job = self._require(job_id)
            job.errors.append(str(message))
            return copy.deepcopy(job)

    def is_encoding_active(self) -> bool:
        """True if the current job is pending or running."""
        with self._lock:
            return self._current is not None and self._current.status.is_active

    def clear_job(self):
        """Discard the current job if it has finished."""
        with self._lock:
            if self._current is not None and self._current.status.is_terminal:
                self._current = None

    def force_clear_job(self):
        """Discard the current job regardless of its status."""
        with self._lock:
            self._current = None
