"""Status snapshots of CSV import jobs, kept in Redis for a retention TTL."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from droxstock.core.config import settings
from droxstock.core.exceptions import JobNotFoundError
from droxstock.services.cache_service import CacheService, cache_service


class JobStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)


class JobStatusService:
    """Reads and writes ``csv_job:<job_id>`` snapshots."""

    KEY_PREFIX = "csv_job:"

    def __init__(self, cache: Optional[CacheService] = None, ttl_seconds: Optional[int] = None):
        self.cache = cache or cache_service
        self.ttl_seconds = ttl_seconds or settings.CSV_JOB_TTL_SECONDS

    def key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}{job_id}"

    def set_status(self, job_id: str, status: str, **fields: Any) -> Dict[str, Any]:
        """Write a snapshot; later writes win key by key over earlier ones."""
        snapshot = self.cache.get_json(self.key(job_id)) or {}
        snapshot.update(fields)
        snapshot.update({
            "job_id": job_id,
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
        self.cache.set_json(self.key(job_id), snapshot, self.ttl_seconds)
        return snapshot

    def get_status(self, job_id: str) -> Dict[str, Any]:
        snapshot = self.cache.get_json(self.key(job_id))
        if snapshot is None:
            raise JobNotFoundError("Job not found or expired", field="job_id")
        return snapshot

    def delete(self, job_id: str) -> None:
        self.cache.delete(self.key(job_id))


job_status_service = JobStatusService()
