"""작업(Job) 상태 저장소

job:<id> 키에 JSON으로 저장하고 TTL(기본 1시간)이 지나면 사라집니다.
상태 전이: pending → active → completed | failed
(pending → failed 는 디스패치 실패 시)
종료 상태(completed/failed)는 더 이상 바뀌지 않습니다.

작업 레코드는 오케스트레이터가 만들고 이후에는 해당 작업의 워커만 수정합니다.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from leadgen.core.config import settings
from leadgen.core.exceptions import DuplicateDispatch, JobNotFound, JobStateError
from leadgen.core.logging import logger
from leadgen.search.cache_key import build_job_key
from leadgen.services.impl.kv_store import KeyValueStore


class JobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED = {
    JobStatus.PENDING: {JobStatus.ACTIVE, JobStatus.FAILED},
    JobStatus.ACTIVE: {JobStatus.ACTIVE, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class JobRecord:
    id: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    cache_key: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    updated_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        return cls(
            id=data["id"],
            status=JobStatus(data.get("status", JobStatus.PENDING.value)),
            progress=int(data.get("progress") or 0),
            cache_key=data.get("cache_key"),
            result=data.get("result"),
            error=data.get("error"),
            created_at=data.get("created_at") or datetime.utcnow().isoformat(),
            updated_at=data.get("updated_at") or datetime.utcnow().isoformat(),
        )


class JobStore:
    def __init__(self, store: KeyValueStore, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = int(ttl_seconds or settings.job_ttl_seconds)

    async def _write(self, record: JobRecord, nx: bool = False) -> bool:
        record.updated_at = datetime.utcnow().isoformat()
        return await self.store.set(
            build_job_key(record.id),
            json.dumps(record.to_dict(), ensure_ascii=False),
            ex=self.ttl_seconds,
            nx=nx,
        )

    async def create(self, job_id: str, cache_key: str) -> JobRecord:
        record = JobRecord(id=job_id, cache_key=cache_key)
        if not await self._write(record, nx=True):
            raise DuplicateDispatch(cache_key, details={"job_id": job_id})
        return record

    async def get(self, job_id: str) -> Optional[JobRecord]:
        raw = await self.store.get(build_job_key(job_id))
        if not raw:
            return None
        try:
            return JobRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"[JOBS] corrupt job record {job_id}: {e}")
            return None

    async def require(self, job_id: str) -> JobRecord:
        record = await self.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    async def _transition(self, job_id: str, status: JobStatus, **changes: Any) -> JobRecord:
        record = await self.require(job_id)
        if record.status.is_terminal:
            logger.warning(f"[JOBS] {job_id} already {record.status.value}, ignoring -> {status.value}")
            raise JobStateError(job_id, record.status.value, status.value)
        if status not in _ALLOWED[record.status]:
            raise JobStateError(job_id, record.status.value, status.value)

        record.status = status
        for name, value in changes.items():
            setattr(record, name, value)
        await self._write(record)
        return record

    async def mark_active(self, job_id: str) -> JobRecord:
        return await self._transition(job_id, JobStatus.ACTIVE)

    async def update_progress(self, job_id: str, progress: int) -> JobRecord:
        return await self._transition(job_id, JobStatus.ACTIVE, progress=max(0, min(100, int(progress))))

    async def complete(self, job_id: str, result: Dict[str, Any]) -> JobRecord:
        return await self._transition(job_id, JobStatus.COMPLETED, progress=100, result=result)

    async def fail(self, job_id: str, error: str) -> JobRecord:
        return await self._transition(job_id, JobStatus.FAILED, error=error)


class JobQueue(Protocol):
    """작업 큐 협력자 (운영: Celery)"""

    async def enqueue(self, payload: Dict[str, Any]) -> str: ...

    async def get_status(self, job_id: str) -> Optional[Dict[str, Any]]: ...
