"""JobStore 상태 전이 테스트"""
import json

import pytest

from leadgen.core.exceptions import DuplicateDispatch, JobNotFound, JobStateError
from leadgen.engine.job_store import JobStatus, JobStore


@pytest.fixture
def job_store(fake_store):
    return JobStore(fake_store, ttl_seconds=3600)


class TestJobStore:
    @pytest.mark.asyncio
    async def test_lifecycle(self, job_store):
        await job_store.create("j1", "search:global:a:b:std:p1")
        await job_store.mark_active("j1")
        await job_store.update_progress("j1", 40)
        record = await job_store.complete("j1", {"places": []})

        assert record.status == JobStatus.COMPLETED
        assert record.progress == 100
        stored = await job_store.get("j1")
        assert stored.result == {"places": []}

    @pytest.mark.asyncio
    async def test_terminal_states_are_immutable(self, job_store):
        await job_store.create("j1", "k")
        await job_store.mark_active("j1")
        await job_store.fail("j1", "boom")

        with pytest.raises(JobStateError):
            await job_store.complete("j1", {"places": []})
        with pytest.raises(JobStateError):
            await job_store.mark_active("j1")

        assert (await job_store.get("j1")).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_pending_cannot_complete_directly(self, job_store):
        await job_store.create("j1", "k")
        with pytest.raises(JobStateError):
            await job_store.complete("j1", {})

    @pytest.mark.asyncio
    async def test_pending_can_fail(self, job_store):
        await job_store.create("j1", "k")
        record = await job_store.fail("j1", "dispatch_failed")
        assert record.error == "dispatch_failed"

    @pytest.mark.asyncio
    async def test_create_is_exclusive(self, job_store):
        await job_store.create("j1", "k")
        with pytest.raises(DuplicateDispatch):
            await job_store.create("j1", "k")

    @pytest.mark.asyncio
    async def test_missing_job(self, job_store):
        assert await job_store.get("nope") is None
        with pytest.raises(JobNotFound):
            await job_store.require("nope")

    @pytest.mark.asyncio
    async def test_record_expires(self, job_store, fake_store):
        await job_store.create("j1", "k")
        fake_store.advance(3601)
        assert await job_store.get("j1") is None

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, job_store):
        await job_store.create("j1", "k")
        await job_store.mark_active("j1")
        assert (await job_store.update_progress("j1", 250)).progress == 100

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_missing(self, job_store, fake_store):
        await fake_store.set("job:bad", "{not json")
        assert await job_store.get("bad") is None

    @pytest.mark.asyncio
    async def test_stored_shape(self, job_store, fake_store):
        await job_store.create("j1", "k")
        data = json.loads(fake_store.peek("job:j1"))
        assert data["status"] == "pending"
        assert data["cache_key"] == "k"
