"""Unit tests for the in-process cancellation registry."""

import threading
import uuid

from electoral_ingest.lib.ingest.cancellation import CancellationRegistry


class TestCancellationRegistry:
    """Tests for CancellationRegistry."""

    def test_request_and_clear(self) -> None:
        registry = CancellationRegistry()
        job_id = uuid.uuid4()

        assert not registry.is_cancelled(job_id)
        registry.request(job_id)
        assert registry.is_cancelled(job_id)
        assert registry.is_cancelled(str(job_id))
        registry.clear(job_id)
        assert not registry.is_cancelled(job_id)

    def test_clear_unknown_is_noop(self) -> None:
        registry = CancellationRegistry()
        registry.clear(uuid.uuid4())
        assert len(registry) == 0

    def test_reset(self) -> None:
        registry = CancellationRegistry()
        registry.request(uuid.uuid4())
        registry.request(uuid.uuid4())
        assert len(registry) == 2
        registry.reset()
        assert len(registry) == 0

    def test_concurrent_requests(self) -> None:
        registry = CancellationRegistry()
        job_ids = [uuid.uuid4() for _ in range(200)]

        threads = [threading.Thread(target=registry.request, args=(job_id,)) for job_id in job_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 200
        assert all(registry.is_cancelled(job_id) for job_id in job_ids)
