# tests/unit/test_verification_pool.py
from __future__ import annotations

import threading

import pytest

from ekyc_documents.infrastructure.tasks.verification_pool import VerificationWorkerPool


class BlockingHandler:
    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, document_id: str):
        with self._lock:
            self.calls.append(document_id)
        self.started.set()
        assert self.release.wait(5)
        return document_id


@pytest.fixture
def handler():
    h = BlockingHandler()
    yield h
    h.release.set()


def test_at_most_one_job_per_document(handler):
    pool = VerificationWorkerPool(handler, max_workers=2)
    try:
        assert pool.submit("doc-1") is True
        assert handler.started.wait(5)
        assert pool.submit("doc-1") is False
        assert pool.is_in_flight("doc-1")
        assert pool.in_flight() == 1

        handler.release.set()
        assert pool.wait(5)
        assert handler.calls == ["doc-1"]
        assert pool.in_flight() == 0

        # once finished, the same id may be submitted again
        assert pool.submit("doc-1") is True
        assert pool.wait(5)
        assert handler.calls == ["doc-1", "doc-1"]
    finally:
        pool.shutdown()


def test_cancel_queued_job(handler):
    pool = VerificationWorkerPool(handler, max_workers=1)
    try:
        pool.submit("running")
        assert handler.started.wait(5)
        pool.submit("queued")

        assert pool.cancel("queued") is True
        assert pool.cancel("running") is False
        assert pool.cancel("unknown") is False

        handler.release.set()
        assert pool.wait(5)
        assert handler.calls == ["running"]
    finally:
        pool.shutdown()


def test_crashing_handler_does_not_leak_in_flight_entries():
    def boom(document_id):
        raise RuntimeError("verification bug")

    pool = VerificationWorkerPool(boom, max_workers=1)
    pool.submit("doc-1")
    assert pool.wait(5)
    assert pool.in_flight() == 0
    pool.shutdown()


def test_submit_after_shutdown_is_refused():
    pool = VerificationWorkerPool(lambda document_id: None)
    pool.shutdown()
    assert pool.submit("doc-1") is False
