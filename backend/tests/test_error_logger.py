"""Tests for degraded-mode reporting."""

import logging

import pytest

from auma.services.compliance.errors import StorageError
from auma.services.error_logger import _sanitize_text, log_degraded


class TestLogDegraded:
    @pytest.mark.asyncio
    async def test_writes_audit_entry(self, store, caplog):
        try:
            raise StorageError("connection reset")
        except StorageError as exc:
            with caplog.at_level(logging.ERROR, logger="auma.errors"):
                entry = await log_degraded(
                    exc, stage="escalation_create", location_id="loc-1", loan_id="loan-1", store=store
                )

        assert entry is store.audit[0]
        assert entry.action_type.value == "compliance_degraded"
        assert entry.details["stage"] == "escalation_create"
        assert entry.details["errorType"] == "StorageError"
        assert "connection reset" in entry.details["traceback"]
        assert "[DEGRADED] StorageError during escalation_create" in caplog.text

    @pytest.mark.asyncio
    async def test_without_store_only_logs(self, caplog):
        with caplog.at_level(logging.ERROR, logger="auma.errors"):
            entry = await log_degraded(ValueError("bad"), stage="x", location_id="loc-1")
        assert entry is None
        assert "ValueError" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_store_never_raises(self, store):
        store.fail_audit_insert = True
        entry = await log_degraded(RuntimeError("boom"), stage="x", location_id="loc-1", store=store)
        assert entry is None


def test_sanitize_strips_control_characters():
    assert _sanitize_text("a\x00b\nc", max_len=4) == "a b\n"
