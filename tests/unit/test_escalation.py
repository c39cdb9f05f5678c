"""Unit tests for low-confidence escalation."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from docqa.errors import PersistenceError
from docqa.rag.escalation import EscalationPolicy, should_escalate


@pytest.mark.parametrize(
    "confidence,threshold,expected",
    [
        (0.69, 0.7, True),
        (0.7, 0.7, False),
        (0.95, 0.7, False),
        (0.0, 0.7, True),
        (0.0, 0.0, False),
        (0.99, 1.0, True),
    ],
)
def test_should_escalate(confidence, threshold, expected):
    assert should_escalate(confidence, threshold) is expected


def _store(ticket_id: int = 7) -> MagicMock:
    store = MagicMock()
    store.insert_ticket = AsyncMock(return_value=ticket_id)
    return store


class TestEscalationPolicy:
    @pytest.mark.asyncio
    async def test_opens_ticket_below_threshold(self):
        store = _store()
        ticket_id = await EscalationPolicy(store, threshold=0.7).record(3, 0.41)

        assert ticket_id == 7
        store.insert_ticket.assert_awaited_once_with(3, status="open")

    @pytest.mark.asyncio
    async def test_no_ticket_at_or_above_threshold(self):
        store = _store()
        assert await EscalationPolicy(store, threshold=0.7).record(3, 0.7) is None
        store.insert_ticket.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_threshold_disables_escalation(self):
        store = _store()
        assert await EscalationPolicy(store, threshold=0.0).record(3, 0.0) is None
        store.insert_ticket.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsaved_query_gets_no_ticket(self):
        store = _store()
        assert await EscalationPolicy(store, threshold=0.7).record(None, 0.2) is None
        store.insert_ticket.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ticket_write_failure_is_logged_not_raised(self):
        store = MagicMock()
        store.insert_ticket = AsyncMock(side_effect=PersistenceError("locked"))

        assert await EscalationPolicy(store, threshold=0.7).record(3, 0.2) is None
