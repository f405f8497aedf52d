"""
Statement and balance query tests.

Tests cover:
- Running balances from the brought-forward opening balance
- Date-range and direction filters
- Account statements over member lines, with a per-member breakdown
- Unknown ids
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from labour_ledger.domain.dtos import AccountTarget, Direction, WorkerTarget
from labour_ledger.exceptions import (
    UnknownAccountError,
    UnknownEntityError,
    UnknownWorkerError,
)
from labour_ledger.selectors.ledger_selector import StatementFilter


def _day(n):
    return datetime(2024, 1, n, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def worker_history(ledger, org_id, make_worker):
    worker = make_worker(opening_balance=1000)
    ledger.apply_wage_event(org_id, [worker.id], 5000, None, "wage", "w1", occurred_at=_day(1))
    ledger.apply_expense_event(
        org_id, WorkerTarget.single(worker.id), 2000,
        reference_type="expense", reference_id="e1", occurred_at=_day(5),
    )
    ledger.apply_wage_event(org_id, [worker.id], 3000, None, "wage", "w2", occurred_at=_day(10))
    return worker


class TestWorkerStatement:
    def test_full_history(self, ledger, worker_history):
        statement = ledger.worker_statement(worker_history.id)

        assert statement.entity_type == "worker"
        assert statement.opening_balance == 1000
        assert [line.running_balance for line in statement.lines] == [6000, 4000, 7000]
        assert [line.reference_id for line in statement.lines] == ["w1", "e1", "w2"]
        assert statement.total_credits == 8000
        assert statement.total_debits == 2000
        assert statement.closing_balance == 7000
        assert statement.closing_balance == ledger.get_current_balance(worker_history.id)

    def test_date_from_brings_balance_forward(self, ledger, worker_history):
        statement = ledger.worker_statement(
            worker_history.id, StatementFilter(date_from=_day(3))
        )
        assert statement.opening_balance == 6000
        assert [line.running_balance for line in statement.lines] == [4000, 7000]
        assert statement.closing_balance == 7000

    def test_date_range(self, ledger, worker_history):
        statement = ledger.worker_statement(
            worker_history.id, StatementFilter(date_from=_day(2), date_to=_day(6))
        )
        assert [line.reference_id for line in statement.lines] == ["e1"]
        assert statement.closing_balance == 4000

    def test_direction_filter(self, ledger, worker_history):
        statement = ledger.worker_statement(
            worker_history.id, StatementFilter(direction=Direction.DEBIT)
        )
        assert [line.amount for line in statement.lines] == [2000]
        assert statement.lines[0].signed_effect == -2000
        assert statement.total_credits == 0
        assert statement.closing_balance == -1000

    def test_reference_type_filter(self, ledger, worker_history):
        statement = ledger.worker_statement(
            worker_history.id, StatementFilter(reference_type="wage")
        )
        assert [line.reference_id for line in statement.lines] == ["w1", "w2"]

    def test_reversed_event_disappears(self, ledger, org_id, worker_history):
        ledger.reverse_event(org_id, "expense", "e1")
        statement = ledger.worker_statement(worker_history.id)
        assert [line.reference_id for line in statement.lines] == ["w1", "w2"]
        assert statement.closing_balance == 9000

    def test_unknown_worker(self, ledger):
        with pytest.raises(UnknownWorkerError):
            ledger.worker_statement(uuid4())


class TestAccountStatement:
    def test_member_lines_and_breakdown(self, ledger, org_id, make_worker):
        a = make_worker(opening_balance=100)
        b = make_worker(opening_balance=200)
        account_id = ledger.create_account(org_id, "Pair", [a.id, b.id])
        ledger.apply_expense_event(
            org_id, AccountTarget(account_id), 300,
            reference_type="expense", reference_id="e1", occurred_at=_day(2),
        )
        ledger.apply_wage_event(org_id, [a.id], 1000, None, "wage", "w1", occurred_at=_day(3))

        statement = ledger.account_statement(account_id)

        assert statement.entity_type == "account"
        assert statement.opening_balance == 300
        assert [(line.worker_id, line.amount) for line in statement.lines] == [
            (a.id, 150), (b.id, 150), (a.id, 1000),
        ]
        assert [line.running_balance for line in statement.lines] == [150, 0, 1000]
        assert statement.closing_balance == ledger.get_current_balance(account_id)

        by_worker = {m.worker_id: m for m in statement.members}
        assert by_worker[a.id].total_credits == 1000
        assert by_worker[a.id].total_debits == 150
        assert by_worker[a.id].current_balance == 950
        assert by_worker[b.id].total_credits == 0
        assert by_worker[b.id].total_debits == 150

    def test_unknown_account(self, ledger):
        with pytest.raises(UnknownAccountError):
            ledger.account_statement(uuid4())


class TestBalances:
    def test_unknown_entity(self, ledger):
        with pytest.raises(UnknownEntityError):
            ledger.get_current_balance(uuid4())

    def test_entries_for_reference_ordered(self, ledger, org_id, three_workers):
        ids = [w.id for w in three_workers]
        ledger.apply_wage_event(org_id, ids, 300, None, "wage", "w1")
        entries = ledger.entries_for_reference(org_id, "wage", "w1")
        assert [e.line_no for e in entries] == [0, 1, 2]
        assert [e.worker_id for e in entries] == ids
