"""Production-batch wage events through the orchestrator."""

from uuid import uuid4

import pytest

from labour_ledger.domain.split_rules import SplitRule
from labour_ledger.exceptions import (
    EventAlreadyAppliedError,
    InvalidAmountError,
    InvalidEventError,
)
from labour_ledger.services.ledger_orchestrator import PRODUCTION_BATCH_REFERENCE


def test_batch_wages_split_equally(ledger, org_id, three_workers):
    batch_id = uuid4()
    records = ledger.apply_production_batch(
        org_id, batch_id, [w.id for w in three_workers],
        production_quantity=1000, thappi_quantity=1000,
    )

    # 23000 + 12000 over three workers
    assert [r.amount for r in records] == [11667, 11667, 11666]
    assert all(r.reference_type == PRODUCTION_BATCH_REFERENCE for r in records)
    assert all(r.reference_id == str(batch_id) for r in records)
    assert records[0].metadata["production_quantity"] == 1000
    assert records[0].metadata["thappi_rate"] == 12000


def test_batch_with_manual_split(ledger, org_id, make_worker):
    a, b = make_worker(), make_worker()
    ledger.apply_production_batch(
        org_id, "batch-7", [a.id, b.id], 2000, 0,
        split_rule=SplitRule.manual({a.id: 75, b.id: 25}),
    )
    assert ledger.get_current_balance(a.id) == 34500
    assert ledger.get_current_balance(b.id) == 11500


def test_batch_reversed_by_reference(ledger, org_id, make_worker):
    worker = make_worker()
    ledger.apply_production_batch(org_id, "batch-1", [worker.id], 500)
    with pytest.raises(EventAlreadyAppliedError):
        ledger.apply_production_batch(org_id, "batch-1", [worker.id], 500)

    ledger.reverse_event(org_id, PRODUCTION_BATCH_REFERENCE, "batch-1")
    assert ledger.get_current_balance(worker.id) == 0


def test_empty_batch_rejected(ledger, org_id, make_worker):
    worker = make_worker()
    with pytest.raises(InvalidAmountError):
        ledger.apply_production_batch(org_id, "batch-0", [worker.id], 0, 0)


def test_pinned_batch_applied_and_reversed(ledger, org_id, three_workers):
    ids = [w.id for w in three_workers]
    records = ledger.apply_production_batch(
        org_id, "batch-9", ids, 1000, 1000, pinned=(ids[1], 20000),
    )

    # 35000 total: B2 pinned at 20000, the other 15000 shared equally
    assert [r.amount for r in records] == [7500, 20000, 7500]
    assert records[0].metadata["pinned_amount"] == 20000
    assert records[0].metadata["pinned_worker_id"] == str(ids[1])
    assert [ledger.get_current_balance(w) for w in ids] == [7500, 20000, 7500]

    result = ledger.reverse_event(org_id, PRODUCTION_BATCH_REFERENCE, "batch-9")
    assert result.reversed
    assert [ledger.get_current_balance(w) for w in ids] == [0, 0, 0]


def test_pinned_worker_must_be_in_batch(ledger, org_id, make_worker):
    a, b, outsider = make_worker(), make_worker(), make_worker()
    with pytest.raises(InvalidEventError):
        ledger.apply_production_batch(
            org_id, "batch-2", [a.id, b.id], 1000, pinned=(outsider.id, 100),
        )
    entries = ledger.entries_for_reference(org_id, PRODUCTION_BATCH_REFERENCE, "batch-2")
    assert entries == []


def test_pinned_amount_above_total_rejected(ledger, org_id, make_worker):
    a, b = make_worker(), make_worker()
    with pytest.raises(InvalidAmountError):
        ledger.apply_production_batch(
            org_id, "batch-3", [a.id, b.id], 1000, pinned=(a.id, 23001),
        )
    assert ledger.get_current_balance(a.id) == 0


def test_pinned_and_split_rule_are_exclusive(ledger, org_id, make_worker):
    a, b = make_worker(), make_worker()
    with pytest.raises(InvalidEventError):
        ledger.apply_production_batch(
            org_id, "batch-4", [a.id, b.id], 1000,
            split_rule=SplitRule.equal(), pinned=(a.id, 100),
        )
