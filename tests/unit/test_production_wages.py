"""Unit tests for production-batch wage arithmetic."""

from uuid import uuid4

import pytest

from labour_ledger.domain.production_wages import (
    WageRates,
    calculate_batch_wages,
    pinned_split,
    redistribute,
)
from labour_ledger.domain.split_rules import (
    Allocation,
    SplitKind,
    SplitMember,
    calculate_split,
)
from labour_ledger.exceptions import InvalidAmountError, InvalidEventError

RATES = WageRates(production_rate=23000, thappi_rate=12000)


class TestCalculateBatchWages:
    def test_thousand_pieces_pays_one_rate(self):
        assert calculate_batch_wages(1000, 0, RATES) == 23000

    def test_production_and_thappi(self):
        # 2.5 rates of production plus 0.5 of thappi
        assert calculate_batch_wages(2500, 500, RATES) == 63500

    def test_rounds_half_up_once(self):
        # 23 + 12, no rounding needed
        assert calculate_batch_wages(1, 1, RATES) == 35
        assert calculate_batch_wages(1, 0, WageRates(500, 0)) == 1
        assert calculate_batch_wages(1, 0, WageRates(499, 0)) == 0

    def test_zero_quantities(self):
        assert calculate_batch_wages(0, 0, RATES) == 0

    @pytest.mark.parametrize("bad", [-1, 1.5, True, "10"])
    def test_rejects_bad_quantity(self, bad):
        with pytest.raises(InvalidAmountError):
            calculate_batch_wages(bad, 0, RATES)


class TestRedistribute:
    def _allocations(self, *amounts):
        return [Allocation(uuid4(), a) for a in amounts]

    def test_pins_one_and_spreads_rest(self):
        allocations = self._allocations(100, 100, 99)
        result = redistribute(allocations, 0, 150)
        assert [a.amount for a in result] == [150, 75, 74]
        assert [a.worker_id for a in result] == [a.worker_id for a in allocations]

    def test_total_unchanged(self):
        allocations = self._allocations(500, 500, 500, 500)
        result = redistribute(allocations, 2, 1)
        assert sum(a.amount for a in result) == 2000
        assert result[2].amount == 1

    def test_amount_above_total_rejected(self):
        with pytest.raises(InvalidAmountError):
            redistribute(self._allocations(10, 10), 0, 21)

    def test_index_out_of_range(self):
        with pytest.raises(IndexError):
            redistribute(self._allocations(10, 10), 2, 5)

    def test_single_allocation_keeps_whole_total(self):
        allocations = self._allocations(300)
        assert redistribute(allocations, 0, 300) == allocations
        with pytest.raises(InvalidAmountError):
            redistribute(allocations, 0, 200)


class TestPinnedSplit:
    def test_pinned_worker_paid_exactly(self):
        ids = [uuid4(), uuid4(), uuid4()]
        rule = pinned_split(ids, 35000, ids[1], 20000)

        assert rule.kind is SplitKind.FIXED
        allocations = calculate_split(35000, [SplitMember(w) for w in ids], rule)
        assert [a.amount for a in allocations] == [7500, 20000, 7500]

    def test_remainder_goes_to_first_other_worker(self):
        ids = [uuid4(), uuid4(), uuid4()]
        rule = pinned_split(ids, 1001, ids[0], 0)
        assert [rule.amount_map[w] for w in ids] == [0, 501, 500]

    def test_worker_outside_batch_rejected(self):
        with pytest.raises(InvalidEventError):
            pinned_split([uuid4(), uuid4()], 1000, uuid4(), 10)
