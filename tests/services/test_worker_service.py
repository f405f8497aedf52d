"""Worker administration tests."""

from uuid import uuid4

import pytest

from labour_ledger.exceptions import (
    DuplicateLabourCodeError,
    InvalidAmountError,
    OpeningBalanceLockedError,
    UnknownWorkerError,
    ValidationError,
)


class TestCreateWorker:
    def test_current_starts_at_opening(self, ledger, org_id):
        worker = ledger.create_worker(org_id, "Ravi", "B1", opening_balance=-2500)
        assert worker.opening_balance == -2500
        assert worker.current_balance == -2500
        assert worker.is_active is True
        assert worker.account_id is None

    def test_names_trimmed(self, ledger, org_id):
        worker = ledger.create_worker(org_id, "  Ravi ", " B1 ")
        assert worker.name == "Ravi"
        assert worker.labour_code == "B1"

    def test_duplicate_labour_code(self, ledger, org_id):
        ledger.create_worker(org_id, "Ravi", "B1")
        with pytest.raises(DuplicateLabourCodeError):
            ledger.create_worker(org_id, "Someone else", "B1")

    def test_same_code_in_other_organization(self, ledger, org_id):
        ledger.create_worker(org_id, "Ravi", "B1")
        other = ledger.create_worker(uuid4(), "Ravi", "B1")
        assert other.labour_code == "B1"

    @pytest.mark.parametrize("name, code", [("", "B1"), ("Ravi", "   ")])
    def test_blank_fields(self, ledger, org_id, name, code):
        with pytest.raises(ValidationError):
            ledger.create_worker(org_id, name, code)

    def test_non_int_opening_balance(self, ledger, org_id):
        with pytest.raises(InvalidAmountError):
            ledger.create_worker(org_id, "Ravi", "B1", opening_balance=10.5)


class TestOpeningBalance:
    def test_editable_before_first_entry(self, ledger, org_id, make_worker):
        worker = make_worker()
        updated = ledger.set_opening_balance(worker.id, 4000)
        assert updated.opening_balance == 4000
        assert updated.current_balance == 4000

    def test_locked_after_first_entry(self, ledger, org_id, make_worker):
        worker = make_worker()
        ledger.apply_wage_event(org_id, [worker.id], 100, None, "wage", "w1")
        with pytest.raises(OpeningBalanceLockedError) as exc_info:
            ledger.set_opening_balance(worker.id, 4000)
        assert exc_info.value.entry_count == 1

    def test_unlocked_again_after_reversal(self, ledger, org_id, make_worker):
        worker = make_worker()
        ledger.apply_wage_event(org_id, [worker.id], 100, None, "wage", "w1")
        ledger.reverse_event(org_id, "wage", "w1")
        assert ledger.set_opening_balance(worker.id, 50).current_balance == 50

    def test_account_follows_opening_balance(self, ledger, org_id, make_worker):
        a, b = make_worker(), make_worker()
        account_id = ledger.create_account(org_id, "Pair", [a.id, b.id])
        ledger.set_opening_balance(a.id, 700)
        account = ledger.get_account(account_id)
        assert account.opening_balance == 700
        assert account.current_balance == 700


class TestActivation:
    def test_deactivate_keeps_balance_and_history(self, ledger, org_id, make_worker):
        worker = make_worker()
        ledger.apply_wage_event(org_id, [worker.id], 100, None, "wage", "w1")
        retired = ledger.deactivate_worker(worker.id)
        assert retired.is_active is False
        assert retired.current_balance == 100
        assert len(ledger.entries_for_reference(org_id, "wage", "w1")) == 1

    def test_list_filters_inactive(self, ledger, org_id, make_worker):
        a, b = make_worker("A1"), make_worker("A2")
        ledger.deactivate_worker(b.id)
        assert [w.id for w in ledger.list_workers(org_id)] == [a.id]
        assert len(ledger.list_workers(org_id, active_only=False)) == 2

    def test_reactivate(self, ledger, org_id, make_worker):
        worker = make_worker()
        ledger.deactivate_worker(worker.id)
        assert ledger.reactivate_worker(worker.id).is_active is True
        ledger.apply_wage_event(org_id, [worker.id], 100, None, "wage", "w1")

    def test_unknown_worker(self, ledger):
        with pytest.raises(UnknownWorkerError):
            ledger.get_worker(uuid4())
