import asyncio
import sqlite3
from datetime import date

import pytest

from budgetledger.db import SQLiteLedgerStore
from budgetledger.errors import (
    InvalidRuleError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from budgetledger.models import Frequency, Period, RecurrenceRule, TransactionPatch
from budgetledger.services import LedgerCoordinator

FEBRUARY = Period.month(2024, 2)
MARCH = Period.month(2024, 3)


async def _setup_rent(ledger, user_id="u1"):
    """Rent category with a monthly template anchored on Jan 15, 2024."""
    rent = await ledger.create_category(user_id, "Rent", "expense", budget_target=150000)
    template = await ledger.create_template(
        user_id,
        -120000,
        RecurrenceRule(Frequency.MONTHLY, anchor=date(2024, 1, 15)),
        category_id=rent.id,
        description="Rent",
    )
    return rent, template


# =========================================================================
# list_period and materialization
# =========================================================================


@pytest.mark.asyncio
async def test_list_period_materializes_due_occurrences(ledger):
    rent, template = await _setup_rent(ledger)

    view = await ledger.list_period("u1", FEBRUARY)

    assert view.materialized == 1
    assert len(view.transactions) == 1
    instance = view.transactions[0]
    assert instance.occurred_on == date(2024, 2, 15)
    assert instance.template_id == template.id
    assert instance.occurrence_date == date(2024, 2, 15)
    assert view.aggregates[rent.id].actual == -120000
    assert view.aggregates[rent.id].variance == 270000


@pytest.mark.asyncio
async def test_list_period_is_idempotent(ledger):
    await _setup_rent(ledger)

    first = await ledger.list_period("u1", FEBRUARY)
    second = await ledger.list_period("u1", FEBRUARY)

    assert second.materialized == 0
    assert [t.id for t in second.transactions] == [t.id for t in first.transactions]
    assert second.aggregates == first.aggregates


@pytest.mark.asyncio
async def test_concurrent_listing_does_not_duplicate(db_path):
    store_a = SQLiteLedgerStore(db_path)
    store_b = SQLiteLedgerStore(db_path)
    ledger_a = LedgerCoordinator(store_a, convention="target_minus_actual")
    ledger_b = LedgerCoordinator(store_b, convention="target_minus_actual")
    await ledger_a.create_template(
        "u1", -500, RecurrenceRule(Frequency.DAILY, anchor=date(2024, 2, 1))
    )

    view_a, view_b = await asyncio.gather(
        ledger_a.list_period("u1", FEBRUARY),
        ledger_b.list_period("u1", FEBRUARY),
    )

    assert view_a.materialized + view_b.materialized == 29
    stored = await store_a.query_transactions("u1", FEBRUARY.start, FEBRUARY.end)
    assert len(stored) == 29
    assert len({t.occurrence_date for t in stored}) == 29
    assert len(view_a.transactions) == len(view_b.transactions) == 29


@pytest.mark.asyncio
async def test_deleted_instance_is_not_regenerated(ledger):
    rent, _ = await _setup_rent(ledger)
    view = await ledger.list_period("u1", FEBRUARY)

    deleted = await ledger.bulk_delete("u1", [view.transactions[0].id])
    again = await ledger.list_period("u1", FEBRUARY)

    assert deleted == 1
    assert again.materialized == 0
    assert again.transactions == []
    assert again.aggregates[rent.id].actual == 0
    assert again.aggregates[rent.id].variance == 150000


@pytest.mark.asyncio
async def test_deactivated_template_keeps_existing_instances(ledger):
    _, template = await _setup_rent(ledger)
    await ledger.list_period("u1", FEBRUARY)

    deactivated = await ledger.deactivate_template("u1", template.id)
    march = await ledger.list_period("u1", MARCH)
    february = await ledger.list_period("u1", FEBRUARY)

    assert deactivated.active is False
    assert march.materialized == 0
    assert march.transactions == []
    assert len(february.transactions) == 1


@pytest.mark.asyncio
async def test_deactivate_unknown_template(ledger):
    _, template = await _setup_rent(ledger)

    with pytest.raises(NotFoundError):
        await ledger.deactivate_template("u2", template.id)


@pytest.mark.asyncio
async def test_template_bounds_are_respected(ledger):
    await ledger.create_template(
        "u1",
        -1000,
        RecurrenceRule(
            Frequency.WEEKLY, anchor=date(2024, 1, 1), end_date=date(2024, 2, 10)
        ),
    )

    view = await ledger.list_period("u1", FEBRUARY)

    assert [t.occurred_on for t in view.transactions] == [date(2024, 2, 5)]


@pytest.mark.asyncio
async def test_uncategorized_bucket(ledger):
    await ledger.add_transaction("u1", -900, date(2024, 2, 3), description="Coffee")

    view = await ledger.list_period("u1", FEBRUARY)

    bucket = view.aggregates["uncategorized"]
    assert (bucket.actual, bucket.target, bucket.variance) == (-900, None, None)


@pytest.mark.asyncio
async def test_uncategorized_bucket_can_be_disabled(store):
    ledger = LedgerCoordinator(store, include_uncategorized=False)
    await ledger.add_transaction("u1", -900, date(2024, 2, 3))

    view = await ledger.list_period("u1", FEBRUARY)

    assert "uncategorized" not in view.aggregates
    assert len(view.transactions) == 1


@pytest.mark.asyncio
async def test_users_are_isolated(ledger):
    await _setup_rent(ledger, "u1")
    await ledger.add_transaction("u1", -900, date(2024, 2, 3))

    view = await ledger.list_period("u2", FEBRUARY)

    assert view.transactions == []
    assert view.aggregates == {}
    assert view.materialized == 0


@pytest.mark.asyncio
async def test_list_period_rejects_blank_user(ledger):
    with pytest.raises(ValidationError):
        await ledger.list_period("", FEBRUARY)


@pytest.mark.asyncio
async def test_period_view_to_dict(ledger):
    rent, _ = await _setup_rent(ledger)

    data = (await ledger.list_period("u1", FEBRUARY)).to_dict()

    assert data["period"]["label"] == "2024-02"
    assert data["materialized"] == 1
    assert data["aggregates"][str(rent.id)]["status"] == "on_track"


# =========================================================================
# Edits
# =========================================================================


@pytest.mark.asyncio
async def test_edit_updates_aggregates(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense", 50000)
    txn = await ledger.add_transaction("u1", -12000, date(2024, 2, 3), groceries.id)
    before = await ledger.list_period("u1", FEBRUARY)

    edited = await ledger.apply_edit("u1", txn.id, {"amount": -20000})
    after = await ledger.list_period("u1", FEBRUARY)

    assert edited.amount == -20000
    assert before.aggregates[groceries.id].actual == -12000
    assert after.aggregates[groceries.id].actual == -20000
    assert after.aggregates[groceries.id].variance == 70000


@pytest.mark.asyncio
async def test_moving_a_transaction_between_periods(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense", 50000)
    txn = await ledger.add_transaction("u1", -12000, date(2024, 2, 3), groceries.id)
    await ledger.list_period("u1", FEBRUARY)
    await ledger.list_period("u1", MARCH)

    await ledger.apply_edit("u1", txn.id, TransactionPatch(occurred_on=date(2024, 3, 1)))
    february = await ledger.list_period("u1", FEBRUARY)
    march = await ledger.list_period("u1", MARCH)

    assert february.aggregates[groceries.id].actual == 0
    assert march.aggregates[groceries.id].actual == -12000


@pytest.mark.asyncio
async def test_moving_a_transaction_between_categories(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense")
    dining = await ledger.create_category("u1", "Dining", "expense")
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3), groceries.id)
    await ledger.list_period("u1", FEBRUARY)

    await ledger.apply_edit("u1", txn.id, {"category_id": dining.id})
    view = await ledger.list_period("u1", FEBRUARY)

    assert view.aggregates[groceries.id].actual == 0
    assert view.aggregates[dining.id].actual == -3000


@pytest.mark.asyncio
async def test_clearing_a_category(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense")
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3), groceries.id)

    edited = await ledger.apply_edit("u1", txn.id, {"category_id": None})
    view = await ledger.list_period("u1", FEBRUARY)

    assert edited.category_id is None
    assert view.aggregates["uncategorized"].actual == -3000


@pytest.mark.asyncio
async def test_sign_mismatch_leaves_record_unchanged(ledger, store):
    groceries = await ledger.create_category("u1", "Groceries", "expense")
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3), groceries.id)

    with pytest.raises(ValidationError):
        await ledger.apply_edit("u1", txn.id, {"amount": 3000})

    stored = await store.get_transaction("u1", txn.id)
    assert stored.amount == -3000


@pytest.mark.asyncio
async def test_add_transaction_validates_sign_and_amount(ledger):
    salary = await ledger.create_category("u1", "Salary", "income")

    with pytest.raises(ValidationError):
        await ledger.add_transaction("u1", -5000, date(2024, 2, 1), salary.id)
    with pytest.raises(ValidationError):
        await ledger.add_transaction("u1", 0, date(2024, 2, 1), salary.id)

    txn = await ledger.add_transaction("u1", 500000, date(2024, 2, 1), salary.id)
    assert txn.amount == 500000


@pytest.mark.asyncio
async def test_foreign_category_is_rejected(ledger):
    theirs = await ledger.create_category("u2", "Groceries", "expense")
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3))

    with pytest.raises(ValidationError):
        await ledger.add_transaction("u1", -3000, date(2024, 2, 3), theirs.id)
    with pytest.raises(ValidationError):
        await ledger.apply_edit("u1", txn.id, {"category_id": theirs.id})


@pytest.mark.asyncio
async def test_edit_missing_foreign_or_deleted_transaction(ledger):
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3))

    with pytest.raises(NotFoundError):
        await ledger.apply_edit("u1", 9999, {"amount": -1})
    with pytest.raises(NotFoundError):
        await ledger.apply_edit("u2", txn.id, {"amount": -1})

    await ledger.bulk_delete("u1", [txn.id])
    with pytest.raises(NotFoundError):
        await ledger.apply_edit("u1", txn.id, {"amount": -1})


@pytest.mark.asyncio
async def test_empty_patch_returns_current(ledger):
    txn = await ledger.add_transaction("u1", -3000, date(2024, 2, 3))

    result = await ledger.apply_edit("u1", txn.id, {})

    assert result.amount == -3000


@pytest.mark.asyncio
async def test_editing_a_generated_instance_keeps_its_occurrence(ledger):
    _, template = await _setup_rent(ledger)
    view = await ledger.list_period("u1", FEBRUARY)
    instance = view.transactions[0]

    edited = await ledger.apply_edit(
        "u1", instance.id, {"occurred_on": "2024-02-20", "amount": -125000}
    )
    again = await ledger.list_period("u1", FEBRUARY)

    assert edited.occurred_on == date(2024, 2, 20)
    assert edited.occurrence_date == date(2024, 2, 15)
    assert again.materialized == 0
    assert [t.amount for t in again.transactions] == [-125000]


@pytest.mark.asyncio
async def test_bulk_edit_reports_partial_failures(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense")
    first = await ledger.add_transaction("u1", -1000, date(2024, 2, 3), groceries.id)
    second = await ledger.add_transaction("u1", -2000, date(2024, 2, 4), groceries.id)

    result = await ledger.apply_bulk_edit(
        "u1",
        {
            first.id: {"amount": -1500},
            second.id: {"amount": 2000},
            9999: {"amount": -1},
            0: {"amount": -1},
        },
    )

    assert result.applied_count == 1
    assert result.applied[0].amount == -1500
    kinds = {f.transaction_id: f.error.kind for f in result.failures}
    assert kinds == {
        second.id: "validation_error",
        9999: "not_found",
        0: "validation_error",
    }
    assert result.to_dict()["applied_count"] == 1


@pytest.mark.asyncio
async def test_bulk_edit_accepts_pairs(ledger):
    txn = await ledger.add_transaction("u1", -1000, date(2024, 2, 3))

    result = await ledger.apply_bulk_edit(
        "u1", [(txn.id, {"description": "Lunch"}), (txn.id, {"colour": "red"})]
    )

    assert result.applied_count == 1
    assert result.applied[0].description == "Lunch"
    assert result.failures[0].error.kind == "validation_error"


# =========================================================================
# Bulk delete
# =========================================================================


@pytest.mark.asyncio
async def test_bulk_delete_only_owned_and_idempotent(ledger, store):
    mine = await ledger.add_transaction("u1", -1000, date(2024, 2, 3))
    theirs = await ledger.add_transaction("u2", -1000, date(2024, 2, 3))

    deleted = await ledger.bulk_delete("u1", [mine.id, theirs.id, mine.id])
    repeated = await ledger.bulk_delete("u1", [mine.id])

    assert deleted == 1
    assert repeated == 0
    assert await store.get_transaction("u2", theirs.id) is not None


@pytest.mark.asyncio
async def test_bulk_delete_updates_aggregates(ledger):
    groceries = await ledger.create_category("u1", "Groceries", "expense", 50000)
    keep = await ledger.add_transaction("u1", -1000, date(2024, 2, 3), groceries.id)
    drop = await ledger.add_transaction("u1", -4000, date(2024, 2, 4), groceries.id)
    await ledger.list_period("u1", FEBRUARY)

    await ledger.bulk_delete("u1", [drop.id])
    view = await ledger.list_period("u1", FEBRUARY)

    assert [t.id for t in view.transactions] == [keep.id]
    assert view.aggregates[groceries.id].actual == -1000


@pytest.mark.asyncio
async def test_bulk_delete_rejects_malformed_ids(ledger):
    assert await ledger.bulk_delete("u1", []) == 0
    with pytest.raises(ValidationError):
        await ledger.bulk_delete("u1", ["abc"])


# =========================================================================
# Categories, targets and templates
# =========================================================================


@pytest.mark.asyncio
async def test_new_category_shows_up_in_cached_period(ledger):
    await _setup_rent(ledger)
    await ledger.list_period("u1", FEBRUARY)

    travel = await ledger.create_category("u1", "Travel", "expense", 30000)
    view = await ledger.list_period("u1", FEBRUARY)

    assert view.aggregates[travel.id].actual == 0
    assert view.aggregates[travel.id].variance == 30000


@pytest.mark.asyncio
async def test_set_budget_target_changes_variance(ledger):
    rent, _ = await _setup_rent(ledger)
    await ledger.list_period("u1", FEBRUARY)

    updated = await ledger.set_budget_target("u1", rent.id, 200000)
    view = await ledger.list_period("u1", FEBRUARY)

    assert updated.budget_target == 200000
    assert view.aggregates[rent.id].variance == 320000

    await ledger.set_budget_target("u1", rent.id, None)
    view = await ledger.list_period("u1", FEBRUARY)
    assert view.aggregates[rent.id].variance is None
    assert view.aggregates[rent.id].status is None


@pytest.mark.asyncio
async def test_set_budget_target_errors(ledger):
    rent, _ = await _setup_rent(ledger)

    with pytest.raises(NotFoundError):
        await ledger.set_budget_target("u2", rent.id, 1000)
    with pytest.raises(ValidationError):
        await ledger.set_budget_target("u1", rent.id, -1)


@pytest.mark.asyncio
async def test_create_template_validation(ledger):
    salary = await ledger.create_category("u1", "Salary", "income")

    with pytest.raises(InvalidRuleError):
        await ledger.create_template(
            "u1", -100, RecurrenceRule(Frequency.MONTHLY, date(2024, 1, 1), interval=0)
        )
    with pytest.raises(InvalidRuleError):
        await ledger.create_template(
            "u1",
            -100,
            RecurrenceRule(
                Frequency.MONTHLY, date(2024, 1, 1), end_date=date(2023, 12, 1)
            ),
        )
    with pytest.raises(ValidationError):
        await ledger.create_template(
            "u1", -100, RecurrenceRule(Frequency.MONTHLY, date(2024, 1, 1)), salary.id
        )
    with pytest.raises(ValidationError):
        await ledger.create_template(
            "u1", 0, RecurrenceRule(Frequency.MONTHLY, date(2024, 1, 1))
        )


@pytest.mark.asyncio
async def test_duplicate_category_name(ledger):
    await ledger.create_category("u1", "Rent", "expense")

    with pytest.raises(ValidationError):
        await ledger.create_category("u1", "Rent", "expense")


@pytest.mark.asyncio
async def test_upcoming_recurring(ledger):
    _, template = await _setup_rent(ledger)
    await ledger.create_template(
        "u1",
        -999,
        RecurrenceRule(Frequency.YEARLY, anchor=date(2024, 6, 1)),
        description="Insurance",
    )

    upcoming = await ledger.upcoming_recurring("u1", date(2024, 2, 1))
    assert [(u.template.id, u.next_date, u.days_until) for u in upcoming] == [
        (template.id, date(2024, 2, 15), 14)
    ]

    assert await ledger.upcoming_recurring("u1", date(2024, 2, 1), horizon_days=10) == []
    assert len(await ledger.upcoming_recurring("u1", date(2024, 2, 1), 365)) == 2


# =========================================================================
# Storage failures
# =========================================================================


@pytest.mark.asyncio
async def test_storage_failure_propagates_with_cause(ledger, store, monkeypatch):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store.transactions, "insert", broken)

    with pytest.raises(StorageError) as excinfo:
        await ledger.add_transaction("u1", -1000, date(2024, 2, 3))

    assert isinstance(excinfo.value.cause, sqlite3.OperationalError)
    assert excinfo.value.to_dict()["kind"] == "storage_error"


@pytest.mark.asyncio
async def test_storage_failure_during_listing(ledger, store, monkeypatch):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store.transactions, "query", broken)

    with pytest.raises(StorageError):
        await ledger.list_period("u1", FEBRUARY)


# =========================================================================
# Consistency under interleaved writes
# =========================================================================


@pytest.mark.asyncio
async def test_edit_during_listing_does_not_leave_stale_aggregates(
    ledger, store, monkeypatch
):
    groceries = await ledger.create_category("u1", "Groceries", "expense")
    txn = await ledger.add_transaction("u1", -1000, date(2024, 2, 3), groceries.id)
    list_categories = store.list_categories
    edited = []

    async def list_categories_then_edit(owner):
        categories = await list_categories(owner)
        if not edited:
            # Lands after the listing read its transactions
            edited.append(True)
            await ledger.apply_edit("u1", txn.id, {"amount": -9000})
        return categories

    monkeypatch.setattr(store, "list_categories", list_categories_then_edit)

    first = await ledger.list_period("u1", FEBRUARY)
    second = await ledger.list_period("u1", FEBRUARY)

    assert first.aggregates[groceries.id].actual == -1000
    assert sum(t.amount for t in second.transactions) == -9000
    assert second.aggregates[groceries.id].actual == -9000


@pytest.mark.asyncio
async def test_bulk_edit_survives_a_mistyped_item(ledger):
    first = await ledger.add_transaction("u1", -1000, date(2024, 2, 3))
    second = await ledger.add_transaction("u1", -2000, date(2024, 2, 4))

    result = await ledger.apply_bulk_edit(
        "u1",
        [
            (first.id, {"description": 123}),
            (first.id, {"category_id": True}),
            (second.id, {"amount": -3000}),
        ],
    )

    assert result.applied_count == 1
    assert result.applied[0].amount == -3000
    assert [f.error.kind for f in result.failures] == [
        "validation_error",
        "validation_error",
    ]


@pytest.mark.asyncio
async def test_add_transaction_rejects_mistyped_description(ledger):
    with pytest.raises(ValidationError):
        await ledger.add_transaction("u1", -1000, date(2024, 2, 3), description=42)


# =========================================================================
# Template updates
# =========================================================================


@pytest.mark.asyncio
async def test_update_template_applies_to_future_occurrences(ledger):
    rent, template = await _setup_rent(ledger)
    february = await ledger.list_period("u1", FEBRUARY)

    updated = await ledger.update_template(
        "u1", template.id, amount=-130000, description="Rent (new lease)"
    )
    march = await ledger.list_period("u1", MARCH)
    february_again = await ledger.list_period("u1", FEBRUARY)

    assert (updated.amount, updated.description) == (-130000, "Rent (new lease)")
    assert updated.category_id == rent.id
    assert [t.amount for t in march.transactions] == [-130000]
    assert march.transactions[0].description == "Rent (new lease)"
    assert [t.id for t in february_again.transactions] == [
        t.id for t in february.transactions
    ]
    assert february_again.transactions[0].amount == -120000


@pytest.mark.asyncio
async def test_update_template_category_and_sign(ledger):
    _, template = await _setup_rent(ledger)
    salary = await ledger.create_category("u1", "Salary", "income")
    theirs = await ledger.create_category("u2", "Housing", "expense")

    with pytest.raises(ValidationError):
        await ledger.update_template("u1", template.id, category_id=salary.id)
    with pytest.raises(ValidationError):
        await ledger.update_template("u1", template.id, amount=5000)
    with pytest.raises(ValidationError):
        await ledger.update_template("u1", template.id, category_id=theirs.id)

    moved = await ledger.update_template(
        "u1", template.id, amount=500000, category_id=salary.id
    )
    cleared = await ledger.update_template("u1", template.id, clear_category=True)

    assert (moved.amount, moved.category_id) == (500000, salary.id)
    assert cleared.category_id is None


@pytest.mark.asyncio
async def test_update_template_unknown_or_foreign(ledger):
    _, template = await _setup_rent(ledger)

    with pytest.raises(NotFoundError):
        await ledger.update_template("u2", template.id, amount=-1)
    with pytest.raises(NotFoundError):
        await ledger.update_template("u1", 9999, amount=-1)
    with pytest.raises(ValidationError):
        await ledger.update_template("u1", template.id, amount=0)

    unchanged = await ledger.update_template("u1", template.id)
    assert unchanged.amount == -120000
