"""
Demo script for the budget ledger.

Sets up a throwaway ledger with a few categories and recurring templates,
then lists a month and prints the budget table.
"""

import asyncio
import logging
import sys
import tempfile
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from budgetledger.config import (
    LOG_DIR,
    LOG_FILE,
    LOG_FORMAT,
    ensure_directories,
    get_log_level,
)
from budgetledger.db import SQLiteLedgerStore
from budgetledger.models import Frequency, Period, RecurrenceRule
from budgetledger.services import LedgerCoordinator, budget_alerts, format_amount

logger = logging.getLogger(__name__)


async def demo(db_path: Path):
    logger.info(f"Running demo ledger at {db_path}")
    ledger = LedgerCoordinator(SQLiteLedgerStore(db_path))
    user = "demo-user"

    salary = await ledger.create_category(user, "Salary", "income")
    rent = await ledger.create_category(user, "Rent", "expense", budget_target=150000)
    groceries = await ledger.create_category(
        user, "Groceries", "expense", budget_target=50000
    )
    await ledger.create_category(user, "Dining", "expense", budget_target=20000)

    await ledger.create_template(
        user,
        366000,
        RecurrenceRule(Frequency.MONTHLY, anchor=date(2024, 1, 30)),
        category_id=salary.id,
        description="Salary",
    )
    await ledger.create_template(
        user,
        -150000,
        RecurrenceRule(Frequency.MONTHLY, anchor=date(2024, 1, 1)),
        category_id=rent.id,
        description="Rent",
    )
    await ledger.create_template(
        user,
        -11000,
        RecurrenceRule(Frequency.WEEKLY, anchor=date(2024, 1, 6)),
        category_id=groceries.id,
        description="Weekly groceries",
    )
    await ledger.add_transaction(user, -2599, date(2024, 2, 14), description="Flowers")

    view = await ledger.list_period(user, Period.month(2024, 2))

    print("=" * 60)
    print(f"Budget for {view.period.label}")
    print("=" * 60)
    for agg in view.aggregates.values():
        target = format_amount(agg.target) if agg.target is not None else "-"
        variance = format_amount(agg.variance) if agg.variance is not None else "-"
        status = agg.status.value if agg.status else ""
        print(
            f"  {agg.name:<16} actual {format_amount(agg.actual):>12}  "
            f"target {target:>10}  variance {variance:>10}  {status}"
        )

    print(f"\n{len(view.transactions)} transactions ({view.materialized} generated)")
    for alert in budget_alerts(view.aggregates):
        print(f"  ! {alert.title}: {alert.message}")


def main():
    load_dotenv()
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_DIR / LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )
    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(demo(Path(tmp) / "demo.db"))


if __name__ == "__main__":
    main()
