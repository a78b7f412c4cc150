import pytest

from budgetledger.db import SQLiteLedgerStore
from budgetledger.services import LedgerCoordinator


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "ledger.db"


@pytest.fixture
def store(db_path):
    return SQLiteLedgerStore(db_path)


@pytest.fixture
def ledger(store):
    return LedgerCoordinator(store, convention="target_minus_actual")
