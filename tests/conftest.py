"""
Fixtures partagées : un moteur pré-rempli et un dépôt de périodes en mémoire.
"""
import pytest

from ledgerbook.models.account import Account
from ledgerbook.models.party import Party
from ledgerbook.models.product import Product
from ledgerbook.models.transaction import Transaction, TransactionItem
from ledgerbook.services.ledger_engine import LedgerEngine
from ledgerbook.services.period_repository import PeriodRepository
from ledgerbook.storage.store import MemoryStore


def seed(engine: LedgerEngine) -> LedgerEngine:
    engine.add_party(Party(id="c1", name="Ram Traders", kind="customer"))
    engine.add_party(Party(id="s1", name="Shyam Wholesale", kind="supplier"))
    engine.add_product(Product(id="p1", name="Widget", kind="goods", stock=10, min_stock_level=5))
    engine.add_product(Product(id="p2", name="Gadget", kind="goods", stock=4, min_stock_level=5))
    engine.add_product(Product(id="svc", name="Repair labour", kind="service", stock=0))
    engine.add_account(Account(id="a1", name="Nabil Bank", type="Bank"))
    return engine


def make_tx(kind="SALE", total=300.0, party_id="c1", account_id="a1", items=None, tx_id=None):
    if items is None:
        items = [TransactionItem(product_id="p1", quantity=3, rate=100, amount=300)]
    fields = dict(kind=kind, party_id=party_id, account_id=account_id, items=items, total_amount=total)
    if tx_id is not None:
        fields["id"] = tx_id
    return Transaction(**fields)


def balances(engine: LedgerEngine) -> dict:
    out = {}
    for p in engine.parties:
        out[f"party:{p.id}"] = p.balance
    for q in engine.products:
        out[f"product:{q.id}"] = q.stock
    for a in engine.accounts:
        out[f"account:{a.id}"] = a.balance
    return out


@pytest.fixture
def engine():
    return seed(LedgerEngine())


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repo(store):
    repository = PeriodRepository(store)
    yield repository
    repository.close()


@pytest.fixture
def active_repo(repo):
    period_id = repo.create("FY 2080/81")
    repo.switch_active(period_id)
    seed(repo.engine)
    return repo
