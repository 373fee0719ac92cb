import pytest

from ledgerbook.models.cash_drawer import DENOMINATIONS
from ledgerbook.services.ledger_engine import LedgerEngine

from conftest import balances, make_tx


@pytest.mark.parametrize("payload", [None, "not a backup", 42, ["a", "list"]])
def test_restore_rejects_non_objects(engine, payload):
    before = balances(engine)
    result = engine.restore_data(payload)
    assert result.success is False
    assert result.error == "MALFORMED_INPUT"
    assert balances(engine) == before


def test_restore_fills_missing_keys_with_defaults(engine):
    result = engine.restore_data({"profile": {"name": "Everest Mart"}, "parties": [{"id": "c9", "name": "Gita", "balance": 40}]})

    assert result.success
    assert engine.profile.name == "Everest Mart"
    assert engine.profile.address == ""
    assert [a.id for a in engine.accounts] == ["1"]
    assert engine.products == []
    assert engine.transactions == []
    assert [n.denomination for n in engine.cash_drawer.notes] == list(DENOMINATIONS)
    assert engine.get_party("c9").balance == 40


def test_restore_keeps_default_notes_when_drawer_notes_are_not_a_list(engine):
    engine.restore_data({"cashDrawer": {"notes": "broken", "lastUpdated": "2024-01-01T00:00:00"}})
    drawer = engine.cash_drawer
    assert len(drawer.notes) == len(DENOMINATIONS)
    assert drawer.last_updated == "2024-01-01T00:00:00"


def test_restore_skips_invalid_records(engine, caplog):
    engine.restore_data({
        "parties": [{"id": "ok", "name": "Valid"}, {"id": "bad"}],
        "transactions": [{"id": "t1", "type": "NOT_A_KIND", "totalAmount": 5}],
    })
    assert [p.id for p in engine.parties] == ["ok"]
    assert engine.transactions == []
    assert any("ignor" in r.getMessage() for r in caplog.records)


def test_backup_then_restore_reproduces_balances(engine):
    engine.apply_transaction(make_tx(total=300))
    engine.apply_transaction(make_tx(kind="PURCHASE", party_id="s1", total=90))
    backup = engine.backup_data()

    assert backup["appId"]
    assert backup["backupVersion"]
    assert "cashDrawer" in backup and "serviceJobs" in backup

    other = LedgerEngine()
    assert other.restore_data(backup).success
    assert balances(other) == balances(engine)
    assert len(other.transactions) == 2
    assert other.verify_balances() == []


def test_restore_back_solves_missing_openings():
    engine = LedgerEngine()
    engine.restore_data({
        "parties": [{"id": "c1", "name": "Ram", "type": "customer", "balance": 1300}],
        "products": [{"id": "p1", "name": "Widget", "stock": 7}],
        "transactions": [{"id": "t1", "type": "SALE", "partyId": "c1", "totalAmount": 300,
                          "items": [{"productId": "p1", "quantity": 3, "amount": 300}]}],
    })
    assert engine.get_party("c1").opening_balance == 1000
    assert engine.get_product("p1").opening_stock == 10
    assert engine.verify_balances() == []

    engine.delete_transaction("t1")
    assert engine.get_party("c1").balance == 1000
    assert engine.get_product("p1").stock == 10


def test_table_viewer(engine):
    assert "serviceJobs" in engine.list_tables()
    rows = engine.get_table_data("parties")
    assert {r["id"] for r in rows} == {"c1", "s1"}
    assert engine.get_table_data("secrets") == []
