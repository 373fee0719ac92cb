import logging

import pytest

from ledgerbook.errors import NotFoundError, PersistenceError
from ledgerbook.models.party import Party
from ledgerbook.models.period import initial_period_data
from ledgerbook.services.period_repository import ACTIVE_KEY, REGISTRY_KEY, PeriodRepository
from ledgerbook.storage.store import MemoryStore

from conftest import make_tx


class FailingStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def put(self, key, blob):
        if self.fail_writes:
            raise PersistenceError("disk full")
        super().put(key, blob)


def test_create_persists_empty_period_with_default_account(repo, store):
    period_id = repo.create("FY 2080/81")

    info = repo.get_period(period_id)
    assert info.name == "FY 2080/81"
    assert info.status == "OPEN"
    blob = store.get(info.db_name)
    assert [a["id"] for a in blob["accounts"]] == ["1"]
    assert blob["accounts"][0]["isDefault"] is True
    assert blob["profile"]["name"] == "FY 2080/81"
    assert blob["transactions"] == []
    assert [p["id"] for p in store.get(REGISTRY_KEY)] == [period_id]


def test_load_of_missing_blob_gives_empty_period(repo, store):
    period_id = repo.create("Lost")
    store.delete(repo.get_period(period_id).db_name)

    repo.load(period_id)

    assert repo.active_id == period_id
    assert repo.engine.parties == []
    assert [a.id for a in repo.engine.accounts] == ["1"]


def test_load_of_garbage_blob_gives_empty_period(repo, store):
    period_id = repo.create("Garbage")
    store.put(repo.get_period(period_id).db_name, "not an object")
    repo.load(period_id)
    assert repo.engine.transactions == []


def test_switch_to_unknown_period_raises(repo):
    with pytest.raises(NotFoundError):
        repo.switch_active("does-not-exist")


def test_switch_active_remembers_pointer_and_notifies(repo, store):
    period_id = repo.create("FY")
    calls = []
    repo.subscribe(lambda: calls.append("changed"))

    repo.switch_active(period_id)

    assert repo.active_id == period_id
    assert store.get(ACTIVE_KEY) == period_id
    assert calls == ["changed"]


def test_mutations_are_persisted_and_notified(active_repo, store):
    calls = []
    active_repo.subscribe(lambda: calls.append(1))

    active_repo.engine.apply_transaction(make_tx(total=300, tx_id="t1"))

    blob = store.get(active_repo.get_period(active_repo.active_id).db_name)
    assert [t["id"] for t in blob["transactions"]] == ["t1"]
    party = next(p for p in blob["parties"] if p["id"] == "c1")
    assert party["balance"] == 300
    assert calls == [1]


def test_switching_periods_keeps_each_period_separate(active_repo):
    first = active_repo.active_id
    active_repo.engine.apply_transaction(make_tx(total=300))

    second = active_repo.create("Branch office")
    active_repo.switch_active(second)
    assert active_repo.engine.parties == []

    active_repo.switch_active(first)
    assert active_repo.engine.get_party("c1").balance == 300


def test_persistence_failure_is_logged_and_state_kept(caplog):
    store = FailingStore()
    repo = PeriodRepository(store)
    period_id = repo.create("FY")
    repo.switch_active(period_id)
    repo.engine.add_party(Party(id="c1", name="Ram"))
    store.fail_writes = True

    with caplog.at_level(logging.ERROR):
        repo.engine.apply_transaction(make_tx(total=300, account_id=None, items=[]))

    assert repo.engine.get_party("c1").balance == 300
    assert any(r.levelno == logging.ERROR for r in caplog.records)

    # l'écriture suivante réussie rattrape l'état complet
    store.fail_writes = False
    repo.engine.apply_transaction(make_tx(total=50, account_id=None, items=[]))
    blob = store.get(repo.get_period(period_id).db_name)
    assert len(blob["transactions"]) == 2
    repo.close()


def test_async_writes_are_flushed_in_order():
    store = MemoryStore()
    repo = PeriodRepository(store, async_writes=True)
    period_id = repo.create("FY")
    repo.switch_active(period_id)
    repo.engine.add_party(Party(id="c1", name="Ram"))
    for i in range(20):
        repo.engine.apply_transaction(make_tx(total=10, account_id=None, items=[], tx_id=f"t{i}"))

    repo.flush()

    blob = store.get(repo.get_period(period_id).db_name)
    assert len(blob["transactions"]) == 20
    assert blob["parties"][0]["balance"] == 200
    repo.close()


def test_registry_and_active_period_survive_restart(active_repo, store):
    period_id = active_repo.active_id
    active_repo.engine.apply_transaction(make_tx(total=300))
    active_repo.close()

    reopened = PeriodRepository(store)
    assert [p.id for p in reopened.list_periods()] == [period_id]
    assert reopened.resume() == period_id
    assert reopened.engine.get_party("c1").balance == 300
    assert reopened.engine.verify_balances() == []


def test_resume_without_remembered_period(repo):
    assert repo.resume() is None
    assert repo.active_id is None


def test_logout_resets_cache(active_repo, store):
    active_repo.logout()
    assert active_repo.active_id is None
    assert active_repo.engine.parties == []
    assert store.get(ACTIVE_KEY) is None


def test_create_notifies_listeners(repo):
    calls = []
    repo.subscribe(lambda: calls.append(1))
    repo.create("FY")
    assert calls == [1]


def test_activate_installs_state_without_reading_the_store(repo, store):
    period_id = repo.create("FY")
    data = initial_period_data("FY")
    data.parties.append(Party(id="c1", name="Ram", balance=120, opening_balance=120))
    store.delete(repo.get_period(period_id).db_name)

    repo.activate(period_id, data)

    assert repo.active_id == period_id
    assert store.get(ACTIVE_KEY) == period_id
    assert repo.engine.get_party("c1").balance == 120
    assert store.get(repo.get_period(period_id).db_name)["parties"][0]["id"] == "c1"

    # l'objet fourni n'est pas partagé avec le moteur
    data.parties[0].balance = 0
    assert repo.engine.get_party("c1").balance == 120


def test_activate_unknown_period_raises(repo):
    with pytest.raises(NotFoundError):
        repo.activate("nope", initial_period_data())
