import pytest

from ledgerbook.models.period import PeriodData
from ledgerbook.models.account import Account
from ledgerbook.models.party import Party
from ledgerbook.models.product import Product
from ledgerbook.models.transaction import TRANSACTION_KINDS, TransactionItem
from ledgerbook.services.impact import IMPACT_RULES, apply_impact

from conftest import make_tx


def _state():
    return PeriodData(
        parties=[Party(id="c1", name="Ram")],
        products=[Product(id="p1", name="Widget", stock=10), Product(id="svc", name="Labour", kind="service")],
        accounts=[Account(id="a1", name="Bank", type="Bank")],
    )


def test_every_kind_has_a_rule():
    assert set(IMPACT_RULES) == set(TRANSACTION_KINDS)


@pytest.mark.parametrize(
    "kind, party, stock, account",
    [
        ("SALE", 100, -3, 100),
        ("PURCHASE", -100, 3, -100),
        ("PAYMENT_IN", -100, 0, 100),
        ("PAYMENT_OUT", 100, 0, -100),
        ("SALE_RETURN", -100, 3, -100),
        ("PURCHASE_RETURN", 100, -3, 100),
        ("BALANCE_ADJUSTMENT", 100, 0, 100),
        ("EXPENSE", 0, 0, -100),
        ("QUOTATION", 0, 0, -100),
        ("PURCHASE_ORDER", 0, 0, -100),
        ("STOCK_ADJUSTMENT", 0, 0, -100),
        ("TRANSFER", 0, 0, -100),
    ],
)
def test_sign_table(kind, party, stock, account):
    state = _state()
    t = make_tx(kind=kind, total=100, items=[TransactionItem(product_id="p1", quantity=3, amount=100)])

    apply_impact(state, t, 1)

    assert state.parties[0].balance == pytest.approx(party)
    assert state.products[0].stock == pytest.approx(10 + stock)
    assert state.accounts[0].balance == pytest.approx(account)


def test_negative_balance_adjustment_is_applied_as_stored():
    state = _state()
    apply_impact(state, make_tx(kind="BALANCE_ADJUSTMENT", total=-250, items=[]), 1)
    assert state.parties[0].balance == pytest.approx(-250)
    assert state.accounts[0].balance == pytest.approx(-250)


def test_service_products_do_not_track_stock():
    state = _state()
    t = make_tx(items=[TransactionItem(product_id="svc", quantity=2, amount=300)])
    apply_impact(state, t, 1)
    assert state.products[1].stock == 0


def test_missing_references_are_skipped():
    state = _state()
    t = make_tx(party_id="ghost", account_id="nowhere",
                items=[TransactionItem(product_id="missing", quantity=1), TransactionItem(product_id="p1", quantity=1)])
    apply_impact(state, t, 1)
    assert state.parties[0].balance == 0
    assert state.accounts[0].balance == 0
    assert state.products[0].stock == 9


def test_expense_without_account_changes_nothing():
    state = _state()
    apply_impact(state, make_tx(kind="EXPENSE", account_id=None, party_id=None, items=[]), 1)
    assert state.accounts[0].balance == 0


def test_factor_must_be_unit():
    with pytest.raises(ValueError):
        apply_impact(_state(), make_tx(), 2)
