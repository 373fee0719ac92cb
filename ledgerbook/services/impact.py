from __future__ import annotations
import logging
from typing import Dict, NamedTuple, Optional

from ledgerbook.models.period import PeriodData
from ledgerbook.models.transaction import Transaction

logger = logging.getLogger(__name__)


class ImpactRule(NamedTuple):
    """Signes appliqués à total_amount (tiers, compte) et à la quantité (stock)."""
    party: int
    stock: int
    account: int


# Convention débit-positif. Le facteur (+1 application, -1 annulation) multiplie chaque signe.
IMPACT_RULES: Dict[str, ImpactRule] = {
    "SALE":               ImpactRule(party=+1, stock=-1, account=+1),
    "PURCHASE":           ImpactRule(party=-1, stock=+1, account=-1),
    "PAYMENT_IN":         ImpactRule(party=-1, stock=0, account=+1),
    "PAYMENT_OUT":        ImpactRule(party=+1, stock=0, account=-1),
    "SALE_RETURN":        ImpactRule(party=-1, stock=+1, account=-1),
    "PURCHASE_RETURN":    ImpactRule(party=+1, stock=-1, account=+1),
    # montant signé tel que stocké
    "BALANCE_ADJUSTMENT": ImpactRule(party=+1, stock=0, account=+1),
    # Documents et mouvements sans règle tiers/stock : le compte attaché est débité.
    # Comportement historique conservé pour QUOTATION / PURCHASE_ORDER (question ouverte, cf. DESIGN.md).
    "EXPENSE":            ImpactRule(party=0, stock=0, account=-1),
    "QUOTATION":          ImpactRule(party=0, stock=0, account=-1),
    "PURCHASE_ORDER":     ImpactRule(party=0, stock=0, account=-1),
    "STOCK_ADJUSTMENT":   ImpactRule(party=0, stock=0, account=-1),
    "TRANSFER":           ImpactRule(party=0, stock=0, account=-1),
}


def rule_for(t: Transaction) -> ImpactRule:
    return IMPACT_RULES[t.kind]


def party_delta(t: Transaction) -> float:
    return rule_for(t).party * t.total_amount


def account_delta(t: Transaction) -> float:
    return rule_for(t).account * t.total_amount


def stock_delta(t: Transaction, quantity: float) -> float:
    return rule_for(t).stock * quantity


def _find(items, obj_id: Optional[str]):
    if not obj_id:
        return None
    for it in items:
        if it.id == obj_id:
            return it
    return None


def apply_impact(state: PeriodData, t: Transaction, factor: int) -> None:
    """
    Applique (factor=+1) ou annule (factor=-1) l'effet de `t` sur les soldes
    tiers, les stocks et les soldes de comptes de `state`.
    Une référence absente (tiers, produit, compte) est ignorée : pas d'erreur.
    """
    if factor not in (1, -1):
        raise ValueError(f"factor must be +1 or -1, got {factor!r}")
    rule = rule_for(t)

    # 1. Solde tiers
    if rule.party:
        party = _find(state.parties, t.party_id)
        if party is not None:
            party.balance += party_delta(t) * factor
        elif t.party_id:
            logger.debug("Tiers %s absent, impact tiers ignoré (tx %s)", t.party_id, t.id)

    # 2. Stock (les services n'ont pas de stock)
    if rule.stock:
        for item in t.items:
            product = _find(state.products, item.product_id)
            if product is None:
                logger.debug("Produit %s absent, impact stock ignoré (tx %s)", item.product_id, t.id)
                continue
            if product.tracks_stock:
                product.stock += stock_delta(t, item.quantity) * factor

    # 3. Compte
    if rule.account:
        account = _find(state.accounts, t.account_id)
        if account is not None:
            account.balance += account_delta(t) * factor
        elif t.account_id:
            logger.debug("Compte %s absent, impact compte ignoré (tx %s)", t.account_id, t.id)
