from __future__ import annotations
import logging
from typing import List

from ledgerbook.errors import NotFoundError
from ledgerbook.models.common import now_iso
from ledgerbook.models.period import PeriodData
from ledgerbook.models.transaction import Transaction
from ledgerbook.services.period_repository import PeriodRepository

logger = logging.getLogger(__name__)

OPENING_CATEGORY = "Opening Balance"


def opening_adjustment(party_id: str, party_name: str, amount: float, date: str) -> Transaction:
    return Transaction(
        id=f"OPENING-{party_id}",
        date=date,
        kind="BALANCE_ADJUSTMENT",
        party_id=party_id,
        party_name=party_name,
        total_amount=amount,
        notes=OPENING_CATEGORY,
        category=OPENING_CATEGORY,
        payment_mode="Adjustment",
    )


class RolloverService:
    """
    Clôture d'une période et ouverture de la suivante.

    Comptes, tiroir-caisse, produits (stock compris), utilisateurs, profil et
    configuration sont recopiés tels quels. Les soldes tiers non nuls sont remis
    à zéro puis rétablis par des BALANCE_ADJUSTMENT d'ouverture rejoués via le
    moteur : Σ soldes tiers est conservé. Seuls les dossiers SAV / garantie
    encore ouverts sont reportés ; le journal repart vide.
    """

    def __init__(self, repository: PeriodRepository) -> None:
        self.repository = repository

    def close_period(self, current_id: str, next_name: str) -> str:
        if self.repository.get_period(current_id) is None:
            raise NotFoundError(f"Period {current_id} not found")

        # 1-2. instantané de la période close
        old = self.repository.read_period(current_id)
        jobs = [j for j in old.service_jobs if j.is_open]
        cases = [c for c in old.warranty_cases if c.is_open]

        # 3. nouvelle période
        new_id = self.repository.create(next_name)

        # 4-5. comptes, tiroir et produits repris avec leurs valeurs courantes
        accounts = [a.model_copy(deep=True) for a in old.accounts]
        for a in accounts:
            a.opening_balance = a.balance
        products = [p.model_copy(deep=True) for p in old.products]
        for p in products:
            p.opening_stock = p.stock

        # 6. soldes tiers -> écritures d'ouverture
        stamp = now_iso()
        openings: List[Transaction] = []
        parties = []
        for party in old.parties:
            copied = party.model_copy(deep=True)
            if party.balance != 0:
                openings.append(opening_adjustment(party.id, party.name, party.balance, stamp))
            copied.balance = 0.0
            copied.opening_balance = 0.0
            parties.append(copied)

        data = PeriodData(
            profile=old.profile.model_copy(deep=True),
            db_config=old.db_config.model_copy(deep=True),
            cloud_config=old.cloud_config.model_copy(deep=True),
            accounts=accounts,
            parties=parties,
            products=products,
            reminders=[r.model_copy(deep=True) for r in old.reminders],
            service_jobs=jobs,
            warranty_cases=cases,
            users=[u.model_copy(deep=True) for u in old.users],
            cash_drawer=old.cash_drawer.model_copy(deep=True),
        )
        # 7. bascule sur l'état construit en mémoire (il fait foi même si l'écriture échoue),
        # puis rejeu des ouvertures par le chemin normal d'impact
        self.repository.activate(new_id, data)
        engine = self.repository.engine
        for t in openings:
            engine.apply_transaction(t)
        self.repository.mark_closed(current_id, successor_id=new_id)

        logger.info(
            "Période %s close -> %s ('%s') : %d ouvertures tiers, %d dossiers SAV, %d garanties reportés",
            current_id, new_id, next_name, len(openings), len(jobs), len(cases),
        )
        return new_id
