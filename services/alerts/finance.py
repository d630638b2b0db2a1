"""Month-to-date finance alerts: low balance and top category spike."""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from services.alert_config import AlertSettings
from services.alerts.base import AlertCandidate, AlertProducer, AlertType, format_brl
from services.clock import ClockSnapshot
from services.domain_store import DomainStore, Subject, TransactionRow

UNCATEGORIZED = "Outros"


def _plain(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def month_balance(transactions: Sequence[TransactionRow]) -> float:
    incomes = sum(tx.amount for tx in transactions if tx.type == "income")
    expenses = sum(tx.amount for tx in transactions if tx.type == "expense")
    return incomes - expenses


def expenses_by_category(transactions: Sequence[TransactionRow]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for tx in transactions:
        if tx.type != "expense":
            continue
        category = tx.category or UNCATEGORIZED
        totals[category] = totals.get(category, 0.0) + tx.amount
    return totals


def build_low_balance_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    transactions: Sequence[TransactionRow],
) -> Optional[AlertCandidate]:
    balance = month_balance(transactions)
    threshold = settings.low_balance_threshold
    if balance > threshold:
        return None
    # The floor bucket re-alerts on a materially different balance only.
    dedup_key = f"{snapshot.month_key}-{_plain(threshold)}-{math.floor(balance)}"
    greeting = f"{subject.name}, " if subject.name else ""
    message = "\n".join(
        [
            "⚠️ Alerta financeiro",
            f"{greeting}seu saldo do mês está em {format_brl(balance)}.",
            f"Limite definido: {format_brl(threshold)}.",
        ]
    )
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.FINANCE_LOW_BALANCE.value,
        dedup_key=dedup_key,
        message=message,
        metadata={"balance": balance},
    )


def build_category_spike_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    transactions: Sequence[TransactionRow],
) -> Optional[AlertCandidate]:
    totals = expenses_by_category(transactions)
    total_expenses = sum(totals.values())
    if total_expenses <= 0:
        return None
    category, value = sorted(totals.items(), key=lambda item: -item[1])[0]
    share = value / total_expenses
    if value < settings.category_spike_amount and share < settings.category_spike_pct:
        return None
    message = "\n".join(
        [
            "📊 Gastos em alta",
            f"{category} já consumiu {format_brl(value)} neste mês.",
            f"Isso representa {share * 100:.0f}% dos gastos do período.",
        ]
    )
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.FINANCE_CATEGORY_SPIKE.value,
        dedup_key=f"{snapshot.month_key}-{category}",
        message=message,
        metadata={"category": category, "amount": value, "share": share},
    )


def _month_to_date(store: DomainStore, subject: Subject, snapshot: ClockSnapshot) -> List[TransactionRow]:
    return store.transactions_between(subject.subject_id, snapshot.month_start, snapshot.local_date)


def evaluate_low_balance(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    candidate = build_low_balance_alert(subject, snapshot, settings, _month_to_date(store, subject, snapshot))
    return [candidate] if candidate else []


def evaluate_category_spike(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    candidate = build_category_spike_alert(subject, snapshot, settings, _month_to_date(store, subject, snapshot))
    return [candidate] if candidate else []


LOW_BALANCE_PRODUCER = AlertProducer(name="finance_low_balance", evaluate=evaluate_low_balance)
CATEGORY_SPIKE_PRODUCER = AlertProducer(name="finance_category_spike", evaluate=evaluate_category_spike)


__all__ = [
    "CATEGORY_SPIKE_PRODUCER",
    "LOW_BALANCE_PRODUCER",
    "build_category_spike_alert",
    "build_low_balance_alert",
    "expenses_by_category",
    "month_balance",
]
