"""Food diary alerts: junk-food repeats, low protein, daily goals and missing meals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from models.food_diary import HYDRATION_MEAL_TYPE
from services.alert_config import AlertSettings
from services.alerts.base import AlertCandidate, AlertProducer, AlertType, format_number
from services.clock import ClockResolver, ClockSnapshot
from services.domain_store import DiaryRow, DomainStore, NutritionGoals, Subject

PERCENT_CAP = 120.0


@dataclass(frozen=True)
class DailyTotals:
    calories: float
    protein: float
    water_l: float


def lookback_start(snapshot: ClockSnapshot, settings: AlertSettings):
    return snapshot.local_date - timedelta(days=max(settings.diet_lookback_days, 1) - 1)


def _same_label(left: Optional[str], right: str) -> bool:
    return (left or "").strip().casefold() == right.strip().casefold()


def build_junk_repeat_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    entries: Sequence[DiaryRow],
) -> Optional[AlertCandidate]:
    counts: Dict[str, int] = {}
    for entry in entries:
        food_text = (entry.food or "").lower()
        for keyword in settings.junk_keywords:
            if keyword.lower() in food_text:
                counts[keyword] = counts.get(keyword, 0) + 1
    if not counts:
        return None
    keyword, count = sorted(counts.items(), key=lambda item: -item[1])[0]
    if count < settings.junk_repeat_count:
        return None
    week_start = lookback_start(snapshot, settings).isoformat()
    message = "\n".join(
        [
            "🍔 Olho na alimentação",
            f"{keyword} apareceu {count}x nos últimos {settings.diet_lookback_days} dias.",
            "Tente equilibrar as escolhas nesta semana!",
        ]
    )
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.FOOD_JUNK_REPEAT.value,
        dedup_key=f"{week_start}-{keyword}",
        message=message,
        metadata={"keyword": keyword, "count": count},
    )


def build_protein_low_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    entries: Sequence[DiaryRow],
) -> Optional[AlertCandidate]:
    if snapshot.hour < settings.protein_check_hour:
        return None
    protein_today = sum(entry.protein for entry in entries if entry.entry_date == snapshot.local_date)
    if protein_today >= settings.protein_min:
        return None
    message = "\n".join(
        [
            "🥚 Proteína baixa hoje",
            f"Total ingerido: {protein_today:.0f}g. Meta: {format_number(settings.protein_min)}g.",
            "Planeje uma refeição com mais proteínas até o fim do dia.",
        ]
    )
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.FOOD_PROTEIN_LOW.value,
        dedup_key=snapshot.date_str,
        message=message,
        metadata={"protein": protein_today},
    )


def daily_totals(entries: Sequence[DiaryRow], hydration_ml: float = 0.0) -> DailyTotals:
    """Calories/protein skip hydration rows; water adds diary ``water_ml`` and hydration logs."""
    calories = 0.0
    protein = 0.0
    water_ml = 0.0
    for entry in entries:
        if not _same_label(entry.meal_type, HYDRATION_MEAL_TYPE):
            calories += entry.calories
            protein += entry.protein
        water_ml += entry.water_ml
    return DailyTotals(calories=calories, protein=protein, water_l=(water_ml + hydration_ml) / 1000)


def _percent(total: float, goal: float) -> float:
    if not goal:
        return 0.0
    return min(PERCENT_CAP, max(0.0, total / goal * 100))


def avatar_state(pct_calories: float, pct_protein: float, pct_water: float) -> str:
    average = (pct_calories + pct_protein + pct_water) / 3
    if average >= 85:
        return "Em forma"
    if average >= 55:
        return "Em progresso"
    return "Recuperação"


def avatar_tip(pct_calories: float, pct_protein: float, pct_water: float) -> str:
    worst = sorted(
        [("water", pct_water), ("protein", pct_protein), ("calories", pct_calories)],
        key=lambda item: item[1],
    )[0][0]
    if worst == "water":
        return "Bebe mais água."
    if worst == "protein":
        return "Capricha na proteína."
    if pct_calories > 110:
        return "Reduz um pouco as calorias."
    return "Ajusta as calorias."


def build_daily_goals_message(totals: DailyTotals, goals: NutritionGoals) -> str:
    missing_calories = max(0.0, goals.calories - totals.calories)
    missing_protein = max(0.0, goals.protein - totals.protein)
    missing_water = max(0.0, goals.water_l - totals.water_l)

    calories_text = f"{format_number(totals.calories)} / {format_number(goals.calories)}"
    protein_text = f"{format_number(totals.protein)}g / {format_number(goals.protein)}g"
    water_text = f"{format_number(totals.water_l, 1)}L / {format_number(goals.water_l, 1)}L"

    pct_calories = _percent(totals.calories, goals.calories)
    pct_protein = _percent(totals.protein, goals.protein)
    pct_water = _percent(totals.water_l, goals.water_l)
    avatar_lines = [
        f"👤 Seu Avatar hoje: {avatar_state(pct_calories, pct_protein, pct_water)}",
        f"💡 Dica: {avatar_tip(pct_calories, pct_protein, pct_water)}",
    ]

    if not (missing_calories or missing_protein or missing_water):
        return "\n".join(
            [
                "✅ Parabéns! Você bateu suas metas de hoje! 🎉",
                f"🔥 Calorias: {calories_text}",
                f"💪 Proteína: {protein_text}",
                f"💧 Água: {water_text}",
                *avatar_lines,
                "Continua assim!",
            ]
        )
    return "\n".join(
        [
            "⚠️ Hoje você NÃO bateu todas as metas.",
            f"🔥 Calorias: {calories_text} (faltou {format_number(missing_calories)})",
            f"💪 Proteína: {protein_text} (faltou {format_number(missing_protein)}g)",
            f"💧 Água: {water_text} (faltou {format_number(missing_water, 1)}L)",
            *avatar_lines,
            "Amanhã dá pra fechar 💪",
        ]
    )


def goals_missed(totals: DailyTotals, goals: NutritionGoals) -> bool:
    return totals.calories < goals.calories or totals.protein < goals.protein or totals.water_l < goals.water_l


def build_daily_goals_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    totals: DailyTotals,
    goals: NutritionGoals,
) -> Optional[AlertCandidate]:
    if not snapshot.in_window(settings.goals_window):
        return None
    missed = goals_missed(totals, goals)
    if not missed and not settings.goals_send_congrats:
        return None
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.DAILY_GOALS.value,
        dedup_key=snapshot.date_str,
        message=build_daily_goals_message(totals, goals),
        metadata={"missed": missed},
    )


def build_meal_missing_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    entries: Sequence[DiaryRow],
) -> Optional[AlertCandidate]:
    window = ClockResolver.match_window(snapshot, settings.meal_windows)
    if window is None:
        return None
    # Profiles without any diary activity in the lookback period are not nagged.
    if not entries:
        return None
    label = window.name
    logged_today = any(
        entry.entry_date == snapshot.local_date and _same_label(entry.meal_type, label) for entry in entries
    )
    if logged_today:
        return None
    message = "\n".join(
        [
            "🍽️ Lembrete de refeição",
            f"Você ainda não registrou nada em \"{label}\" hoje.",
            "Anote no diário para manter o acompanhamento em dia.",
        ]
    )
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.MEAL_MISSING.value,
        dedup_key=f"{snapshot.date_str}-{label}",
        message=message,
        metadata={"meal": label},
    )


def _recent_entries(store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings):
    return store.diary_entries_between(subject.subject_id, lookback_start(snapshot, settings), snapshot.local_date)


def evaluate_junk_repeat(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    candidate = build_junk_repeat_alert(subject, snapshot, settings, _recent_entries(store, subject, snapshot, settings))
    return [candidate] if candidate else []


def evaluate_protein_low(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    entries = store.diary_entries_between(subject.subject_id, snapshot.local_date, snapshot.local_date)
    candidate = build_protein_low_alert(subject, snapshot, settings, entries)
    return [candidate] if candidate else []


def evaluate_daily_goals(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    defaults = NutritionGoals(
        calories=settings.default_calorie_goal,
        protein=settings.default_protein_goal,
        water_l=settings.default_water_goal_l,
    )
    goals = store.nutrition_goals(subject.subject_id, defaults)
    entries = store.diary_entries_between(subject.subject_id, snapshot.local_date, snapshot.local_date)
    totals = daily_totals(entries, store.hydration_ml(subject.subject_id, snapshot.local_date))
    candidate = build_daily_goals_alert(subject, snapshot, settings, totals, goals)
    return [candidate] if candidate else []


def evaluate_meal_missing(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    candidate = build_meal_missing_alert(subject, snapshot, settings, _recent_entries(store, subject, snapshot, settings))
    return [candidate] if candidate else []


JUNK_REPEAT_PRODUCER = AlertProducer(name="food_junk_repeat", evaluate=evaluate_junk_repeat)
PROTEIN_LOW_PRODUCER = AlertProducer(
    name="food_protein_low",
    evaluate=evaluate_protein_low,
    gate=lambda snapshot, settings: snapshot.hour >= settings.protein_check_hour,
)
DAILY_GOALS_PRODUCER = AlertProducer(
    name="daily_goals",
    evaluate=evaluate_daily_goals,
    gate=lambda snapshot, settings: snapshot.in_window(settings.goals_window),
)
MEAL_MISSING_PRODUCER = AlertProducer(
    name="food_meal_missing",
    evaluate=evaluate_meal_missing,
    gate=lambda snapshot, settings: ClockResolver.match_window(snapshot, settings.meal_windows) is not None,
)


__all__ = [
    "DAILY_GOALS_PRODUCER",
    "DailyTotals",
    "JUNK_REPEAT_PRODUCER",
    "MEAL_MISSING_PRODUCER",
    "PROTEIN_LOW_PRODUCER",
    "avatar_state",
    "avatar_tip",
    "build_daily_goals_alert",
    "build_daily_goals_message",
    "build_junk_repeat_alert",
    "build_meal_missing_alert",
    "build_protein_low_alert",
    "daily_totals",
    "goals_missed",
]
