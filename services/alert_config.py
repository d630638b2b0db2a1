"""Single configuration object shared by producers, limiter, dispatcher and drivers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Tuple

from core.env import env_bool, env_float, env_hhmm, env_int, env_list, env_str
from core.logging import get_logger
from services.clock import DEFAULT_TIMEZONE, TimeWindow, format_hhmm

logger = get_logger(__name__)

DEFAULT_JUNK_KEYWORDS: Tuple[str, ...] = (
    "batata frita",
    "refrigerante",
    "hamburguer",
    "lanche",
    "pizza",
    "doce",
    "brigadeiro",
    "salgadinho",
)
DEFAULT_MEAL_WINDOWS = "Café da manhã@10:00-10:30;Almoço@14:00-14:30;Jantar@20:00-20:30"


def parse_meal_windows(raw: str) -> Tuple[TimeWindow, ...]:
    """Parse ``"Label@HH:MM-HH:MM;..."``; the label is the diary ``meal_type`` value."""
    windows = []
    for chunk in (raw or "").split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        label, sep, span = chunk.rpartition("@")
        start, dash, end = span.partition("-")
        if not sep or not dash or not label.strip():
            raise ValueError(f"Invalid meal window entry '{chunk}'")
        windows.append(TimeWindow.from_hhmm(label.strip(), start.strip(), end.strip()))
    return tuple(windows)


def _meal_windows_from_env() -> Tuple[TimeWindow, ...]:
    raw = env_str("ALERT_MEAL_WINDOWS", DEFAULT_MEAL_WINDOWS) or DEFAULT_MEAL_WINDOWS
    try:
        return parse_meal_windows(raw)
    except ValueError as exc:
        logger.warning("Invalid ALERT_MEAL_WINDOWS (%s). Falling back to defaults.", exc)
        return parse_meal_windows(DEFAULT_MEAL_WINDOWS)


def _window_from_env(label: str, start_var: str, end_var: str, default: TimeWindow) -> TimeWindow:
    start = env_hhmm(start_var, format_hhmm(default.start))
    end = env_hhmm(end_var, format_hhmm(default.end))
    try:
        return TimeWindow.from_hhmm(label, start, end, inclusive_end=default.inclusive_end)
    except ValueError as exc:
        logger.warning("Invalid %s/%s (%s). Using default=%s.", start_var, end_var, exc, default.describe())
        return default


@dataclass(frozen=True)
class AlertSettings:
    timezone: str = DEFAULT_TIMEZONE
    max_per_day: int = 3

    alert_window: TimeWindow = TimeWindow.from_hhmm("alerts", "08:00", "21:00")

    low_balance_threshold: float = 200.0
    category_spike_amount: float = 400.0
    category_spike_pct: float = 0.35

    junk_keywords: Tuple[str, ...] = DEFAULT_JUNK_KEYWORDS
    junk_repeat_count: int = 3
    diet_lookback_days: int = 7
    protein_min: float = 80.0
    protein_check_hour: int = 18

    goals_window: TimeWindow = TimeWindow.from_hhmm("goals_closing", "23:00", "23:30")
    goals_send_congrats: bool = False
    default_calorie_goal: float = 2000.0
    default_protein_goal: float = 120.0
    default_water_goal_l: float = 2.5

    meal_windows: Tuple[TimeWindow, ...] = field(default_factory=lambda: parse_meal_windows(DEFAULT_MEAL_WINDOWS))

    event_advance_window: TimeWindow = TimeWindow.from_hhmm("event_advance", "08:00", "08:15")
    event_advance_days: int = 2
    event_tolerance_minutes: int = 5
    workout_reminder_time: str = "07:00"

    phone_country_code: str = "55"

    suppression_ttl_seconds: int = 75
    suppression_max_entries: int = 5000
    poll_interval_minutes: int = 15
    goals_min_interval_minutes: int = 15

    ledger_table: str = "whatsapp_alert_logs"
    ledger_legacy_table: str = "daily_goals_notifications"
    record_failures: bool = True
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> "AlertSettings":
        defaults = cls()
        return cls(
            timezone=env_str("ALERT_TIMEZONE", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE,
            max_per_day=env_int("ALERT_MAX_PER_DAY", defaults.max_per_day, minimum=0),
            alert_window=_window_from_env("alerts", "ALERT_WINDOW_START", "ALERT_WINDOW_END", defaults.alert_window),
            low_balance_threshold=env_float("ALERT_LOW_BALANCE_BRL", defaults.low_balance_threshold),
            category_spike_amount=env_float("ALERT_CATEGORY_SPIKE_BRL", defaults.category_spike_amount, minimum=0),
            category_spike_pct=env_float("ALERT_CATEGORY_SPIKE_PCT", defaults.category_spike_pct, minimum=0),
            junk_keywords=tuple(env_list("ALERT_JUNK_KEYWORDS", DEFAULT_JUNK_KEYWORDS)),
            junk_repeat_count=env_int("ALERT_JUNK_REPEAT_COUNT", defaults.junk_repeat_count, minimum=1),
            diet_lookback_days=env_int("ALERT_DIET_LOOKBACK_DAYS", defaults.diet_lookback_days, minimum=1),
            protein_min=env_float("ALERT_PROTEIN_MIN", defaults.protein_min, minimum=0),
            protein_check_hour=env_int("ALERT_PROTEIN_CHECK_HOUR", defaults.protein_check_hour, minimum=0),
            goals_window=_window_from_env(
                "goals_closing", "ALERT_GOALS_WINDOW_START", "ALERT_GOALS_WINDOW_END", defaults.goals_window
            ),
            goals_send_congrats=env_bool("ALERT_GOALS_SEND_CONGRATS", defaults.goals_send_congrats),
            default_calorie_goal=env_float("ALERT_DEFAULT_CALORIE_GOAL", defaults.default_calorie_goal, minimum=0),
            default_protein_goal=env_float("ALERT_DEFAULT_PROTEIN_GOAL", defaults.default_protein_goal, minimum=0),
            default_water_goal_l=env_float("ALERT_DEFAULT_WATER_GOAL_L", defaults.default_water_goal_l, minimum=0),
            meal_windows=_meal_windows_from_env(),
            event_advance_window=_window_from_env(
                "event_advance",
                "ALERT_EVENT_ADVANCE_WINDOW_START",
                "ALERT_EVENT_ADVANCE_WINDOW_END",
                defaults.event_advance_window,
            ),
            event_advance_days=env_int("ALERT_EVENT_ADVANCE_DAYS", defaults.event_advance_days, minimum=1),
            event_tolerance_minutes=env_int(
                "ALERT_EVENT_TOLERANCE_MINUTES", defaults.event_tolerance_minutes, minimum=1
            ),
            workout_reminder_time=env_hhmm("ALERT_WORKOUT_REMINDER_TIME", defaults.workout_reminder_time),
            phone_country_code=env_str("ALERT_PHONE_COUNTRY_CODE", defaults.phone_country_code)
            or defaults.phone_country_code,
            suppression_ttl_seconds=env_int(
                "ALERT_SUPPRESSION_TTL_SECONDS", defaults.suppression_ttl_seconds, minimum=61
            ),
            suppression_max_entries=env_int(
                "ALERT_SUPPRESSION_MAX_ENTRIES", defaults.suppression_max_entries, minimum=1
            ),
            poll_interval_minutes=env_int("ALERT_POLL_INTERVAL_MINUTES", defaults.poll_interval_minutes, minimum=1),
            goals_min_interval_minutes=env_int(
                "GOALS_INTERVAL_MINUTES", defaults.goals_min_interval_minutes, minimum=0
            ),
            ledger_table=env_str("ALERT_LEDGER_TABLE", defaults.ledger_table) or defaults.ledger_table,
            ledger_legacy_table=env_str("ALERT_LEDGER_LEGACY_TABLE", defaults.ledger_legacy_table)
            or defaults.ledger_legacy_table,
            record_failures=env_bool("ALERT_RECORD_FAILURES", defaults.record_failures),
            dry_run=env_bool("ALERTS_DRY_RUN", defaults.dry_run),
        )

    def with_overrides(self, **overrides: Any) -> "AlertSettings":
        return replace(self, **overrides)


__all__ = ["AlertSettings", "DEFAULT_JUNK_KEYWORDS", "parse_meal_windows"]
