"""
Laytime / demurrage engine
Deterministic arithmetic behind the despatch and demurrage figures shown to the user
"""

import math
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from config import DEFAULT_ALLOWED_LAYTIME_DAYS


# --------------------------
# Currency table
# --------------------------
# Units of each currency per 1 USD. Fixed, illustrative rates.
CURRENCY_RATES: Dict[str, float] = {
    "USD": 1.0,
    "INR": 83.0,
    "EUR": 0.92,
    "GBP": 0.79,
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "INR": "₹",
    "EUR": "€",
    "GBP": "£",
}

SUPPORTED_CURRENCIES = tuple(CURRENCY_RATES.keys())


def get_currency_rate(code: str) -> float:
    try:
        return CURRENCY_RATES[code.upper()]
    except (KeyError, AttributeError):
        raise ValueError(f"Unsupported currency: {code!r}. Supported: {', '.join(SUPPORTED_CURRENCIES)}")


def convert_currency(amount: float, from_code: str, to_code: str) -> float:
    """Convert an amount between two currencies of the table via the USD base."""
    base_amount = amount / get_currency_rate(from_code)
    return base_amount * get_currency_rate(to_code)


def format_money(amount: float, code: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(code.upper(), "")
    return f"{symbol}{amount:,.2f} {code.upper()}"


# --------------------------
# Durations
# --------------------------
_DAY_PATTERN = re.compile(r"(\d+)\s*day", re.IGNORECASE)
_HOUR_PATTERN = re.compile(r"(\d+)\s*hour", re.IGNORECASE)
_MINUTE_PATTERN = re.compile(r"(\d+)\s*minute", re.IGNORECASE)


def _first_int(pattern: re.Pattern, text: str) -> int:
    match = pattern.search(text)
    return int(match.group(1)) if match else 0


def parse_duration_to_hours(text) -> float:
    """
    Convert a free-text duration such as "2 days, 4 hours, 30 minutes" into hours.

    Each unit is searched for independently, so any subset of the three
    components in any order is accepted. Missing components count as zero and
    text without any unit keyword yields 0.

    Args:
        text: Duration text as produced by the extraction model

    Returns:
        Number of hours (never negative)
    """
    if not text or not isinstance(text, str):
        return 0.0

    days = _first_int(_DAY_PATTERN, text)
    hours = _first_int(_HOUR_PATTERN, text)
    minutes = _first_int(_MINUTE_PATTERN, text)
    return days * 24 + hours + minutes / 60


_SHORT_DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([dhm])\b", re.IGNORECASE)
_SHORT_UNIT_HOURS = {"d": 24.0, "h": 1.0, "m": 1 / 60}


def parse_short_duration_to_hours(text) -> float:
    """Read the compact "2d 4h 30m" form written by format_hours_to_duration."""
    if not text or not isinstance(text, str):
        return 0.0
    return sum(float(value) * _SHORT_UNIT_HOURS[unit.lower()] for value, unit in _SHORT_DURATION_PATTERN.findall(text))


def format_hours_to_duration(hours) -> str:
    """
    Render an hour count as "Xd Yh Zm", omitting zero components.

    Hours are shown whenever days are, so a whole number of days reads "1d 0h".
    Minutes that round up to 60 carry into hours, and 24 hours carry into days.
    """
    try:
        hours = float(hours)
    except (TypeError, ValueError):
        return "0h 0m"
    if not math.isfinite(hours) or hours <= 0:
        return "0h 0m"

    days = math.floor(hours / 24)
    remaining_hours = math.floor(hours % 24)
    fraction = (hours % 24) - remaining_hours
    # round half up, Python's round() would round half to even
    minutes = math.floor(fraction * 60 + 0.5)

    if minutes >= 60:
        minutes -= 60
        remaining_hours += 1
    if remaining_hours >= 24:
        remaining_hours -= 24
        days += 1

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if remaining_hours > 0 or days > 0:
        parts.append(f"{remaining_hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    return " ".join(parts) if parts else "0h 0m"


# --------------------------
# Data structures
# --------------------------
@dataclass
class LaytimeParameters:
    """User-editable contract parameters; recomputation takes a copy of these on every change."""
    allowed_laytime_days: float = DEFAULT_ALLOWED_LAYTIME_DAYS
    demurrage_rate_per_day: float = 0.0
    rate_currency: str = "USD"
    display_currency: str = "USD"

    @classmethod
    def from_extraction(cls, extraction, **overrides) -> "LaytimeParameters":
        """Seed allowed laytime from the extraction response, falling back to the configured default."""
        allowed_days = DEFAULT_ALLOWED_LAYTIME_DAYS
        calc = getattr(extraction, "laytime_calculation", None)
        if calc is not None:
            allowed_hours = parse_duration_to_hours(calc.allowed_laytime)
            if allowed_hours > 0:
                allowed_days = allowed_hours / 24

        params = cls(allowed_laytime_days=allowed_days)
        for key, value in overrides.items():
            if value is not None:
                setattr(params, key, value)
        return params


@dataclass(frozen=True)
class LaytimeOutcome:
    time_saved_hours: float = 0.0
    demurrage_hours: float = 0.0
    demurrage_cost: float = 0.0
    display_currency: str = "USD"

    @property
    def demurrage_days(self) -> float:
        return self.demurrage_hours / 24

    @property
    def status(self) -> str:
        if self.demurrage_hours > 0:
            return "demurrage"
        if self.time_saved_hours > 0:
            return "despatch"
        return "on_time"

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["demurrage_days"] = self.demurrage_days
        data["status"] = self.status
        return data


@dataclass
class LaytimeBreakdownRow:
    event: str
    duration: str
    is_counted: bool
    reason: Optional[str]
    hours: float


@dataclass
class LaytimeReport:
    used_hours: float
    allowed_hours: float
    outcome: LaytimeOutcome
    parameters: LaytimeParameters
    breakdown: List[LaytimeBreakdownRow] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "used_hours": self.used_hours,
            "allowed_hours": self.allowed_hours,
            "total_laytime": format_hours_to_duration(self.used_hours),
            "allowed_laytime": format_hours_to_duration(self.allowed_hours),
            "time_saved": format_hours_to_duration(self.outcome.time_saved_hours),
            "demurrage": format_hours_to_duration(self.outcome.demurrage_hours),
            "demurrage_cost_formatted": format_money(self.outcome.demurrage_cost, self.outcome.display_currency),
            "outcome": self.outcome.to_dict(),
            "parameters": asdict(self.parameters),
            "breakdown": [asdict(row) for row in self.breakdown],
        }


# --------------------------
# Engine
# --------------------------
def _non_negative(value) -> float:
    """Negative, non-finite or non-numeric inputs count as zero."""
    try:
        value = float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def compute_laytime_outcome(
    used_hours: float,
    allowed_days: float,
    rate: float,
    rate_currency: str = "USD",
    display_currency: str = "USD",
) -> LaytimeOutcome:
    """
    Compare used laytime against the allowed laytime and price any demurrage.

    Args:
        used_hours: Hours of laytime used
        allowed_days: Laytime allowed by the charter party, in days
        rate: Demurrage rate per day, in rate_currency
        rate_currency: Currency the rate is quoted in
        display_currency: Currency the cost is reported in

    Returns:
        LaytimeOutcome where at most one of time saved / demurrage is nonzero
    """
    used_hours = _non_negative(used_hours)
    allowed_days = _non_negative(allowed_days)
    rate = _non_negative(rate)

    allowed_hours = allowed_days * 24
    difference = allowed_hours - used_hours

    time_saved_hours = 0.0
    demurrage_hours = 0.0
    if difference > 0:
        time_saved_hours = difference
    elif difference < 0:
        demurrage_hours = -difference

    demurrage_days = demurrage_hours / 24
    cost_in_rate_currency = demurrage_days * rate
    demurrage_cost = convert_currency(cost_in_rate_currency, rate_currency, display_currency)

    return LaytimeOutcome(
        time_saved_hours=time_saved_hours,
        demurrage_hours=demurrage_hours,
        demurrage_cost=demurrage_cost,
        display_currency=display_currency.upper(),
    )


def total_counted_hours(laytime_events) -> float:
    return sum(parse_duration_to_hours(entry.duration) for entry in laytime_events if entry.is_counted)


def used_hours_from_calculation(calc) -> float:
    """Hours of laytime used according to the gateway's laytime judgement."""
    if calc is None:
        return 0.0
    used = parse_duration_to_hours(calc.total_laytime)
    if used <= 0:
        used = total_counted_hours(calc.laytime_events)
    return used


def build_laytime_report(extraction, params: LaytimeParameters) -> LaytimeReport:
    """Recompute the full laytime report for an extraction result and a set of parameters."""
    calc = extraction.laytime_calculation
    used_hours = used_hours_from_calculation(calc)

    outcome = compute_laytime_outcome(
        used_hours,
        params.allowed_laytime_days,
        params.demurrage_rate_per_day,
        params.rate_currency,
        params.display_currency,
    )

    breakdown = []
    if calc is not None:
        for entry in calc.laytime_events:
            breakdown.append(LaytimeBreakdownRow(
                event=entry.event,
                duration=entry.duration,
                is_counted=entry.is_counted,
                reason=entry.reason,
                hours=parse_duration_to_hours(entry.duration),
            ))

    return LaytimeReport(
        used_hours=used_hours,
        allowed_hours=_non_negative(params.allowed_laytime_days) * 24,
        outcome=outcome,
        parameters=LaytimeParameters(**asdict(params)),
        breakdown=breakdown,
    )
