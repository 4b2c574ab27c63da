"""
Typed contracts for the extraction gateway and the HTTP API
LLM output is never trusted as-is: it is parsed into these models at the boundary
"""

from datetime import datetime
from typing import List, Literal, Optional

import dateparser
import pandas as pd
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from laytime import parse_duration_to_hours, parse_short_duration_to_hours


Currency = Literal["USD", "INR", "EUR", "GBP"]


def parse_event_time(value: Optional[str]) -> Optional[pd.Timestamp]:
    """Parse a "YYYY-MM-DD HH:MM" style timestamp, returning None when it cannot be read."""
    if not value:
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts


# SoFs are written day-first
_DATEPARSER_SETTINGS = {"DATE_ORDER": "DMY", "STRICT_PARSING": True}


def normalize_event_time(value: str) -> str:
    """Rewrite a model-supplied timestamp as "YYYY-MM-DD HH:MM", leaving it untouched when it cannot be read."""
    if not value:
        return value
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = dateparser.parse(value, settings=_DATEPARSER_SETTINGS)
    if parsed is None:
        return value
    return parsed.strftime("%Y-%m-%d %H:%M")


def _optional_text(value):
    # models sometimes answer with bare numbers for free-text fields
    if value is None or isinstance(value, str):
        return value
    return str(value)


_TRUE_WORDS = {"true", "yes", "y", "1", "counted"}


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# --------------------------
# Gateway contract
# --------------------------
class PortEvent(_WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    event: str = Field(..., min_length=1, validation_alias=AliasChoices("event", "title"))
    category: str = ""
    start_time: str = Field("", alias="startTime")
    end_time: str = Field("", alias="endTime")
    duration: Optional[str] = None
    status: Optional[str] = None
    remark: Optional[str] = None

    @field_validator("event", mode="before")
    @classmethod
    def _strip_title(cls, value):
        return str(value).strip() if value is not None else value

    @field_validator("category", "start_time", "end_time", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("duration", "status", "remark", mode="before")
    @classmethod
    def _text(cls, value):
        return _optional_text(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_event_time(value)

    @property
    def duration_hours(self) -> float:
        """Hours between start and end, or the model's duration text when the timestamps don't give one."""
        start = parse_event_time(self.start_time)
        end = parse_event_time(self.end_time)
        if start is not None and end is not None and end >= start:
            return (end - start).total_seconds() / 3600

        hours = parse_duration_to_hours(self.duration)
        if hours <= 0:
            hours = parse_short_duration_to_hours(self.duration)
        return hours


class LaytimeEventEntry(_WireModel):
    event: str = ""
    duration: str = ""
    is_counted: bool = Field(False, alias="isCounted")
    reason: Optional[str] = None

    @field_validator("event", "duration", mode="before")
    @classmethod
    def _to_str(cls, value):
        return "" if value is None else str(value)

    @field_validator("reason", mode="before")
    @classmethod
    def _reason_text(cls, value):
        return _optional_text(value)

    @field_validator("is_counted", mode="before")
    @classmethod
    def _counted_flag(cls, value):
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_WORDS
        return bool(value)


class LaytimeCalculation(_WireModel):
    total_laytime: str = Field("", alias="totalLaytime")
    allowed_laytime: str = Field("", alias="allowedLaytime")
    time_saved: str = Field("", alias="timeSaved")
    demurrage: str = ""
    laytime_events: List[LaytimeEventEntry] = Field(default_factory=list, alias="laytimeEvents")

    @field_validator("total_laytime", "allowed_laytime", "time_saved", "demurrage", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value)

    @field_validator("laytime_events", mode="before")
    @classmethod
    def _entries(cls, value):
        # the breakdown is advisory; unusable entries are skipped, not fatal
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]


class ExtractionResult(_WireModel):
    vessel_name: str = Field(..., alias="vesselName")
    events: List[PortEvent]
    laytime_calculation: Optional[LaytimeCalculation] = Field(None, alias="laytimeCalculation")
    events_summary: Optional[str] = Field(None, alias="eventsSummary")

    @field_validator("vessel_name")
    @classmethod
    def _vessel_name_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("vesselName must not be blank")
        return value

    @field_validator("laytime_calculation", mode="before")
    @classmethod
    def _calculation_object(cls, value):
        return value if isinstance(value, (dict, LaytimeCalculation)) else None

    @field_validator("events_summary", mode="before")
    @classmethod
    def _join_bullets(cls, value):
        if isinstance(value, list):
            return "\n".join(f"- {item}" for item in value)
        return _optional_text(value)


class LaytimeJudgement(LaytimeCalculation):
    """Output of the standalone laytime flow."""


class SummaryResponse(_WireModel):
    summary: str


class GuideResponse(_WireModel):
    response: str


# --------------------------
# HTTP request bodies
# --------------------------
class ExtractRequest(_WireModel):
    sof_content: Optional[str] = Field(None, alias="sofContent")
    data_uri: Optional[str] = Field(None, alias="dataUri")

    @model_validator(mode="after")
    def _one_source(self):
        if not (self.sof_content and self.sof_content.strip()) and not self.data_uri:
            raise ValueError("Provide either sofContent or dataUri")
        return self


class LaytimeParametersIn(_WireModel):
    allowed_laytime_days: Optional[float] = Field(None, ge=0, allow_inf_nan=False, alias="allowedLaytimeDays")
    demurrage_rate_per_day: float = Field(0.0, ge=0, allow_inf_nan=False, alias="demurrageRatePerDay")
    rate_currency: Currency = Field("USD", alias="rateCurrency")
    display_currency: Currency = Field("USD", alias="displayCurrency")


class LaytimeComputeRequest(LaytimeParametersIn):
    used_hours: float = Field(..., ge=0, allow_inf_nan=False, alias="usedHours")


class AssistantRequest(_WireModel):
    query: str = Field(..., min_length=1)
    job_id: Optional[str] = Field(None, alias="jobId")
