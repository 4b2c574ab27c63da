"""
Analytics helpers for the dashboard and exports
Turns extracted events into tables, timeline rows and per-category totals
"""

import re
from typing import Dict, List, Optional

import pandas as pd

from laytime import format_hours_to_duration
from schemas import ExtractionResult, PortEvent

UNCATEGORIZED = "Uncategorized"

CATEGORY_COLORS: Dict[str, str] = {
    "Arrival": "#2a9d8f",
    "Cargo Operations": "#264653",
    "Delays": "#e76f51",
    "Departure": "#e9c46a",
    "Default": "#8d99ae",
}

EVENT_COLUMNS = [
    "Day", "event", "category", "start_time", "end_time",
    "duration", "duration_hours", "status", "remark",
]


def category_of(event: PortEvent) -> str:
    return event.category or UNCATEGORIZED


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS["Default"])


def group_by_category(events: List[PortEvent]) -> Dict[str, List[PortEvent]]:
    """Group events by category, keeping the order in which categories first appear."""
    grouped: Dict[str, List[PortEvent]] = {}
    for event in events:
        grouped.setdefault(category_of(event), []).append(event)
    return grouped


def events_frame(events: List[PortEvent]) -> pd.DataFrame:
    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame([{
        "event": e.event,
        "category": category_of(e),
        "start_time": e.start_time,
        "end_time": e.end_time,
        "duration": e.duration or format_hours_to_duration(e.duration_hours),
        "duration_hours": round(e.duration_hours, 4),
        "status": e.status or "",
        "remark": e.remark or "",
    } for e in events])

    starts = pd.to_datetime(df["start_time"], errors="coerce")
    df.insert(0, "Day", starts.dt.strftime("%a, %d %b").fillna(""))
    return df[EVENT_COLUMNS]


def timeline_rows(events: List[PortEvent]) -> pd.DataFrame:
    """
    Gantt rows: one bar per event, offsets in hours from the earliest start.

    Events whose start cannot be read are left out. A missing or inverted end
    collapses the bar to its start.
    """
    columns = ["event", "category", "start", "end", "start_hour", "end_hour", "duration", "color"]
    df = pd.DataFrame([{
        "event": e.event,
        "category": category_of(e),
        "start": e.start_time,
        "end": e.end_time,
        "duration": e.duration or format_hours_to_duration(e.duration_hours),
    } for e in events], columns=["event", "category", "start", "end", "duration"])

    df["start"] = pd.to_datetime(df["start"], errors="coerce")
    df["end"] = pd.to_datetime(df["end"], errors="coerce")
    df = df.dropna(subset=["start"])
    if df.empty:
        return pd.DataFrame(columns=columns)

    df["end"] = df["end"].where(df["end"].notna() & (df["end"] >= df["start"]), df["start"])
    df = df.sort_values(by="start", kind="stable").reset_index(drop=True)

    origin = df["start"].iloc[0]
    df["start_hour"] = (df["start"] - origin).dt.total_seconds() / 3600
    df["end_hour"] = (df["end"] - origin).dt.total_seconds() / 3600
    df["color"] = df["category"].map(category_color)
    return df[columns]


def category_totals(events: List[PortEvent]) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"category": category_of(e), "hours": e.duration_hours} for e in events],
        columns=["category", "hours"],
    )
    if df.empty:
        return pd.DataFrame(columns=["category", "events", "hours", "duration"])

    totals = df.groupby("category", sort=False).agg(events=("hours", "size"), hours=("hours", "sum")).reset_index()
    totals["duration"] = totals["hours"].map(format_hours_to_duration)
    return totals


def export_filename(vessel_name: str, extension: str = "json") -> str:
    """Download name for a vessel's export, whitespace runs replaced with underscores."""
    stem = re.sub(r"\s+", "_", (vessel_name or "").strip()) or "vessel"
    return f"{stem}_sof_events.{extension}"


def build_export_record(extraction: ExtractionResult, laytime_report: Optional[Dict] = None) -> Dict:
    record = extraction.model_dump(by_alias=True)
    if laytime_report is not None:
        record["laytimeReport"] = laytime_report
    return record
