"""
Tests for the gateway and HTTP contracts.
"""

from typing import get_args

import pytest
from pydantic import ValidationError

from conftest import sample_extraction_payload
from laytime import CURRENCY_RATES
from schemas import (
    AssistantRequest,
    Currency,
    ExtractRequest,
    ExtractionResult,
    LaytimeComputeRequest,
    LaytimeEventEntry,
    LaytimeParametersIn,
    PortEvent,
    normalize_event_time,
    parse_event_time,
)


class TestPortEvent:

    def test_accepts_wire_names(self):
        event = PortEvent.model_validate({
            "event": "  Pilot Onboard ",
            "category": "Arrival",
            "startTime": "2024-03-01 08:00",
            "endTime": "2024-03-01 10:30",
        })
        assert event.event == "Pilot Onboard"
        assert event.start_time == "2024-03-01 08:00"
        assert event.duration_hours == pytest.approx(2.5)

    def test_title_is_accepted_for_event(self):
        event = PortEvent.model_validate({"title": "All Fast", "startTime": "2024-03-01 10:00"})
        assert event.event == "All Fast"

    def test_missing_event_name_rejected(self):
        with pytest.raises(ValidationError):
            PortEvent.model_validate({"event": "", "startTime": "2024-03-01 10:00"})

    def test_null_end_time_becomes_empty(self):
        event = PortEvent.model_validate({"event": "NOR Tendered", "startTime": "2024-03-01 06:00", "endTime": None})
        assert event.end_time == ""
        assert event.duration_hours == 0.0

    def test_duration_text_used_when_times_unreadable(self):
        event = PortEvent.model_validate({"event": "Bunkering", "startTime": "TBA", "duration": "3 hours, 15 minutes"})
        assert event.duration_hours == pytest.approx(3.25)

        event = PortEvent.model_validate({"event": "Bunkering", "startTime": "TBA", "duration": "2h 30m"})
        assert event.duration_hours == pytest.approx(2.5)

    def test_inverted_times_fall_back_to_duration(self):
        event = PortEvent.model_validate({
            "event": "Shifting",
            "startTime": "2024-03-01 12:00",
            "endTime": "2024-03-01 10:00",
            "duration": "1h",
        })
        assert event.duration_hours == pytest.approx(1.0)

    def test_serializes_with_aliases(self):
        event = PortEvent(event="Pilot Onboard", start_time="2024-03-01 08:00")
        data = event.model_dump(by_alias=True)
        assert data["event"] == "Pilot Onboard"
        assert data["startTime"] == "2024-03-01 08:00"
        assert data["endTime"] == ""

    def test_frozen(self):
        event = PortEvent(event="Pilot Onboard")
        with pytest.raises(ValidationError):
            event.event = "Other"


class TestNormalizeEventTime:

    def test_iso_kept(self):
        assert normalize_event_time("2024-03-01 08:00") == "2024-03-01 08:00"

    @pytest.mark.parametrize("value", [
        "2024-03-01T08:00",
        "2024-03-01 08:00:00",
        "2024-03-01T08:00:00",
    ])
    def test_iso_variants_rewritten(self, value):
        assert normalize_event_time(value) == "2024-03-01 08:00"

    def test_day_first_rewritten(self):
        assert normalize_event_time("01/03/2024 08:00") == "2024-03-01 08:00"

    def test_unreadable_kept(self):
        assert normalize_event_time("TBA") == "TBA"
        assert normalize_event_time("") == ""

    def test_applied_to_port_events(self):
        event = PortEvent.model_validate({"event": "All Fast", "startTime": "01/03/2024 10:00"})
        assert event.start_time == "2024-03-01 10:00"


def test_parse_event_time():
    assert parse_event_time("2024-03-01 08:00").hour == 8
    assert parse_event_time("") is None
    assert parse_event_time("not a date") is None


class TestExtractionResult:

    def test_valid_payload(self, extraction_payload):
        result = ExtractionResult.model_validate(extraction_payload)
        assert result.vessel_name == "MV Ocean Star"
        assert len(result.events) == 3
        assert result.laytime_calculation.allowed_laytime == "3 days"
        assert result.laytime_calculation.laytime_events[0].is_counted is True

    def test_missing_vessel_name_rejected(self):
        payload = sample_extraction_payload()
        del payload["vesselName"]
        with pytest.raises(ValidationError):
            ExtractionResult.model_validate(payload)

    def test_blank_vessel_name_rejected(self):
        with pytest.raises(ValidationError):
            ExtractionResult.model_validate(sample_extraction_payload(vesselName="   "))

    def test_missing_events_rejected(self):
        payload = sample_extraction_payload()
        del payload["events"]
        with pytest.raises(ValidationError):
            ExtractionResult.model_validate(payload)

    def test_laytime_calculation_optional(self):
        payload = sample_extraction_payload()
        del payload["laytimeCalculation"]
        result = ExtractionResult.model_validate(payload)
        assert result.laytime_calculation is None

    def test_summary_list_joined_as_bullets(self):
        result = ExtractionResult.model_validate(
            sample_extraction_payload(eventsSummary=["Total time 2 days", "Rain delay 4 hours"])
        )
        assert result.events_summary == "- Total time 2 days\n- Rain delay 4 hours"

    def test_numeric_free_text_fields_accepted(self):
        payload = sample_extraction_payload()
        payload["events"][0].update({"duration": 2, "status": 1, "remark": 3.5})
        event = ExtractionResult.model_validate(payload).events[0]
        assert event.duration == "2"
        assert event.status == "1"
        assert event.remark == "3.5"

    def test_null_laytime_events_become_empty(self):
        payload = sample_extraction_payload()
        payload["laytimeCalculation"]["laytimeEvents"] = None
        result = ExtractionResult.model_validate(payload)
        assert result.laytime_calculation.laytime_events == []
        assert result.laytime_calculation.total_laytime == "2 days, 4 hours, 30 minutes"

    def test_laytime_entry_without_event_kept(self):
        payload = sample_extraction_payload()
        payload["laytimeCalculation"]["laytimeEvents"].append({"duration": "1 hour", "isCounted": "yes"})
        entries = ExtractionResult.model_validate(payload).laytime_calculation.laytime_events
        assert len(entries) == 3
        assert entries[2].event == ""
        assert entries[2].is_counted is True

    def test_unusable_laytime_entries_skipped(self):
        payload = sample_extraction_payload()
        payload["laytimeCalculation"]["laytimeEvents"] = ["Discharging 2 days", None, {"event": "Rain", "duration": 4}]
        entries = ExtractionResult.model_validate(payload).laytime_calculation.laytime_events
        assert [(e.event, e.duration) for e in entries] == [("Rain", "4")]

    def test_malformed_laytime_block_dropped(self):
        result = ExtractionResult.model_validate(sample_extraction_payload(laytimeCalculation="not computed"))
        assert result.laytime_calculation is None
        assert len(result.events) == 3

    def test_numeric_laytime_figures_accepted(self):
        payload = sample_extraction_payload()
        payload["laytimeCalculation"].update({"totalLaytime": 52.5, "demurrage": None, "timeSaved": 0})
        calc = ExtractionResult.model_validate(payload).laytime_calculation
        assert calc.total_laytime == "52.5"
        assert calc.demurrage == ""

    def test_non_string_summary_accepted(self):
        result = ExtractionResult.model_validate(sample_extraction_payload(eventsSummary=42))
        assert result.events_summary == "42"

    def test_only_required_fields_are_fatal(self):
        payload = sample_extraction_payload(
            laytimeCalculation={"totalLaytime": None, "laytimeEvents": [{"isCounted": None}]},
            eventsSummary=None,
        )
        payload["events"][1]["duration"] = 54
        result = ExtractionResult.model_validate(payload)
        assert result.vessel_name == "MV Ocean Star"

        del payload["vesselName"]
        with pytest.raises(ValidationError):
            ExtractionResult.model_validate(payload)

    def test_unknown_keys_ignored(self):
        result = ExtractionResult.model_validate(sample_extraction_payload(port="Chennai"))
        assert "port" not in result.model_dump(by_alias=True)


def test_laytime_entry_duration_coerced():
    entry = LaytimeEventEntry.model_validate({"event": "Discharging", "duration": None, "isCounted": True})
    assert entry.duration == ""
    assert entry.is_counted is True


class TestRequests:

    def test_currency_literal_matches_rate_table(self):
        assert set(get_args(Currency)) == set(CURRENCY_RATES)

    def test_extract_request_needs_a_source(self):
        with pytest.raises(ValidationError):
            ExtractRequest.model_validate({})
        with pytest.raises(ValidationError):
            ExtractRequest.model_validate({"sofContent": "   "})
        assert ExtractRequest.model_validate({"sofContent": "NOR tendered"}).sof_content == "NOR tendered"
        assert ExtractRequest.model_validate({"dataUri": "data:text/plain;base64,Tk9S"}).data_uri

    def test_parameters_defaults(self):
        params = LaytimeParametersIn.model_validate({})
        assert params.allowed_laytime_days is None
        assert params.demurrage_rate_per_day == 0.0
        assert params.rate_currency == "USD"
        assert params.display_currency == "USD"

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValidationError):
            LaytimeParametersIn.model_validate({"displayCurrency": "JPY"})

    @pytest.mark.parametrize("field", ["allowedLaytimeDays", "demurrageRatePerDay", "usedHours"])
    @pytest.mark.parametrize("bad", [float("inf"), float("nan")])
    def test_non_finite_numbers_rejected(self, field, bad):
        body = {"usedHours": 80, field: bad}
        with pytest.raises(ValidationError):
            LaytimeComputeRequest.model_validate(body)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            LaytimeParametersIn.model_validate({"demurrageRatePerDay": -1})

    def test_compute_request_requires_used_hours(self):
        with pytest.raises(ValidationError):
            LaytimeComputeRequest.model_validate({"allowedLaytimeDays": 3})
        request = LaytimeComputeRequest.model_validate({"usedHours": 80, "allowedLaytimeDays": 3})
        assert request.used_hours == 80

    def test_assistant_request(self):
        with pytest.raises(ValidationError):
            AssistantRequest.model_validate({"query": ""})
        assert AssistantRequest.model_validate({"query": "What is demurrage?", "jobId": "abc"}).job_id == "abc"
