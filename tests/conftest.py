"""
Shared test fixtures.
"""

import json
import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

# Keep uploads and exports out of the working tree
_storage = tempfile.mkdtemp(prefix="sof-tests-")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_storage, "uploads"))
os.environ.setdefault("RESULTS_DIR", os.path.join(_storage, "results"))
os.environ.setdefault("DEFAULT_ALLOWED_LAYTIME_DAYS", "3")

import pytest


# ===================
# FAKE GROQ CLIENT
# ===================

class FakeCompletions:
    """Stands in for client.chat.completions; replies are consumed in order."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class FakeGroqClient:
    def __init__(self, *replies):
        self.completions = FakeCompletions(replies)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls


# ===================
# SAMPLE DATA
# ===================

SAMPLE_SOF_TEXT = """STATEMENT OF FACTS
Vessel: MV OCEAN STAR
Port: Chennai
NOR tendered 2024-03-01 06:00
Pilot on board 2024-03-01 08:00
All fast 2024-03-01 10:00
Commenced discharging 2024-03-01 12:00
Rain stopped discharging 2024-03-02 02:00 to 2024-03-02 06:00
Completed discharging 2024-03-03 18:00
"""


def sample_extraction_payload(**overrides):
    payload = {
        "vesselName": "MV Ocean Star",
        "events": [
            {
                "event": "Pilot Onboard",
                "category": "Arrival",
                "startTime": "2024-03-01 08:00",
                "endTime": "2024-03-01 10:00",
                "duration": "2h",
                "status": "Completed",
            },
            {
                "event": "Cargo Discharging",
                "category": "Cargo Operations",
                "startTime": "2024-03-01 12:00",
                "endTime": "2024-03-03 18:00",
                "duration": "2d 6h",
                "status": "Completed",
            },
            {
                "event": "Rain Delay",
                "category": "Delays",
                "startTime": "2024-03-02 02:00",
                "endTime": "2024-03-02 06:00",
                "duration": "4h",
                "status": "Delayed",
                "remark": "Rain stopped discharging",
            },
        ],
        "laytimeCalculation": {
            "totalLaytime": "2 days, 4 hours, 30 minutes",
            "allowedLaytime": "3 days",
            "timeSaved": "19 hours, 30 minutes",
            "demurrage": "0 hours",
            "laytimeEvents": [
                {"event": "Cargo Discharging", "duration": "2 days, 6 hours", "isCounted": True, "reason": "Cargo operation"},
                {"event": "Rain Delay", "duration": "4 hours", "isCounted": False, "reason": "Weather interruption"},
            ],
        },
        "eventsSummary": "- Total time in port: 2 days 10 hours\n- Rain delayed discharging by 4 hours",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def extraction_payload():
    return sample_extraction_payload()


@pytest.fixture
def extraction(extraction_payload):
    from schemas import ExtractionResult
    return ExtractionResult.model_validate(extraction_payload)


@pytest.fixture
def fake_client():
    return FakeGroqClient(sample_extraction_payload())
