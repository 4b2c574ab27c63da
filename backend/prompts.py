"""
Prompt templates for the LLM flows
Each flow asks for a single JSON object so the response can be validated against schemas.py
"""

from typing import Dict, List, Optional


EXTRACTION_SYSTEM_PROMPT = (
    "You are an AI assistant specializing in maritime logistics and data extraction from Statements of Fact (SoFs). "
    "Your task is to meticulously analyze the SoF and return ONE valid JSON object. Do NOT invent information.\n\n"

    "RETURN THESE KEYS:\n"
    "1. 'vesselName': The name of the vessel exactly as written in the document (e.g., 'MV ALRAYAN').\n\n"

    "2. 'events': An array with one object per distinct port operation event:\n"
    "   - 'event': A concise title (e.g., 'Pilot Onboard', 'Cargo Discharging').\n"
    "   - 'category': The general category, one of 'Arrival', 'Cargo Operations', 'Bunkering', 'Delays', 'Departure', "
    "or another short label if none fits.\n"
    "   - 'startTime' and 'endTime': YYYY-MM-DD HH:MM (24-hour). If only one time is given, use it for both.\n"
    "   - 'duration': The duration of the event (e.g., '2h 30m').\n"
    "   - 'status': e.g. 'Completed', 'In Progress', 'Delayed'.\n"
    "   - 'remark': Any additional notes for the event from the SoF (optional).\n\n"

    "3. 'laytimeCalculation': Your laytime judgement over the events:\n"
    "   - Standard operations like berthing, loading and discharging are counted.\n"
    "   - Delays caused by the vessel or charterer are counted.\n"
    "   - Delays caused by the port, weather or equipment failure are NOT counted (interruptions).\n"
    "   - Weekends and holidays are not counted unless the document says otherwise.\n"
    "   - Assume an allowed laytime of \"{allowed_laytime}\" unless the document states one.\n"
    "   Keys: 'totalLaytime', 'allowedLaytime', 'timeSaved', 'demurrage' written like \"2 days, 4 hours, 30 minutes\", "
    "and 'laytimeEvents': an array of {{'event', 'duration' (same wording style), 'isCounted' (true/false), 'reason'}}.\n\n"

    "4. 'eventsSummary': A concise bulleted summary covering total time in port, duration of cargo operations, "
    "significant delays and their causes.\n\n"

    "OUTPUT FORMAT: Return ONLY the JSON object with no additional text."
)

EXTRACTION_USER_PROMPT = (
    "Extract all port operation events from the following Statement of Fact. "
    "Ensure every event mentioned in the document is captured.\n\n"
    "SoF Content:\n"
    "```\n{sof_content}\n```"
)


LAYTIME_SYSTEM_PROMPT = (
    "You are an expert in maritime laytime calculation. Decide which port operation events count towards laytime.\n"
    "- Standard operations like 'Berthing', 'Loading', 'Discharging' are typically counted.\n"
    "- Delays caused by the vessel or charterer are counted.\n"
    "- Delays caused by the port, weather, or equipment failure are typically not counted (interruptions).\n"
    "- Weekends and holidays are not counted unless specified otherwise in the event list.\n"
    "Assume a standard allowed laytime of \"{allowed_laytime}\".\n\n"
    "Return ONLY a JSON object with keys 'totalLaytime', 'allowedLaytime', 'timeSaved', 'demurrage' "
    "(each written like \"2 days, 4 hours, 30 minutes\") and 'laytimeEvents': an array of "
    "{{'event', 'duration', 'isCounted', 'reason'}}."
)


SUMMARY_SYSTEM_PROMPT = (
    "You are a maritime logistics analyst. Based on the structured list of port operation events, "
    "provide a concise, high-level summary of key insights.\n"
    "Focus on:\n"
    "- Total time spent in port.\n"
    "- Duration of cargo operations.\n"
    "- Any significant delays or interruptions and their causes.\n"
    "- Comparison of actual time versus typical or expected times.\n"
    "Present the summary as a bulleted list. Return ONLY a JSON object: {\"summary\": \"...\"}."
)


GUIDE_SYSTEM_PROMPT = (
    "You are a helpful AI assistant guiding users of the SoF Laytime Intelligence platform.\n"
    "The platform lets users upload Statements of Fact (SoFs), extract port operation events, "
    "calculate laytime, despatch and demurrage, and visualize the events on a timeline.\n"
    "The dashboard has an upload panel, laytime parameters (allowed laytime, demurrage rate, rate currency "
    "and display currency), the extracted events grouped by category, an event timeline and this assistant.\n"
    "Answer briefly and concretely. Return ONLY a JSON object: {\"response\": \"...\"}."
)


def render_events(events: List[Dict]) -> str:
    lines = []
    for event in events:
        lines.append(f"- Event: {event.get('event')} ({event.get('category') or 'Uncategorized'})")
        lines.append(f"  - Start: {event.get('startTime')}")
        lines.append(f"  - End: {event.get('endTime')}")
        if event.get("duration"):
            lines.append(f"  - Duration: {event.get('duration')}")
        if event.get("status"):
            lines.append(f"  - Status: {event.get('status')}")
        if event.get("remark"):
            lines.append(f"  - Remark: {event.get('remark')}")
    return "\n".join(lines)


def extraction_messages(sof_content: str, allowed_laytime: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT.format(allowed_laytime=allowed_laytime)},
        {"role": "user", "content": EXTRACTION_USER_PROMPT.format(sof_content=sof_content)},
    ]


def laytime_messages(events: List[Dict], allowed_laytime: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": LAYTIME_SYSTEM_PROMPT.format(allowed_laytime=allowed_laytime)},
        {"role": "user", "content": "Events:\n" + render_events(events)},
    ]


def summary_messages(events: List[Dict]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {"role": "user", "content": "Events:\n" + render_events(events)},
    ]


def guide_messages(query: str, vessel_name: Optional[str] = None, events_summary: Optional[str] = None) -> List[Dict[str, str]]:
    context = ""
    if vessel_name:
        context = f"The user has uploaded a Statement of Fact for vessel {vessel_name}.\n"
        if events_summary:
            context += f"Insights already extracted:\n{events_summary}\n\n"
    return [
        {"role": "system", "content": GUIDE_SYSTEM_PROMPT},
        {"role": "user", "content": f"{context}User query: {query}"},
    ]
