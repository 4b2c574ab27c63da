import asyncio
import json
import shutil
from typing import Dict, List

import streamlit as st
import pandas as pd
import plotly.express as px

# Local modules
from analytics import (
    CATEGORY_COLORS,
    build_export_record,
    category_totals,
    events_frame,
    export_filename,
    group_by_category,
    timeline_rows,
)
from laytime import (
    SUPPORTED_CURRENCIES,
    LaytimeParameters,
    LaytimeReport,
    build_laytime_report,
    format_hours_to_duration,
    format_money,
)
from schemas import ExtractionResult
from sof_pipeline import (
    QuotaExceededError,
    SofPipelineError,
    guide_new_users,
    process_document,
)


st.set_page_config(page_title="SoF Laytime Intelligence", layout="wide")

WELCOME_MESSAGE = (
    "Hi! Upload a Statement of Facts and I will extract the port events and laytime figures. "
    "Ask me anything about the platform or your document."
)


# --- State Management ---
def initialize_state():
    """Initialize session state variables."""
    if "docs_key" not in st.session_state:
        st.session_state.docs_key = 0
    if "extraction" not in st.session_state:
        st.session_state.extraction = None
    if "parameters" not in st.session_state:
        st.session_state.parameters = LaytimeParameters()
    if "warnings" not in st.session_state:
        st.session_state.warnings = []
    if "messages" not in st.session_state:
        st.session_state.messages = [{"role": "assistant", "content": WELCOME_MESSAGE}]

initialize_state()


def show_pipeline_error(e: SofPipelineError):
    if isinstance(e, QuotaExceededError):
        st.error(f"Quota exceeded: {e.message}")
    else:
        st.error(e.message)


# --- UI Helper Functions ---
def render_parameters(params: LaytimeParameters) -> LaytimeParameters:
    """Renders the laytime parameter inputs and returns the current values."""
    st.subheader("Laytime Parameters")

    col1, col2, col3, col4 = st.columns(4)
    allowed_days = col1.number_input(
        "Allowed Laytime (days)", value=float(params.allowed_laytime_days), min_value=0.0, step=0.5, format="%.2f",
        key=f"allowed_days_{st.session_state.docs_key}"
    )
    rate = col2.number_input(
        "Demurrage Rate (per day)", value=float(params.demurrage_rate_per_day), min_value=0.0, step=500.0, format="%.2f",
        key="demurrage_rate"
    )
    rate_currency = col3.selectbox(
        "Rate Currency", SUPPORTED_CURRENCIES, index=SUPPORTED_CURRENCIES.index(params.rate_currency), key="rate_currency"
    )
    display_currency = col4.selectbox(
        "Display Currency", SUPPORTED_CURRENCIES, index=SUPPORTED_CURRENCIES.index(params.display_currency),
        key="display_currency"
    )

    return LaytimeParameters(
        allowed_laytime_days=allowed_days,
        demurrage_rate_per_day=rate,
        rate_currency=rate_currency,
        display_currency=display_currency,
    )


def render_results(report: LaytimeReport):
    """Renders the calculation results."""
    st.subheader("Laytime Calculation Results")
    outcome = report.outcome

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Laytime Allowed", format_hours_to_duration(report.allowed_hours))
    c2.metric("Laytime Used", format_hours_to_duration(report.used_hours))
    c3.metric("Time Saved", format_hours_to_duration(outcome.time_saved_hours))

    if outcome.status == "demurrage":
        c4.metric(
            "Result: Demurrage Due", format_money(outcome.demurrage_cost, outcome.display_currency),
            delta=f"{format_hours_to_duration(outcome.demurrage_hours)} over", delta_color="inverse"
        )
    elif outcome.status == "despatch":
        c4.metric("Result: Despatch", "No demurrage")
    else:
        c4.metric("Result: Balanced", "On Time")

    if report.breakdown:
        with st.expander("View Laytime Breakdown"):
            breakdown = pd.DataFrame([{
                "Event": row.event,
                "Duration": row.duration,
                "Counted": "Yes" if row.is_counted else "No",
                "Reason": row.reason or "",
            } for row in report.breakdown])
            st.dataframe(breakdown, use_container_width=True, hide_index=True)


def render_events(extraction: ExtractionResult):
    st.subheader("Port Operation Events")

    grouped = group_by_category(extraction.events)
    for category, events in grouped.items():
        with st.expander(f"{category} ({len(events)})", expanded=True):
            st.dataframe(
                events_frame(events).drop(columns=["category", "duration_hours"]),
                use_container_width=True,
                hide_index=True
            )

    totals = category_totals(extraction.events)
    if not totals.empty:
        st.caption("Time per category")
        st.dataframe(totals, use_container_width=True, hide_index=True)


def render_timeline(extraction: ExtractionResult):
    st.subheader("Event Timeline")
    rows = timeline_rows(extraction.events)
    if rows.empty:
        st.info("No event times could be read for the timeline.")
        return

    color_map = {category: CATEGORY_COLORS.get(category, CATEGORY_COLORS["Default"]) for category in rows["category"].unique()}
    fig = px.timeline(
        rows,
        x_start="start",
        x_end="end",
        y="event",
        color="category",
        color_discrete_map=color_map,
        hover_data={"duration": True, "start_hour": ":.1f", "end_hour": ":.1f"},
    )
    fig.update_yaxes(autorange="reversed", title=None)
    fig.update_layout(height=max(300, 32 * len(rows)), margin=dict(l=10, r=10, t=30, b=10))
    st.plotly_chart(fig, use_container_width=True)


def render_downloads(extraction: ExtractionResult, report: LaytimeReport):
    col1, col2 = st.columns(2)
    with col1:
        json_data = json.dumps(build_export_record(extraction, report.to_dict()), indent=2, default=str)
        st.download_button(
            label="Download as JSON",
            data=json_data,
            file_name=export_filename(extraction.vessel_name, "json"),
            mime="application/json",
            use_container_width=True
        )
    with col2:
        csv_data = events_frame(extraction.events).to_csv(index=False)
        st.download_button(
            label="Download as CSV",
            data=csv_data,
            file_name=export_filename(extraction.vessel_name, "csv"),
            mime="text/csv",
            use_container_width=True
        )


def render_assistant(messages: List[Dict[str, str]]):
    st.header("Assistant")
    for message in messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    query = st.chat_input("Ask about laytime, demurrage or your document")
    if not query:
        return

    messages.append({"role": "user", "content": query})
    try:
        answer = asyncio.run(guide_new_users(query, st.session_state.extraction))
    except SofPipelineError as e:
        answer = f"Sorry, I couldn't answer that right now. {e.message}"
    messages.append({"role": "assistant", "content": answer})
    st.rerun()


# --- Main App Logic ---
st.title("SoF Laytime Intelligence")

# Environment check
if shutil.which("tesseract") is None:
    st.warning("Tesseract OCR is not installed. Scanned PDFs or photos may not yield text.")

# --- File Uploader & Processing ---
with st.expander("Upload & Extract Data", expanded=st.session_state.extraction is None):
    uploaded_file = st.file_uploader(
        "Upload Statement of Facts (PDF, DOCX, TXT, JPG, PNG)",
        type=["pdf", "docx", "txt", "jpg", "jpeg", "png"],
        key=f"file_uploader_{st.session_state.docs_key}"
    )

    if uploaded_file is not None:
        if st.button("Extract Information", type="primary"):
            with st.spinner("Analyzing document... This may take a moment."):
                try:
                    processed = asyncio.run(process_document(uploaded_file.getvalue(), uploaded_file.name))
                except SofPipelineError as e:
                    show_pipeline_error(e)
                else:
                    extraction = processed.extraction
                    st.session_state.extraction = extraction
                    st.session_state.parameters = LaytimeParameters.from_extraction(extraction)
                    st.session_state.warnings = processed.warnings
                    st.session_state.docs_key += 1
                    if extraction.events_summary:
                        st.session_state.messages.append({
                            "role": "assistant",
                            "content": f"Here are the key insights for {extraction.vessel_name}:\n\n{extraction.events_summary}"
                        })
                    st.rerun()


# --- Main Interactive UI ---
extraction = st.session_state.extraction
if extraction is not None:
    st.header(f"Vessel: {extraction.vessel_name}")
    for warning in st.session_state.warnings:
        st.warning(warning)

    params = render_parameters(st.session_state.parameters)
    st.session_state.parameters = params
    # Recomputed on every rerun so edited parameters take effect immediately
    report = build_laytime_report(extraction, params)

    st.divider()
    render_results(report)
    render_downloads(extraction, report)

    st.divider()
    render_events(extraction)
    render_timeline(extraction)
else:
    st.info("Upload a Statement of Facts document to begin.")

st.divider()
render_assistant(st.session_state.messages)
