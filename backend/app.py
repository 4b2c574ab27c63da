"""
SoF Laytime Intelligence Backend API
FastAPI application for processing maritime Statement of Facts documents
"""

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import BackgroundTasks, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from analytics import build_export_record, events_frame, export_filename
from config import API_HOST, API_PORT, CORS_ORIGINS, RESULTS_DIR, UPLOAD_DIR, setup_logging
from laytime import (
    CURRENCY_RATES,
    CURRENCY_SYMBOLS,
    LaytimeParameters,
    build_laytime_report,
    compute_laytime_outcome,
    format_hours_to_duration,
    format_money,
)
from schemas import (
    AssistantRequest,
    ExtractRequest,
    ExtractionResult,
    LaytimeComputeRequest,
    LaytimeParametersIn,
    PortEvent,
)
from sof_pipeline import (
    SUPPORTED_EXTENSIONS,
    SofPipelineError,
    data_uri_to_text,
    document_digest,
    extract_text_once,
    guide_new_users,
    process_document,
    summarize_port_events,
)

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SoF Laytime Intelligence API",
    description="AI-powered Statement of Facts extraction with laytime, despatch and demurrage calculation",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
RESULTS_DIR.mkdir(parents=True, exist_ok=True)

# In-memory job storage; nothing outlives the process
jobs: Dict[str, Dict[str, Any]] = {}


class JobStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _pipeline_http_error(e: SofPipelineError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def _get_job(job_id: str) -> Dict[str, Any]:
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")
    return jobs[job_id]


def _get_completed_job(job_id: str) -> Dict[str, Any]:
    job = _get_job(job_id)
    if job["status"] != JobStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Job not completed yet")
    return job


def _report_for(job: Dict[str, Any], params: Optional[LaytimeParameters] = None) -> Dict[str, Any]:
    extraction: ExtractionResult = job["extraction"]
    params = params or job.get("parameters") or LaytimeParameters.from_extraction(extraction)
    return build_laytime_report(extraction, params).to_dict()


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "SoF Laytime Intelligence API is running", "status": "healthy"}


@app.get("/api/currencies")
async def list_currencies():
    return {
        "base": "USD",
        "currencies": [
            {"code": code, "rate": rate, "symbol": CURRENCY_SYMBOLS.get(code, "")}
            for code, rate in CURRENCY_RATES.items()
        ],
    }


@app.post("/api/upload")
async def upload_file(background_tasks: BackgroundTasks, file: UploadFile = File(...)):
    """
    Upload and process a Statement of Facts document
    Supports PDF, DOCX, TXT and image files
    """
    file_extension = Path(file.filename or "").suffix.lower()
    if file_extension not in SUPPORTED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file_extension or 'unknown'}. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Please upload a file.")

    # Re-submitting a document that is still being processed joins the existing job
    digest = document_digest(content)
    for existing_id, existing in jobs.items():
        if existing["digest"] == digest and existing["status"] == JobStatus.PROCESSING:
            logger.info(f"Upload of {file.filename} joined in-flight job {existing_id}")
            return {
                "job_id": existing_id,
                "status": JobStatus.PROCESSING,
                "message": "This document is already being processed."
            }

    job_id = str(uuid.uuid4())
    file_path = UPLOAD_DIR / f"{job_id}_{Path(file.filename).name}"
    file_path.write_bytes(content)

    jobs[job_id] = {
        "status": JobStatus.PROCESSING,
        "filename": file.filename,
        "file_path": str(file_path),
        "digest": digest,
        "created_at": datetime.now().isoformat(),
        "extraction": None,
        "warnings": [],
        "error": None,
        "error_status": None,
    }

    background_tasks.add_task(process_document_job, job_id, content, file.filename)

    return {
        "job_id": job_id,
        "status": JobStatus.PROCESSING,
        "message": "Document uploaded successfully. Processing started."
    }


async def process_document_job(job_id: str, content: bytes, filename: str):
    """
    Background task: text extraction, LLM extraction, result file
    """
    logger.info(f"Starting processing for job {job_id}: {filename}")
    try:
        processed = await process_document(content, filename)
    except SofPipelineError as e:
        logger.error(f"Job {job_id} failed: {e.message}")
        jobs[job_id].update({
            "status": JobStatus.FAILED,
            "error": e.message,
            "error_status": e.status_code,
            "failed_at": datetime.now().isoformat()
        })
        return
    except Exception as e:
        # Nobody awaits a background task, so the failure is recorded on the job
        logger.exception(f"Unexpected error processing job {job_id}")
        jobs[job_id].update({
            "status": JobStatus.FAILED,
            "error": f"Processing failed: {str(e)}",
            "error_status": 500,
            "failed_at": datetime.now().isoformat()
        })
        return

    extraction = processed.extraction
    result_file = RESULTS_DIR / f"{job_id}_results.json"
    with open(result_file, "w") as f:
        json.dump(extraction.model_dump(by_alias=True), f, indent=2, default=str)

    jobs[job_id].update({
        "status": JobStatus.COMPLETED,
        "extraction": extraction,
        "parameters": LaytimeParameters.from_extraction(extraction),
        "warnings": processed.warnings,
        "processed_at": datetime.now().isoformat(),
        "result_file": str(result_file)
    })
    logger.info(f"Job {job_id} completed successfully: {len(extraction.events)} events")


@app.get("/api/status/{job_id}")
async def get_status(job_id: str):
    job = _get_job(job_id)
    return {
        "job_id": job_id,
        "status": job["status"],
        "filename": job["filename"],
        "created_at": job["created_at"]
    }


@app.get("/api/result/{job_id}")
async def get_result(job_id: str):
    """
    Get processing results for a specific job
    """
    job = _get_job(job_id)

    if job["status"] == JobStatus.PROCESSING:
        return {
            "job_id": job_id,
            "status": JobStatus.PROCESSING,
            "message": "Document is still being processed"
        }
    if job["status"] == JobStatus.FAILED:
        return {
            "job_id": job_id,
            "status": JobStatus.FAILED,
            "error": job["error"],
            "quota_exceeded": job["error_status"] == 429
        }

    return {
        "job_id": job_id,
        "status": JobStatus.COMPLETED,
        "filename": job["filename"],
        "extraction": job["extraction"].model_dump(by_alias=True),
        "laytime": _report_for(job),
        "warnings": job["warnings"],
        "processed_at": job["processed_at"]
    }


@app.post("/api/extract")
async def extract_events(request: ExtractRequest):
    """
    Extract events directly from SoF text or a base64 data URI, waiting for the model
    """
    try:
        if request.data_uri:
            doc = await run_in_threadpool(data_uri_to_text, request.data_uri)
            text = doc.combined_text
        else:
            text = request.sof_content
        extraction = await extract_text_once(text)
    except SofPipelineError as e:
        raise _pipeline_http_error(e)

    return extraction.model_dump(by_alias=True)


@app.post("/api/laytime/compute")
async def compute_laytime(request: LaytimeComputeRequest):
    """
    Stateless despatch/demurrage calculation from a used-laytime figure
    """
    params = LaytimeParameters(
        demurrage_rate_per_day=request.demurrage_rate_per_day,
        rate_currency=request.rate_currency,
        display_currency=request.display_currency,
    )
    if request.allowed_laytime_days is not None:
        params.allowed_laytime_days = request.allowed_laytime_days

    outcome = compute_laytime_outcome(
        request.used_hours,
        params.allowed_laytime_days,
        params.demurrage_rate_per_day,
        params.rate_currency,
        params.display_currency,
    )
    result = outcome.to_dict()
    result.update({
        "used_hours": request.used_hours,
        "allowed_hours": params.allowed_laytime_days * 24,
        "time_saved": format_hours_to_duration(outcome.time_saved_hours),
        "demurrage": format_hours_to_duration(outcome.demurrage_hours),
        "demurrage_cost_formatted": format_money(outcome.demurrage_cost, outcome.display_currency),
    })
    return result


@app.post("/api/laytime/{job_id}")
async def recalculate_laytime(job_id: str, parameters: LaytimeParametersIn):
    """
    Recompute laytime for a job after the user edits the contract parameters
    """
    job = _get_completed_job(job_id)

    params = LaytimeParameters.from_extraction(
        job["extraction"],
        allowed_laytime_days=parameters.allowed_laytime_days,
        demurrage_rate_per_day=parameters.demurrage_rate_per_day,
        rate_currency=parameters.rate_currency,
        display_currency=parameters.display_currency,
    )
    report = _report_for(job, params)

    job["parameters"] = params
    job["laytime_result"] = report
    return report


@app.put("/api/update-events/{job_id}")
async def update_events(job_id: str, events: List[PortEvent]):
    """
    Update events for a job (after user edits)
    """
    job = _get_completed_job(job_id)
    job["extraction"] = job["extraction"].model_copy(update={"events": events})
    job.pop("laytime_result", None)

    return {
        "job_id": job_id,
        "status": "success",
        "message": "Events updated successfully",
        "events_count": len(events)
    }


@app.post("/api/summarize/{job_id}")
async def summarize_events(job_id: str):
    job = _get_completed_job(job_id)
    try:
        summary = await summarize_port_events(job["extraction"].events)
    except SofPipelineError as e:
        raise _pipeline_http_error(e)

    job["extraction"] = job["extraction"].model_copy(update={"events_summary": summary})
    return {"job_id": job_id, "summary": summary}


@app.post("/api/assistant")
async def ask_assistant(request: AssistantRequest):
    """
    Assistant chat; answers about the uploaded SoF when a completed job is given
    """
    extraction = None
    if request.job_id:
        extraction = _get_completed_job(request.job_id)["extraction"]

    try:
        response = await guide_new_users(request.query, extraction)
    except SofPipelineError as e:
        raise _pipeline_http_error(e)
    return {"response": response}


@app.get("/api/export/{job_id}")
async def export_data(job_id: str, export_type: str = "json"):
    """
    Export the extracted and computed record as JSON, or the events table as CSV
    """
    job = _get_completed_job(job_id)
    extraction: ExtractionResult = job["extraction"]
    export_type = export_type.lower()

    if export_type == "json":
        record = build_export_record(extraction, job.get("laytime_result") or _report_for(job))
        export_file = RESULTS_DIR / f"{job_id}_export.json"
        with open(export_file, "w") as f:
            json.dump(record, f, indent=2, default=str)
        media_type = "application/json"
    elif export_type == "csv":
        export_file = RESULTS_DIR / f"{job_id}_export.csv"
        events_frame(extraction.events).to_csv(export_file, index=False)
        media_type = "text/csv"
    else:
        raise HTTPException(status_code=400, detail="Invalid export type. Use 'csv' or 'json'")

    return FileResponse(
        export_file,
        media_type=media_type,
        filename=export_filename(extraction.vessel_name, export_type)
    )


@app.get("/api/jobs")
async def list_jobs():
    """
    List all processing jobs (for debugging/admin)
    """
    return {
        "jobs": [
            {
                "job_id": job_id,
                "status": job["status"],
                "filename": job["filename"],
                "created_at": job["created_at"],
                "has_laytime_result": "laytime_result" in job
            }
            for job_id, job in jobs.items()
        ]
    }


if __name__ == "__main__":
    uvicorn.run("app:app", host=API_HOST, port=API_PORT, reload=True)
