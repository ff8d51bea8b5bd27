"""
FastAPI routes for statement upload, simulation, history and credits.
Clean API layer following separation of concerns principle.
"""
from pathlib import Path
from typing import Dict, Optional, Type

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.background import BackgroundTask

from core.aggregator import aggregate, potential_savings, recompute_with_exclusions
from core.config import get_settings
from core.exceptions import (
    AnalysisInProgressError,
    AuthenticationRequiredError,
    ClassificationError,
    ClassificationTimeout,
    ConfigurationError,
    DataNotFoundError,
    ExportError,
    FileProcessingError,
    InsufficientCreditsError,
    PaymentError,
    QuantoDaException,
    ResponseParseError,
    UnsupportedFormatError,
    ValidationError,
)
from core.exporters import create_output_filename, export_to_excel
from core.history import get_history_store
from core.logger import setup_logger
from core.normalize import SAMPLE_STATEMENT
from core.schema import LoginRequest, PaymentCheckRequest, SimulationRequest
from core.session import Session, SessionRegistry
from services.analysis_service import AnalysisService
from services.payment_service import PaymentService

logger = setup_logger(__name__)
settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="QuantoDá? Subscription Analyzer",
    description="Find recurring subscriptions in bank statements",
    version="1.0.0"
)

# In-memory sessions (use Redis/DB in production)
sessions = SessionRegistry(initial_credits=settings.initial_credits)

# Service instances
history_store = get_history_store()
analysis_service = AnalysisService(history_store=history_store)
payment_service = PaymentService()

STATUS_CODES: Dict[Type[QuantoDaException], int] = {
    UnsupportedFormatError: 415,
    FileProcessingError: 400,
    ValidationError: 422,
    ClassificationTimeout: 504,
    ClassificationError: 502,
    ResponseParseError: 502,
    AuthenticationRequiredError: 401,
    InsufficientCreditsError: 402,
    AnalysisInProgressError: 409,
    PaymentError: 502,
    DataNotFoundError: 404,
    ExportError: 500,
    ConfigurationError: 500,
}

# User-facing messages for classifier failures (details stay in the logs)
ANALYSIS_FAILURE_MESSAGES: Dict[Type[QuantoDaException], str] = {
    ClassificationTimeout: "A análise demorou demais para responder. Tente novamente em instantes.",
    ClassificationError: "Falha ao analisar o documento com IA. Tente novamente mais tarde.",
    ResponseParseError: "A IA retornou uma resposta inválida. Tente novamente ou envie outro arquivo.",
}


def status_for(exc: QuantoDaException) -> int:
    """Most specific HTTP status for an application error."""
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def message_for(exc: QuantoDaException) -> str:
    for cls in type(exc).__mro__:
        if cls in ANALYSIS_FAILURE_MESSAGES:
            return ANALYSIS_FAILURE_MESSAGES[cls]
    return exc.message


@app.exception_handler(QuantoDaException)
async def handle_app_error(request: Request, exc: QuantoDaException):
    """Turn application errors into a single user-facing message."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.url.path} failed: {type(exc).__name__}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": message_for(exc), "error": type(exc).__name__},
    )


def get_session(x_session_id: Optional[str] = Header(default=None)) -> Session:
    """Resolve the caller's session from the X-Session-Id header."""
    try:
        return sessions.get(x_session_id)
    except DataNotFoundError:
        raise HTTPException(status_code=401, detail="Session not found. Log in first.")


def get_authenticated_session(session: Session = Depends(get_session)) -> Session:
    session.require_authenticated()
    return session


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "quantoda",
        "version": "1.0.0"
    }


@app.get("/favicon.ico")
async def favicon():
    """Return empty response for favicon to avoid 404 errors."""
    return Response(status_code=204)


@app.post("/session/login")
async def login(body: LoginRequest, x_session_id: Optional[str] = Header(default=None)):
    """Simulated login: opens (or reuses) a session for the email."""
    session = sessions.get_or_create(x_session_id)
    session.login(body.email)
    return session.to_dict()


@app.post("/session/logout")
async def logout(session: Session = Depends(get_session)):
    session.logout()
    return session.to_dict()


@app.get("/session")
async def get_session_state(session: Session = Depends(get_session)):
    return session.to_dict()


@app.post("/analyze")
async def analyze_statement(
    file: Optional[UploadFile] = File(default=None),
    text: Optional[str] = Form(default=None),
    use_sample: bool = Form(default=False),
    session: Session = Depends(get_session),
):
    """
    Analyze an uploaded statement (CSV, TXT or PDF) or literal text.

    Args:
        file: Statement file
        text: Statement text overriding the file
        use_sample: Analyze the built-in sample statement
        session: Caller session (needs login and one credit)

    Returns:
        Analysis result
    """
    override_text = SAMPLE_STATEMENT if use_sample else text
    raw_bytes = None
    content_type = None

    if override_text is None:
        if file is None:
            raise HTTPException(status_code=400, detail="No file or text provided")
        raw_bytes = await file.read()
        content_type = file.content_type
        logger.info(f"Received file: {file.filename} ({content_type}, {len(raw_bytes)} bytes)")

    result = await analysis_service.analyze(
        session,
        raw_bytes=raw_bytes,
        content_type=content_type,
        override_text=override_text,
    )
    return result.model_dump(by_alias=True, mode="json")


@app.post("/simulate")
async def simulate(body: SimulationRequest):
    """What-if: totals with some subscriptions switched off."""
    simulated = recompute_with_exclusions(body.items, body.active)
    full = aggregate(body.items)
    return {
        **simulated.model_dump(by_alias=True, mode="json"),
        "savings": potential_savings(full, simulated),
    }


@app.get("/history")
def get_history(session: Session = Depends(get_authenticated_session)):
    records = history_store.load(session.email)
    return {
        "records": [r.model_dump(by_alias=True, mode="json") for r in records],
        "trend": history_store.trend(session.email),
    }


@app.delete("/history")
def clear_history(session: Session = Depends(get_authenticated_session)):
    history_store.clear(session.email)
    return {"status": "cleared"}


@app.get("/history/{record_id}/export")
def export_history_record(record_id: str, session: Session = Depends(get_authenticated_session)):
    """
    Download one analysis as an Excel report.

    Args:
        record_id: History record identifier

    Returns:
        File response
    """
    record = history_store.get(session.email, record_id)
    output_path = create_output_filename(record.id, settings.temp_storage_path)
    try:
        export_to_excel(record, output_path)
    except ExportError:
        cleanup_file(output_path)
        raise

    return FileResponse(
        path=output_path,
        filename=Path(output_path).name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        background=BackgroundTask(cleanup_file, output_path),
    )


def cleanup_file(path: str) -> None:
    """Remove a report file once it has been sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to delete {path}: {e}")


@app.post("/pay/create")
def create_payment(session: Session = Depends(get_authenticated_session)):
    checkout = payment_service.create_checkout(session.email)
    return checkout.model_dump(by_alias=True)


@app.post("/pay/check")
def check_payment(body: PaymentCheckRequest, session: Session = Depends(get_authenticated_session)):
    """Confirm a billing and credit the session once when paid."""
    paid = payment_service.confirm_purchase(session, body.billing_id)
    return {"paid": paid, "credits": session.credits}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
