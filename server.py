import logging
import platform
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from fastapi import BackgroundTasks, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from assessment.connection import GcsUploader, create_session_factory, get_db_engine, resolve_database_url
from assessment.entities import Base
from assessment.error_log import ErrorLog
from assessment.errors import (
    AssessmentError,
    NotFound,
    ParseError,
    RateLimited,
    ServiceUnavailable,
    StorageError,
    generate_error_id,
)
from assessment.llm_client import AnalysisClient
from assessment.models import (
    AnalysisRequest,
    MaturityTier,
    Profile,
    SaveResultsRequest,
    Scores,
    SubmitAssessmentRequest,
)
from assessment.questions import ASSESSMENT_DIMENSIONS, LIKERT_SCALE
from assessment.request_gate import RequestGate
from assessment.result_store import ResultStore
from assessment.service import AssessmentService
from assessment.settings import Settings

logger = logging.getLogger("maturity_backend")

MISSING_DATA = "Missing required data"


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _share_origin(request: Request, settings: Settings) -> str:
    origin = request.headers.get("origin")
    if not origin:
        referer = request.headers.get("referer", "")
        parts = urlsplit(referer)
        if parts.scheme and parts.netloc:
            origin = f"{parts.scheme}://{parts.netloc}"
    return (origin or settings.public_base_url).rstrip("/")


def _error_body(error: AssessmentError, *, message: Optional[str] = None, error_id: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message or error.public_message, "retryable": error.retryable}
    if error_id:
        body["errorId"] = error_id
    if isinstance(error, RateLimited):
        body["retryAfter"] = error.retry_after
    return body


def _error_response(error: AssessmentError, **kwargs) -> JSONResponse:
    headers = {"Retry-After": str(error.retry_after)} if isinstance(error, RateLimited) else None
    return JSONResponse(status_code=error.status_code, content=_error_body(error, **kwargs), headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory=None,
    analysis_client: Optional[AnalysisClient] = None,
    request_gate: Optional[RequestGate] = None,
    error_log: Optional[ErrorLog] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    if session_factory is None:
        engine = get_db_engine(resolve_database_url(settings))
        Base.metadata.create_all(engine)
        session_factory = create_session_factory(engine)

    if analysis_client is None:
        analysis_client = AnalysisClient(
            model_name=settings.llm_model,
            api_key=settings.openai_api_key,
            vertex_project=settings.vertex_project,
            vertex_region=settings.vertex_region,
            timeout=settings.llm_timeout_seconds,
            max_output_tokens=settings.llm_max_output_tokens,
            temperature=settings.llm_temperature,
        )

    result_store = ResultStore(session_factory, ttl_days=settings.result_ttl_days)
    service = AssessmentService(
        analysis_client=analysis_client,
        result_store=result_store,
        structured_output=settings.structured_output,
    )
    request_gate = request_gate or RequestGate(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    if error_log is None:
        uploader = GcsUploader(settings.error_log_bucket) if settings.error_log_bucket else None
        error_log = ErrorLog(session_factory, uploader=uploader)

    try:
        result_store.sweep_expired()
    except StorageError as e:
        logger.warning(f"Startup sweep of expired results failed: {e}")

    app = FastAPI(title="Data Maturity Assessment API")
    app.state.settings = settings
    app.state.service = service
    app.state.request_gate = request_gate
    app.state.error_log = error_log

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # -----------------------
    # Error rendering
    # -----------------------

    @app.exception_handler(AssessmentError)
    async def _assessment_error(request: Request, exc: AssessmentError):
        return _error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    def _admit_or_raise(request: Request) -> None:
        decision = request_gate.admit(_client_key(request))
        if not decision.allowed:
            service.normalizer.color_print(
                f"Rate limit hit for {_client_key(request)}, retry in {decision.retry_after_seconds}s", color="yellow"
            )
            raise RateLimited(decision.retry_after_seconds)

    def _failure_response(
        exc: Exception, request: Request, background_tasks: BackgroundTasks, error_type: str, company_name: Any
    ) -> JSONResponse:
        """
        Converts a pipeline failure into the public error shape. The diagnostic record
        is written after the response is sent and cannot change it.
        """
        if isinstance(exc, ServiceUnavailable):
            logger.error(f"{error_type}: {exc.detail}")
            return _error_response(exc)

        error_id = generate_error_id()
        error_data: Dict[str, Any] = {
            "id": error_id,
            "type": error_type,
            "error": str(exc),
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "userAgent": request.headers.get("user-agent"),
            "companyName": company_name if isinstance(company_name, str) else None,
        }
        if isinstance(exc, AssessmentError):
            error_data["kind"] = exc.kind
        if isinstance(exc, ParseError):
            error_data["rawText"] = exc.raw_text
            error_data["cleanedText"] = exc.cleaned_text
        background_tasks.add_task(error_log.record_safely, error_data)

        if isinstance(exc, AssessmentError):
            logger.error(f"{error_type} [{error_id}] {exc.kind}: {exc.detail}")
            return _error_response(exc, error_id=error_id)

        logger.exception(f"{error_type} [{error_id}] unexpected failure")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Unable to process analysis request. Please try again in a moment.",
                "retryable": True,
                "errorId": error_id,
            },
        )

    # -----------------------
    # Routes
    # -----------------------

    @app.options("/api/{path:path}")
    def preflight(path: str):
        return Response(status_code=200)

    @app.post("/api/generate-analysis")
    def generate_analysis(body: AnalysisRequest, request: Request, background_tasks: BackgroundTasks):
        _admit_or_raise(request)

        if not body.userProfile or not body.scores or not body.maturityTier:
            return JSONResponse(status_code=400, content={"error": MISSING_DATA})
        try:
            profile = Profile.model_validate(body.userProfile)
            scores = Scores.model_validate(body.scores)
            tier = MaturityTier.model_validate(body.maturityTier)
        except ValidationError:
            return JSONResponse(status_code=400, content={"error": "Invalid assessment data"})

        try:
            normalized = service.generate_analysis(profile, scores, tier)
        except Exception as exc:
            return _failure_response(
                exc, request, background_tasks, "ANALYSIS_GENERATION_ERROR", body.userProfile.get("companyName")
            )

        return {
            "success": True,
            "analysis": normalized.analysis.to_wire(),
            "fidelity": normalized.fidelity.value,
        }

    @app.post("/api/save-results")
    def save_results(body: SaveResultsRequest, request: Request):
        if not body.userProfile or not body.results:
            return JSONResponse(status_code=400, content={"error": MISSING_DATA})
        try:
            profile = Profile.model_validate(body.userProfile)
            scores, analysis = service.parse_results_payload(body.results)
        except (ValidationError, ValueError) as e:
            logger.info(f"save-results rejected: {e}")
            return JSONResponse(status_code=400, content={"error": "Invalid results data"})

        try:
            stored = service.save_results(profile, scores, analysis)
        except StorageError as e:
            logger.error(f"Error saving results: {e.detail}")
            return _error_response(e, message="Failed to save results")

        return {
            "success": True,
            "resultId": stored.id,
            "shareUrl": f"{_share_origin(request, settings)}/results/{stored.id}",
        }

    @app.get("/api/get-results")
    def get_results(id: Optional[str] = None):
        if not id:
            return JSONResponse(status_code=400, content={"error": "Missing result ID"})
        try:
            stored = service.get_results(id)
        except NotFound as e:
            logger.info(f"get-results: {e.detail}")
            return JSONResponse(status_code=404, content={"error": e.public_message})
        except StorageError as e:
            logger.error(f"Error retrieving results: {e.detail}")
            return JSONResponse(status_code=500, content={"error": "Failed to retrieve results"})
        return {"success": True, "data": stored.to_wire()}

    @app.post("/api/log-error")
    def log_error(payload: Optional[Dict[str, Any]] = Body(default=None)):
        if not payload or not payload.get("id"):
            return JSONResponse(status_code=400, content={"error": "Missing error data"})
        try:
            logged = error_log.record(payload)
        except Exception:
            logger.exception("Error logging diagnostic record")
            return JSONResponse(status_code=500, content={"error": "Failed to log error"})
        return {"success": True, "errorId": logged["errorId"], "location": logged["location"]}

    @app.post("/api/submit-assessment")
    def submit_assessment(body: SubmitAssessmentRequest, request: Request, background_tasks: BackgroundTasks):
        _admit_or_raise(request)

        if not body.userProfile or body.answers is None:
            return JSONResponse(status_code=400, content={"error": MISSING_DATA})
        try:
            profile = Profile.model_validate(body.userProfile)
        except ValidationError:
            return JSONResponse(status_code=400, content={"error": "Invalid assessment data"})

        session_key = body.sessionId or _client_key(request)
        try:
            stored = service.submit_assessment(session_key, profile, body.answers)
        except AssessmentError as exc:
            if exc.status_code == 409:
                return _error_response(exc)
            return _failure_response(
                exc, request, background_tasks, "ASSESSMENT_SUBMISSION_ERROR", body.userProfile.get("companyName")
            )
        except Exception as exc:
            return _failure_response(
                exc, request, background_tasks, "ASSESSMENT_SUBMISSION_ERROR", body.userProfile.get("companyName")
            )

        return {
            "success": True,
            "resultId": stored.id,
            "shareUrl": f"{_share_origin(request, settings)}/results/{stored.id}",
            "data": stored.to_wire(),
        }

    @app.get("/api/questions")
    def questions():
        return {"success": True, "dimensions": ASSESSMENT_DIMENSIONS, "scale": LIKERT_SCALE}

    @app.api_route("/api/test", methods=["GET", "POST"])
    def api_test(request: Request):
        return {
            "success": True,
            "message": "API is working",
            "method": request.method,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "hasOpenAIKey": bool(settings.openai_api_key),
            "pythonVersion": platform.python_version(),
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
