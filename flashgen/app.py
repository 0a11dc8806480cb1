# flashgen/app.py
import time

# Load .env BEFORE any flashgen imports (they read env vars at import time)
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import FastAPI, Request, Path
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, PlainTextResponse

from flashgen.orchestrator import GenerationOrchestrator
from flashgen.gateway.errors import ErrorKind, FlashgenError
from flashgen.schemas import (
    GenerateFlashcardsRequest,
    GenerationErrorLogOut,
    GenerationOut,
    GenerationResponse,
)
from flashgen import monitoring
from flashgen import auth as authmod
from flashgen import db as dbmod

app = FastAPI(title="Flashcard Generation API")

# Initialize DB tables on startup
dbmod.init_db()

# instantiate store and orchestrator once; the model gateway is built on first use
store = dbmod.GenerationStore()
orchestrator = GenerationOrchestrator(store=store)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
}


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


# ---------------------------------------------------------------------------
# Identity middleware (runs on /api/* paths)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def identity_middleware(request: Request, call_next):
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    user_id = authmod.resolve_user_id(
        request.headers.get("authorization"),
        request.headers.get(authmod.API_KEY_HEADER),
    )
    if not user_id:
        return error_response(401, ErrorKind.AUTHENTICATION.value, "Missing or invalid API token")
    request.state.user_id = user_id
    return await call_next(request)


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    endpoint = request.url.path
    method = request.method
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    except Exception:
        monitoring.logger.exception("Unhandled exception in request", extra={"path": endpoint})
        raise
    finally:
        monitoring.observe_request(start, endpoint, method, status)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    message = first.get("msg", "Invalid request body")
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return error_response(400, ErrorKind.VALIDATION.value, f"{loc}: {message}" if loc else message)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.post("/api/generations")
def create_generation(req: GenerateFlashcardsRequest, request: Request):
    """
    POST /api/generations
    Body: { "source_text": "..." }   (1000-10000 characters)
    201:  { "generation_id": 1, "flashcards_proposal": [{front, back, source}, ...] }
    """
    user_id = request.state.user_id
    monitoring.logger.info("Received /api/generations request",
                           extra={"user_id": user_id, "source_text_length": len(req.source_text)})
    try:
        result = orchestrator.generate(user_id, req.source_text)
    except FlashgenError as e:
        status_code = _STATUS_BY_KIND.get(e.kind, 500)
        if status_code == 500:
            monitoring.logger.error("Generation failed in /api/generations",
                                    extra={"error_kind": e.kind.value, "error": e.message})
        return error_response(status_code, e.code, e.message)
    except Exception:
        monitoring.logger.exception("Unexpected error in /api/generations handler")
        return error_response(500, "internal_error", "Internal server error")

    body = GenerationResponse(generation_id=result.generation_id,
                              flashcards_proposal=result.proposals)
    return JSONResponse(status_code=201, content=body.model_dump(mode="json"))


@app.get("/api/generations/{generation_id}")
def get_generation(request: Request,
                   generation_id: int = Path(..., description="Generation ID to fetch")):
    """GET /api/generations/{generation_id}: the caller's generation record."""
    try:
        rec = store.get_generation(request.state.user_id, generation_id)
    except FlashgenError as e:
        return error_response(500, e.code, e.message)
    if not rec:
        return error_response(404, "not_found", f"Generation {generation_id} not found")
    return JSONResponse(status_code=200, content=GenerationOut(**rec).model_dump(mode="json"))


@app.get("/api/generations/{generation_id}/errors")
def get_generation_errors(request: Request,
                          generation_id: int = Path(..., description="Generation ID")):
    """GET /api/generations/{generation_id}/errors: the caller's error logs for it."""
    try:
        rows = store.list_error_logs(request.state.user_id, generation_id)
    except FlashgenError as e:
        return error_response(500, e.code, e.message)
    return JSONResponse(
        status_code=200,
        content={"generation_id": generation_id,
                 "errors": [GenerationErrorLogOut(**r).model_dump(mode="json") for r in rows]},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    if not monitoring.PROMETHEUS_ENABLED:
        return PlainTextResponse("Prometheus disabled", status_code=404)
    payload, content_type = monitoring.prometheus_metrics_response()
    return Response(content=payload, media_type=content_type)
