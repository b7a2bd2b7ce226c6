import logging
import time
from typing import Any, Dict

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, settings
from errors import NOT_FOUND, InvalidRequestError, ProxyError, UpstreamError, error_envelope
from model_mapping import default_translator
from models import OpenAIModel, OpenAIModelList
from transcoder import StreamSession, Transcoder

# --- Logging Setup ---
# Map string level names to logging constants
log_level_str = settings.LOG_LEVEL.upper()
log_level_map = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "NONE": logging.CRITICAL + 1, # Effectively disable logging
}
log_level = log_level_map.get(log_level_str, logging.INFO) # Default to INFO if invalid

logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    # uvicorn configures logging too
    force=True
)
logger = logging.getLogger(__name__)
logger.info(f"Logging configured with level: {logging.getLevelName(log_level)}")
# --- End Logging Setup ---

SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"
MODEL_OWNER = "nvidia-nim-proxy"

app = FastAPI(
    title=SERVICE_NAME,
    description="Proxy server exposing NVIDIA NIM chat models through OpenAI compatible endpoints.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_settings() -> Settings:
    return settings


def get_transcoder(app_settings: Settings = Depends(get_settings)) -> Transcoder:
    return Transcoder(app_settings, translator=default_translator)


def error_response(error: ProxyError) -> JSONResponse:
    logger.error(f"Returning {error.error_type} ({error.status_code}): {error.message}")
    return JSONResponse(content=error.to_envelope(), status_code=error.status_code)


@app.get("/health")
async def health_check(app_settings: Settings = Depends(get_settings)):
    """Basic health check endpoint, also reporting whether the NIM credential is set."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "api_configured": app_settings.api_configured,
    }


@app.get("/")
async def read_root():
    return {
        "service": SERVICE_NAME,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "models": "/v1/models",
            "chat": "/v1/chat/completions",
        },
    }


@app.get("/v1/models", response_model=OpenAIModelList)
async def get_models():
    """
    Lists the caller-facing model names of the mapping table in the
    OpenAI API format.
    """
    created = int(time.time() * 1000)
    openai_models = [
        OpenAIModel(id=model_id, object="model", created=created, owned_by=MODEL_OWNER)
        for model_id in default_translator.model_ids()
    ]
    logger.debug(f"GET /v1/models returning {len(openai_models)} models")
    return OpenAIModelList(data=openai_models)


async def read_chat_request(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequestError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


@app.post("/v1/chat/completions")
async def chat_completions(request: Request, transcoder: Transcoder = Depends(get_transcoder)):
    """
    Proxies an OpenAI chat completion request to the NVIDIA NIM API.
    Streaming requests are relayed byte for byte; buffered ones are
    reshaped into the OpenAI response format.
    """
    try:
        # The credential check comes before reading the body
        transcoder.require_credential()
        original_request_data = await read_chat_request(request)
        logger.debug(f"Received raw request data for chat completion: {original_request_data}")

        result = await transcoder.handle_chat_completion(original_request_data)

        if isinstance(result, StreamSession):
            return StreamingResponse(
                result.iter_chunks(),
                media_type=result.media_type,
                headers=result.headers,
            )
        return JSONResponse(content=result.to_body(), status_code=200)

    except ProxyError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error in chat_completions endpoint: {e}")
        return error_response(UpstreamError(str(e) or "An unexpected error occurred"))


@app.exception_handler(StarletteHTTPException)
async def not_found(request: Request, exc: StarletteHTTPException):
    """Renders unmatched paths and methods as a not_found error envelope."""
    if exc.status_code not in (404, 405):
        return await http_exception_handler(request, exc)
    path = request.url.path
    logger.warning(f"{request.method} {path} does not match any endpoint")
    return JSONResponse(
        content=error_envelope(f"Endpoint {path} not found", NOT_FOUND),
        status_code=404,
    )


def start() -> None:
    logger.info(SERVICE_NAME)
    logger.info(f"Port: {settings.PORT}")
    logger.info(f"API Key: {'Configured' if settings.api_configured else 'Missing'}")
    logger.info(f"Health check: http://localhost:{settings.PORT}/health")

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=logging.getLevelName(min(log_level, logging.CRITICAL)).lower(),
        log_config=None, # Keep the logging configured above
    )


if __name__ == "__main__":
    start()
