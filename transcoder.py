import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple, Union

import httpx
from pydantic import BaseModel, ValidationError

from config import Settings
from errors import ConfigurationError, ProxyError, UpstreamError
from model_mapping import ModelTranslator, default_translator
from models import (
    ChatCompletionChoice,
    ChatMessage,
    OpenAIChatCompletionResponse,
    UpstreamChatCompletionResponse,
)

logger = logging.getLogger(__name__)

UPSTREAM_TIMEOUT = 60.0 # Seconds, applies to connect, read and write of the NIM call
CHAT_COMPLETIONS_PATH = "/chat/completions"

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
DEFAULT_STREAM = False

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"
EVENT_STREAM_HEADERS = {
    "Content-Type": EVENT_STREAM_MEDIA_TYPE, # Exact value, no charset suffix
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _with_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def build_upstream_request(
    inbound: Dict[str, Any], translator: ModelTranslator = default_translator
) -> Dict[str, Any]:
    """
    Builds the NIM chat request from an OpenAI-style request body.
    Messages are forwarded untouched; sampling fields get the proxy defaults
    only when they are absent or null.
    """
    return {
        "model": translator.resolve_upstream_model(inbound.get("model")),
        "messages": inbound.get("messages"),
        "temperature": _with_default(inbound.get("temperature"), DEFAULT_TEMPERATURE),
        "max_tokens": _with_default(inbound.get("max_tokens"), DEFAULT_MAX_TOKENS),
        "stream": _with_default(inbound.get("stream"), DEFAULT_STREAM),
    }


def extract_error_message(response: httpx.Response, fallback: str) -> str:
    """Returns error.message from a structured upstream error body, else the fallback."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return fallback


def upstream_status_error(response: httpx.Response) -> UpstreamError:
    fallback = f"Request failed with status code {response.status_code}"
    message = extract_error_message(response, fallback)
    logger.error(f"NIM API returned {response.status_code}: {message}")
    return UpstreamError(message, status_code=response.status_code)


def _supplied(model: BaseModel, exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
    return {name: getattr(model, name) for name in model.model_fields_set if name not in exclude}


def reshape_response(upstream_body: Any, inbound: Dict[str, Any]) -> OpenAIChatCompletionResponse:
    """
    Transforms a buffered NIM chat completion into the OpenAI format,
    reporting the model name the caller asked for.

    Fields neither the caller nor the upstream supplied stay unset, so they
    are left out of the response body rather than sent as null.
    """
    try:
        upstream = UpstreamChatCompletionResponse.model_validate(upstream_body)
    except ValidationError as e:
        logger.error(f"Unexpected NIM response shape: {upstream_body}")
        raise UpstreamError(f"Malformed response from NIM API: {e.error_count()} validation error(s)") from e

    choices = [
        ChatCompletionChoice(
            message=ChatMessage(**_supplied(choice.message)),
            **_supplied(choice, exclude=("message",)),
        )
        for choice in upstream.choices
    ]
    supplied_model = {"model": inbound["model"]} if "model" in inbound else {}
    response = OpenAIChatCompletionResponse(choices=choices, **supplied_model)
    if upstream.usage is not None:
        response.usage = upstream.usage
    return response


async def relay_stream(
    source: AsyncIterator[bytes],
    on_close: Optional[Callable[[], Awaitable[None]]] = None,
) -> AsyncIterator[bytes]:
    """
    Forwards upstream chunks to the caller one at a time, unchanged.

    A transport error after the stream has started cannot be reported with a
    status code any more, so it is logged and the caller's stream just ends.
    `on_close` runs however the relay finishes, including when the caller
    disconnects and the generator is closed early.
    """
    chunk_count = 0
    try:
        async for chunk in source:
            chunk_count += 1
            yield chunk
        logger.info(f"Upstream stream finished after {chunk_count} chunks.")
    except httpx.HTTPError as e:
        logger.exception(f"Stream error after {chunk_count} chunks: {e}")
    finally:
        if on_close is not None:
            await on_close()


@dataclass
class StreamSession:
    """An open upstream event stream waiting to be relayed to the caller."""

    response: httpx.Response
    client: httpx.AsyncClient
    requested_model: Any = None
    media_type: str = EVENT_STREAM_MEDIA_TYPE
    headers: Dict[str, str] = field(default_factory=lambda: dict(EVENT_STREAM_HEADERS))

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()

    def iter_chunks(self) -> AsyncIterator[bytes]:
        return relay_stream(self.response.aiter_bytes(), on_close=self.aclose)


class Transcoder:
    """Translates OpenAI chat completion calls into NIM calls and back."""

    def __init__(
        self,
        settings: Settings,
        translator: ModelTranslator = default_translator,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.translator = translator
        self._transport = transport

    @property
    def chat_url(self) -> str:
        return f"{self.settings.NIM_API_BASE.rstrip('/')}{CHAT_COMPLETIONS_PATH}"

    def require_credential(self) -> None:
        if not self.settings.NIM_API_KEY:
            logger.error("NIM_API_KEY is not configured; rejecting chat completion request.")
            raise ConfigurationError("NIM_API_KEY is not configured on the server")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.NIM_API_KEY}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT, transport=self._transport)

    async def handle_chat_completion(
        self, inbound: Dict[str, Any]
    ) -> Union[StreamSession, OpenAIChatCompletionResponse]:
        """
        Runs one chat completion against the NIM API.

        Returns a StreamSession for streaming requests and the reshaped
        response otherwise. Every failure is raised as a ProxyError.
        """
        self.require_credential()

        requested_model = inbound.get("model")
        try:
            upstream_request = build_upstream_request(inbound, self.translator)
            logger.info(f"Request: {requested_model} -> {upstream_request['model']}")
            logger.debug(f"NIM request payload: {upstream_request}")

            if upstream_request["stream"]:
                return await self._open_stream(upstream_request, requested_model)
            return await self._complete(upstream_request, inbound)
        except ProxyError:
            raise
        except httpx.HTTPError as e:
            logger.error(f"Error contacting NIM API at {self.chat_url}: {e!r}")
            raise UpstreamError(str(e) or f"{type(e).__name__} contacting NIM API") from e
        except Exception as e:
            logger.exception(f"Unexpected error during chat completion for model {requested_model}: {e}")
            raise UpstreamError(str(e) or type(e).__name__) from e

    async def _complete(
        self, upstream_request: Dict[str, Any], inbound: Dict[str, Any]
    ) -> OpenAIChatCompletionResponse:
        async with self._client() as client:
            response = await client.post(self.chat_url, json=upstream_request, headers=self._headers())
        logger.info(f"NIM API responded with status {response.status_code}")

        if not response.is_success:
            raise upstream_status_error(response)

        try:
            response_data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON in NIM API response: {e}") from e
        logger.debug(f"NIM response data: {response_data}")

        result = reshape_response(response_data, inbound)
        logger.info("Response sent")
        return result

    async def _open_stream(self, upstream_request: Dict[str, Any], requested_model: Any) -> StreamSession:
        client = self._client()
        try:
            request = client.build_request(
                "POST", self.chat_url, json=upstream_request, headers=self._headers()
            )
            response = await client.send(request, stream=True)
        except BaseException:
            await client.aclose()
            raise
        logger.info(f"Stream connection established to {self.chat_url}. Status: {response.status_code}")

        if not response.is_success:
            try:
                await response.aread()
                raise upstream_status_error(response)
            finally:
                await response.aclose()
                await client.aclose()

        return StreamSession(response=response, client=client, requested_model=requested_model)
