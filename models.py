import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- OpenAI Model Definition ---
class OpenAIModel(BaseModel):
    """Represents the structure of a model object in OpenAI's /v1/models format."""

    id: str = Field(..., description="The caller-facing model identifier.")
    object: str = Field(default="model", description="The object type, which is always 'model'.")
    created: int = Field(default_factory=lambda: int(time.time() * 1000), description="Listing time in milliseconds since the epoch.")
    owned_by: str = Field(default="nvidia-nim-proxy", description="The organization that owns the model (fixed).")


class OpenAIModelList(BaseModel):
    """Represents the structure of the list returned by OpenAI's /v1/models endpoint."""

    object: str = Field("list", description="The object type, which is always 'list'.")
    data: List[OpenAIModel] = Field(..., description="A list of model objects.")


# --- Upstream (NIM) Chat Completion Definitions ---

class UpstreamMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[Any] = None


class UpstreamChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: Optional[int] = None
    message: UpstreamMessage
    finish_reason: Optional[str] = None


class UpstreamChatCompletionResponse(BaseModel):
    """The subset of a buffered NIM chat completion that gets reshaped for the caller."""

    model_config = ConfigDict(extra="ignore")

    choices: List[UpstreamChoice]
    usage: Optional[Dict[str, Any]] = None


# --- OpenAI Chat Completion Definitions ---

class ChatMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[Any] = None


class ChatCompletionChoice(BaseModel):
    index: Optional[int] = None
    message: ChatMessage
    finish_reason: Optional[str] = None


class OpenAIChatCompletionResponse(BaseModel):
    """Represents the response body for OpenAI's /v1/chat/completions."""

    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex}")
    object: str = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: Any = None # The model the caller asked for, never the upstream one
    choices: List[ChatCompletionChoice]
    usage: Dict[str, Any] = Field(
        default_factory=lambda: {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    )

    def to_body(self) -> Dict[str, Any]:
        """Dumps the response, leaving out the model and choice fields nobody supplied."""
        body = self.model_dump()
        if "model" not in self.model_fields_set:
            del body["model"]
        body["choices"] = [choice.model_dump(exclude_unset=True) for choice in self.choices]
        return body
