from typing import Any, Dict, Optional

CONFIGURATION_ERROR = "configuration_error"
NVIDIA_API_ERROR = "nvidia_api_error"
NOT_FOUND = "not_found"
INVALID_REQUEST_ERROR = "invalid_request_error"


def error_envelope(message: str, error_type: str, code: Optional[int] = None) -> Dict[str, Any]:
    """Builds the OpenAI-compatible error body returned for every failure."""
    error: Dict[str, Any] = {"message": message, "type": error_type}
    if code is not None:
        error["code"] = code
    return {"error": error}


class ProxyError(Exception):
    """Base class for failures that are reported to the caller as an error envelope."""

    status_code = 500
    error_type = NVIDIA_API_ERROR
    include_code = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_envelope(self) -> Dict[str, Any]:
        return error_envelope(
            self.message, self.error_type, self.status_code if self.include_code else None
        )


class ConfigurationError(ProxyError):
    error_type = CONFIGURATION_ERROR


class UpstreamError(ProxyError):
    error_type = NVIDIA_API_ERROR
    include_code = True


class InvalidRequestError(ProxyError):
    status_code = 400
    error_type = INVALID_REQUEST_ERROR
