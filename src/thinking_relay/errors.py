from __future__ import annotations


class RelayError(Exception):
    """Base for every failure surfaced to a client.

    Carries the HTTP status used for batched responses and the ``code`` of a
    streamed ``error`` event.
    """

    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str, *, param: str | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.param = param
        self.code = code

    def to_dict(self) -> dict:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": self.param,
                "code": self.code,
            }
        }


class MissingCredential(RelayError):
    status_code = 401
    error_type = "missing_header"

    def __init__(self, header: str):
        super().__init__(f"Missing required header: {header}", param=header)
        self.header = header


class MalformedCredential(RelayError):
    status_code = 400
    error_type = "bad_request"

    def __init__(self, header: str):
        super().__init__(f"Invalid API token in header: {header}", param=header)
        self.header = header


class InvalidSystemPrompt(RelayError):
    status_code = 400
    error_type = "invalid_system_prompt"

    def __init__(self):
        super().__init__("System prompt can only be provided once, either in root or messages array")


class InvalidRequest(RelayError):
    status_code = 400
    error_type = "bad_request"


class BackendError(RelayError):
    status_code = 502
    backend = "backend"

    def __init__(
        self,
        message: str,
        *,
        error_type: str = "api_error",
        param: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message, param=param, code=code)
        self.error_type = error_type
        if error_type == "timeout":
            self.status_code = 504

    def __str__(self) -> str:
        return f"{self.backend} error ({self.error_type}): {self.message}"


class ReasonerError(BackendError):
    backend = "reasoner"


class AnswererError(BackendError):
    backend = "answerer"


class MissingContent(RelayError):
    status_code = 502
    error_type = "missing_content"

    def __init__(self, backend: str):
        super().__init__(f"No content in {backend} response", param=backend)
        self.backend = backend


class ConsumerDisconnected(Exception):
    """The reader of a streaming session went away."""
