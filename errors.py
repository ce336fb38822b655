"""Error taxonomy for the edit relay."""


class RelayError(Exception):
    """Base for errors that are reported back to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(RelayError):
    """Startup configuration is missing or malformed."""


class EditValidationError(RelayError):
    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Invalid or missing field: {field}")
        self.field = field


class FileAccessError(RelayError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


class UpstreamError(RelayError):
    """Upstream call failed; carries the upstream status and raw body."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class EmptyCompletionError(RelayError):
    def __init__(self) -> None:
        super().__init__("Morph API returned an empty completion")
