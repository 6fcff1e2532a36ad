"""Custom exceptions for jules-mcp."""


class JulesError(Exception):
    """Base class for errors raised by jules-mcp."""


class InputValidationError(JulesError, ValueError):
    """Raised when a required argument is missing or malformed.

    Raised before any network access so the caller sees the message verbatim.
    """


class UnknownVariantError(JulesError, ValueError):
    """Raised when an activity or artifact payload has an unrecognized kind."""

    def __init__(self, family: str, payload_keys: list[str] | None = None):
        self.family = family
        self.payload_keys = payload_keys or []
        message = f"Unknown {family} variant"
        if self.payload_keys:
            message += f" (keys: {', '.join(sorted(self.payload_keys))})"
        super().__init__(message)


class MissingApiKeyError(JulesError):
    """Raised when a REST call is attempted without an API key."""

    def __init__(self) -> None:
        super().__init__(
            "JULES_API_KEY is required for REST calls. "
            "Set the JULES_API_KEY env var or run `jules-mcp config --key`."
        )


class JulesApiError(JulesError):
    """Raised for transport-level failures talking to the Jules API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
