"""OpenRouter error hierarchy.

Custom exceptions for OpenRouter operations with request context.
Status-specific subclasses let callers tell bad credentials from rate
limiting without parsing messages. Nothing here is retried automatically.
"""

from collections.abc import Mapping


class OpenRouterError(Exception):
    """Base exception for OpenRouter operations."""

    def __init__(
        self,
        message: str,
        model_id: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message)
        self.model_id = model_id
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.model_id:
            parts.append(f"model={self.model_id}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class InvalidConfigurationError(OpenRouterError, ValueError):
    """Missing or malformed configuration.

    Raised before any network call, e.g. when no model id can be resolved
    or the API key is blank.
    """

    pass


class ContentDecodeError(OpenRouterError, ValueError):
    """Message content could not be decoded (unknown content item tag)."""

    def __init__(self, message: str, tag: str | None = None):
        super().__init__(message)
        self.tag = tag


class ApiError(OpenRouterError):
    """Non-2xx HTTP status or an undecodable response body.

    ``status_code`` is None when the status was 2xx but the body could not
    be decoded. ``response_content`` holds the raw body for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_content: str | None = None,
        model_id: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message, model_id=model_id, request_id=request_id)
        self.status_code = status_code
        self.response_content = response_content


class AuthenticationError(ApiError):
    """401/403 - Invalid or missing API key.

    Check API key configuration.
    """

    pass


class InvalidRequestError(ApiError):
    """400 - Malformed request.

    Examples: bad schema, too many tokens, unsupported parameter.
    """

    pass


class ModelNotFoundError(ApiError):
    """404 - Model identifier or endpoint not recognized."""

    pass


class RateLimitError(ApiError):
    """429 - Rate limit exceeded.

    ``retry_after`` carries the server hint in seconds when provided.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        response_content: str | None = None,
        retry_after: float | None = None,
        model_id: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(
            message,
            status_code=status_code,
            response_content=response_content,
            model_id=model_id,
            request_id=request_id,
        )
        self.retry_after = retry_after


class ProviderError(ApiError):
    """5xx - OpenRouter or upstream provider failure."""

    pass


class RequestTimeoutError(OpenRouterError):
    """Request exceeded the configured timeout."""

    pass


class TransportError(OpenRouterError):
    """Connection-level failure before an HTTP status was received."""

    pass


def _parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    if not headers:
        return None
    raw = headers.get("retry-after")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def api_error_from_response(
    status_code: int,
    response_content: str | None,
    reason: str | None = None,
    headers: Mapping[str, str] | None = None,
    model_id: str | None = None,
) -> ApiError:
    """Build the ApiError subclass matching an HTTP status.

    Args:
        status_code: HTTP status returned by OpenRouter.
        response_content: Raw response body.
        reason: HTTP reason phrase, used in the message.
        headers: Response headers (for ``retry-after``).
        model_id: Model the request targeted.

    Returns:
        An ApiError (or subclass) carrying status code and raw body.
    """
    message = f"OpenRouter API returned {status_code}"
    if reason:
        message = f"{message}: {reason}"

    kwargs = {
        "status_code": status_code,
        "response_content": response_content,
        "model_id": model_id,
    }

    if status_code in (401, 403):
        return AuthenticationError(message, **kwargs)
    if status_code == 400:
        return InvalidRequestError(message, **kwargs)
    if status_code == 404:
        return ModelNotFoundError(message, **kwargs)
    if status_code == 429:
        return RateLimitError(message, retry_after=_parse_retry_after(headers), **kwargs)
    if status_code >= 500:
        return ProviderError(message, **kwargs)
    return ApiError(message, **kwargs)
