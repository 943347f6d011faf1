"""
Closed error taxonomy for chat completions.

Every raw failure coming out of the completion client is converted once,
at the boundary, into an :class:`AIError`. Downstream code (the
orchestrator, the presentation reducer) only ever switches over
:class:`ErrorCategory`, never over exception types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# Status code used for failures that never reached an HTTP response.
TRANSPORT_FAILURE_CODE = 0

DEFAULT_RATE_LIMIT_RETRY_AFTER = 60


class ErrorCategory(Enum):
    """Categories of chat failures. The set is closed."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    INVALID_REQUEST = "invalid_request"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


RETRY_STATUS_CODES = {
    ErrorCategory.NETWORK: TRANSPORT_FAILURE_CODE,
    ErrorCategory.TIMEOUT: TRANSPORT_FAILURE_CODE,
    ErrorCategory.RATE_LIMIT: 429,
    ErrorCategory.SERVICE_UNAVAILABLE: 503,
    ErrorCategory.UNKNOWN: 500,
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.INVALID_REQUEST: 400,
}

USER_MESSAGES = {
    ErrorCategory.NETWORK: (
        "Couldn't connect to the AI service. "
        "Please check your internet connection and try again."
    ),
    ErrorCategory.RATE_LIMIT: (
        "Too many requests right now. "
        "Please wait {retry_after} seconds before trying again."
    ),
    ErrorCategory.AUTHENTICATION: (
        "There's an issue with the API configuration. Please contact support."
    ),
    ErrorCategory.INVALID_REQUEST: (
        "That message couldn't be processed. "
        "Please try rephrasing it or making it shorter."
    ),
    ErrorCategory.TIMEOUT: (
        "The request is taking too long. "
        "Please try again with a shorter message."
    ),
    ErrorCategory.SERVICE_UNAVAILABLE: (
        "The AI service is temporarily unavailable. "
        "Please try again in a few moments."
    ),
    ErrorCategory.UNKNOWN: "Something unexpected happened. Please try again.",
}


@dataclass(frozen=True)
class AIError:
    """A classified chat failure.

    Use the named constructors rather than building instances directly so
    that each category only carries the payload it owns:

    - ``network(detail)``
    - ``rate_limit(retry_after)``
    - ``authentication(detail)``
    - ``invalid_request(detail)``
    - ``timeout()``
    - ``service_unavailable()``
    - ``unknown(cause)``
    """
    category: ErrorCategory
    detail: str = ""
    retry_after: Optional[int] = None
    cause: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def network(cls, detail: str) -> "AIError":
        return cls(ErrorCategory.NETWORK, detail=detail)

    @classmethod
    def rate_limit(cls, retry_after: int = DEFAULT_RATE_LIMIT_RETRY_AFTER) -> "AIError":
        return cls(ErrorCategory.RATE_LIMIT, retry_after=retry_after)

    @classmethod
    def authentication(cls, detail: str) -> "AIError":
        return cls(ErrorCategory.AUTHENTICATION, detail=detail)

    @classmethod
    def invalid_request(cls, detail: str) -> "AIError":
        return cls(ErrorCategory.INVALID_REQUEST, detail=detail)

    @classmethod
    def timeout(cls) -> "AIError":
        return cls(ErrorCategory.TIMEOUT)

    @classmethod
    def service_unavailable(cls) -> "AIError":
        return cls(ErrorCategory.SERVICE_UNAVAILABLE)

    @classmethod
    def unknown(cls, cause: BaseException) -> "AIError":
        return cls(ErrorCategory.UNKNOWN, detail=str(cause), cause=cause)

    @property
    def retry_status_code(self) -> int:
        """Status code fed to the backoff policy for this category."""
        return RETRY_STATUS_CODES[self.category]

    @property
    def user_message(self) -> str:
        """Fixed, non-technical text suitable for the end user."""
        template = USER_MESSAGES[self.category]
        if self.category is ErrorCategory.RATE_LIMIT:
            retry_after = self.retry_after
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_RETRY_AFTER
            return template.format(retry_after=retry_after)
        return template

    def __str__(self) -> str:
        if self.category is ErrorCategory.RATE_LIMIT:
            return f"{self.category.value}(retry_after={self.retry_after})"
        if self.detail:
            return f"{self.category.value}({self.detail})"
        return self.category.value
