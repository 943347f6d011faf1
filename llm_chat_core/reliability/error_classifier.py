"""
Error classification for completion failures.

This module maps the open set of exceptions raised by HTTP and SDK clients
onto the closed :class:`~llm_chat_core.models.errors.AIError` taxonomy.
Classification happens once, where the failure enters the chat core.
"""

import asyncio
import re
from typing import Iterator, List, Optional

import httpx
import openai

from ..config.settings import ConfigurationError
from ..models.errors import AIError, DEFAULT_RATE_LIMIT_RETRY_AFTER


class ErrorClassifier:
    """Classifies raw failures into AIError values.

    Decision order, first match wins:

    1. Request-level timeout, missing configuration
    2. HTTP status code (structured field, then parsed from the message)
    3. Network indicators anywhere in the cause chain
    4. Unknown
    """

    TIMEOUT_TYPES = (
        asyncio.TimeoutError,
        TimeoutError,
        httpx.TimeoutException,
        openai.APITimeoutError,
    )

    NETWORK_TYPES = (
        httpx.TransportError,
        openai.APIConnectionError,
        ConnectionError,
    )

    # Status code patterns, tried in order against the failure message
    STATUS_CODE_PATTERNS = [
        re.compile(r"\bHTTP\s*/?\s*(?:\d(?:\.\d)?\s+)?(\d{3})\b", re.IGNORECASE),
        re.compile(r"status(?:[ _]code)?\s*[:=]?\s*(\d{3})\b", re.IGNORECASE),
        re.compile(
            r"\b(\d{3})\s+(?:Bad Request|Unauthorized|Forbidden|Too Many Requests|"
            r"Internal Server Error|Service Unavailable)\b",
            re.IGNORECASE,
        ),
        re.compile(r"^\s*(\d{3})\b"),
    ]

    RETRY_AFTER_PATTERNS = [
        re.compile(r"retry[-_ ]after\s*[:=]?\s*(\d+)", re.IGNORECASE),
        re.compile(r"retry in\s*(\d+)", re.IGNORECASE),
        re.compile(r"wait\s*(\d+)\s*s(?:ec(?:ond)?s?)?\b", re.IGNORECASE),
    ]

    NETWORK_TYPE_MARKERS = [
        "unknownhost", "unresolvedaddress", "gaierror", "socket",
        "connect", "connection", "network", "ioexception",
    ]

    NETWORK_MESSAGE_MARKERS = [
        "unable to resolve host", "name or service not known",
        "nodename nor servname", "host resolution", "dns",
        "socket", "connection", "network", "i/o", "broken pipe",
    ]

    AUTHENTICATION_CODES = {401, 403}
    INVALID_REQUEST_CODES = {400}
    RATE_LIMIT_CODES = {429}
    SERVICE_UNAVAILABLE_CODES = {500, 503}

    @classmethod
    def classify(cls, failure: BaseException) -> AIError:
        """
        Classify a raw failure.

        Args:
            failure: The exception raised by the completion client

        Returns:
            AIError belonging to exactly one category
        """
        if isinstance(failure, cls.TIMEOUT_TYPES):
            return AIError.timeout()

        if isinstance(failure, ConfigurationError):
            return AIError.authentication(str(failure))

        message = cls._message_of(failure)

        status_code = cls.extract_status_code(failure)
        if status_code is not None:
            classified = cls._classify_status_code(status_code, failure, message)
            if classified is not None:
                return classified

        if cls._is_network_failure(failure):
            return AIError.network(message or type(failure).__name__)

        return AIError.unknown(failure)

    @classmethod
    def _classify_status_code(
        cls,
        status_code: int,
        failure: BaseException,
        message: str
    ) -> Optional[AIError]:
        if status_code in cls.AUTHENTICATION_CODES:
            return AIError.authentication(message or "Authentication failed")
        if status_code in cls.INVALID_REQUEST_CODES:
            return AIError.invalid_request(message or "Invalid request")
        if status_code in cls.RATE_LIMIT_CODES:
            return AIError.rate_limit(cls.extract_retry_after(failure))
        if status_code in cls.SERVICE_UNAVAILABLE_CODES:
            return AIError.service_unavailable()
        return None

    @classmethod
    def extract_status_code(cls, failure: BaseException) -> Optional[int]:
        """Status code from a structured field, falling back to the message text."""
        status_code = getattr(failure, "status_code", None)
        if isinstance(status_code, int):
            return status_code

        response = getattr(failure, "response", None)
        response_status = getattr(response, "status_code", None)
        if isinstance(response_status, int):
            return response_status

        message = cls._message_of(failure)
        for pattern in cls.STATUS_CODE_PATTERNS:
            match = pattern.search(message)
            if match:
                return int(match.group(1))
        return None

    @classmethod
    def extract_retry_after(cls, failure: BaseException) -> int:
        """Seconds to wait after a rate limit, defaulting to 60."""
        retry_after = getattr(failure, "retry_after", None)
        if isinstance(retry_after, (int, float)) and retry_after >= 0:
            return int(retry_after)

        response = getattr(failure, "response", None)
        headers = getattr(response, "headers", None)
        if headers is not None:
            try:
                header_value = headers.get("Retry-After") or headers.get("retry-after")
            except AttributeError:
                header_value = None
            if header_value:
                try:
                    return int(float(header_value))
                except (TypeError, ValueError):
                    pass

        message = cls._message_of(failure)
        for pattern in cls.RETRY_AFTER_PATTERNS:
            match = pattern.search(message)
            if match:
                return int(match.group(1))
        return DEFAULT_RATE_LIMIT_RETRY_AFTER

    @classmethod
    def _is_network_failure(cls, failure: BaseException) -> bool:
        for error in cls._cause_chain(failure):
            if isinstance(error, cls.NETWORK_TYPES):
                return True
            type_name = type(error).__name__.lower()
            if any(marker in type_name for marker in cls.NETWORK_TYPE_MARKERS):
                return True
            message = cls._message_of(error).lower()
            if any(marker in message for marker in cls.NETWORK_MESSAGE_MARKERS):
                return True
        return False

    @staticmethod
    def _cause_chain(failure: BaseException) -> Iterator[BaseException]:
        seen: List[int] = []
        current: Optional[BaseException] = failure
        while current is not None and id(current) not in seen:
            seen.append(id(current))
            yield current
            current = current.__cause__ or current.__context__

    @staticmethod
    def _message_of(failure: BaseException) -> str:
        try:
            return str(failure)
        except Exception:
            # Some SDK errors fail to render; fall back to a message attribute
            return str(getattr(failure, "message", "") or "")
