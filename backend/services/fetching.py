# backend/services/fetching.py
import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar, Union

import aiohttp

from services.settings import FETCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar('T')

_SECRET_PARAMS = re.compile(r'(token|API_KEY)=[^&]*', re.IGNORECASE)


class FailureReason(str, Enum):
    TIMEOUT = 'timeout'
    HTTP_ERROR = 'http_error'
    PARSE_ERROR = 'parse_error'
    UNREACHABLE = 'unreachable'
    SKIPPED_BY_PRECONDITION = 'skipped'
    STRUCTURALLY_INVALID = 'structurally_invalid'


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    detail: str = ''
    status: Optional[int] = None


ProviderResult = Union[Success[T], Failed]


class ProviderStatus(str, Enum):
    DATA = 'data'
    NO_DATA = 'no_data'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'
    SKIPPED = 'skipped'


@dataclass(frozen=True)
class ProviderOutcome(Generic[T]):
    """What one adapter call produced.

    ``request_ok`` tracks whether the HTTP exchange itself succeeded, and
    ``has_data`` whether the validated payload holds anything worth showing.
    The two are independent: an alert query can succeed and return nothing.
    """
    provider: str
    result: ProviderResult
    request_ok: bool
    has_data: bool = False

    @property
    def status(self) -> ProviderStatus:
        if isinstance(self.result, Success):
            return ProviderStatus.DATA if self.has_data else ProviderStatus.NO_DATA
        if self.result.reason == FailureReason.STRUCTURALLY_INVALID:
            return ProviderStatus.NO_DATA
        if self.result.reason == FailureReason.TIMEOUT:
            return ProviderStatus.TIMED_OUT
        if self.result.reason == FailureReason.SKIPPED_BY_PRECONDITION:
            return ProviderStatus.SKIPPED
        return ProviderStatus.FAILED

    @property
    def data(self) -> Optional[T]:
        if isinstance(self.result, Success) and self.has_data:
            return self.result.value
        return None

    @classmethod
    def from_failure(cls, provider: str, failure: Failed) -> 'ProviderOutcome':
        return cls(provider=provider, result=failure, request_ok=False)


def build_outcome(provider: str,
                  fetched: ProviderResult,
                  parse: Callable[[Any], Tuple[Any, bool]]) -> ProviderOutcome:
    """Run a payload through ``parse``, which returns ``(value, has_data)``.

    ``parse`` raises ``ValueError`` (pydantic's ``ValidationError`` included)
    when the payload does not have the expected shape.
    """
    if isinstance(fetched, Failed):
        return ProviderOutcome.from_failure(provider, fetched)
    try:
        value, has_data = parse(fetched.value)
    except ValueError as e:
        logger.warning(f"{provider} returned an unexpected payload: {e}")
        failure = Failed(FailureReason.STRUCTURALLY_INVALID, str(e).splitlines()[0])
        return ProviderOutcome(provider=provider, result=failure, request_ok=True)
    return ProviderOutcome(
        provider=provider,
        result=Success(value, fetched_at=fetched.fetched_at),
        request_ok=True,
        has_data=has_data,
    )


def redact_url(url: str) -> str:
    return _SECRET_PARAMS.sub(lambda m: f"{m.group(1)}=***", url)


class _HttpStatusFailure(Exception):
    def __init__(self, status: int, reason: Optional[str]):
        super().__init__(f"{status} {reason or ''}".strip())
        self.status = status


async def _get_json(session: aiohttp.ClientSession, url: str, headers: Optional[Dict[str, str]]) -> Any:
    async with session.get(url, headers=headers) as response:
        if not 200 <= response.status < 300:
            raise _HttpStatusFailure(response.status, response.reason)
        # NWS answers with application/geo+json, so skip the content-type check
        return await response.json(content_type=None)


async def fetch_json(session: aiohttp.ClientSession,
                     url: str,
                     headers: Optional[Dict[str, str]] = None,
                     enabled: bool = True,
                     timeout: Optional[float] = None) -> ProviderResult:
    if not enabled:
        logger.debug(f"Skipping {redact_url(url)}: precondition not met")
        return Failed(FailureReason.SKIPPED_BY_PRECONDITION, 'precondition not met')

    timeout = FETCH_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        data = await asyncio.wait_for(_get_json(session, url, headers), timeout)
        return Success(data)
    except asyncio.TimeoutError:
        failure = Failed(FailureReason.TIMEOUT, f"no response within {timeout:g}s")
    except _HttpStatusFailure as e:
        failure = Failed(FailureReason.HTTP_ERROR, str(e), status=e.status)
    except aiohttp.ClientError as e:
        failure = Failed(FailureReason.UNREACHABLE, str(e) or type(e).__name__)
    except ValueError as e:
        failure = Failed(FailureReason.PARSE_ERROR, str(e))

    logger.warning(f"Fetch failed for {redact_url(url)}: {failure.reason.value} {failure.detail}")
    return failure
