# numbers_service.py
import logging
from typing import Dict, Optional

from pydantic import ValidationError

from errors import InvalidInput, Unauthorized, UpstreamDecodeError, UpstreamFailure
from models import NumbersPayload, NumbersResponse
from upstream import UpstreamClient
from window import SlidingWindowStore, WindowUpdate

logger = logging.getLogger(__name__)

# Number kind -> upstream path
NUMBER_ENDPOINTS: Dict[str, str] = {
    "p": "/primes",
    "f": "/fibo",
    "e": "/even",
    "r": "/rand",
}


def build_response(update: WindowUpdate, error: Optional[str] = None) -> NumbersResponse:
    return NumbersResponse(
        window_prev_state=update.previous,
        window_curr_state=update.current,
        numbers=update.numbers,
        avg=f"{update.average:.2f}",
        error=error,
    )


def unchanged(window: SlidingWindowStore, error: Optional[str] = None) -> NumbersResponse:
    """Response for a request that left the window as it was."""
    state = window.snapshot()
    return build_response(WindowUpdate(previous=state, current=state), error=error)


async def fetch_numbers(
    kind: str,
    window: SlidingWindowStore,
    upstream: UpstreamClient,
    base_url: str,
    timeout_s: float,
) -> NumbersResponse:
    """Fetch numbers of ``kind`` upstream and absorb them into ``window``.

    Raises ``InvalidInput`` for an unknown kind and lets ``CredentialUnavailable``
    propagate. An upstream 401 invalidates the credential and is re-raised.
    Any other upstream failure yields a degraded response with the window
    untouched and the ``error`` field set.
    """
    path = NUMBER_ENDPOINTS.get(kind)
    if path is None:
        raise InvalidInput(
            "Invalid number ID. Use p (prime), f (fibonacci), e (even), or r (random)."
        )

    try:
        raw = await upstream.fetch(f"{base_url}{path}", timeout=timeout_s)
        try:
            payload = NumbersPayload.model_validate(raw)
        except ValidationError as exc:
            raise UpstreamDecodeError(f"Unexpected numbers payload: {exc.error_count()} error(s)") from exc
    except Unauthorized:
        upstream.credentials.invalidate()
        raise
    except UpstreamFailure as exc:
        logger.warning("Error fetching numbers", extra={"kind": kind, "reason": str(exc)})
        return unchanged(window, error="Failed to fetch numbers from third-party API")

    update = window.update(payload.numbers)
    logger.debug(
        "Window updated",
        extra={"kind": kind, "fetched": len(payload.numbers), "size": len(update.current)},
    )
    return build_response(update)
