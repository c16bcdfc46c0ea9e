from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from loguru import logger
from pydantic import ValidationError as SchemaError

from goalpush.core.config import EXPO_PUSH_URL, EXPO_RECEIPTS_URL
from goalpush.core.errors import ConfigurationError, TransientGatewayError
from goalpush.core.push_config import (
    HTTP_TIMEOUT_SECONDS,
    INITIAL_RETRY_DELAY_MS,
    MAX_ATTEMPTS,
)
from goalpush.schemas.push import GatewayError, PushMessage, PushResponse, ReceiptResponse

Sleep = Callable[[float], Awaitable[Any]]


# ---------------------------
# Retry policy
# ---------------------------

def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def backoff_schedule(attempts: int = MAX_ATTEMPTS, initial_ms: int = INITIAL_RETRY_DELAY_MS) -> List[int]:
    """Sleeps (ms) after each failed attempt when the gateway sends no Retry-After."""
    return [initial_ms * (2 ** i) for i in range(attempts)]


def chunked(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split into consecutive groups of at most `size`, order preserved."""
    if size <= 0:
        raise ValueError("size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    # only the delta-seconds form; HTTP-date values fall back to backoff
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


# ---------------------------
# Gateway client
# ---------------------------

class ExpoGateway:
    """
    Thin transport over the Expo push HTTP API.

    The httpx client and the sleep function are injectable so callers can run
    against httpx.MockTransport without real network or real timers.
    """

    def __init__(
        self,
        access_token: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        push_url: str = EXPO_PUSH_URL,
        receipts_url: str = EXPO_RECEIPTS_URL,
        max_attempts: int = MAX_ATTEMPTS,
        initial_delay_ms: int = INITIAL_RETRY_DELAY_MS,
    ):
        self.access_token = access_token
        self._client = client
        self._sleep = sleep
        self.push_url = push_url
        self.receipts_url = receipts_url
        self.max_attempts = max_attempts
        self.initial_delay_ms = initial_delay_ms

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    def _headers(self) -> Dict[str, str]:
        if not self.access_token:
            raise ConfigurationError("EXPO_ACCESS_TOKEN not configured")
        return {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

    async def _post(self, url: str, payload: Any) -> httpx.Response:
        headers = self._headers()
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
            return await client.post(url, json=payload, headers=headers)

    async def post_with_retry(self, url: str, payload: Any) -> httpx.Response:
        """
        429, 5xx and transport exceptions are retried up to max_attempts.
        Any other status is handed back untouched. Raises TransientGatewayError
        once every attempt is spent.
        """
        last_error: Optional[TransientGatewayError] = None
        delay_ms = self.initial_delay_ms

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._post(url, payload)
            except httpx.HTTPError as e:
                last_error = TransientGatewayError(f"{type(e).__name__}: {e}")
                logger.warning(f"Expo request failed | attempt={attempt} url={url} error={e!r}")
            else:
                if not is_retryable_status(response.status_code):
                    return response

                last_error = TransientGatewayError(
                    f"HTTP {response.status_code}", status_code=response.status_code
                )
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                if retry_after is not None:
                    delay_ms = retry_after * 1000
                logger.warning(
                    f"Expo returned {response.status_code} | attempt={attempt} "
                    f"url={url} retry_after={retry_after}"
                )

            await self._sleep(delay_ms / 1000)
            delay_ms *= 2

        raise last_error or TransientGatewayError("Fetch failed")

    async def send_messages(self, batch: Sequence[PushMessage]) -> PushResponse:
        payload = [m.to_payload() for m in batch]
        response = await self.post_with_retry(self.push_url, payload)

        body = _json_or_none(response)
        if not isinstance(body, dict):
            return PushResponse(
                errors=[GatewayError(message=f"Expo returned non-JSON response (HTTP {response.status_code})")]
            )

        try:
            result = PushResponse.model_validate(body)
        except SchemaError as e:
            logger.error(f"Expo push response did not parse | status={response.status_code} error={e}")
            return PushResponse(errors=[_malformed(response)])

        if response.status_code >= 400 and not result.errors:
            result.errors = [GatewayError(message=f"Expo push failed (HTTP {response.status_code})")]
        result.retry_after = parse_retry_after(response.headers.get("Retry-After"))
        return result

    async def get_receipts(self, ticket_ids: Sequence[str]) -> ReceiptResponse:
        response = await self.post_with_retry(self.receipts_url, {"ids": list(ticket_ids)})

        body = _json_or_none(response)
        if not isinstance(body, dict):
            return ReceiptResponse(
                errors=[GatewayError(message=f"Expo returned non-JSON response (HTTP {response.status_code})")]
            )
        try:
            return ReceiptResponse.model_validate(body)
        except SchemaError as e:
            logger.error(f"Expo receipt response did not parse | status={response.status_code} error={e}")
            return ReceiptResponse(errors=[_malformed(response)])


def _malformed(response: httpx.Response) -> GatewayError:
    return GatewayError(message=f"Expo returned malformed response (HTTP {response.status_code})")


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        logger.error(f"Expo returned non-JSON | status={response.status_code} body={response.text[:200]}")
        return None
