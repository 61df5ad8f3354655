"""
Async HTTP client for the external demand-forecasting service.

Endpoints
---------
  GET  {base_url}/test       → any 2xx means reachable (free-form text body)
  POST {base_url}/recommend  → JSON forecast for one product

Failure mapping
---------------
  - no base URL, transport error, timeout, non-2xx status → ``ConnectivityError``
  - body parses but ``status != "success"``               → ``ServerError``
  - body is not JSON, not an object, lacks/mistypes fields → ``ParseError``

The ``status`` field is checked before the full payload is validated: a
failure body only carries ``status`` and ``error`` and must surface as a
server error, not a parse error.

Tests inject an ``httpx.MockTransport``; production uses the default
transport. The client owns its ``httpx.AsyncClient``; call ``aclose()``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from stocktwin.config import ForecastServiceConfig
from stocktwin.errors import ConnectivityError, ParseError, ServerError
from stocktwin.models.recommendation import SUCCESS_STATUS, ForecastRequest, ForecastResponse

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class ForecastClient:
    """Thin async wrapper around the forecasting service's two endpoints.

    Args:
        config: Forecast service section of ``AppConfig``.
        transport: Optional ``httpx`` transport (tests pass a ``MockTransport``).
    """

    def __init__(
        self,
        config: ForecastServiceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._http = httpx.AsyncClient(transport=transport, verify=config.verify_tls)

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def build_request(self, product_id: int) -> ForecastRequest:
        """Forecast request for ``product_id`` with the configured parameters."""
        return ForecastRequest(
            product_id=product_id,
            period_days=self._config.period_days,
            historical_weeks=self._config.historical_weeks,
            safety_buffer=self._config.safety_buffer,
        )

    async def probe(self) -> str:
        """Call ``GET /test``.

        Returns:
            The response body text.

        Raises:
            ConnectivityError: On missing URL, transport failure, timeout,
                or non-2xx status.
        """
        url = self._url("test")
        try:
            resp = await self._http.get(url, timeout=self._config.probe_timeout_s)
        except httpx.TimeoutException as exc:
            raise ConnectivityError(
                f"Timed out after {self._config.probe_timeout_s}s reaching {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"{type(exc).__name__}: {exc}") from exc

        if not resp.is_success:
            raise ConnectivityError(f"HTTP {resp.status_code} from {url}")
        return resp.text

    async def fetch(self, request: ForecastRequest) -> ForecastResponse:
        """Call ``POST /recommend`` and interpret the response.

        Args:
            request: Request body.

        Returns:
            Validated ``ForecastResponse`` with ``status == "success"``.

        Raises:
            ConnectivityError: Transport failure, timeout, non-2xx, no URL.
            ServerError: The service reported a failure.
            ParseError: The body is malformed.
        """
        product_id = request.product_id
        url = self._url("recommend", product_id)
        logger.debug("POST %s product=%d", url, product_id)
        try:
            resp = await self._http.post(
                url,
                json=request.model_dump(),
                headers=_JSON_HEADERS,
                timeout=self._config.forecast_timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise ConnectivityError(
                f"Timed out after {self._config.forecast_timeout_s}s waiting for {url}",
                product_id,
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"{type(exc).__name__}: {exc}", product_id) from exc

        if not resp.is_success:
            raise ConnectivityError(f"HTTP {resp.status_code} from {url}", product_id)

        return parse_forecast_body(resp.content, product_id)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Private helpers ───────────────────────────────────────────────────────

    def _url(self, endpoint: str, product_id: Optional[int] = None) -> str:
        if not self._config.base_url:
            raise ConnectivityError("Server URL not available", product_id)
        return f"{self._config.base_url}/{endpoint}"


def parse_forecast_body(body: bytes | str, product_id: int) -> ForecastResponse:
    """Interpret a ``/recommend`` response body.

    Args:
        body: Raw response content.
        product_id: Product the request was for.

    Returns:
        Validated ``ForecastResponse``.

    Raises:
        ServerError: ``status`` present but not ``"success"``.
        ParseError: Anything else malformed, including a response for a
            different product.
    """
    try:
        payload: Any = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ParseError(f"Response is not valid JSON: {exc}", product_id) from exc

    if not isinstance(payload, dict):
        raise ParseError(
            f"Expected a JSON object, got {type(payload).__name__}.", product_id
        )

    status = payload.get("status")
    if status is None:
        raise ParseError("Response has no 'status' field.", product_id)
    if status != SUCCESS_STATUS:
        raise ServerError(str(payload.get("error") or f"status={status!r}"), product_id)

    try:
        response = ForecastResponse.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(
            f"Malformed forecast payload: {exc.error_count()} field error(s): "
            + "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()),
            product_id,
        ) from exc

    if response.product_id != product_id:
        raise ParseError(
            f"Response is for product {response.product_id}, expected {product_id}.",
            product_id,
        )
    return response
