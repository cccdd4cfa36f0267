# price_engine/sources/http_source.py

"""JSON quote endpoint client with retries and a circuit breaker."""

import asyncio
import time
from typing import Any

from curl_cffi import requests as curl_requests

from price_engine.config.settings import Settings
from price_engine.errors import UpstreamUnavailableError
from price_engine.models.price_entry import QuoteSource, RawQuote
from price_engine.sources.base_source import MarketplaceSource


class HttpQuoteSource(MarketplaceSource):
    """Fetch quotes from a per-platform JSON endpoint.

    *url_template* must contain ``{product_id}``.  A 404 (or a JSON
    ``null`` body) means the product is not listed on the platform.
    """

    def __init__(
        self,
        platform_id: str,
        url_template: str,
        *,
        timeout: int = Settings.REQUEST_TIMEOUT,
        max_retries: int = Settings.MAX_RETRIES,
    ) -> None:
        super().__init__(platform_id)
        if "{product_id}" not in url_template:
            raise ValueError(
                f"url_template for {platform_id} must contain "
                "'{product_id}'"
            )
        self.url_template = url_template
        self.session = curl_requests.Session(
            impersonate=Settings.IMPERSONATE_BROWSER
        )
        self._request_timeout = timeout
        self._max_retries = max_retries
        self._current_delay: float = Settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0

    # ── Circuit breaker & backoff ────────────────────────

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= Settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.platform_id,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = Settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= Settings.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.platform_id,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = Settings.REQUEST_DELAY * Settings.MAX_DELAY_MULTIPLIER
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.platform_id,
            self._current_delay,
        )

    # ── Fetching ─────────────────────────────────────────

    def _fetch_json(self, url: str) -> Any:
        """GET *url* with retries; ``None`` on 404.

        Raises:
            UpstreamUnavailableError: circuit open or retries exhausted.
        """
        if self._check_circuit():
            raise UpstreamUnavailableError(
                self.platform_id, "circuit breaker open",
            )
        last_problem = "no attempt made"
        for attempt in range(self._max_retries):
            try:
                resp = self.session.get(
                    url,
                    headers=Settings.DEFAULT_HEADERS,
                    timeout=self._request_timeout,
                )
                if resp.status_code == 200:
                    payload = resp.json()
                    self._record_success()
                    return payload
                if resp.status_code == 404:
                    self._record_success()
                    return None
                last_problem = f"HTTP {resp.status_code}"
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    self.platform_id,
                    resp.status_code,
                    attempt + 1,
                )
                if resp.status_code in (429, 403):
                    self._escalate_delay()
                    time.sleep(self._current_delay)
            except Exception as exc:
                last_problem = str(exc)
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.platform_id,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                time.sleep(self._current_delay * (attempt + 1))
        self._record_failure()
        raise UpstreamUnavailableError(self.platform_id, last_problem)

    def _parse_quote(
        self, product_id: str, payload: Any,
    ) -> RawQuote | None:
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise UpstreamUnavailableError(
                self.platform_id,
                f"unexpected payload type {type(payload).__name__}",
            )
        data: dict[str, Any] = {
            "product_id": product_id,
            "platform_id": self.platform_id,
            "source": QuoteSource.API.value,
            **payload,
        }
        try:
            return RawQuote.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnavailableError(
                self.platform_id, f"malformed quote: {exc}",
            ) from exc

    def fetch_quote_sync(self, product_id: str) -> RawQuote | None:
        """Blocking fetch, used from a worker thread."""
        url = self.url_template.format(product_id=product_id)
        return self._parse_quote(product_id, self._fetch_json(url))

    async def fetch_latest_quote(self, product_id: str) -> RawQuote | None:
        return await asyncio.to_thread(self.fetch_quote_sync, product_id)


def build_http_sources(
    platforms: list[dict[str, str]] | None = None,
) -> list[HttpQuoteSource]:
    """Create a source for every platform with a configured quote URL."""
    configured = platforms if platforms is not None else (
        Settings.AVAILABLE_PLATFORMS
    )
    return [
        HttpQuoteSource(p["id"], p["quote_url"])
        for p in configured
        if p.get("quote_url")
    ]
