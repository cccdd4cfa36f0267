# price_engine/config/settings.py

"""Central configuration for the price intelligence engine."""

import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class PlatformRule:
    """Price band and formatting rule for a single marketplace."""

    min_price: float
    max_price: float
    decimal_places: int
    allow_fractions: bool


class Settings:
    """Central configuration for the price intelligence engine."""

    # --- Validation ---
    MAX_ABSOLUTE_PRICE: float = 999_999_999
    VALID_CURRENCIES: frozenset[str] = frozenset(
        {"JPY", "USD", "EUR", "GBP", "CNY"}
    )
    LOW_PRICE_WARNING: float = 1.0         # Below this, suspect a unit error
    DISCOUNT_MISMATCH_TOLERANCE: float = 5.0   # Percentage points
    UNREALISTIC_DISCOUNT_PCT: float = 90.0
    LARGE_CHANGE_PCT: float = 50.0
    STALE_FEED_WINDOW: int = 5             # Identical prices in a row
    SOURCE_CONFIDENCE: Mapping[str, float] = MappingProxyType({
        "api": 0.1,
        "scrape": -0.1,
        "manual": -0.2,
    })

    # --- Anomaly detection ---
    ANOMALY_WINDOW: int = 10
    ANOMALY_Z_THRESHOLD: float = 2.0
    ANOMALY_MIN_HISTORY: int = 3
    SPIKE_RATIO: float = 1.5
    DROP_RATIO: float = 0.5

    # --- Trend & statistics ---
    STABLE_BAND_PCT: float = 2.0
    VOLATILITY_WINDOW_DAYS: int = 30
    DEFAULT_TREND_DAYS: int = 30
    DEFAULT_LOOKBACK_DAYS: int = 90
    MAX_HISTORY_DAYS: int = 365
    DEFAULT_DROP_THRESHOLD_PCT: float = 20.0

    # --- Cache TTL classes (seconds) ---
    PRICE_HISTORY_TTL: float = 3600.0
    CURRENT_PRICE_TTL: float = 300.0
    STATISTICS_TTL: float = 1800.0
    TREND_TTL: float = 1800.0
    HISTORICAL_LOW_TTL: float = 7200.0
    OFFERS_TTL: float = 600.0

    # --- Concurrency ---
    MAX_CONCURRENT_FETCHES: int = 5        # In-flight collaborator calls
    COMPARISON_TIMEOUT: float = 20.0       # Seconds, whole request

    # --- Marketplace HTTP sources ---
    REQUEST_DELAY: float = 0.5             # Base backoff between retries
    REQUEST_TIMEOUT: int = 15
    MAX_RETRIES: int = 3
    CIRCUIT_BREAKER_THRESHOLD: int = 3
    CIRCUIT_BREAKER_COOLDOWN: float = 120.0
    MAX_DELAY_MULTIPLIER: int = 8
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Language": "ja-JP,ja;q=0.9,en-US;q=0.8",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    PRICE_DB_PATH: Path = Path(
        os.getenv(
            "PRICE_ENGINE_DB_PATH",
            str(BASE_DIR / "data" / "price_history.db"),
        )
    )
    LOGS_DIR: Path = Path(
        os.getenv("PRICE_ENGINE_LOGS_DIR", str(BASE_DIR / "logs"))
    )

    # --- Platform formatting rules ---
    PLATFORM_RULES: Mapping[str, PlatformRule] = MappingProxyType({
        "amazon": PlatformRule(1, 10_000_000, 2, True),
        "rakuten": PlatformRule(1, 10_000_000, 0, False),
        "yahoo": PlatformRule(1, 10_000_000, 0, False),
        "kakaku": PlatformRule(1, 1_000_000, 0, False),
        "mercari": PlatformRule(1, 500_000, 0, False),
    })

    # --- Platforms (registry for marketplace collaborators) ---
    AVAILABLE_PLATFORMS: list[dict[str, str]] = [
        {
            "id": "amazon",
            "label": "Amazon Japan",
            "quote_url": os.getenv("PRICE_ENGINE_QUOTE_URL_AMAZON", ""),
        },
        {
            "id": "rakuten",
            "label": "Rakuten Ichiba",
            "quote_url": os.getenv("PRICE_ENGINE_QUOTE_URL_RAKUTEN", ""),
        },
        {
            "id": "yahoo",
            "label": "Yahoo Shopping",
            "quote_url": os.getenv("PRICE_ENGINE_QUOTE_URL_YAHOO", ""),
        },
        {
            "id": "kakaku",
            "label": "Kakaku.com",
            "quote_url": os.getenv("PRICE_ENGINE_QUOTE_URL_KAKAKU", ""),
        },
        {
            "id": "mercari",
            "label": "Mercari",
            "quote_url": os.getenv("PRICE_ENGINE_QUOTE_URL_MERCARI", ""),
        },
    ]
