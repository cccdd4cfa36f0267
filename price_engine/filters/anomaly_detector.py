# price_engine/filters/anomaly_detector.py

"""Z-score anomaly detection for incoming prices."""

import logging
import statistics
from collections.abc import Sequence

from price_engine.config.settings import Settings
from price_engine.models.analysis import AnomalyResult, AnomalyType

logger = logging.getLogger("price_engine.anomaly")


class AnomalyDetector:
    """Flag a new price as spike, drop or unusual against recent history.

    Uses the population standard deviation of the last ``window``
    prices.  A flat history (sigma == 0) never produces an anomaly.
    """

    def __init__(
        self,
        window: int = Settings.ANOMALY_WINDOW,
        z_threshold: float = Settings.ANOMALY_Z_THRESHOLD,
        min_history: int = Settings.ANOMALY_MIN_HISTORY,
        spike_ratio: float = Settings.SPIKE_RATIO,
        drop_ratio: float = Settings.DROP_RATIO,
    ) -> None:
        self.window = window
        self.z_threshold = z_threshold
        self.min_history = min_history
        self.spike_ratio = spike_ratio
        self.drop_ratio = drop_ratio
        self._history: dict[str, list[float]] = {}

    def update_history(
        self, product_id: str, prices: Sequence[float],
    ) -> None:
        """Replace the reference prices (oldest first) for a product."""
        self._history[product_id] = list(prices)[-self.window:]

    def detect_anomaly(
        self, product_id: str, new_price: float,
    ) -> AnomalyResult:
        """Test *new_price* against the stored context for *product_id*."""
        result = self.analyze(
            self._history.get(product_id, []), new_price,
        )
        if result.is_anomaly:
            logger.info(
                "Anomaly for %s: %s (z=%.2f, price=%s)",
                product_id,
                result.anomaly_type.value if result.anomaly_type else "-",
                result.z_score,
                new_price,
            )
        return result

    def analyze(
        self, history: Sequence[float], new_price: float,
    ) -> AnomalyResult:
        """Pure core of :meth:`detect_anomaly`."""
        if len(history) < self.min_history:
            return AnomalyResult(
                is_anomaly=False,
                anomaly_type=None,
                significance=0.0,
                explanation="Insufficient historical data",
                history_count=len(history),
            )

        recent = list(history)[-self.window:]
        mean = statistics.fmean(recent)
        sigma = statistics.pstdev(recent)

        if sigma == 0:
            return AnomalyResult(
                is_anomaly=False,
                anomaly_type=None,
                significance=0.0,
                explanation="No price variance in recent history",
                history_count=len(recent),
            )

        z_score = abs(new_price - mean) / sigma
        is_anomaly = z_score > self.z_threshold

        anomaly_type: AnomalyType | None = None
        if is_anomaly:
            if new_price > mean * self.spike_ratio:
                anomaly_type = AnomalyType.SPIKE
            elif new_price < mean * self.drop_ratio:
                anomaly_type = AnomalyType.DROP
            else:
                anomaly_type = AnomalyType.UNUSUAL

        explanation = (
            f"Price is {z_score:.1f} standard deviations "
            f"from recent average"
            if is_anomaly
            else "Price within normal range"
        )
        return AnomalyResult(
            is_anomaly=is_anomaly,
            anomaly_type=anomaly_type,
            significance=min(z_score / 3, 1.0),
            explanation=explanation,
            z_score=z_score,
            history_count=len(recent),
        )
