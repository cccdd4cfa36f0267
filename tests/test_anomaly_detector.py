# tests/test_anomaly_detector.py

"""Tests for z-score anomaly detection."""

import unittest

from price_engine.filters.anomaly_detector import AnomalyDetector
from price_engine.models.analysis import AnomalyType

# mean 100, population sigma sqrt(2)
_HISTORY = [100.0, 102.0, 98.0, 101.0, 99.0]


class TestAnalyze(unittest.TestCase):
    """Tests for the pure analyze() core."""

    def setUp(self) -> None:
        self.detector = AnomalyDetector()

    def test_flat_history_never_anomalous(self) -> None:
        """sigma == 0 is guarded: 1000 against [10]*4 is not an anomaly."""
        result = self.detector.analyze([10, 10, 10, 10], 1000)
        self.assertFalse(result.is_anomaly)
        self.assertIsNone(result.anomaly_type)
        self.assertEqual(result.significance, 0.0)

    def test_insufficient_history(self) -> None:
        """Two points are not enough context."""
        result = self.detector.analyze([100, 200], 5000)
        self.assertFalse(result.is_anomaly)
        self.assertIn("Insufficient", result.explanation)
        self.assertEqual(result.history_count, 2)

    def test_spike(self) -> None:
        """Far above and above 1.5x the mean is a spike."""
        result = self.detector.analyze(_HISTORY, 200)
        self.assertTrue(result.is_anomaly)
        self.assertEqual(result.anomaly_type, AnomalyType.SPIKE)
        self.assertEqual(result.significance, 1.0)

    def test_drop(self) -> None:
        """Far below and below 0.5x the mean is a drop."""
        result = self.detector.analyze(_HISTORY, 40)
        self.assertTrue(result.is_anomaly)
        self.assertEqual(result.anomaly_type, AnomalyType.DROP)

    def test_unusual(self) -> None:
        """Significant but inside the spike/drop ratios is unusual."""
        result = self.detector.analyze(_HISTORY, 110)
        self.assertTrue(result.is_anomaly)
        self.assertEqual(result.anomaly_type, AnomalyType.UNUSUAL)
        self.assertAlmostEqual(result.z_score, 10 / 2 ** 0.5)

    def test_normal_price(self) -> None:
        """z below 2 is normal with a bounded significance."""
        result = self.detector.analyze(_HISTORY, 101)
        self.assertFalse(result.is_anomaly)
        self.assertIsNone(result.anomaly_type)
        self.assertAlmostEqual(result.significance, (1 / 2 ** 0.5) / 3)

    def test_uses_recent_window_only(self) -> None:
        """Only the last ``window`` prices form the reference set."""
        history = [1.0] * 5 + _HISTORY * 2
        result = self.detector.analyze(history, 101)
        self.assertEqual(result.history_count, 10)
        self.assertFalse(result.is_anomaly)


class TestPerProductContext(unittest.TestCase):
    """Tests for update_history() / detect_anomaly()."""

    def test_unknown_product_has_no_context(self) -> None:
        """Without history the answer is insufficient data."""
        result = AnomalyDetector().detect_anomaly("nope", 100)
        self.assertFalse(result.is_anomaly)
        self.assertEqual(result.history_count, 0)

    def test_context_is_per_product(self) -> None:
        """Each product is judged against its own history."""
        detector = AnomalyDetector()
        detector.update_history("cheap", _HISTORY)
        detector.update_history("pricey", [x * 100 for x in _HISTORY])
        self.assertTrue(detector.detect_anomaly("cheap", 200).is_anomaly)
        self.assertFalse(detector.detect_anomaly("pricey", 10_000).is_anomaly)

    def test_custom_threshold(self) -> None:
        """A higher z threshold tolerates more deviation."""
        detector = AnomalyDetector(z_threshold=10)
        detector.update_history("p", _HISTORY)
        self.assertFalse(detector.detect_anomaly("p", 110).is_anomaly)


if __name__ == "__main__":
    unittest.main()
