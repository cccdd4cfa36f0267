# tests/test_cli_runner.py

"""Tests for the headless CLI commands."""

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from typing import Any

from price_engine.cli import runner


class _CliTestCase(unittest.IsolatedAsyncioTestCase):
    """Temp directory holding the database and input files."""

    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.db_path = self.tmp_dir / "prices.db"

    def _write(self, name: str, payload: Any) -> Path:
        path = self.tmp_dir / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    async def _run_json(self, coro: Any) -> tuple[int, Any]:
        buf = io.StringIO()
        with redirect_stdout(buf):
            code = await coro
        output = buf.getvalue()
        return code, json.loads(output) if output else None


QUOTES = [
    {
        "product_id": "P1",
        "platform_id": "rakuten",
        "price": 12000,
        "timestamp": "2026-05-01T00:00:00Z",
    },
    {
        "product_id": "P1",
        "platform_id": "rakuten",
        "price": 9500,
        "original_price": 12000,
        "timestamp": "2026-05-10T00:00:00Z",
    },
    {
        "product_id": "P1",
        "platform_id": "rakuten",
        "price": -1,
        "timestamp": "2026-05-11T00:00:00Z",
    },
]


class TestIngestAndStats(_CliTestCase):
    """ingest then stats against the same database."""

    async def test_ingest_stores_valid_quotes(self) -> None:
        path = self._write("quotes.json", QUOTES)
        code = await runner.cli_ingest(path, self.db_path)
        self.assertEqual(code, 0)

        code, payload = await self._run_json(runner.cli_stats(
            "P1", None, 3650, "json", self.db_path,
        ))
        self.assertEqual(code, 0)
        self.assertEqual(payload["statistics"]["total_data_points"], 2)
        self.assertEqual(payload["statistics"]["min_price"], 9500)
        self.assertEqual(payload["trend"]["trend_direction"], "down")

    async def test_ingest_all_rejected(self) -> None:
        path = self._write("quotes.json", [QUOTES[2]])
        self.assertEqual(await runner.cli_ingest(path, self.db_path), 1)

    async def test_ingest_unreadable_file(self) -> None:
        path = self._write("quotes.json", [{"price": 1}])
        self.assertEqual(await runner.cli_ingest(path, self.db_path), 1)

    async def test_stats_without_data(self) -> None:
        code = await runner.cli_stats("P404", None, 30, "json", self.db_path)
        self.assertEqual(code, 1)


class TestAlerts(_CliTestCase):
    """alerts over ingested history."""

    async def test_alert_results(self) -> None:
        await runner.cli_ingest(
            self._write("quotes.json", QUOTES), self.db_path,
        )
        alerts = self._write("alerts.json", [
            {
                "id": "A1",
                "user_id": "U1",
                "product_id": "P1",
                "kind": "below_target",
                "target_price": 10000,
            },
            {
                "id": "A2",
                "user_id": "U1",
                "product_id": "P1",
                "kind": "percentage_drop",
                "percentage": 30,
            },
        ])
        code, payload = await self._run_json(
            runner.cli_alerts(alerts, "json", self.db_path),
        )
        self.assertEqual(code, 0)
        fired = {r["alert_id"]: r["triggered"] for r in payload}
        self.assertEqual(fired, {"A1": True, "A2": False})


class TestCompare(_CliTestCase):
    """compare in fixture mode."""

    FIXTURES = {
        "amazon": {"P1": {"price": 10000, "shipping_cost": 500}},
        "rakuten": {"P1": {"price": 10200}},
        "yahoo": {"P1": {"price": 9800, "shipping_cost": 1000}},
    }

    async def test_compare_with_fixtures(self) -> None:
        fixtures = self._write("fixtures.json", self.FIXTURES)
        code, payload = await self._run_json(runner.cli_compare(
            "P1", None, "any", True, "JPY", "json",
            fixtures=fixtures, best="lowest_price",
        ))
        self.assertEqual(code, 0)
        self.assertEqual(
            [row["platform"] for row in payload["comparison"]],
            ["rakuten", "amazon", "yahoo"],
        )
        self.assertEqual(payload["best_platform"]["platform"], "rakuten")
        self.assertFalse(payload["partial"])

    async def test_compare_platform_subset(self) -> None:
        fixtures = self._write("fixtures.json", self.FIXTURES)
        code, payload = await self._run_json(runner.cli_compare(
            "P1", "amazon,yahoo", "any", False, "JPY", "json",
            fixtures=fixtures,
        ))
        self.assertEqual(code, 0)
        self.assertEqual(
            [row["platform"] for row in payload["comparison"]],
            ["yahoo", "amazon"],
        )

    async def test_compare_no_offers(self) -> None:
        fixtures = self._write("fixtures.json", self.FIXTURES)
        code = await runner.cli_compare(
            "P404", None, "any", True, "JPY", "json", fixtures=fixtures,
        )
        self.assertEqual(code, 1)


class TestResolvePlatforms(unittest.TestCase):
    """Platform list parsing."""

    def test_none_means_all(self) -> None:
        self.assertIsNone(runner.resolve_platforms(None))

    def test_splits_and_strips(self) -> None:
        self.assertEqual(
            runner.resolve_platforms("amazon, rakuten"),
            ["amazon", "rakuten"],
        )

    def test_duplicates_removed_in_order(self) -> None:
        self.assertEqual(
            runner.resolve_platforms("rakuten,amazon,rakuten"),
            ["rakuten", "amazon"],
        )

    def test_unknown_platform_exits(self) -> None:
        with self.assertRaises(SystemExit):
            runner.resolve_platforms("amazon,ebay")


if __name__ == "__main__":
    unittest.main()
