"""Tests for auto-alert generation."""

from datetime import datetime, timedelta, timezone

import pytest

from coinalerts.models import AlertSeverity, MarketItem, MarketSnapshot, SourceProvider
from coinalerts.services.auto_alerts import (
    AlertThresholds,
    AutoAlertGenerator,
    DISCLAIMER,
    classify_move,
)

RETRIEVED_AT = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)


def make_item(token, pct, price=100.0, source=SourceProvider.PRIMARY):
    return MarketItem(
        token=token,
        last_price=price,
        day_change_pct=pct,
        source_provider=source,
        provider="polygon",
    )


def make_snapshot(*items):
    return MarketSnapshot(items=tuple(items), retrieved_at=RETRIEVED_AT, note="test")


class TestClassifyMove:
    """Threshold boundaries are inclusive."""

    @pytest.mark.parametrize("pct,expected", [
        (-12.3, AlertSeverity.CRITICAL),
        (-10.0, AlertSeverity.CRITICAL),
        (-9.99, AlertSeverity.WARNING),
        (-5.0, AlertSeverity.WARNING),
        (-4.99, None),
        (-3.0, None),
        (0.0, None),
        (25.0, None),
        (None, None),
    ])
    def test_default_thresholds(self, pct, expected):
        assert classify_move(pct) == expected

    def test_custom_thresholds(self):
        thresholds = AlertThresholds(critical_pct=-20.0, warning_pct=-8.0)
        assert classify_move(-12.3, thresholds) == AlertSeverity.WARNING
        assert classify_move(-20.0, thresholds) == AlertSeverity.CRITICAL

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            AlertThresholds(critical_pct=-2.0, warning_pct=-5.0)


class TestAutoAlertGenerator:

    def test_btc_sharp_drop_is_one_critical_alert(self):
        alerts = AutoAlertGenerator().generate(make_snapshot(make_item("BTC", -12.3)))

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.token == "BTC"
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.title == "BTC: Sharp drawdown -12.3%"
        assert "-12.3%" in alert.description
        assert DISCLAIMER in alert.description
        assert alert.tags == ["price-change"]
        assert alert.generated is True

    def test_small_move_yields_nothing(self):
        assert AutoAlertGenerator().generate(make_snapshot(make_item("ETH", -3.0))) == []

    def test_warning_title(self):
        alerts = AutoAlertGenerator().generate(make_snapshot(make_item("TAO", -6.04)))
        assert alerts[0].severity == AlertSeverity.WARNING
        assert alerts[0].title == "TAO: Drawdown -6.0%"

    def test_upside_moves_never_alert(self):
        snapshot = make_snapshot(make_item("SOL", 15.0), make_item("DOGE", 40.0))
        assert AutoAlertGenerator().generate(snapshot) == []

    def test_unresolved_items_are_skipped(self):
        snapshot = make_snapshot(
            MarketItem.unavailable("TAO", "unsupported"),
            MarketItem(token="ADA", last_price=None, day_change_pct=-30.0),
            make_item("BTC", -12.3),
        )
        alerts = AutoAlertGenerator().generate(snapshot)
        assert [a.token for a in alerts] == ["BTC"]

    def test_resolved_item_without_change_is_skipped(self):
        assert AutoAlertGenerator().generate(make_snapshot(make_item("BTC", None))) == []

    def test_alerts_follow_snapshot_order(self):
        snapshot = make_snapshot(
            make_item("ETH", -7.0),
            make_item("BTC", -12.3),
            make_item("SOL", -1.0),
        )
        alerts = AutoAlertGenerator().generate(snapshot)
        assert [(a.token, a.severity) for a in alerts] == [
            ("ETH", AlertSeverity.WARNING),
            ("BTC", AlertSeverity.CRITICAL),
        ]

    def test_deadline_is_relative_to_retrieval(self):
        alerts = AutoAlertGenerator().generate(make_snapshot(make_item("BTC", -12.3)))
        assert alerts[0].deadline == RETRIEVED_AT + timedelta(hours=12)

    def test_custom_deadline_hours(self):
        generator = AutoAlertGenerator(AlertThresholds(deadline_hours=2))
        alerts = generator.generate(make_snapshot(make_item("BTC", -12.3)))
        assert alerts[0].deadline == RETRIEVED_AT + timedelta(hours=2)

    def test_generation_is_deterministic(self):
        """Same snapshot twice gives identical alerts, ids included."""
        snapshot = make_snapshot(make_item("BTC", -12.3), make_item("TAO", -6.0))
        generator = AutoAlertGenerator()

        first = generator.generate(snapshot)
        second = generator.generate(snapshot)

        assert first == second
        assert first[0].id == "auto_btc_20261017_critical"
        assert first[1].id == "auto_tao_20261017_warning"

    def test_fallback_items_alert_too(self):
        snapshot = make_snapshot(make_item("TAO", -11.0, source=SourceProvider.FALLBACK))
        alerts = AutoAlertGenerator().generate(snapshot)
        assert alerts[0].severity == AlertSeverity.CRITICAL
