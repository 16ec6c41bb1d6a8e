"""Tests for the command-line entry point."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from gridwatch.main import main
from gridwatch.monitoring.poller import CycleSummary


def test_once_runs_single_cycle_and_prints_summary(capsys):
    poller = MagicMock()
    poller.run_cycle = AsyncMock(return_value=CycleSummary(
        total_meters=4, meters_with_abnormalities=1, alerts_sent=1, timestamp="2025-01-01T00:00:00+00:00",
    ))

    with patch("gridwatch.main.build_poller", return_value=poller):
        exit_code = main(["--once", "--log-level", "WARNING"])

    assert exit_code == 0
    poller.run_cycle.assert_awaited_once()
    poller.engine.shutdown.assert_called_once()
    printed = json.loads(capsys.readouterr().out)
    assert printed["total_meters"] == 4
    assert printed["alerts_sent"] == 1
