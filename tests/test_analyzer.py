# tests/test_analyzer.py
"""Tests for outcome classification (app/core/dispatch/analyzer.py)."""
from __future__ import annotations

import threading

from app.core.dispatch.analyzer import (
    STALE_ERROR_CODE,
    ReportAccumulator,
    analyze,
    is_stale_outcome,
)
from app.core.dispatch.models import DeliveryOutcome, OutcomeSummary


def _ok(token: str) -> DeliveryOutcome:
    return DeliveryOutcome(recipient=token, success=True)


def _fail(token: str, code: str | None = None, message: str | None = None) -> DeliveryOutcome:
    return DeliveryOutcome(recipient=token, success=False, error_code=code, error_message=message)


class TestIsStaleOutcome:
    def test_explicit_code(self):
        assert is_stale_outcome(_fail("t", STALE_ERROR_CODE)) is True

    def test_message_marker(self):
        assert is_stale_outcome(_fail("t", "messaging/unknown-error", "Unregistered token")) is True

    def test_marker_is_case_sensitive(self):
        assert is_stale_outcome(_fail("t", "messaging/internal-error", "unregistered")) is False

    def test_other_code_is_transient(self):
        assert is_stale_outcome(_fail("t", "messaging/message-rate-exceeded", "Quota exceeded")) is False

    def test_no_code_no_message(self):
        assert is_stale_outcome(_fail("t")) is False

    def test_success_never_stale(self):
        assert is_stale_outcome(DeliveryOutcome(
            recipient="t", success=True, error_message="Unregistered",
        )) is False


class TestAnalyze:
    def test_three_failures_one_stale(self):
        outcomes = [
            _ok("a"), _ok("b"), _ok("c"), _ok("d"),
            _fail("e", STALE_ERROR_CODE),
            _fail("f", "messaging/internal-error", "Internal error"),
            _fail("g", "messaging/message-rate-exceeded"),
        ]
        summary = analyze(outcomes)
        assert summary.succeeded == len(outcomes) - 3
        assert summary.failed == 3
        assert summary.stale == frozenset({"e"})
        assert [o.recipient for o in summary.failures] == ["e", "f", "g"]

    def test_scenario_last_token_unregistered(self):
        summary = analyze([_ok("a"), _ok("b"), _fail("c", STALE_ERROR_CODE)])
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.stale == frozenset({"c"})

    def test_empty(self):
        assert analyze([]) == OutcomeSummary()

    def test_failures_are_logged_with_masked_token(self, caplog):
        token = "A" * 10 + "secret-middle-part" + "Z" * 10
        analyze([_fail(token, STALE_ERROR_CODE, "Requested entity was not found.")])

        text = caplog.text
        assert "secret-middle-part" not in text
        assert "AAAAAAAAAA...ZZZZZZZZZZ" in text
        assert STALE_ERROR_CODE in text
        assert "stale" in text


class TestReportAccumulator:
    def test_counters_sum_to_attempted(self):
        acc = ReportAccumulator(skipped_invalid=2)
        acc.add_summary(3, OutcomeSummary(succeeded=2, failed=1, stale=frozenset({"c"}),
                                          failures=(_fail("c", STALE_ERROR_CODE),)))
        acc.add_transport_error(5)
        acc.add_summary(2, OutcomeSummary(succeeded=2))

        report = acc.build()
        assert report.attempted == 10
        assert report.succeeded == 4
        assert report.failed == 1
        assert report.unknown == 5
        assert report.succeeded + report.failed + report.unknown == report.attempted
        assert report.stale_recipients == frozenset({"c"})
        assert report.batches == 3
        assert report.transport_errors == 1
        assert report.skipped_invalid == 2

    def test_concurrent_updates(self):
        acc = ReportAccumulator()

        def worker():
            for _ in range(1000):
                acc.add_summary(1, OutcomeSummary(succeeded=1))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        report = acc.build()
        assert report.succeeded == 8000
        assert report.attempted == 8000
        assert report.batches == 8000

    def test_transient_recipients_exclude_stale(self):
        acc = ReportAccumulator()
        acc.add_summary(3, analyze([
            _ok("a"),
            _fail("b", STALE_ERROR_CODE),
            _fail("c", "messaging/internal-error"),
        ]))
        report = acc.build()
        assert report.transient_recipients == frozenset({"c"})
        assert report.has_failures is True
        assert report.to_dict()["stale_recipients"] == ["b"]
