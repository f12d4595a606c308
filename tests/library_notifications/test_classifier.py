from datetime import datetime, timedelta, timezone

import pytest

from services.library_notifications.classifier import FEE_PER_DAY, NoticeKind, classify

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


def test_due_exactly_now_is_due_soon_not_overdue():
    notice = classify(NOW, NOW)
    assert notice.kind is NoticeKind.DUE_SOON
    assert notice.days_remaining == 0
    assert notice.fee == 0


@pytest.mark.parametrize("days", [1, 2])
def test_due_within_two_days_is_due_soon(days):
    notice = classify(NOW + timedelta(days=days), NOW)
    assert notice.kind is NoticeKind.DUE_SOON
    assert notice.days_remaining == days


@pytest.mark.parametrize("days", [3, 4, 30])
def test_due_three_or_more_days_out_needs_nothing(days):
    notice = classify(NOW + timedelta(days=days), NOW)
    assert notice.kind is NoticeKind.NONE
    assert not notice.needs_notification


@pytest.mark.parametrize("days", [1, 3, 10])
def test_overdue_by_whole_days_accrues_fee(days):
    notice = classify(NOW - timedelta(days=days), NOW)
    assert notice.kind is NoticeKind.OVERDUE
    assert notice.days_overdue == days
    assert notice.fee == days * FEE_PER_DAY


def test_fractional_days_round_up():
    late = classify(NOW - timedelta(hours=1), NOW)
    assert late.kind is NoticeKind.OVERDUE
    assert late.days_overdue == 1
    assert late.fee == 3

    assert classify(NOW - timedelta(days=2, hours=3), NOW).days_overdue == 3
    assert classify(NOW + timedelta(hours=36), NOW).days_remaining == 2
    assert classify(NOW + timedelta(days=2, minutes=1), NOW).kind is NoticeKind.NONE
