from datetime import UTC, datetime, timedelta

from whatsconnect.domain.sla import compute_sla_window

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def test_no_contact_time_has_no_window() -> None:
    assert compute_sla_window(None, NOW) is None


def test_comfortable_window_shows_hours() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=89), NOW)
    assert window is not None
    assert window.text == "0h 31m remaining"
    assert not window.urgent
    assert not window.overdue
    assert window.minutes == 31


def test_urgent_window() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=91), NOW)
    assert window is not None
    assert window.text == "29m remaining"
    assert window.urgent
    assert not window.overdue


def test_exactly_thirty_minutes_left_is_urgent() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=90), NOW)
    assert window is not None
    assert window.urgent
    assert window.text == "30m remaining"


def test_overdue_window() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=125), NOW)
    assert window is not None
    assert window.overdue
    assert window.urgent
    assert window.text == "5m overdue"


def test_threshold_reached_is_overdue() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=120), NOW)
    assert window is not None
    assert window.overdue
    assert window.text == "0m overdue"


def test_partial_minutes_are_floored() -> None:
    window = compute_sla_window(NOW - timedelta(minutes=10, seconds=59), NOW)
    assert window is not None
    assert window.text == "1h 50m remaining"


def test_custom_threshold() -> None:
    window = compute_sla_window(
        NOW - timedelta(minutes=10), NOW, threshold_minutes=60, urgent_window_minutes=5
    )
    assert window is not None
    assert window.text == "0h 50m remaining"
