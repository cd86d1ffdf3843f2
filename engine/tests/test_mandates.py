# SPDX-License-Identifier: Apache-2.0

"""
Tests for mandate classification, the status report and alert sending.
"""

from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from domain.mandates import classify_mandate, check_absences, build_member_alerts
from models.enums import AlertKind, AlertSeverity, MemberStatus
from services.mandates import MandateMonitor
from models.responses import StatusReport


class TestClassifyMandate:
    """Test mandate window classification."""

    def test_ninety_days_out_is_near_expiration(self):
        today = date(2025, 3, 10)
        status = classify_mandate(today + timedelta(days=90), today)
        assert status.is_near_expiration is True
        assert status.is_expired is False
        assert status.days_remaining == 90

    def test_ninety_one_days_out_is_not_near(self):
        today = date(2025, 3, 10)
        assert classify_mandate(today + timedelta(days=91), today).is_near_expiration is False

    def test_ended_yesterday_is_expired(self):
        today = date(2025, 3, 10)
        status = classify_mandate(today - timedelta(days=1), today)
        assert status.is_expired is True
        assert status.is_near_expiration is False
        assert status.days_remaining == -1

    def test_ending_today_is_neither(self):
        """Zero days remaining is neither expired nor near expiration."""
        today = date(2025, 3, 10)
        status = classify_mandate(today, today)
        assert status.is_expired is False
        assert status.is_near_expiration is False

    def test_monitor_uses_clock_day(self, monitor, make_member, clock):
        member = make_member(save=False, mandate_end=clock.today() + timedelta(days=30))
        assert monitor.classify(member).days_remaining == 30
        assert monitor.classify(member, clock.today() + timedelta(days=31)).is_expired is True


class TestAbsenceChecks:
    """Test the absence thresholds shared with the attendance ledger."""

    @pytest.mark.parametrize("count, warning, critical", [
        (0, False, False),
        (1, False, False),
        (2, True, False),
        (3, False, True),
        (5, False, True),
    ])
    def test_thresholds(self, count, warning, critical):
        check = check_absences(count)
        assert check.has_warning is warning
        assert check.has_critical is critical

    def test_critical_message_mentions_mandate_loss(self):
        assert "subject to mandate loss" in check_absences(3).message


class TestBuildMemberAlerts:
    """Test alert payload construction."""

    def test_expired_and_critical_absence(self, make_member):
        member = make_member(save=False, mandate_start=date(2021, 1, 1), mandate_end=date(2024, 12, 31),
                             consecutive_absences=3)
        alerts = build_member_alerts(member, date(2025, 3, 10))
        assert [a.kind for a in alerts] == [AlertKind.MANDATE_EXPIRED.value, AlertKind.ABSENCE_CRITICAL.value]
        assert all(a.severity == AlertSeverity.CRITICAL.value for a in alerts)

    def test_expiring_message_counts_days(self, make_member):
        member = make_member(save=False, mandate_end=date(2025, 3, 11))
        alerts = build_member_alerts(member, date(2025, 3, 10))
        assert len(alerts) == 1
        assert alerts[0].message == "Mandate ends in 1 day"
        assert alerts[0].severity == AlertSeverity.WARNING.value

    def test_healthy_member_has_no_alerts(self, make_member):
        assert build_member_alerts(make_member(save=False), date(2025, 3, 10)) == []


class TestStatusReport:
    """Test roster status report aggregation."""

    def test_counts_and_lists(self, monitor, make_member, clock):
        expiring = make_member(full_name="Bruno Lima", mandate_end=clock.today() + timedelta(days=10))
        absent = make_member(full_name="Carla Reis", consecutive_absences=2)
        make_member(full_name="Davi Melo", status=MemberStatus.INACTIVE)
        make_member(full_name="Eva Prado", status=MemberStatus.LICENSED)

        report = monitor.generate_status_report()

        assert report.total == 4
        assert report.active == 2
        assert report.inactive == 1
        assert [m.id for m in report.expiring_mandates] == [expiring.id]
        assert [m.id for m in report.excessive_absences] == [absent.id]
        assert report.degraded is False

    def test_explicit_roster(self, monitor, make_member):
        roster = [make_member(save=False), make_member(save=False, consecutive_absences=4)]
        report = monitor.generate_status_report(roster)
        assert report.total == 2
        assert len(report.excessive_absences) == 1

    def test_store_failure_degrades(self, monitor, store):
        """A roster read failure yields an empty, degraded report instead of raising."""
        store.fail("list_members")
        report = monitor.generate_status_report()
        assert report.total == 0
        assert report.degraded is True
        assert report.errors

    def test_cached_report_is_served(self, store, clock, alert_publisher, make_member):
        cache = Mock()
        cache.get_cached_status_report.return_value = StatusReport(total=42)
        monitor = MandateMonitor(store, clock, alert_publisher, cache=cache)
        make_member()

        assert monitor.generate_status_report().total == 42
        cache.cache_status_report.assert_not_called()

    def test_fresh_report_is_cached(self, store, clock, alert_publisher, make_member):
        cache = Mock()
        cache.get_cached_status_report.return_value = None
        monitor = MandateMonitor(store, clock, alert_publisher, cache=cache, cache_ttl=60)
        make_member()

        report = monitor.generate_status_report()

        assert report.total == 1
        cache.cache_status_report.assert_called_once_with(report, 60)


class TestSendAlerts:
    """Test alert persistence and forwarding."""

    def test_persists_then_forwards(self, monitor, make_member, store, sender, clock):
        member = make_member(mandate_end=clock.today() + timedelta(days=20), consecutive_absences=2)

        result = monitor.send_alerts(member)

        assert len(result.alerts) == 2
        assert len(store.list_alerts(member.id)) == 2
        # email and sms opted in by default
        assert result.forwarded == 4
        assert {call[0] for call in sender.calls} == {"email", "sms"}

    def test_persistence_failure_blocks_send(self, monitor, make_member, store, sender):
        """An alert that could not be recorded is never forwarded."""
        member = make_member(consecutive_absences=3)
        store.fail("insert_alert")

        result = monitor.send_alerts(member)

        assert result.alerts == []
        assert result.errors
        assert sender.calls == []

    def test_channel_failure_is_reported(self, monitor, make_member, sender, store):
        member = make_member(consecutive_absences=3)
        sender.failing_channels.add("sms")

        result = monitor.send_alerts(member)

        assert len(store.list_alerts(member.id)) == 1
        assert result.forwarded == 1
        assert any("sms" in error for error in result.errors)

    def test_not_deduplicated(self, monitor, make_member, store):
        member = make_member(consecutive_absences=3)
        monitor.send_alerts(member)
        monitor.send_alerts(member)
        assert len(store.list_alerts(member.id)) == 2

    def test_sweep_covers_active_members(self, monitor, make_member, store, clock):
        flagged = make_member(full_name="Flavia Cruz", mandate_end=clock.today() + timedelta(days=5))
        make_member(full_name="Gil Rocha")
        make_member(full_name="Hugo Dias", status=MemberStatus.REMOVED, consecutive_absences=3)

        results = monitor.sweep()

        assert [r.member_id for r in results] == [flagged.id]
        assert len(store.alerts) == 1
