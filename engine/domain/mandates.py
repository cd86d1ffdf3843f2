# SPDX-License-Identifier: Apache-2.0

"""
Mandate and absence domain logic.

This module contains pure functions classifying a councillor's mandate window
and consecutive-absence count, and building the alerts those conditions raise.
"""

from datetime import date, datetime
from typing import List, Optional

from models.entities import CouncilMember, CouncilAlert
from models.enums import AlertKind, AlertSeverity
from models.responses import MandateStatus, AbsenceCheck

NEAR_EXPIRATION_DAYS = 90
ABSENCE_WARNING_THRESHOLD = 2
ABSENCE_CRITICAL_THRESHOLD = 3


def classify_mandate(mandate_end: date, today: date) -> MandateStatus:
    """
    Classify a mandate window against today.

    Args:
        mandate_end: Last day of the mandate
        today: Reference day

    Returns:
        MandateStatus with is_expired, is_near_expiration and days_remaining
    """
    days_remaining = (mandate_end - today).days

    return MandateStatus(
        is_expired=days_remaining < 0,
        is_near_expiration=0 < days_remaining <= NEAR_EXPIRATION_DAYS,
        days_remaining=days_remaining
    )


def check_absences(consecutive_absences: int) -> AbsenceCheck:
    """
    Classify a consecutive-absence count.

    Three or more is critical (the member is subject to mandate loss), exactly
    two is a warning, anything lower raises nothing.
    """
    if consecutive_absences >= ABSENCE_CRITICAL_THRESHOLD:
        return AbsenceCheck(
            has_critical=True,
            message=f"{consecutive_absences} consecutive absences - subject to mandate loss"
        )

    if consecutive_absences == ABSENCE_WARNING_THRESHOLD:
        return AbsenceCheck(
            has_warning=True,
            message=f"{consecutive_absences} consecutive absences - attention required"
        )

    return AbsenceCheck()


def build_absence_alert(member_id: str, consecutive_absences: int, created_at: datetime = None) -> Optional[CouncilAlert]:
    """Build the absence alert for a count, or None when no alert applies."""
    check = check_absences(consecutive_absences)
    if not (check.has_warning or check.has_critical):
        return None

    alert = CouncilAlert(
        member_id=member_id,
        kind=AlertKind.ABSENCE_CRITICAL if check.has_critical else AlertKind.ABSENCE_WARNING,
        severity=AlertSeverity.CRITICAL if check.has_critical else AlertSeverity.WARNING,
        message=check.message
    )
    if created_at is not None:
        alert.created_at = created_at
        alert.updated_at = created_at
    return alert


def build_member_alerts(member: CouncilMember, today: date, created_at: datetime = None) -> List[CouncilAlert]:
    """
    Build every alert a member currently warrants.

    At most one mandate alert (expired wins over expiring) and at most one
    absence alert are produced.

    Args:
        member: Council member to evaluate
        today: Reference day for the mandate window
        created_at: Timestamp stamped on the alerts

    Returns:
        List of unsaved CouncilAlert entities, possibly empty
    """
    alerts = []
    mandate = classify_mandate(member.mandate_end, today)

    if mandate.is_expired:
        alerts.append(CouncilAlert(
            member_id=member.id,
            kind=AlertKind.MANDATE_EXPIRED,
            severity=AlertSeverity.CRITICAL,
            message="Mandate expired"
        ))
    elif mandate.is_near_expiration:
        unit = "day" if mandate.days_remaining == 1 else "days"
        alerts.append(CouncilAlert(
            member_id=member.id,
            kind=AlertKind.MANDATE_EXPIRING,
            severity=AlertSeverity.WARNING,
            message=f"Mandate ends in {mandate.days_remaining} {unit}"
        ))

    if created_at is not None:
        for alert in alerts:
            alert.created_at = created_at
            alert.updated_at = created_at

    absence_alert = build_absence_alert(member.id, member.consecutive_absences, created_at)
    if absence_alert is not None:
        alerts.append(absence_alert)

    return alerts


def needs_attention(member: CouncilMember, today: date) -> bool:
    """Whether the member belongs on the expiring-mandate list."""
    mandate = classify_mandate(member.mandate_end, today)
    return mandate.is_expired or mandate.is_near_expiration


def has_absence_condition(member: CouncilMember) -> bool:
    """Whether the member carries an absence warning or critical condition."""
    check = check_absences(member.consecutive_absences)
    return check.has_warning or check.has_critical
