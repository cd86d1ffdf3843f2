# SPDX-License-Identifier: Apache-2.0

"""
Validation domain logic for council members and meetings.

Validation runs before any write and reports every problem it finds, so
administrative forms can show them all at once.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from models.entities import MAX_MANDATE_YEARS, CouncilMember, Meeting, add_years
from models.enums import MeetingType, MeetingStatus
from .errors import ValidationError

CPF_PATTERN = re.compile(r'^\d{3}\.\d{3}\.\d{3}-\d{2}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\(\d{2}\)\s\d{4,5}-\d{4}$')
MIN_LOCATION_LENGTH = 3


@dataclass
class FieldError:
    """A single field-level validation failure."""
    field: str
    reason: str


@dataclass
class ValidationResult:
    """Result of member or meeting validation."""
    is_valid: bool
    errors: List[FieldError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def messages(self) -> List[str]:
        return [error.reason for error in self.errors]


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def validate_member_data(data: Dict[str, Any]) -> ValidationResult:
    """
    Validate council member data before it is saved.

    Args:
        data: Member fields; only the fields present are checked

    Returns:
        ValidationResult with every failing field
    """
    errors = []

    if 'mandate_start' in data and 'mandate_end' in data:
        try:
            start = _as_date(data['mandate_start'])
            end = _as_date(data['mandate_end'])
        except ValueError:
            errors.append(FieldError('mandate_start', 'Mandate dates must be ISO dates'))
        else:
            if start is None or end is None:
                errors.append(FieldError('mandate_end', 'Mandate start and end are required'))
            elif end <= start:
                errors.append(FieldError('mandate_end', 'Mandate end must be after mandate start'))
            elif end > add_years(start, MAX_MANDATE_YEARS):
                errors.append(FieldError('mandate_end', f'Mandate cannot exceed {MAX_MANDATE_YEARS} years'))

    if data.get('cpf') and not CPF_PATTERN.match(data['cpf']):
        errors.append(FieldError('cpf', 'CPF must use the XXX.XXX.XXX-XX format'))

    if data.get('email') and not EMAIL_PATTERN.match(data['email']):
        errors.append(FieldError('email', 'Invalid e-mail address'))

    if data.get('phone') and not PHONE_PATTERN.match(data['phone']):
        errors.append(FieldError('phone', 'Phone must use the (XX) XXXXX-XXXX format'))

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_meeting_data(data: Dict[str, Any], now: datetime) -> ValidationResult:
    """
    Validate meeting data before it is saved.

    Args:
        data: Meeting fields
        now: Current time, timezone-aware

    Returns:
        ValidationResult with every failing field and weekend warnings
    """
    errors = []
    warnings = []

    scheduled_at = data.get('scheduled_at')
    if isinstance(scheduled_at, str):
        try:
            scheduled_at = datetime.fromisoformat(scheduled_at)
        except ValueError:
            errors.append(FieldError('scheduled_at', 'Meeting date must be an ISO timestamp'))
            scheduled_at = None

    if scheduled_at is not None and not errors:
        if scheduled_at.tzinfo is None:
            errors.append(FieldError('scheduled_at', 'Meeting date must carry a timezone'))
        else:
            status = data.get('status', MeetingStatus.SCHEDULED)
            if scheduled_at < now and status == MeetingStatus.SCHEDULED:
                errors.append(FieldError('scheduled_at', 'Cannot schedule a meeting in the past'))
            if scheduled_at.weekday() >= 5:
                warnings.append('Meeting scheduled on a weekend')

    if data.get('type') == MeetingType.EXTRAORDINARY and not data.get('agenda'):
        errors.append(FieldError('agenda', 'Extraordinary meetings require an agenda'))

    location = data.get('location')
    if not location or len(location.strip()) < MIN_LOCATION_LENGTH:
        errors.append(FieldError('location', 'Meeting location is required'))

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def ensure_valid(result: ValidationResult) -> None:
    """
    Raise when a validation result carries errors.

    Raises:
        ValidationError: Naming the first failing field and listing all reasons
    """
    if result.is_valid:
        return
    first = result.errors[0]
    raise ValidationError(first.reason, field=first.field, validation_errors=result.messages)


def from_model_error(error: ModelValidationError) -> ValidationError:
    """Translate a pydantic model error into the engine's ValidationError."""
    field_errors = []
    for detail in error.errors():
        field_path = ".".join(str(loc) for loc in detail["loc"])
        field_errors.append(FieldError(field_path or None, detail["msg"]))

    first = field_errors[0]
    return ValidationError(
        first.reason,
        field=first.field,
        validation_errors=[
            f"{item.field}: {item.reason}" if item.field else item.reason for item in field_errors
        ]
    )


def build_member(data: Dict[str, Any]) -> CouncilMember:
    """
    Validate member fields and build the entity.

    Raises:
        ValidationError: On the first failing field, whether caught by the
            domain rules or by the model itself
    """
    ensure_valid(validate_member_data(data))
    try:
        return CouncilMember(**data)
    except ModelValidationError as e:
        raise from_model_error(e) from e


def build_meeting(data: Dict[str, Any], now: datetime) -> Meeting:
    """Validate meeting fields and build the entity; raises ValidationError."""
    ensure_valid(validate_meeting_data(data, now))
    try:
        return Meeting(**data)
    except ModelValidationError as e:
        raise from_model_error(e) from e
