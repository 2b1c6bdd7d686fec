import logging
from datetime import date
from typing import Optional

from edu_admin.config import settings
from edu_admin.models.licenses import (
    License,
    ACTION_EXPAND,
    ACTION_EXTEND,
    ACTION_RENEW,
    STUDENT_LICENSE_PENDING,
    STUDENT_LICENSE_ACTIVATED,
)

logger = logging.getLogger(__name__)

# Statuses that hold a seat of the license
SEAT_STATUSES = (STUDENT_LICENSE_PENDING, STUDENT_LICENSE_ACTIVATED)


class LicenseActionError(ValueError):
    pass


def is_expired(license: License, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return license.end_date < today


def is_expiring_soon(license: License, today: Optional[date] = None) -> bool:
    today = today or date.today()
    if is_expired(license, today):
        return False
    return (license.end_date - today).days <= settings.LICENSE_EXPIRY_WARNING_DAYS


def remaining_quantity(license: License) -> int:
    """Seats that can still be assigned."""
    return max((license.total_quantity or 0) - (license.total_assigned or 0), 0)


def apply_action(
    license: License,
    action_type: str,
    additional_quantity: Optional[int] = None,
    new_total_quantity: Optional[int] = None,
    new_start_date: Optional[date] = None,
    new_end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> Optional[int]:
    """
    Apply an EXPAND / EXTEND / RENEW action to a license in place.

    Returns:
        The change_quantity to record on the action row (None when the
        quantity did not grow)

    Raises:
        LicenseActionError: when the action parameters are invalid
    """
    today = today or date.today()

    if action_type == ACTION_EXPAND:
        if additional_quantity is None or additional_quantity < 1:
            raise LicenseActionError("Additional quantity must be greater than 0")
        license.total_quantity = license.total_quantity + additional_quantity
        return additional_quantity

    if action_type == ACTION_EXTEND:
        if new_end_date is None:
            raise LicenseActionError("New end date is required")
        if new_end_date <= today:
            raise LicenseActionError("New end date must be after current date")
        license.end_date = new_end_date
        return None

    if action_type == ACTION_RENEW:
        if new_total_quantity is None or new_total_quantity < 1:
            raise LicenseActionError("New total quantity must be greater than 0")
        if new_start_date is None or new_end_date is None:
            raise LicenseActionError("New start date and new end date are required")
        if new_end_date <= new_start_date:
            raise LicenseActionError("New end date must be after new start date")
        change = new_total_quantity - license.total_quantity
        license.total_quantity = new_total_quantity
        license.start_date = new_start_date
        license.end_date = new_end_date
        return change if change > 0 else None

    raise LicenseActionError(f"Unknown action type: {action_type}")


def apply_status_transition(license: License, old_status: Optional[str], new_status: Optional[str]) -> None:
    """
    Keep total_assigned / total_consumed / used_quantity in step with a student
    license moving from ``old_status`` to ``new_status``.

    ``old_status`` is None for a new assignment and ``new_status`` is None for a
    deleted one. Counters never drop below zero.
    """
    if old_status == new_status:
        return

    assigned_delta = int(new_status in SEAT_STATUSES) - int(old_status in SEAT_STATUSES)
    consumed_delta = int(new_status == STUDENT_LICENSE_ACTIVATED) - int(old_status == STUDENT_LICENSE_ACTIVATED)

    license.total_assigned = max((license.total_assigned or 0) + assigned_delta, 0)
    license.total_consumed = max((license.total_consumed or 0) + consumed_delta, 0)
    license.used_quantity = max((license.used_quantity or 0) + consumed_delta, 0)

    logger.debug(
        f"License {license.id} counters after {old_status} -> {new_status}: "
        f"assigned={license.total_assigned} consumed={license.total_consumed}"
    )


def can_assign(license: License, today: Optional[date] = None) -> Optional[str]:
    """Reason the license cannot take another student, None when it can."""
    if license.status != "active":
        return "License not found or inactive"
    if is_expired(license, today):
        return "License has expired"
    if (license.total_assigned or 0) >= license.total_quantity:
        return "License has no available capacity"
    return None


def can_activate(valid_from: Optional[date], valid_to: Optional[date], today: Optional[date] = None) -> Optional[str]:
    today = today or date.today()
    if valid_from and today < valid_from:
        return f"License activation is not yet available. This license can only be activated starting from {valid_from.isoformat()}"
    if valid_to and today > valid_to:
        return f"License has expired and cannot be activated. This license expired on {valid_to.isoformat()}"
    return None


REVOCABLE_STATUSES = SEAT_STATUSES
