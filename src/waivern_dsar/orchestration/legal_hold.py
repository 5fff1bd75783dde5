"""Legal gate for cases whose discovery found special-category data.

While a hold is active, export and deletion of the case's artifacts are
blocked and retention-driven deletion is suspended.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from waivern_dsar.categories import DataCategory

LEGAL_HOLD_BANNER = (
    "LEGAL HOLD ACTIVE: export, deletion and modification of case artifacts "
    "are restricted. All data must be preserved. Contact the DPO or legal "
    "counsel for details."
)


class LegalHoldCode(Enum):
    """Reason codes returned when a legal hold blocks an action."""

    EXPORT_BLOCKED = "LEGAL_HOLD_EXPORT_BLOCKED"
    DELETION_BLOCKED = "LEGAL_HOLD_DELETION_BLOCKED"


class LegalHoldState(BaseModel):
    """Legal hold state of a case."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    reason: str | None = None
    enabled_at: datetime | None = None
    enabled_by_user_id: str | None = None


class LegalHoldCheck(BaseModel):
    """Whether an action is allowed under the current hold state."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    code: LegalHoldCode | None = None


ALLOWED = LegalHoldCheck(allowed=True)


def check_legal_hold_for_export(state: LegalHoldState) -> LegalHoldCheck:
    """Check whether exporting the case's artifacts is allowed."""
    if not state.enabled:
        return ALLOWED
    return LegalHoldCheck(
        allowed=False,
        reason=(
            "Export is blocked because a legal hold is active on this case. "
            "Contact the DPO or legal counsel to release the hold or obtain "
            "special authorisation."
        ),
        code=LegalHoldCode.EXPORT_BLOCKED,
    )


def check_legal_hold_for_deletion(state: LegalHoldState) -> LegalHoldCheck:
    """Check whether deleting the case's artifacts is allowed."""
    if not state.enabled:
        return ALLOWED
    return LegalHoldCheck(
        allowed=False,
        reason=(
            "Artifact deletion is blocked because a legal hold is active on this "
            "case. All data must be preserved until the hold is released."
        ),
        code=LegalHoldCode.DELETION_BLOCKED,
    )


def is_retention_suspended(state: LegalHoldState) -> bool:
    """Check whether retention-driven deletion is suspended."""
    return state.enabled


def legal_hold_banner_text(state: LegalHoldState) -> str | None:
    """Warning banner to display while a hold is active."""
    return LEGAL_HOLD_BANNER if state.enabled else None


def hold_for_special_categories(
    special_categories: tuple[DataCategory, ...],
    user_id: str,
    now: datetime | None = None,
) -> LegalHoldState:
    """Hold state requested by a run, active iff special categories were found."""
    if not special_categories:
        return LegalHoldState()
    names = ", ".join(c.value for c in special_categories)
    return LegalHoldState(
        enabled=True,
        reason=f"Special category data detected during discovery: {names}",
        enabled_at=now or datetime.now(UTC),
        enabled_by_user_id=user_id,
    )
