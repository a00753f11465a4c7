"""
Conflict Detector — 查找与拟写入给药记录时间过近的已有记录。

纯读操作，不修改任何数据。
"""

import logging
from datetime import datetime, timedelta

from .exceptions import ValidationError
from .store.base import BaseAdministrationStore
from .types import STATUS_ADMINISTERED, ConflictCandidate

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_WINDOW = timedelta(hours=2)

ROLE_LABELS = {
    'family':       'family member',
    'professional': 'caregiver',
}


def display_role(role: str | None) -> str:
    return ROLE_LABELS.get((role or '').strip().lower(), 'caregiver')


def _window_hours(window: timedelta) -> str:
    hours = window.total_seconds() / 3600
    return f"{hours:g}"


def find_conflicts(
    store: BaseAdministrationStore,
    medication_id: str,
    proposed_at: datetime,
    exclude_caregiver_id: str | None = None,
    window: timedelta = DEFAULT_CONFLICT_WINDOW,
) -> list[ConflictCandidate]:
    """
    返回同一药品、administered_at 落在 [proposed_at - window, proposed_at + window]
    内的有效记录（未被覆盖、status=administered），按时间升序。

    不管是哪个照护者写的都算冲突；传 exclude_caregiver_id 时跳过该照护者自己的记录。
    """
    if window <= timedelta(0):
        raise ValidationError(
            message="Conflict window must be a positive duration.",
            code="INVALID_WINDOW",
            detail={'window_seconds': window.total_seconds()},
        )

    records = store.find_active(medication_id, proposed_at - window, proposed_at + window)
    candidates = [
        ConflictCandidate(record=r, display_role=display_role(r.administered_by_role))
        for r in records
        if r.status == STATUS_ADMINISTERED
        and (exclude_caregiver_id is None or r.administered_by != exclude_caregiver_id)
    ]

    if candidates:
        logger.warning(
            "[ConflictDetector] medication %s: %d conflicting administration(s) within %sh of %s",
            medication_id, len(candidates), _window_hours(window), proposed_at.isoformat(),
        )
    return candidates


def format_conflict_message(candidates: list[ConflictCandidate], window: timedelta) -> str:
    """冲突提示文案，取最早的那条冲突记录。"""
    if not candidates:
        return ''

    first = candidates[0]
    when = first.record.administered_at.strftime('%Y-%m-%d %H:%M')
    hours = _window_hours(window)
    message = (
        f"This medication was already administered by a {first.display_role} "
        f"at {when} (within {hours} hour window)."
    )
    if len(candidates) > 1:
        message += f" {len(candidates) - 1} more administration(s) in the same window."
    return message
