"""
请求体解析 — 外部 JSON → 内部 dataclass。

业务层（services.py）只消费 AdministrationInput / ResolutionRequest，永远不碰原始请求体。
字段校验错误统一收集成 ValidationError(detail={'errors': [...]})。
"""

from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.utils.dateparse import parse_datetime

from .exceptions import InvalidResolution, ValidationError
from .types import (
    METHOD_CANCEL,
    METHOD_DUAL_ENTRY,
    METHOD_OVERRIDE,
    STATUS_ADMINISTERED,
    AdministrationInput,
    Cancel,
    DualEntry,
    Override,
    ResolutionRequest,
)


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


def parse_instant(value: Any, field_name: str = "administered_at") -> datetime:
    """ISO 8601 带时区的时间戳 → aware datetime。"""
    try:
        parsed = parse_datetime(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None or parsed.utcoffset() is None:
        raise ValidationError(
            message=f"{field_name} must be an ISO 8601 timestamp with a timezone offset.",
            code="INVALID_INSTANT",
            detail={"field": field_name, "value": value},
        )
    return parsed


def parse_date(value: Any, field_name: str = "date") -> date:
    try:
        return date.fromisoformat(_clean(value))
    except ValueError:
        raise ValidationError(
            message=f"{field_name} must be a YYYY-MM-DD date.",
            code="INVALID_DATE",
            detail={"field": field_name, "value": value},
        )


def parse_timezone(value: Any) -> ZoneInfo | None:
    name = _clean(value)
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(
            message=f"Unknown timezone: {name!r}.",
            code="INVALID_TIMEZONE",
            detail={"field": "tz", "value": name},
        )


def parse_resolution(raw: Any) -> ResolutionRequest | None:
    """
    {"method": "dual_entry" | "override" | "cancel", "notes": "..."} → ResolutionRequest。

    缺省（None）表示第一次提交，需要做冲突检测。
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidResolution(
            message="resolution must be an object with a 'method'.",
            detail={"allowed": [METHOD_DUAL_ENTRY, METHOD_OVERRIDE, METHOD_CANCEL]},
        )

    method = _clean(raw.get("method")).lower()
    notes = _clean(raw.get("notes")) or None

    if method == METHOD_DUAL_ENTRY:
        return DualEntry(notes=notes)
    if method == METHOD_OVERRIDE:
        return Override(notes=notes)
    if method == METHOD_CANCEL:
        return Cancel()

    raise InvalidResolution(
        message=f"Unsupported conflict resolution method: {raw.get('method')!r}.",
        detail={"allowed": [METHOD_DUAL_ENTRY, METHOD_OVERRIDE, METHOD_CANCEL]},
    )


def parse_administration(raw: Any, medication_id: str | None = None) -> AdministrationInput:
    """
    单条给药请求 → AdministrationInput。

    medication_id 来自 URL 时优先于请求体里的同名字段。
    """
    if not isinstance(raw, dict):
        raise ValidationError(message="Request body must be a JSON object.")

    errors = []
    medication_id = _clean(medication_id or raw.get("medication_id"))
    caregiver_id = _clean(raw.get("caregiver_id") or raw.get("administered_by"))
    role = _clean(raw.get("role") or raw.get("administered_by_role")).lower()
    status = _clean(raw.get("status")).lower() or STATUS_ADMINISTERED

    if not medication_id:
        errors.append({"field": "medication_id", "message": "medication_id is required."})
    if not caregiver_id:
        errors.append({"field": "caregiver_id", "message": "caregiver_id is required."})
    if not role:
        errors.append({"field": "role", "message": "role is required."})

    administered_at = None
    try:
        administered_at = parse_instant(raw.get("administered_at"))
    except ValidationError as exc:
        errors.append({"field": "administered_at", "message": exc.message})

    if errors:
        raise ValidationError(
            message="Request validation failed.",
            detail={"errors": errors},
        )

    return AdministrationInput(
        medication_id=medication_id,
        administered_at=administered_at,
        caregiver_id=caregiver_id,
        role=role,
        notes=_clean(raw.get("notes")) or None,
        status=status,
    )


def parse_batch(raw: Any) -> tuple[list[AdministrationInput], ResolutionRequest | None]:
    """
    {"items": [...], "resolution": {...}?} → (items, resolution)。

    批量请求里的 caregiver_id / role 可以写在顶层，条目里没写时继承。
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("items"), list) or not raw["items"]:
        raise ValidationError(
            message="items must be a non-empty list.",
            detail={"errors": [{"field": "items", "message": "items must be a non-empty list."}]},
        )

    shared = {key: raw[key] for key in ("caregiver_id", "role") if raw.get(key)}
    items = []
    errors = []
    for i, entry in enumerate(raw["items"]):
        try:
            items.append(parse_administration({**shared, **entry} if isinstance(entry, dict) else entry))
        except ValidationError as exc:
            for err in (exc.detail or {}).get("errors", [{"field": "", "message": exc.message}]):
                errors.append({"field": f"items[{i}].{err['field']}".rstrip("."), "message": err["message"]})

    if errors:
        raise ValidationError(
            message="Request validation failed.",
            detail={"errors": errors},
        )

    return items, parse_resolution(raw.get("resolution"))
