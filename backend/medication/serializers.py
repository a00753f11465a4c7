"""
Response serializers — 领域对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
输入解析和校验在 medication/intake.py。

约定：错误响应才有 type 字段（由 exception_handler 生成）。
冲突报告是正常结果，用 outcome 字段区分，不带 type。
"""

from .conflicts import format_conflict_message


def _hours(window):
    return window.total_seconds() / 3600


def serialize_record(record):
    return {
        'id': record.id,
        'medication_id': record.medication_id,
        'administered_at': record.administered_at.isoformat(),
        'administered_by': record.administered_by,
        'administered_by_role': record.administered_by_role,
        'status': record.status,
        'notes': record.notes,
        'conflict_of': list(record.conflict_of),
        'supersedes': record.supersedes,
        'superseded_by': record.superseded_by,
        'active': record.is_active,
        'resolution_method': record.resolution_method,
        'resolution_notes': record.resolution_notes,
        'created_at': record.created_at.isoformat() if record.created_at else None,
    }


def serialize_candidate(candidate):
    return {
        **serialize_record(candidate.record),
        'display_role': candidate.display_role,
    }


def serialize_recorded(result):
    if result.cancelled:
        return {
            'outcome': 'cancelled',
            'records': [],
            'message': 'Administration cancelled. Nothing was recorded.',
        }
    return {
        'outcome': 'recorded',
        'records': [serialize_record(r) for r in result.records],
        'message': 'Medication administration recorded.',
    }


def serialize_conflicts(candidates, window):
    return {
        'outcome': 'conflicts_found',
        'window_hours': _hours(window),
        'conflicts': [serialize_candidate(c) for c in candidates],
        'message': format_conflict_message(list(candidates), window),
        'resolutions': ['dual_entry', 'override', 'cancel'],
    }


def serialize_batch(result):
    body = {
        'outcome': 'completed' if result.completed else 'conflicts_found',
        'recorded': [serialize_record(r) for r in result.recorded],
        'failures': [
            {'index': f.index, 'medication_id': f.item.medication_id, 'code': f.code, 'message': f.reason}
            for f in result.failures
        ],
        'cancelled': [item.medication_id for item in result.cancelled],
        'unprocessed': [serialize_input(item) for item in result.unprocessed],
    }
    if result.conflict is not None:
        body['conflict'] = {
            'index': result.conflict.index,
            'item': serialize_input(result.conflict.item),
            **serialize_conflicts(result.conflict.candidates, result.conflict.window),
        }
        del body['conflict']['outcome']
    return body


def serialize_input(item):
    return {
        'medication_id': item.medication_id,
        'administered_at': item.administered_at.isoformat(),
        'caregiver_id': item.caregiver_id,
        'role': item.role,
        'notes': item.notes,
        'status': item.status,
    }


def serialize_doses(care_plan_id, on_date, doses):
    results = [
        {
            'medication_id': dose.medication_id,
            'slot': dose.slot_label,
            'time': dose.slot_time.strftime('%H:%M'),
            'scheduled_at': dose.scheduled_at.isoformat(),
            'administered': dose.administered,
            'administration_id': dose.administration_id,
        }
        for dose in doses
    ]
    return {
        'care_plan_id': care_plan_id,
        'date': on_date.isoformat(),
        'count': len(results),
        'doses': results,
    }


def serialize_history(medication_id, records):
    return {
        'medication_id': str(medication_id),
        'count': len(records),
        'administrations': [serialize_record(r) for r in records],
    }
