"""
HTTP 层。只做三件事：解析请求（intake）→ 调 service → 格式化响应（serializers）。

Failed 结果直接 raise 其中的异常，由 exception_handler 统一成错误格式；
冲突报告（ConflictsFound）是正常响应，200 + outcome=conflicts_found。
"""

from datetime import datetime, timedelta

from django.http import JsonResponse
from django.utils import timezone
from rest_framework.views import APIView

from .exceptions import NotFoundError
from .intake import parse_administration, parse_batch, parse_date, parse_instant, parse_resolution, parse_timezone
from .serializers import (
    serialize_batch,
    serialize_conflicts,
    serialize_doses,
    serialize_history,
    serialize_recorded,
)
from .services import AdministrationService
from .types import ConflictsFound, Failed

HISTORY_DEFAULT_DAYS = 7


def get_service():
    return AdministrationService()


def _raise_failed(result):
    if isinstance(result, Failed):
        raise result.error


class MedicationAdministrationView(APIView):
    """
    GET  /api/medications/<uuid>/administrations/?start=&end=  — 审计历史
    POST /api/medications/<uuid>/administrations/              — 记录一次给药
    """

    def get(self, request, medication_id):
        service = get_service()
        if service.store.get_medication(str(medication_id)) is None:
            raise NotFoundError(
                message='Medication not found',
                code='MEDICATION_NOT_FOUND',
                detail={'medication_id': str(medication_id)},
            )

        params = request.query_params
        end = parse_instant(params['end'], 'end') if params.get('end') else timezone.now()
        start = parse_instant(params['start'], 'start') if params.get('start') else end - timedelta(days=HISTORY_DEFAULT_DAYS)

        records = service.list_administrations(str(medication_id), start, end)
        return JsonResponse(serialize_history(medication_id, records))

    def post(self, request, medication_id):
        item = parse_administration(request.data, medication_id=str(medication_id))
        resolution = parse_resolution(request.data.get('resolution'))

        result = get_service().record(item, resolution=resolution)
        _raise_failed(result)

        if isinstance(result, ConflictsFound):
            return JsonResponse(serialize_conflicts(result.candidates, result.window), status=200)

        status = 200 if result.cancelled else 201
        return JsonResponse(serialize_recorded(result), status=status)


class AdministrationBatchView(APIView):
    """POST /api/administrations/batch/ — 一次勾选多个 dose"""

    def post(self, request):
        items, resolution = parse_batch(request.data)
        result = get_service().record_batch(items, resolution=resolution)
        return JsonResponse(serialize_batch(result), status=200)


class CarePlanDosesView(APIView):
    """GET /api/care-plans/<care_plan_id>/doses/?date=YYYY-MM-DD&tz=Area/City"""

    def get(self, request, care_plan_id):
        params = request.query_params
        tz = parse_timezone(params.get('tz'))
        on_date = parse_date(params['date']) if params.get('date') else datetime.now(tz).date()

        doses = get_service().scheduled_doses(care_plan_id, on_date, tz=tz)
        return JsonResponse(serialize_doses(care_plan_id, on_date, doses))
