"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上。
所有响应前端都能用同一套逻辑判断：
  response.type === 'validation_error' / 'storage_error' / 'invalid_resolution' / 'not_found'  → 出问题了
  没有 type 字段  → 正常结果（包括 outcome=conflicts_found，冲突不是错误）

统一错误响应格式：
{
    "type":    "validation_error" | "storage_error" | "invalid_resolution" | "not_found",
    "code":    "INVALID_INSTANT",
    "message": "administered_at must be an ISO 8601 timestamp with a timezone offset.",
    "detail":  { ... }  // 可选
}

StorageError（503）额外带 Retry-After 头，调用方按此间隔整体重试即可，
重试时冲突检测会重新执行。
"""

import logging

from rest_framework.views import exception_handler as drf_default_handler
from rest_framework.exceptions import ValidationError as DRFValidationError
from django.http import JsonResponse

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式
    2. DRF 自带的 ValidationError → 转成统一格式
    3. 其他异常 → 交给 DRF 默认处理
    """

    # --- 1. 我们自己的异常体系 ---
    if isinstance(exc, BaseAppException):
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail

        response = JsonResponse(body, status=exc.http_status)
        if exc.http_status >= 500:
            view = context.get('view')
            logger.error("[ExceptionHandler] %s -> %d %s: %s",
                         type(view).__name__ if view else '-', exc.http_status, exc.code, exc.message)
        retry_after = getattr(exc, 'retry_after', None)
        if retry_after:
            response['Retry-After'] = str(retry_after)
        return response

    # --- 2. DRF 自带的 ValidationError ---
    if isinstance(exc, DRFValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    # --- 3. 其他的交给 DRF 默认处理 ---
    return drf_default_handler(exc, context)
