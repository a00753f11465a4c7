"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / storage_error / invalid_resolution / not_found）
- code:        业务错误码（INVALID_INSTANT / MEDICATION_NOT_FOUND / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

注意：冲突（ConflictsFound）不是异常，不在这里。
service 层把异常转成 Failed 结果；View 层 raise Failed.error，exception_handler 统一格式化。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败。任何 store 访问之前抛出，400，不自动重试。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class StorageError(BaseAppException):
    """
    存储层故障（数据库不可达、写入失败等），503。

    调用方可以整体重试 record_administration，重试时冲突检测会重新执行。
    """

    type = 'storage_error'
    code = 'STORAGE_UNAVAILABLE'
    http_status = 503
    # 响应头 Retry-After（秒）
    retry_after = 5


class InvalidResolution(BaseAppException):
    """resolution 不是 DualEntry / Override / Cancel 之一。属于调用方编程错误，400。"""

    type = 'invalid_resolution'
    code = 'INVALID_RESOLUTION'
    http_status = 400


class NotFoundError(BaseAppException):
    """HTTP 查询的资源不存在，404。"""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404
