"""
Typed error conditions surfaced by the registration engine.

Every mutating operation either returns the updated record or raises one of
these. Each carries a stable machine code, the HTTP status the API maps it to,
and a bilingual message the presentation layer can show as-is.
"""

from typing import Any, Optional

from fastapi import status


class RegistrationError(Exception):
    """Base class for all engine errors."""

    code: str = "registration_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Registration request failed"
    message_zh: str = "报名请求失败"

    def __init__(self, detail: Optional[str] = None, **context: Any):
        self.detail = detail or self.message
        self.context = context
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "message_zh": self.message_zh,
            "detail": self.detail,
        }


class CapacityExceeded(RegistrationError):
    code = "capacity_exceeded"
    status_code = status.HTTP_409_CONFLICT
    message = "This event is fully booked. Please try another session."
    message_zh = "此活动已满额，请选择其他场次。"


class DuplicateQueueNumber(RegistrationError):
    code = "duplicate_queue_number"
    status_code = status.HTTP_409_CONFLICT
    message = "Registration could not be saved. Please try again."
    message_zh = "报名未能保存，请重试。"


class CancelledRegistrationConflict(RegistrationError):
    code = "cancelled_registration"
    status_code = status.HTTP_409_CONFLICT
    message = "This registration is cancelled. Uncancel it before marking attendance."
    message_zh = "此报名已取消，请先恢复报名再标记出席。"


class RegistrationConflict(RegistrationError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    message = "The registration is not in a state that allows this action."
    message_zh = "当前报名状态不允许此操作。"


class TokenMismatch(RegistrationError):
    code = "token_mismatch"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "QR code could not be verified. Please rescan or look up manually."
    message_zh = "二维码验证失败，请重新扫描或手动查找。"


class InvalidFormat(RegistrationError):
    code = "invalid_format"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid QR code format for this event."
    message_zh = "此活动的二维码格式无效。"


class InvalidFieldValue(RegistrationError):
    code = "invalid_field_value"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "The submitted value is not valid for this field."
    message_zh = "提交的内容不符合此栏位的格式。"


class NotFound(RegistrationError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Registration not found."
    message_zh = "未找到报名记录。"


class PermissionDenied(RegistrationError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    message = "You do not have permission to perform this action."
    message_zh = "您没有执行此操作的权限。"


class StoreUnavailable(RegistrationError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Service temporarily unavailable. Please try again."
    message_zh = "服务暂时不可用，请稍后再试。"
