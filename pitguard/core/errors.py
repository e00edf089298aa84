"""
Error taxonomy for PitGuard.

Ingestion and command errors are raised synchronously to the caller.
Delivery and stream errors are handled where they occur and never
propagate into the update loop.
"""


class PitGuardError(Exception):
    """PitGuard 예외 최상위 클래스"""


class ValidationError(PitGuardError):
    """필수 필드 누락 또는 형식 오류 (변경 전 거부)"""


class InvalidConfig(PitGuardError):
    """임계값 순서 위반 (기존 임계값 유지)"""


class NotFound(PitGuardError):
    """알 수 없는 구역/장치 참조"""


class DeliverySinkFailure(PitGuardError):
    """외부 알림 발송 실패"""


class StreamDisconnect(PitGuardError):
    """구독 전송 채널 끊김"""
