"""Error taxonomy shared by the composer, the mode machines and the HTTP layer."""

from __future__ import annotations

from typing import Optional


class OmCardError(RuntimeError):
    status_code = 500
    default_message = "服务器错误，请稍后重试"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OmCardError):
    status_code = 400
    default_message = "请求参数无效"


class InvalidStyle(ValidationError):
    def __init__(self, style: object):
        self.style = style
        super().__init__(f"Unknown deck style: {style!r}")


class RateLimitExceeded(OmCardError):
    status_code = 429
    default_message = "请求过于频繁，请稍后再试"

    def __init__(self, retry_after: int, reset_time: float, message: Optional[str] = None):
        self.retry_after = retry_after
        self.reset_time = reset_time
        super().__init__(message)


class GenerationFailure(OmCardError):
    default_message = "图片生成失败，请稍后重试"


class ExhaustedPool(OmCardError):
    """Every id of a pre-rendered deck is excluded. Recovered by the composer."""


class InvalidTransition(OmCardError):
    status_code = 409

    def __init__(self, machine: str, stage: str, action: str):
        self.stage = stage
        self.action = action
        super().__init__(f"{machine}: cannot {action} while {stage}")


class PoolDataError(OmCardError):
    pass
