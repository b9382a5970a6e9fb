"""
Leap 异常定义模块。

定义系统中所有自定义异常的层次结构：
- LeapError: 基类，所有已知错误
- ValidationError: 创建目标时输入非法
- NotFoundError: 目标 / 任务不存在
- InvalidStateError: 在错误的状态下操作任务
- StorageError: 持久化失败（必须上抛，不允许吞掉）
- RemoteGenerationError: 远程生成失败（由生成器内部降级处理）
"""
from typing import Optional


class LeapError(Exception):
    """Leap 基础异常类。

    所有系统内已知错误都继承自此类。
    捕获此类可以处理所有预期的错误情况。
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: 错误描述
            hint: 对用户的操作建议
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """返回用户友好的错误消息。"""
        if self.hint:
            return f"{self.message}\n💡 Hint: {self.hint}"
        return self.message


class ConfigError(LeapError):
    """配置文件缺失、格式错误或内容非法。"""

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"Check config file: {config_path}" if config_path else "Check config file format"
        super().__init__(message, hint)
        self.config_path = config_path


class ValidationError(LeapError):
    """Malformed input to goal creation (empty task list, blank destination...)."""


class EntitlementError(ValidationError):
    """The user is not entitled to create another goal."""

    def __init__(self, message: str = "Goal limit reached for the current plan"):
        super().__init__(message, hint="Archive or delete a goal, or upgrade the plan")


class NotFoundError(LeapError):
    """Unknown goal or task id."""

    def __init__(self, kind: str, object_id: str):
        super().__init__(f"{kind} not found for id: {object_id}")
        self.kind = kind
        self.object_id = object_id


class InvalidStateError(LeapError):
    """Operation not allowed in the task's current state (e.g. completing a locked task)."""


class DataIntegrityError(LeapError):
    """Stored data breaks a structural invariant (duplicate order, two current tasks)."""

    def __init__(self, message: str, goal_id: Optional[str] = None):
        super().__init__(message, hint="Stored goal data may be corrupted")
        self.goal_id = goal_id


class StorageError(LeapError):
    """Persistence failure. Always surfaced to the caller."""

    def __init__(self, message: str, path: Optional[str] = None):
        hint = f"Check storage at {path}" if path else None
        super().__init__(message, hint)
        self.path = path


class RemoteGenerationError(LeapError):
    """远程生成失败的基类。

    包含调用上下文信息。生成器捕获此类错误后降级到本地模板。
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        self.provider = provider or "unknown"
        self.model_name = model_name or "unknown"
        self.endpoint = endpoint

        context = f"[{self.provider}/{self.model_name}]"
        super().__init__(f"{context} {message}")

    def get_user_message(self) -> str:
        base = f"Itinerary generation failed ({self.provider}/{self.model_name}): {self.message}"
        if self.hint:
            return f"{base}\n💡 Hint: {self.hint}"
        return base


class RemoteConnectionError(RemoteGenerationError):
    """无法连接到生成服务。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Could not reach the generation service", provider, model_name, endpoint)
        self.hint = "Check the network connection or the configured base_url"


class RemoteAuthError(RemoteGenerationError):
    """生成服务鉴权失败。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Authentication rejected", provider, model_name, endpoint)
        self.hint = "Check that the API key is configured correctly"


class RemoteTimeoutError(RemoteGenerationError):
    """生成服务调用超时。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        message = "Request timed out"
        if timeout_seconds:
            message = f"Request timed out ({timeout_seconds}s)"
        super().__init__(message, provider, model_name, endpoint)
        self.timeout_seconds = timeout_seconds


class RemoteRateLimitError(RemoteGenerationError):
    """请求频率超限。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__("Rate limited", provider, model_name, endpoint)
        self.retry_after = retry_after
        if retry_after:
            self.hint = f"Retry after {retry_after} seconds"


class RemoteResponseError(RemoteGenerationError):
    """Non-200 status or an envelope without an assistant text payload."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, provider, model_name, endpoint)
        self.status_code = status_code


class RemoteParseError(RemoteGenerationError):
    """The assistant text is not JSON of the expected itinerary shape."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message, provider="parser")
        self.raw = raw
