"""
异常定义模块
Exceptions Module

定义内容流水线中使用的异常类型。
Defines the exception taxonomy used across the content pipeline.

- ValidationFailure: 内容未通过校验，丢弃并计为跳过，不重试
- DuplicateFound: 重复文档，不是错误，单独计数
- TransientCollaboratorError: 外部协作方（抓取/发布/存储）单条失败，记录后继续
- InvalidTransition: 审核决定作用于错误状态，拒绝且不修改数据
- FatalConfigurationError: 缺少必要配置，在处理任何条目前中止运行
"""

from typing import Any


class PipelineError(Exception):
    """
    流水线异常基类
    Base class for all pipeline errors

    Attributes:
        message: 错误描述信息
                 Error description message
        context: 附加上下文（可选）
                 Additional context (optional)
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """格式化错误消息"""
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """转换为字典，便于日志记录"""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
        }


class ValidationFailure(PipelineError):
    """
    校验失败
    Validation Failure

    内容长度、格式等未通过质量门槛时抛出。
    Raised when content, length or format fails a quality gate.
    """


class DuplicateFound(PipelineError):
    """
    发现重复文档
    Duplicate Found

    Attributes:
        reason: 命中的去重规则：url / fingerprint / title
    """

    def __init__(self, message: str, reason: str, context: dict[str, Any] | None = None):
        self.reason = reason
        super().__init__(message, context)


class TransientCollaboratorError(PipelineError):
    """
    外部协作方的临时错误
    Transient Collaborator Error

    抓取器、发布器或仓库在处理单个条目时的 I/O 失败。
    I/O failure of the Fetcher, Publisher or Repository on a single item.
    """


class InvalidTransition(PipelineError):
    """
    非法的状态转换
    Invalid Transition

    Attributes:
        post_id: 帖子ID
        current_status: 当前状态
        action: 尝试执行的动作

    Examples:
        >>> raise InvalidTransition(post_id=7, current_status='approved', action='approve')
        InvalidTransition: Cannot apply 'approve' to post 7 in status 'approved'
    """

    def __init__(
        self,
        post_id: int | None,
        current_status: str | None,
        action: str,
        message: str | None = None,
    ):
        self.post_id = post_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            message or f"Cannot apply '{action}' to post {post_id} in status '{current_status}'",
            {'post_id': post_id, 'current_status': current_status, 'action': action},
        )


class FatalConfigurationError(PipelineError):
    """
    致命配置错误
    Fatal Configuration Error

    缺少关键词词典、权重表或阈值时抛出，运行在处理任何条目之前中止。
    Raised when keyword dictionaries, weight tables or thresholds are missing;
    the run aborts before any item is processed.

    Attributes:
        key: 出错的配置键（可选）
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message, {'key': key} if key else None)

    def _format_message(self) -> str:
        if self.key:
            return f"Configuration error: {self.message} (key: '{self.key}')"
        return f"Configuration error: {self.message}"
