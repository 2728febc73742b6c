"""业务异常类定义

定义标签库使用的异常类体系。
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码枚举

    继承自 str，可以直接作为字符串使用。

    使用示例:
        from ytag.exceptions import ErrorCode, InvalidTagContextException

        try:
            Article.tagged_with(["python"], on="colour")
        except InvalidTagContextException as e:
            assert e.code == ErrorCode.INVALID_TAG_CONTEXT
    """

    # ==================== 通用错误 ====================
    BUSINESS_ERROR = "BUSINESS_ERROR"
    OPERATION_FAILED = "OPERATION_FAILED"

    # ==================== 验证相关 (422) ====================
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_PARAMETER = "INVALID_PARAMETER"

    # ==================== 标签相关 ====================
    INVALID_TAG_CONTEXT = "INVALID_TAG_CONTEXT"
    TAG_MODEL_NOT_CONFIGURED = "TAG_MODEL_NOT_CONFIGURED"


# 类型别名，支持枚举和字符串
ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    属性:
        message: 错误消息（面向用户）
        code: 错误代码（用于程序判断，支持 ErrorCode 枚举或字符串）
        status_code: HTTP 状态码
        details: 详细错误信息列表
        extra: 额外的上下文信息
    """

    def __init__(
        self,
        message: str,
        code: ErrorCodeType = ErrorCode.BUSINESS_ERROR,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            # 返回深拷贝，避免调用方修改返回值反向污染异常对象内部状态
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra)
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )


class ValidationException(BusinessException):
    """数据验证异常

    使用示例:
        raise ValidationException(
            "数据验证失败",
            details=["tag: 必须是列表"]
        )
    """

    def __init__(
        self,
        message: str = "数据验证失败",
        code: ErrorCodeType = ErrorCode.VALIDATION_ERROR,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            **extra
        )


class InvalidTagContextException(ValidationException, ValueError):
    """无效标签上下文异常

    请求了实体类型从未声明过的上下文时抛出。

    Attributes:
        context: 无效的上下文名
        entity_type: 实体类型名
        valid_contexts: 该类型已声明的上下文
    """

    def __init__(
        self,
        context: Any,
        entity_type: str,
        valid_contexts: Optional[List[str]] = None,
    ):
        self.context = context
        self.entity_type = entity_type
        self.valid_contexts = sorted(valid_contexts or [])
        super().__init__(
            f"{context} is not a valid tag context for {entity_type}",
            code=ErrorCode.INVALID_TAG_CONTEXT,
            details=[f"valid contexts: {self.valid_contexts}"],
            context=context,
            entity_type=entity_type,
        )


class TagParseException(ValidationException, ValueError):
    """标签字符串解析异常

    引号不匹配等格式错误时抛出，不做部分恢复。
    """

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(
            f"无法解析标签字符串 {value!r}: {reason}",
            code=ErrorCode.INVALID_FORMAT,
            value=value,
        )


class TagValidationException(ValidationException):
    """标签字段验证异常

    某个上下文的值不是列表时，保存被阻止并抛出此异常。

    Attributes:
        errors: 字段级错误 {context: [message, ...]}
    """

    def __init__(self, entity_type: str, errors: Dict[str, List[str]]):
        self.entity_type = entity_type
        self.errors = errors
        details = [
            f"{context}: {message}"
            for context, messages in errors.items()
            for message in messages
        ]
        super().__init__(
            f"{entity_type} 的标签验证失败",
            details=details,
            entity_type=entity_type,
            errors=errors,
        )


class TagModelNotConfiguredException(BusinessException):
    """Taggable 模型未配置标签模型"""

    def __init__(self, entity_type: str, attribute: str):
        super().__init__(
            f"{entity_type} 必须设置 {attribute} 属性",
            code=ErrorCode.TAG_MODEL_NOT_CONFIGURED,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            entity_type=entity_type,
            attribute=attribute,
        )


class Err:
    """异常快捷创建类

    使用示例:
        from ytag.exceptions import Err

        raise Err.invalid_context("colour", "Article")
        raise Err.parse('a,"b', "unexpected end of data")
        raise Err.invalid("数据验证失败", details=["tag 必须是列表"])
    """

    @staticmethod
    def invalid_context(context: Any, entity_type: str, valid_contexts=None) -> InvalidTagContextException:
        """无效标签上下文 (422)"""
        return InvalidTagContextException(context, entity_type, valid_contexts)

    @staticmethod
    def parse(value: str, reason: str) -> TagParseException:
        """标签字符串解析失败 (422)"""
        return TagParseException(value, reason)

    @staticmethod
    def invalid(message: str = "数据验证失败", **kwargs) -> ValidationException:
        """数据验证失败 (422)"""
        return ValidationException(message, **kwargs)

    @staticmethod
    def fail(message: str = "操作失败", **kwargs) -> BusinessException:
        """通用业务异常 (400)"""
        return BusinessException(message, **kwargs)
