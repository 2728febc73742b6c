"""异常处理模块

提供标签库的业务异常类。

使用示例:
    from ytag.exceptions import Err, InvalidTagContextException

    try:
        article.write_context("colour", ["red"])
    except InvalidTagContextException as e:
        print(e.to_dict())
"""

from .exceptions import (
    # ===== 推荐使用 =====
    Err,                            # 异常快捷创建类
    ErrorCode,                      # 错误代码枚举
    ErrorCodeType,

    # ===== 高级用法 =====
    BusinessException,              # 业务异常基类
    ValidationException,            # 422
    InvalidTagContextException,     # 无效上下文
    TagParseException,              # 标签字符串解析失败
    TagValidationException,         # 标签值验证失败
    TagModelNotConfiguredException, # 标签模型未配置
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "ValidationException",
    "InvalidTagContextException",
    "TagParseException",
    "TagValidationException",
    "TagModelNotConfiguredException",
]
