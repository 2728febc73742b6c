"""版本信息"""

__version__ = "0.1.0"
__author__ = "ytag"
__description__ = "基于 SQLAlchemy 的多上下文标签库"
