"""
决策引擎异常定义
"""


class DecisionEngineError(Exception):
    """决策引擎异常基类"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DecisionEngineError, ValueError):
    """调用方违反约定（票数不对、投票人不是参与者等）"""


class StorageError(DecisionEngineError):
    """持久化层失败"""


class NotFoundError(DecisionEngineError, LookupError):
    """决策/选项/投票不存在"""
