"""交易日志的业务异常

所有同步错误都在任何持仓/流水写入之前抛出，调用方据此决定是否重试。
"""


class TradeJournalError(Exception):
    """所有业务异常的基类，code 供 API 层序列化"""
    code = "TRADE_JOURNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DisciplineViolation(TradeJournalError):
    """违反交易纪律：盈亏比过低、非整手、超量卖出、做空"""
    code = "DISCIPLINE_VIOLATION"


class InvalidState(TradeJournalError):
    """计划当前状态不允许该操作，调用方需重新获取状态"""
    code = "INVALID_STATE"


class InvalidSetup(TradeJournalError):
    """数值输入退化（入场价等于止损价）"""
    code = "INVALID_SETUP"


class NotFound(TradeJournalError):
    """计划或执行记录不存在"""
    code = "NOT_FOUND"
