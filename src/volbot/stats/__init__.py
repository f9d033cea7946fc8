from .journal import TradeJournal
from .trade_stats import TradeStats

__all__ = ["TradeJournal", "TradeStats"]
