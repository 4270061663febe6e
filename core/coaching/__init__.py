from core.coaching.models import (
    ActiveTrade, CoachingContext, CoachingMessage, CoachingMode, MarketSession, MessageType, Priority
)
from core.coaching.market_session import get_market_session
from core.coaching.rules import CoachingEngine, CoachingRule, calculate_r_multiple

__all__ = [
    'ActiveTrade',
    'CoachingContext',
    'CoachingMessage',
    'CoachingMode',
    'MarketSession',
    'MessageType',
    'Priority',
    'get_market_session',
    'CoachingEngine',
    'CoachingRule',
    'calculate_r_multiple',
]
