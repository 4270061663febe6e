"""
Coaching Rule Engine
====================

Declarative rules over a CoachingContext. Each rule is a named predicate
plus a message builder; evaluate() runs them all, orders the hits by
priority (rule order breaks ties) and keeps the top few.

The engine holds no state. The same context always yields the same
messages.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from core.analytics.fvg import zone_distance_pct
from core.analytics.gamma import GammaRegime
from core.analytics.models import Bias, Grade
from core.coaching.models import (
    ActiveTrade, CoachingContext, CoachingMessage, CoachingMode, MarketSession,
    MessageType, Priority
)
from core.setups.models import SetupStage

logger = logging.getLogger(__name__)

MAX_MESSAGES = 4
MAX_PAIN_PROXIMITY_PCT = 0.5
FVG_PROXIMITY_PCT = 0.5
OPPOSING_WALL_PCT = 1.0

GRADE_RANK = {Grade.SNIPER: 2, Grade.DECENT: 1, Grade.WEAK: 0}


def calculate_r_multiple(trade: ActiveTrade, price: float) -> float:
    risk = abs(trade.entry_price - trade.stop_loss)
    if risk == 0:
        return 0.0
    if trade.direction == Bias.BULLISH:
        pnl = price - trade.entry_price
    else:
        pnl = trade.entry_price - price
    return pnl / risk


@dataclass(frozen=True)
class CoachingRule:
    name: str
    predicate: Callable[[CoachingContext], bool]
    build: Callable[[CoachingContext], CoachingMessage]


# ============================================================
# PREDICATE HELPERS
# ============================================================

def _grade(ctx: CoachingContext) -> Optional[Grade]:
    return ctx.score.grade if ctx.score is not None else None


def _r(ctx: CoachingContext) -> Optional[float]:
    if ctx.active_trade is None:
        return None
    return calculate_r_multiple(ctx.active_trade, ctx.current_price)


def _r_payday(ctx: CoachingContext) -> bool:
    r = _r(ctx)
    return r is not None and r >= 2


def _r_lock_in(ctx: CoachingContext) -> bool:
    r = _r(ctx)
    return r is not None and 1 <= r < 2


def _r_in_green(ctx: CoachingContext) -> bool:
    r = _r(ctx)
    return r is not None and 0 < r < 1


def _r_near_stop(ctx: CoachingContext) -> bool:
    r = _r(ctx)
    return r is not None and -1 < r <= -0.5


def _r_stop_hit(ctx: CoachingContext) -> bool:
    r = _r(ctx)
    return r is not None and r <= -1


def _gamma_valid(ctx: CoachingContext) -> bool:
    return ctx.gamma is not None and ctx.gamma.valid


def _near_max_pain(ctx: CoachingContext) -> bool:
    if not _gamma_valid(ctx) or not ctx.gamma.max_pain or ctx.current_price <= 0:
        return False
    return abs(ctx.current_price - ctx.gamma.max_pain) / ctx.current_price * 100 < MAX_PAIN_PROXIMITY_PCT


def _near_fvg(side: str):
    def check(ctx: CoachingContext) -> bool:
        if ctx.fvg is None or ctx.current_price <= 0:
            return False
        zone = getattr(ctx.fvg, side)
        return zone is not None and zone_distance_pct(zone, ctx.current_price) < FVG_PROXIMITY_PCT
    return check


def _opposing_wall(ctx: CoachingContext) -> Optional[float]:
    if ctx.active_trade is None or not _gamma_valid(ctx) or ctx.current_price <= 0:
        return None
    if ctx.active_trade.direction == Bias.BULLISH:
        wall = ctx.gamma.call_wall
        in_path = wall is not None and wall >= ctx.current_price
    else:
        wall = ctx.gamma.put_wall
        in_path = wall is not None and wall <= ctx.current_price
    if in_path and abs(wall - ctx.current_price) / ctx.current_price * 100 <= OPPOSING_WALL_PCT:
        return wall
    return None


def _grade_deteriorated(ctx: CoachingContext) -> bool:
    grade = _grade(ctx)
    if ctx.active_trade is None or grade is None or ctx.previous_grade is None:
        return False
    return GRADE_RANK[grade] < GRADE_RANK[ctx.previous_grade]


def _scanning(ctx: CoachingContext) -> bool:
    return ctx.mode in (CoachingMode.SCAN, CoachingMode.FOCUS)


# ============================================================
# RULE SET
# ============================================================

def _build_ready(ctx):
    side = "long" if ctx.score and ctx.score.direction == Bias.BULLISH else "short"
    return CoachingMessage(
        title=f"READY: {ctx.symbol}",
        body=f"{ctx.patience_count} patience candles confirmed at the level. The plan is there, "
             f"take the {side} on your terms.",
        type=MessageType.OPPORTUNITY,
        priority=Priority.HIGH,
        action="Enter with the planned stop",
        rule="ready_setup",
    )


def _build_grade(ctx):
    grade = _grade(ctx)
    total = ctx.score.total
    if grade == Grade.SNIPER:
        return CoachingMessage(
            f"Sniper setup on {ctx.symbol}",
            f"Score {total:.0f}. Level, trend and patience are lining up. Get focused.",
            MessageType.OPPORTUNITY, Priority.HIGH, "Switch to focus mode", "grade_sniper")
    if grade == Grade.DECENT:
        return CoachingMessage(
            f"Watching {ctx.symbol}",
            f"Score {total:.0f}. Something is building but it is not there yet. Size down or wait.",
            MessageType.GUIDANCE, Priority.MEDIUM, "Keep it on the radar", "grade_decent")
    return CoachingMessage(
        f"Not here: {ctx.symbol}",
        f"Score {total:.0f}. No real setup. Do not force it, there is always another play.",
        MessageType.WARNING, Priority.LOW, "Find a better chart", "grade_weak")


def _build_max_pain(ctx):
    return CoachingMessage(
        "Max pain zone",
        f"Price {ctx.current_price:.2f} is sitting on max pain {ctx.gamma.max_pain:.2f}. "
        f"Expect pinning into expiry.",
        MessageType.GUIDANCE, Priority.MEDIUM, None, "max_pain")


def _build_fvg_bullish(ctx):
    zone = ctx.fvg.bullish
    return CoachingMessage(
        "Bullish FVG nearby",
        f"Unfilled bullish gap {zone.bottom_price:.2f}-{zone.top_price:.2f}. Watch for support there.",
        MessageType.OPPORTUNITY, Priority.MEDIUM, None, "fvg_bullish")


def _build_fvg_bearish(ctx):
    zone = ctx.fvg.bearish
    return CoachingMessage(
        "Bearish FVG nearby",
        f"Unfilled bearish gap {zone.bottom_price:.2f}-{zone.top_price:.2f}. Expect sellers there.",
        MessageType.WARNING, Priority.MEDIUM, None, "fvg_bearish")


def _build_payday(ctx):
    return CoachingMessage(
        "PAYDAY: 2R+",
        f"Trade at {_r(ctx):.1f}R. Take half off and let the rest ride. Never turn a winner into a loser.",
        MessageType.TRADE_MANAGEMENT, Priority.HIGH, "Take partials, trail the rest", "r_payday")


def _build_lock_in(ctx):
    return CoachingMessage(
        "1R: lock it in",
        f"At {_r(ctx):.2f}R. Stop to breakeven now, it is house money from here.",
        MessageType.TRADE_MANAGEMENT, Priority.MEDIUM, "Move stop to breakeven", "r_lock_in")


def _build_green(ctx):
    return CoachingMessage(
        "In the green",
        f"Trade at {_r(ctx):.2f}R. Let it work and stick to the plan.",
        MessageType.GUIDANCE, Priority.LOW, "Hold", "r_in_green")


def _build_near_stop(ctx):
    return CoachingMessage(
        "Getting close to the stop",
        f"Trade at {_r(ctx):.2f}R. Respect the stop. Do not move it to give it room.",
        MessageType.WARNING, Priority.HIGH, None, "r_near_stop")


def _build_stop_hit(ctx):
    return CoachingMessage(
        "STOP HIT",
        "Price is through your stop. If you are still in, get out and live to trade another day.",
        MessageType.WARNING, Priority.HIGH, "Exit now", "r_stop_hit")


def _build_opposing_wall(ctx):
    wall = _opposing_wall(ctx)
    name = "call wall" if ctx.active_trade.direction == Bias.BULLISH else "put wall"
    return CoachingMessage(
        f"Trading into the {name}",
        f"The {name} at {wall:.2f} is within 1%. Dealers defend it. Tighten up or take profits.",
        MessageType.WARNING, Priority.HIGH, "Manage the position", "opposing_wall")


def _build_deteriorated(ctx):
    return CoachingMessage(
        "Setup breaking down",
        f"Grade slipped from {ctx.previous_grade.value} to {_grade(ctx).value}. "
        f"The reason you got in is fading. Manage it or exit.",
        MessageType.WARNING, Priority.HIGH, "Consider an early exit", "grade_deteriorated")


# session -> (title, body, type, priority)
SESSION_MESSAGES = {
    MarketSession.PREMARKET: (
        "Premarket prep",
        "Mark your levels. Know PDH and PDL. Be ready before the bell.",
        MessageType.EDUCATION, Priority.LOW),
    MarketSession.OPEN: (
        "Market open",
        "Let the opening range form. Do not chase the first candles.",
        MessageType.GUIDANCE, Priority.MEDIUM),
    MarketSession.POWER_HOUR: (
        "Power hour",
        "Volatility picks up into the close. Manage open trades actively.",
        MessageType.GUIDANCE, Priority.MEDIUM),
    MarketSession.AFTER_HOURS: (
        "Review time",
        "Session is over. Journal what worked and what did not.",
        MessageType.EDUCATION, Priority.LOW),
    MarketSession.CLOSED: (
        "Markets closed",
        "Rest up and build tomorrow's watchlist.",
        MessageType.EDUCATION, Priority.LOW),
}


def _build_session(ctx):
    title, body, type_, priority = SESSION_MESSAGES[ctx.market_session]
    return CoachingMessage(title, body, type_, priority, None, "market_session")


DEFAULT_RULES: List[CoachingRule] = [
    CoachingRule(
        "ready_setup",
        lambda c: c.setup_stage == SetupStage.READY and c.patience_count >= 2 and c.active_trade is None,
        _build_ready,
    ),
    CoachingRule("grade", lambda c: _scanning(c) and c.score is not None, _build_grade),
    CoachingRule(
        "negative_gamma",
        lambda c: _gamma_valid(c) and c.gamma.regime == GammaRegime.NEGATIVE,
        lambda c: CoachingMessage(
            "Negative gamma",
            "Dealers are short gamma. Moves can accelerate. Size down and give stops room.",
            MessageType.WARNING, Priority.MEDIUM, None, "negative_gamma"),
    ),
    CoachingRule(
        "positive_gamma",
        lambda c: _gamma_valid(c) and c.gamma.regime == GammaRegime.POSITIVE,
        lambda c: CoachingMessage(
            "Positive gamma",
            "Dealers are long gamma and fade extremes. Expect a range.",
            MessageType.GUIDANCE, Priority.LOW, None, "positive_gamma"),
    ),
    CoachingRule("max_pain", _near_max_pain, _build_max_pain),
    CoachingRule("fvg_bullish", _near_fvg("bullish"), _build_fvg_bullish),
    CoachingRule("fvg_bearish", _near_fvg("bearish"), _build_fvg_bearish),
    CoachingRule("r_payday", _r_payday, _build_payday),
    CoachingRule("r_lock_in", _r_lock_in, _build_lock_in),
    CoachingRule("r_in_green", _r_in_green, _build_green),
    CoachingRule("r_near_stop", _r_near_stop, _build_near_stop),
    CoachingRule("r_stop_hit", _r_stop_hit, _build_stop_hit),
    CoachingRule("opposing_wall", lambda c: _opposing_wall(c) is not None, _build_opposing_wall),
    CoachingRule("grade_deteriorated", _grade_deteriorated, _build_deteriorated),
    CoachingRule("market_session", lambda c: True, _build_session),
]


class CoachingEngine:

    def __init__(self, rules: Optional[Sequence[CoachingRule]] = None, max_messages: int = MAX_MESSAGES):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.max_messages = max_messages

    def evaluate(self, context: CoachingContext) -> List[CoachingMessage]:
        hits = []
        for order, rule in enumerate(self.rules):
            try:
                if rule.predicate(context):
                    hits.append((order, rule.build(context)))
            except Exception as e:
                logger.error(f"Coaching rule {rule.name} failed for {context.symbol}: {e}", exc_info=True)
        hits.sort(key=lambda item: (item[1].priority.rank, item[0]))
        return [message for _, message in hits[:self.max_messages]]

    def primary(self, context: CoachingContext) -> Optional[CoachingMessage]:
        messages = self.evaluate(context)
        return messages[0] if messages else None
