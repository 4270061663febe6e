"""
Gamma Analytics
===============

Dealer-positioning read from an options-derived snapshot:

- regime: positive (dealers long gamma, mean reversion), negative (dealers
  short gamma, trend amplification) or neutral (no usable signal, or price
  sitting on the zero-gamma flip)
- call/put walls, max pain, zero-gamma flip, expected move
- proximity bands and edge-triggered proximity transitions

Bad input never raises here: a malformed snapshot yields a neutral,
invalid GammaExposure whose proximity flags are all false.
"""

import math
import threading
import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from core.market_data.models import OptionContract, OptionsSnapshot

logger = logging.getLogger(__name__)

TRADING_DAYS = 252


class GammaRegime(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class DealerPositioning(str, Enum):
    LONG_GAMMA = "long_gamma"
    SHORT_GAMMA = "short_gamma"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class GammaExposure:
    symbol: str
    current_price: float
    max_pain: Optional[float] = None
    gamma_flip: Optional[float] = None
    call_wall: Optional[float] = None
    put_wall: Optional[float] = None
    net_gamma: float = 0.0
    regime: GammaRegime = GammaRegime.NEUTRAL
    dealer_positioning: DealerPositioning = DealerPositioning.NEUTRAL
    expected_move: Optional[float] = None
    expected_move_weekly: Optional[float] = None
    summary: str = ""
    valid: bool = False
    quote_timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "max_pain": self.max_pain,
            "gamma_flip": self.gamma_flip,
            "call_wall": self.call_wall,
            "put_wall": self.put_wall,
            "net_gamma": self.net_gamma,
            "regime": self.regime.value,
            "dealer_positioning": self.dealer_positioning.value,
            "expected_move": self.expected_move,
            "expected_move_weekly": self.expected_move_weekly,
            "summary": self.summary,
            "trading_implication": trading_implication(self),
            "valid": self.valid,
            "quote_timestamp": self.quote_timestamp.isoformat() if self.quote_timestamp else None,
        }


@dataclass(frozen=True)
class GammaProximity:
    near_call_wall: bool = False
    near_put_wall: bool = False
    near_zero_gamma: bool = False
    above_zero_gamma: Optional[bool] = None


NO_PROXIMITY = GammaProximity()


@dataclass(frozen=True)
class GammaEdges:
    """Transitions between two consecutive proximity reads."""
    entered_call_wall: bool = False
    left_call_wall: bool = False
    entered_put_wall: bool = False
    left_put_wall: bool = False
    entered_zero_gamma: bool = False
    crossed_zero_gamma: bool = False

    @property
    def any(self) -> bool:
        return any((self.entered_call_wall, self.left_call_wall, self.entered_put_wall,
                    self.left_put_wall, self.entered_zero_gamma, self.crossed_zero_gamma))


NO_EDGES = GammaEdges()


def _finite_positive(value) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def neutral_exposure(symbol: str, price: float, quote_timestamp: Optional[datetime] = None,
                     reason: str = "No options data") -> GammaExposure:
    return GammaExposure(
        symbol=symbol,
        current_price=price,
        summary=f"{reason}. Gamma regime treated as neutral.",
        valid=False,
        quote_timestamp=quote_timestamp,
    )


class GammaAnalytics:
    """Stateless gamma computations, parameterised by proximity bands."""

    def __init__(self, wall_proximity_pct: float = 1.0, zero_gamma_proximity_pct: float = 0.5):
        self.wall_proximity_pct = wall_proximity_pct
        self.zero_gamma_proximity_pct = zero_gamma_proximity_pct

    # ============================================================
    # SNAPSHOT -> EXPOSURE
    # ============================================================

    def from_snapshot(self, symbol: str, snapshot: Optional[OptionsSnapshot], price: float,
                      quote_timestamp: Optional[datetime] = None) -> GammaExposure:
        if snapshot is None:
            return neutral_exposure(symbol, price, quote_timestamp)
        if not _finite_positive(price):
            return neutral_exposure(symbol, price, quote_timestamp, reason="Invalid price")

        if snapshot.has_chain:
            try:
                return self.from_chain(symbol, price, snapshot.contracts, quote_timestamp)
            except (ValueError, ZeroDivisionError, TypeError) as e:
                logger.warning(f"{symbol}: malformed option chain ({e})")
                return neutral_exposure(symbol, price, quote_timestamp, reason="Malformed option chain")

        call_wall, put_wall = snapshot.call_wall, snapshot.put_wall
        if not (_finite_positive(call_wall) and _finite_positive(put_wall)):
            return neutral_exposure(symbol, price, quote_timestamp, reason="Incomplete options snapshot")

        net = snapshot.net_gamma
        if net is None or not isinstance(net, (int, float)) or not math.isfinite(net):
            return neutral_exposure(symbol, price, quote_timestamp, reason="Incomplete options snapshot")

        zero_gamma = snapshot.zero_gamma if _finite_positive(snapshot.zero_gamma) else None
        max_pain = snapshot.max_pain if _finite_positive(snapshot.max_pain) else None

        regime = self.classify_regime(net, price, zero_gamma)
        positioning = DealerPositioning.LONG_GAMMA if net > 0 else (
            DealerPositioning.SHORT_GAMMA if net < 0 else DealerPositioning.NEUTRAL)

        exposure = GammaExposure(
            symbol=symbol,
            current_price=price,
            max_pain=max_pain,
            gamma_flip=zero_gamma,
            call_wall=float(call_wall),
            put_wall=float(put_wall),
            net_gamma=float(net),
            regime=regime,
            dealer_positioning=positioning,
            valid=True,
            quote_timestamp=quote_timestamp,
        )
        return _with_summary(exposure)

    def from_chain(self, symbol: str, price: float, contracts: List[OptionContract],
                   quote_timestamp: Optional[datetime] = None) -> GammaExposure:
        """Derive walls, max pain, flip and dealer positioning from a raw chain."""
        calls_oi: Dict[float, float] = defaultdict(float)
        puts_oi: Dict[float, float] = defaultdict(float)
        net_by_strike: Dict[float, float] = defaultdict(float)
        ivs = []

        for c in contracts:
            if not (_finite_positive(c.strike) and math.isfinite(c.open_interest) and math.isfinite(c.gamma)):
                raise ValueError(f"bad contract at strike {c.strike}")
            exposure = c.gamma * c.open_interest * 100
            if c.option_type == "call":
                calls_oi[c.strike] += c.open_interest
                net_by_strike[c.strike] += exposure
            elif c.option_type == "put":
                puts_oi[c.strike] += c.open_interest
                net_by_strike[c.strike] -= exposure
            else:
                raise ValueError(f"unknown option type {c.option_type!r}")
            if c.implied_volatility is not None and math.isfinite(c.implied_volatility) and c.implied_volatility > 0:
                ivs.append(c.implied_volatility)

        strikes = sorted(net_by_strike)
        net_values = np.array([net_by_strike[k] for k in strikes])

        max_pain = calculate_max_pain(strikes, calls_oi, puts_oi)

        above = [k for k in strikes if k > price and calls_oi.get(k, 0) > 0]
        call_wall = max(above, key=lambda k: calls_oi[k]) if above else price * 1.05
        below = [k for k in strikes if k < price and puts_oi.get(k, 0) > 0]
        put_wall = max(below, key=lambda k: puts_oi[k]) if below else price * 0.95

        gamma_flip = find_gamma_flip(strikes, net_values)

        total_net = float(net_values.sum())
        max_abs = float(np.abs(net_values).max()) if len(net_values) else 0.0
        if max_abs > 0 and total_net > max_abs * 0.5:
            positioning = DealerPositioning.LONG_GAMMA
        elif max_abs > 0 and total_net < -max_abs * 0.5:
            positioning = DealerPositioning.SHORT_GAMMA
        else:
            positioning = DealerPositioning.NEUTRAL

        regime = self._regime_from_nearest_strike(price, strikes, net_values, gamma_flip)

        expected_move = weekly = None
        if ivs:
            avg_iv = float(np.mean(ivs))
            expected_move = price * avg_iv * math.sqrt(1 / TRADING_DAYS)
            weekly = price * avg_iv * math.sqrt(5 / TRADING_DAYS)

        exposure = GammaExposure(
            symbol=symbol,
            current_price=price,
            max_pain=max_pain,
            gamma_flip=gamma_flip,
            call_wall=float(call_wall),
            put_wall=float(put_wall),
            net_gamma=total_net,
            regime=regime,
            dealer_positioning=positioning,
            expected_move=round(expected_move, 2) if expected_move is not None else None,
            expected_move_weekly=round(weekly, 2) if weekly is not None else None,
            valid=True,
            quote_timestamp=quote_timestamp,
        )
        return _with_summary(exposure)

    def _regime_from_nearest_strike(self, price, strikes, net_values, gamma_flip) -> GammaRegime:
        if not strikes:
            return GammaRegime.NEUTRAL
        if gamma_flip is not None and abs(price - gamma_flip) / price * 100 <= self.zero_gamma_proximity_pct:
            return GammaRegime.NEUTRAL
        nearest_idx = int(np.argmin([abs(k - price) for k in strikes]))
        nearest = float(net_values[nearest_idx])
        threshold = float(np.abs(net_values).max()) * 0.1
        if nearest > threshold:
            return GammaRegime.POSITIVE
        if nearest < -threshold:
            return GammaRegime.NEGATIVE
        return GammaRegime.NEUTRAL

    def classify_regime(self, net_gamma: float, price: float, zero_gamma: Optional[float]) -> GammaRegime:
        if net_gamma == 0:
            return GammaRegime.NEUTRAL
        if zero_gamma is not None and abs(price - zero_gamma) / price * 100 <= self.zero_gamma_proximity_pct:
            return GammaRegime.NEUTRAL
        return GammaRegime.POSITIVE if net_gamma > 0 else GammaRegime.NEGATIVE

    # ============================================================
    # PROXIMITY
    # ============================================================

    def proximity(self, gamma: Optional[GammaExposure], price: Optional[float] = None) -> GammaProximity:
        if gamma is None or not gamma.valid:
            return NO_PROXIMITY
        price = gamma.current_price if price is None else price
        if not _finite_positive(price):
            return NO_PROXIMITY

        def within(level, band):
            return _finite_positive(level) and abs(price - level) / price * 100 <= band

        return GammaProximity(
            near_call_wall=within(gamma.call_wall, self.wall_proximity_pct),
            near_put_wall=within(gamma.put_wall, self.wall_proximity_pct),
            near_zero_gamma=within(gamma.gamma_flip, self.zero_gamma_proximity_pct),
            above_zero_gamma=(price > gamma.gamma_flip) if _finite_positive(gamma.gamma_flip) else None,
        )


def calculate_max_pain(strikes: List[float], calls_oi: Dict[float, float], puts_oi: Dict[float, float]) -> Optional[float]:
    """Strike at which option holders' total intrinsic value is smallest."""
    if not strikes:
        return None
    best_strike, best_pain = None, math.inf
    for settle in strikes:
        pain = 0.0
        for k in strikes:
            pain += calls_oi.get(k, 0.0) * max(0.0, settle - k)
            pain += puts_oi.get(k, 0.0) * max(0.0, k - settle)
        if pain < best_pain:
            best_strike, best_pain = settle, pain
    return best_strike


def find_gamma_flip(strikes: List[float], net_values) -> Optional[float]:
    """Midpoint of the first pair of strikes where cumulative net gamma changes sign."""
    if len(strikes) < 2:
        return None
    cumulative = np.cumsum(net_values)
    for i in range(1, len(cumulative)):
        if cumulative[i - 1] == 0:
            continue
        if np.sign(cumulative[i - 1]) != np.sign(cumulative[i]):
            return round((strikes[i - 1] + strikes[i]) / 2, 2)
    return None


def _with_summary(g: GammaExposure) -> GammaExposure:
    if g.regime == GammaRegime.POSITIVE:
        text = "Positive gamma: dealers are long gamma and hedge against moves, expect mean reversion."
    elif g.regime == GammaRegime.NEGATIVE:
        text = "Negative gamma: dealers are short gamma and chase moves, expect trend amplification."
    else:
        text = "Neutral gamma: price is near the flip or the signal is weak, expect two-way chop."
    walls = f" Call wall {g.call_wall:.2f}, put wall {g.put_wall:.2f}."
    return replace(g, summary=text + walls)


def trading_implication(g: GammaExposure) -> str:
    if not g.valid:
        return "No reliable gamma read. Trade the chart levels only."
    if g.regime == GammaRegime.POSITIVE:
        return f"Fade extremes between {g.put_wall:.2f} and {g.call_wall:.2f}; breakouts tend to fail."
    if g.regime == GammaRegime.NEGATIVE:
        return "Moves can run. Respect momentum and size down, stops will get hunted."
    return "Flip zone. Wait for price to pick a side of zero gamma."


class GammaEdgeTracker:
    """
    Keeps the previous proximity read per symbol and reports transitions.
    A condition that stays true produces no further edges.
    """

    def __init__(self):
        self._previous: Dict[str, GammaProximity] = {}
        self._lock = threading.Lock()

    def update(self, symbol: str, current: GammaProximity) -> GammaEdges:
        with self._lock:
            prev = self._previous.get(symbol, NO_PROXIMITY)
            self._previous[symbol] = current

        crossed = (
            prev.above_zero_gamma is not None
            and current.above_zero_gamma is not None
            and prev.above_zero_gamma != current.above_zero_gamma
        )
        return GammaEdges(
            entered_call_wall=current.near_call_wall and not prev.near_call_wall,
            left_call_wall=prev.near_call_wall and not current.near_call_wall,
            entered_put_wall=current.near_put_wall and not prev.near_put_wall,
            left_put_wall=prev.near_put_wall and not current.near_put_wall,
            entered_zero_gamma=current.near_zero_gamma and not prev.near_zero_gamma,
            crossed_zero_gamma=crossed,
        )

    def previous(self, symbol: str) -> GammaProximity:
        with self._lock:
            return self._previous.get(symbol, NO_PROXIMITY)

    def forget(self, symbol: str):
        with self._lock:
            self._previous.pop(symbol, None)
