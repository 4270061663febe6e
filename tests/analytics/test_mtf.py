from core.analytics.models import Bias, MTFRead
from core.analytics.mtf import analyze_mtf, analyze_timeframe, higher_timeframes
from core.market_data.models import candles_to_frame


def test_uptrend_reads_bullish(rising_bars):
    read = analyze_timeframe("5m", candles_to_frame(rising_bars))
    assert read.trend == Bias.BULLISH
    assert read.ema_position == "above_all"
    assert read.momentum == "moderate"


def test_flat_tape_is_neutral(flat_bars):
    read = analyze_timeframe("5m", candles_to_frame(flat_bars))
    assert read.trend == Bias.NEUTRAL
    assert read.momentum == "weak"


def test_short_history_is_neutral(rising_bars):
    assert analyze_timeframe("1h", candles_to_frame(rising_bars[:10])) == MTFRead("1h")


def test_missing_frames_read_neutral(rising_bars):
    reads = analyze_mtf({"5m": candles_to_frame(rising_bars)}, ("5m", "1h"))
    assert [r.timeframe for r in reads] == ["5m", "1h"]
    assert reads[1].trend == Bias.NEUTRAL


def test_higher_timeframes():
    reads = [MTFRead("2m"), MTFRead("5m"), MTFRead("1h"), MTFRead("daily"), MTFRead("monthly")]
    assert [r.timeframe for r in higher_timeframes("5m", reads)] == ["1h", "daily"]
    assert higher_timeframes("3m", reads) == []
