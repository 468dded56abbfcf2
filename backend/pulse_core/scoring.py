"""Confidence scoring for candidate signals."""

from pulse_core.models import Direction, IndicatorSet, Trend

CONFIDENCE_FLOOR = 75
CONFIDENCE_CEILING = 99


def _rsi_points(value: float, direction: Direction) -> int:
    if direction == Direction.BUY:
        if value < 30:
            return 30
        if value < 40:
            return 20
    else:
        if value > 70:
            return 30
        if value > 60:
            return 20
    return 10


def confidence_score(indicators: IndicatorSet, direction: Direction) -> int:
    """
    Score how strongly the indicators agree with a proposed direction.

    Weights: RSI up to 30, MACD up to 25, EMA ordering up to 20,
    volume up to 15, trend up to 10. Indicators that are missing add
    nothing.

    Returns:
        Integer in [CONFIDENCE_FLOOR, CONFIDENCE_CEILING]
    """
    is_buy = direction == Direction.BUY
    score = 0
    factors = 0

    if indicators.rsi is not None:
        score += _rsi_points(indicators.rsi, direction)
        factors += 1

    if indicators.macd is not None:
        histogram = indicators.macd.histogram
        aligned = histogram > 0 if is_buy else histogram < 0
        score += 25 if aligned else 10
        factors += 1

    if indicators.has_emas:
        if is_buy:
            aligned = indicators.ema_fast > indicators.ema_slow
        else:
            aligned = indicators.ema_fast < indicators.ema_slow
        score += 20 if aligned else 5
        factors += 1

    if indicators.volume is not None:
        if indicators.volume.is_high:
            score += 15
        elif indicators.volume.ratio > 1.2:
            score += 10
        else:
            score += 5
        factors += 1

    if indicators.trend is not None:
        wanted = Trend.UP if is_buy else Trend.DOWN
        score += 10 if indicators.trend == wanted else 5
        factors += 1

    if factors == 0:
        return CONFIDENCE_FLOOR

    return min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, round(score)))
