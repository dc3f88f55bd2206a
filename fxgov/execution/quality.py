from __future__ import annotations


def score_execution(
    slippage_pips: float,
    fill_latency_ms: float,
    spread_at_entry: float,
    expected_spread: float,
) -> int:
    """0-100 fill quality from slippage, latency, spread ratio and a fill bonus."""
    slippage_score = max(0.0, 40 - abs(slippage_pips) * 20)
    latency_score = max(0.0, 25 - (fill_latency_ms / 100) * 5)
    spread_ratio = spread_at_entry / max(expected_spread, 0.1)
    if spread_ratio <= 1.2:
        spread_score = 20
    elif spread_ratio <= 1.5:
        spread_score = 12
    else:
        spread_score = 5
    if slippage_pips <= 0.1:
        fill_bonus = 15
    elif slippage_pips <= 0.3:
        fill_bonus = 10
    else:
        fill_bonus = 5
    return int(round(min(100.0, slippage_score + latency_score + spread_score + fill_bonus)))
