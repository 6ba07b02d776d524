"""Daily P&L from Dhan position rows."""

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from .models import DailyPnLSummary, to_decimal


def summarize_positions(
    positions: Iterable[Mapping[str, Any]], now: Optional[datetime] = None
) -> DailyPnLSummary:
    """Sum realized and unrealized profit across positions.

    Args:
        positions: Rows from the Dhan positions endpoint
        now: Snapshot time (defaults to now)

    Returns:
        DailyPnLSummary with one trade counted per position row
    """
    rows = [row for row in positions if isinstance(row, Mapping)]
    realized = sum((to_decimal(row.get("realizedProfit")) for row in rows), to_decimal(0))
    unrealized = sum((to_decimal(row.get("unrealizedProfit")) for row in rows), to_decimal(0))
    return DailyPnLSummary(
        total_realized_pnl=realized,
        total_unrealized_pnl=unrealized,
        total_daily_pnl=realized + unrealized,
        trade_count=len(rows),
        last_updated=now or datetime.now().astimezone(),
    )
