from __future__ import annotations

from dataclasses import asdict
from typing import Iterable

import pandas as pd

from tradeguard.domain.models import Position

POSITION_COLUMNS = [
    "ticket",
    "symbol",
    "side",
    "volume",
    "entry_price",
    "current_profit",
    "stop_loss",
    "take_profit",
]


def positions_frame(positions: Iterable[Position]) -> pd.DataFrame:
    rows = [asdict(p) for p in positions]
    return pd.DataFrame(rows, columns=POSITION_COLUMNS)


def position_stats(positions: Iterable[Position]) -> pd.DataFrame:
    """
    Per-symbol exposure: count, total volume, total profit.
    """
    df = positions_frame(positions)
    if df.empty:
        return pd.DataFrame(columns=["count", "total_volume", "total_profit"]).rename_axis("symbol")

    return (
        df.groupby("symbol")
        .agg(
            count=("ticket", "count"),
            total_volume=("volume", "sum"),
            total_profit=("current_profit", "sum"),
        )
        .sort_index()
    )


def total_profit(positions: Iterable[Position], symbol: str | None = None) -> float:
    df = positions_frame(positions)
    if symbol is not None:
        df = df[df["symbol"] == symbol]
    return float(df["current_profit"].sum())


def profitable(positions: Iterable[Position]) -> list[Position]:
    return [p for p in positions if p.current_profit > 0]


def losing(positions: Iterable[Position]) -> list[Position]:
    return [p for p in positions if p.current_profit < 0]
