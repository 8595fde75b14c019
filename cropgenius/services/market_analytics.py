"""
Market price analytics
Board aggregation, price trends and the organic premium table
"""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd

ORGANIC_PRICES = [
    {"crop": "Tomatoes", "conventional": 2.5, "organic": 4.2, "premium": 68, "trend": "up", "demand": "high"},
    {"crop": "Maize", "conventional": 1.8, "organic": 2.8, "premium": 56, "trend": "stable", "demand": "medium"},
    {"crop": "Beans", "conventional": 3.2, "organic": 5.1, "premium": 59, "trend": "up", "demand": "high"},
    {"crop": "Carrots", "conventional": 1.9, "organic": 3.4, "premium": 79, "trend": "up", "demand": "medium"},
    {"crop": "Spinach", "conventional": 2.1, "organic": 3.8, "premium": 81, "trend": "stable", "demand": "high"},
]

DEFAULT_ORGANIC_PREMIUM = 50


def classify_trend(change: float) -> str:
    """
    Classify a percentage price change

    Args:
        change: Percentage change

    Returns:
        'up' above +2%, 'down' below -2%, otherwise 'stable'
    """
    if change > 2:
        return "up"
    if change < -2:
        return "down"
    return "stable"


def _frame(rows: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    df["price"] = pd.to_numeric(df["price"], errors="coerce").fillna(0.0)
    if "volume" not in df:
        df["volume"] = 0.0
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0)
    if "market_name" not in df:
        df["market_name"] = "Unknown Market"
    df["market_name"] = df["market_name"].fillna("Unknown Market")
    return df


def build_market_board(rows: List[Dict], commodity: str = "") -> Optional[Dict]:
    """
    Aggregate market_data rows (newest first) into the dashboard summary

    Args:
        rows: Price rows ordered by date descending, each with price, volume, market_name, date
        commodity: Commodity name echoed back

    Returns:
        Board dictionary, or None when there are no rows
    """
    if not rows:
        return None

    df = _frame(rows)

    latest = float(df["price"].iloc[0])
    previous = float(df["price"].iloc[1]) if len(df) > 1 else None
    change = latest - previous if previous is not None else 0.0
    change_percent = (change / previous * 100) if previous else 0.0

    # Per market: newest price, change vs that market's previous row, summed volume
    top_markets = []
    for name, group in df.groupby("market_name", sort=False):
        prices = group["price"].to_numpy()
        market_change = 0.0
        if len(prices) > 1 and prices[1]:
            market_change = (prices[0] - prices[1]) / prices[1] * 100
        top_markets.append({
            "name": name,
            "price": float(prices[0]),
            "change": round(float(market_change), 2),
            "volume": float(group["volume"].sum()),
        })
    top_markets.sort(key=lambda m: m["price"], reverse=True)

    market_cap = float((df["price"] * df["volume"]).sum()) / 1_000_000

    historical = [
        {"date": str(row.get("date") or row.get("created_at") or ""), "price": float(p), "volume": float(v)}
        for row, p, v in zip(reversed(rows), df["price"].iloc[::-1], df["volume"].iloc[::-1])
    ]

    return {
        "commodity": commodity,
        "current_price": latest,
        "price_change": round(change, 2),
        "price_change_percent": round(change_percent, 2),
        "volume": float(df["volume"].sum()),
        "high_24h": float(df["price"].max()),
        "low_24h": float(df["price"].min()),
        "trend": "up" if change >= 0 else "down",
        "market_cap": f"${market_cap:.1f}M",
        "top_markets": top_markets[:4],
        "historical": historical,
    }


def price_trend(history: List[Dict]) -> Dict:
    """
    Trend summary for a price history ordered oldest first

    Args:
        history: Rows with 'price' and 'date_recorded'

    Returns:
        current, average, trend, change percentage and the history
    """
    if not history:
        return {
            "current_price": 3500,
            "average_price": 3500,
            "trend": "stable",
            "change_percentage": 0,
            "historical_data": [],
        }

    prices = np.array([float(h["price"]) for h in history])
    current = float(prices[-1])
    oldest = float(prices[0])
    change = ((current - oldest) / oldest * 100) if oldest else 0.0

    return {
        "current_price": current,
        "average_price": round(float(prices.mean())),
        "trend": classify_trend(change),
        "change_percentage": round(change, 2),
        "historical_data": [{"date": str(h["date_recorded"]), "price": float(h["price"])} for h in history],
    }


def moving_average(history: List[Dict], window: int = 7) -> List[Dict]:
    """Rolling mean of prices ordered oldest first"""
    if not history:
        return []
    df = pd.DataFrame(history)
    df["price"] = pd.to_numeric(df["price"], errors="coerce")
    df["sma"] = df["price"].rolling(window=window, min_periods=1).mean()
    return [
        {"date": str(d), "price": float(p), "sma": round(float(s), 2)}
        for d, p, s in zip(df["date_recorded"], df["price"], df["sma"])
    ]


def _organic(crop: str) -> Optional[Dict]:
    lowered = crop.lower()
    return next((p for p in ORGANIC_PRICES if p["crop"].lower() == lowered), None)


def top_opportunities() -> List[Dict]:
    opportunities = [
        {
            "crop": p["crop"],
            "action": f"Switch to organic {p['crop'].lower()}",
            "profit": round((p["organic"] - p["conventional"]) * 100),
            "urgency": "high" if p["trend"] == "up" else "medium",
            "reason": f"{p['premium']}% premium, {p['demand']} demand, price trending {p['trend']}",
        }
        for p in ORGANIC_PRICES
        if p["premium"] > 60 and p["demand"] == "high"
    ]
    opportunities.sort(key=lambda o: o["profit"], reverse=True)
    return opportunities[:3]


def crop_premium(crop: str) -> int:
    price = _organic(crop)
    return price["premium"] if price else DEFAULT_ORGANIC_PREMIUM


def market_alert(crop: str) -> Optional[str]:
    price = _organic(crop)
    if not price:
        return None
    if price["premium"] > 70 and price["trend"] == "up":
        return f"🚀 {crop} organic premium is {price['premium']}% and rising! Perfect time to go organic."
    if price["demand"] == "high" and price["premium"] > 60:
        return f"🔥 High demand for organic {crop}! Premium at {price['premium']}%."
    return None
