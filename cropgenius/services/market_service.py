"""
Live market prices for African crops
Live exchange APIs first, then prices cached in Supabase, then static reference prices
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx

from cropgenius.clients.base import USER_AGENT
from cropgenius.core.supabase import get_supabase
from cropgenius.services.market_analytics import build_market_board, classify_trend, price_trend

logger = logging.getLogger(__name__)

MARKET_APIS = {
    "kenya": {
        "kace": "https://api.kacekenya.co.ke/v1/prices",
        "ams": "https://ams.go.ke/api/v1/market-prices",
        "nairobi": "https://nairobi-commodity-exchange.com/api/prices",
    },
    "uganda": "https://uganda-commodity-exchange.org/api/market-data",
    "tanzania": "https://tanzania-commodity-exchange.go.tz/api/prices",
    "nigeria": "https://afex.ng/api/commodity-prices",
    "ghana": "https://gce.com.gh/api/market-data",
}

BASE_PRICES = {
    "maize": 3500,
    "beans": 8000,
    "rice": 4500,
    "tomato": 2500,
    "onion": 3000,
    "potato": 2800,
}
DEFAULT_BASE_PRICE = 3000

LIVE_TIMEOUT = 5.0
CACHE_WINDOW_DAYS = 7


def _number(*values) -> float:
    for value in values:
        if value in (None, ""):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return 0.0


def parse_market_response(data, source: str, region: str) -> List[Dict]:
    """Normalise the different exchange payload shapes into market price rows"""
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("data") or data.get("prices") or data.get("results") or [data]
    else:
        return []

    now = datetime.now(timezone.utc).isoformat()
    results = []
    for item in items:
        if not isinstance(item, dict):
            continue
        change = _number(item.get("change"), item.get("percentage_change"))
        results.append({
            "crop_name": item.get("commodity") or item.get("crop_name") or item.get("product") or "Unknown",
            "price": _number(item.get("price"), item.get("average_price"), item.get("market_price")),
            "currency": item.get("currency") or "KES",
            "location": item.get("market") or item.get("location") or region,
            "market_name": item.get("market_name") or f"{source} Market",
            "date_recorded": item.get("date") or item.get("recorded_at") or now,
            "source": source,
            "quality_grade": item.get("grade") or item.get("quality") or "Standard",
            "unit": item.get("unit") or "per bag",
            "trend": classify_trend(change),
            "change_percentage": change,
        })
    return results


def static_prices(crop: str, region: str) -> List[Dict]:
    return [{
        "crop_name": crop,
        "price": BASE_PRICES.get(crop.lower(), DEFAULT_BASE_PRICE),
        "currency": "KES",
        "location": region,
        "market_name": "Local Market",
        "date_recorded": datetime.now(timezone.utc).isoformat(),
        "source": "static",
        "quality_grade": "Standard",
        "unit": "per bag",
        "trend": "stable",
        "change_percentage": 0.0,
    }]


class MarketService:
    """
    Market prices, trends and the commodity board.
    """

    def __init__(self, db=None, http_client: Optional[httpx.AsyncClient] = None):
        self._db = db
        self._http = http_client

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    async def _fetch_source(self, http: httpx.AsyncClient, source: str, url: str,
                            param: str, crop: str, region: str) -> List[Dict]:
        try:
            response = await http.get(
                url,
                params={param: crop},
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=LIVE_TIMEOUT,
            )
            if response.status_code != 200:
                logger.warning(f"⚠️ {source} returned HTTP {response.status_code}")
                return []
            return parse_market_response(response.json(), source, region)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Failed to fetch from {source}: {e}")
            return []

    async def fetch_live(self, crop: str, region: str) -> List[Dict]:
        endpoints = MARKET_APIS.get(region, MARKET_APIS["kenya"])
        if isinstance(endpoints, dict):
            sources = [(source, url, "crop") for source, url in endpoints.items()]
        else:
            sources = [(region, endpoints, "commodity")]

        http = self._http or httpx.AsyncClient()
        try:
            batches = await asyncio.gather(*[
                self._fetch_source(http, source, url, param, crop, region)
                for source, url, param in sources
            ])
        finally:
            if self._http is None:
                await http.aclose()

        return [row for batch in batches for row in batch]

    def cache_prices(self, rows: List[Dict]):
        now = datetime.now(timezone.utc).isoformat()
        entries = [
            {
                "crop_name": r["crop_name"],
                "price": r["price"],
                "currency": r["currency"],
                "location": r["location"],
                "source": r["source"],
                "date_recorded": r["date_recorded"],
                "cached_at": now,
            }
            for r in rows
        ]
        try:
            self.db.table("market_prices")\
                .upsert(entries, on_conflict="crop_name,location,date_recorded")\
                .execute()
            logger.info(f"✅ Cached {len(entries)} market entries")
        except Exception as e:
            logger.warning(f"⚠️ Failed to cache market data: {e}")

    def cached_prices(self, crop: str, region: str) -> List[Dict]:
        since = (datetime.now(timezone.utc) - timedelta(days=CACHE_WINDOW_DAYS)).isoformat()
        try:
            response = self.db.table("market_prices")\
                .select("*")\
                .ilike("crop_name", f"%{crop}%")\
                .ilike("location", f"%{region}%")\
                .gte("date_recorded", since)\
                .order("date_recorded", desc=True)\
                .limit(10)\
                .execute()
        except Exception as e:
            logger.warning(f"⚠️ Error fetching cached market data: {e}")
            return []

        return [
            {
                "crop_name": item["crop_name"],
                "price": item["price"],
                "currency": item.get("currency") or "KES",
                "location": item["location"],
                "market_name": f"{item.get('source') or 'cached'} Market",
                "date_recorded": str(item["date_recorded"]),
                "source": item.get("source") or "cached",
                "quality_grade": "Standard",
                "unit": "per bag",
                "trend": "stable",
                "change_percentage": 0.0,
            }
            for item in (response.data or [])
        ]

    async def live_prices(self, crop: str, region: str = "kenya") -> Dict:
        logger.info(f"🌍 Fetching market data for {crop} in {region}")
        now = datetime.now(timezone.utc).isoformat()

        live = await self.fetch_live(crop, region)
        if live:
            self.cache_prices(live)
            return {"success": True, "data": live, "source": "live", "last_updated": now}

        cached = self.cached_prices(crop, region)
        if cached:
            return {"success": True, "data": cached, "source": "cached", "last_updated": now}

        return {"success": True, "data": static_prices(crop, region), "source": "static", "last_updated": now}

    def trends(self, crop: str, region: str = "kenya", days: int = 30) -> Dict:
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        try:
            response = self.db.table("market_prices")\
                .select("price, date_recorded")\
                .ilike("crop_name", f"%{crop}%")\
                .ilike("location", f"%{region}%")\
                .gte("date_recorded", since)\
                .order("date_recorded")\
                .execute()
            history = response.data or []
        except Exception as e:
            logger.error(f"❌ Error fetching market trends: {e}")
            history = []
        return price_trend(history)

    def board(self, commodity: str) -> Optional[Dict]:
        response = self.db.table("market_data")\
            .select("*")\
            .eq("commodity", commodity)\
            .order("date", desc=True)\
            .limit(50)\
            .execute()
        return build_market_board(response.data or [], commodity)
