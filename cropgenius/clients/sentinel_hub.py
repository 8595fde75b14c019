"""
Sentinel Hub client
OAuth client-credentials token plus the Statistical API for field NDVI
"""

import logging
import time
from typing import Dict, List, Optional

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import ConfigurationError, SatelliteDataError
from cropgenius.core.settings import settings

logger = logging.getLogger(__name__)

SENTINEL_BASE_URL = "https://services.sentinel-hub.com"
TOKEN_URL = f"{SENTINEL_BASE_URL}/auth/realms/main/protocol/openid-connect/token"
WMS_BASE_URL = f"{SENTINEL_BASE_URL}/ogc/wms"

NDVI_EVALSCRIPT = """//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B04", "B08", "dataMask"] }],
    output: [
      { id: "ndvi", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}

function evaluatePixel(sample) {
  let ndvi = (sample.B08 - sample.B04) / (sample.B08 + sample.B04);
  return { ndvi: [ndvi], dataMask: [sample.dataMask] };
}
"""


class SentinelHubClient(APIClient):
    service_name = "sentinel-hub"
    error_class = SatelliteDataError
    retry_methods = ("GET", "POST")

    def __init__(self, client_id: str = None, client_secret: str = None, instance_id: str = None,
                 clock=time.time, **kwargs):
        super().__init__(SENTINEL_BASE_URL, **kwargs)
        self.client_id = client_id if client_id is not None else settings.SENTINEL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.SENTINEL_CLIENT_SECRET
        self.instance_id = instance_id if instance_id is not None else settings.SENTINEL_INSTANCE_ID
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token
        if not self.configured:
            raise SatelliteDataError(
                "Sentinel Hub credentials not configured",
                code=ConfigurationError.code,
                status_code=503,
                retryable=False,
            )

        response = await self.request(
            "POST",
            TOKEN_URL,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        data = self._json(response)
        access_token = data.get("access_token")
        if not access_token:
            raise SatelliteDataError("Sentinel Hub did not return an access token")

        self._token = access_token
        self._token_expires_at = self._clock() + float(data.get("expires_in", 3600)) - 60
        logger.info("🛰️ Sentinel Hub token acquired")
        return access_token

    async def ndvi_statistics(self, bbox: List[float], start: str, end: str) -> List[Dict]:
        """
        Daily NDVI statistics over the bounding box [west, south, east, north].
        Returns [{"date": "YYYY-MM-DD", "mean": float, "min": float, "max": float, "stDev": float}]
        """
        payload = {
            "input": {
                "bounds": {
                    "bbox": bbox,
                    "properties": {"crs": "http://www.opengis.net/def/crs/EPSG/0/4326"},
                },
                "data": [{
                    "type": "sentinel-2-l2a",
                    "dataFilter": {"maxCloudCoverage": 20},
                }],
            },
            "aggregation": {
                "timeRange": {"from": start, "to": end},
                "aggregationInterval": {"of": "P1D"},
                "evalscript": NDVI_EVALSCRIPT,
                "resx": 10,
                "resy": 10,
            },
            "calculations": {
                "ndvi": {"statistics": {"default": {"stats": ["mean", "min", "max", "stDev"]}}},
            },
        }
        token = await self.token()
        data = await self.post_json(
            "/api/v1/statistics",
            payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        if not isinstance(data, dict) or "data" not in data:
            raise SatelliteDataError("Invalid Sentinel Hub statistics response")

        series = []
        for interval in data.get("data") or []:
            stats = (((interval.get("outputs") or {}).get("ndvi") or {}).get("bands") or {}).get("B0", {}).get("stats") or {}
            mean = stats.get("mean")
            if mean is None or mean != mean:  # NaN for fully clouded days
                continue
            series.append({
                "date": (interval.get("interval") or {}).get("from", "")[:10],
                "mean": float(mean),
                "min": stats.get("min"),
                "max": stats.get("max"),
                "stDev": stats.get("stDev"),
            })
        return series

    def wms_preview_url(self, bbox: List[float], start: str, end: str,
                        width: int = 512, height: int = 512) -> Optional[str]:
        """WMS GetMap URL for the configuration instance, or None when no instance is configured"""
        if not self.instance_id:
            return None
        west, south, east, north = bbox
        return (
            f"{WMS_BASE_URL}/{self.instance_id}?SERVICE=WMS&REQUEST=GetMap&LAYERS=NDVI&FORMAT=image/png"
            f"&BBOX={south},{west},{north},{east}&CRS=EPSG:4326"
            f"&WIDTH={width}&HEIGHT={height}&TIME={start[:10]}/{end[:10]}&MAXCC=20"
        )
