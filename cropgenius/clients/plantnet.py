"""PlantNet identification API client"""

import base64
import logging
from typing import Dict

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import AIServiceUnavailableError, ConfigurationError
from cropgenius.core.settings import settings

logger = logging.getLogger(__name__)

PLANTNET_BASE_URL = "https://my-api.plantnet.org/v2"


class PlantNetClient(APIClient):
    service_name = "plantnet"
    error_class = AIServiceUnavailableError

    def __init__(self, api_key: str = None, **kwargs):
        super().__init__(PLANTNET_BASE_URL, **kwargs)
        self.api_key = api_key if api_key is not None else settings.PLANTNET_API_KEY

    async def identify(self, image_base64: str, organ: str = "leaf") -> Dict:
        if not self.api_key:
            raise ConfigurationError("PLANTNET_API_KEY not configured")

        image_bytes = base64.b64decode(image_base64)
        response = await self.request(
            "POST",
            "/identify/all",
            params={"api-key": self.api_key},
            files={"images": ("crop-image.jpg", image_bytes, "image/jpeg")},
            data={"organs": organ},
        )
        return self._json(response)
