"""WhatsApp Business Cloud API client"""

from typing import Dict

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import ConfigurationError
from cropgenius.core.settings import settings

GRAPH_BASE_URL = "https://graph.facebook.com/v17.0"


class WhatsAppClient(APIClient):
    service_name = "whatsapp"

    def __init__(self, access_token: str = None, phone_number_id: str = None, **kwargs):
        super().__init__(GRAPH_BASE_URL, **kwargs)
        self.access_token = access_token if access_token is not None else settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID

    async def send_text(self, to: str, body: str) -> Dict:
        if not self.access_token or not self.phone_number_id:
            raise ConfigurationError("WhatsApp API credentials not configured")

        return await self.post_json(
            f"/{self.phone_number_id}/messages",
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": body},
            },
            headers={"Authorization": f"Bearer {self.access_token}"},
        )
