import logging

import httpx

from .config import settings

logger = logging.getLogger("notification_consumer")


class EmailDeliveryError(Exception):
    pass


class EmailSender:
    """
    Sends transactional email through an HTTP email API.
    """

    def __init__(self, api_url: str, api_key: str, from_address: str, timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    async def send(self, to: str, subject: str, html: str, text: str, client: httpx.AsyncClient | None = None):
        message = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        own_client = client is None
        if own_client:
            client = httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(self.api_url, json=message, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Failed to send '{subject}' to {to}: {e}") from e
        finally:
            if own_client:
                await client.aclose()

        logger.info(f"Sent email '{subject}' to {to}")


def get_email_sender() -> EmailSender:
    return EmailSender(
        api_url=settings.EMAIL_API_URL,
        api_key=settings.EMAIL_API_KEY,
        from_address=settings.EMAIL_FROM,
    )
