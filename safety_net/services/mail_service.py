import logging
from typing import Any, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field

from safety_net.core.errors import DependencyError


class MailMessage(BaseModel):
    from_: str = Field(serialization_alias="from")
    to: List[str]
    subject: str
    html: str

    def payload(self) -> dict:
        return self.model_dump(by_alias=True)


class ResendMailClient:
    """Outbound mail through the Resend HTTP API."""

    def __init__(self, api_key: str, api_url: str = "https://api.resend.com/emails", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        })

    def post_email(self, payload: dict) -> Tuple[int, Any]:
        """POST one email and return (status_code, decoded body) without judging the status.

        Raises DependencyError only when no response was received at all.
        """
        try:
            resp = self._session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise DependencyError("send", f"Mail transport timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise DependencyError("send", f"Mail transport unreachable: {e}") from e
        try:
            data = resp.json()
        except ValueError:
            data = {"message": "Failed to parse JSON response"}
        return resp.status_code, data

    def send(self, message: MailMessage) -> Optional[str]:
        """Send a message and return the transport's message id."""
        status, data = self.post_email(message.payload())
        if not 200 <= status < 300:
            logging.error(f"Resend API error ({status}): {data}")
            detail = data.get("message") if isinstance(data, dict) and data.get("message") else f"HTTP {status}"
            raise DependencyError("send", f"Mail transport rejected the message: {detail}", status=status, body=data)
        return data.get("id") if isinstance(data, dict) else None

    def close(self) -> None:
        self._session.close()
