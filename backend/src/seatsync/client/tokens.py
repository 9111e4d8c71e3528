"""Client for the external credential service used to join the media room."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from ..protocol import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_ROOM = "default-room"


class TokenRequestError(RuntimeError):
    """Raised when the credential service cannot issue a token."""


class TokenGrant(CamelModel):
    token: str
    identity: str
    room: str


class TokenClient:
    """Fetch media-room tokens with ``POST {base_url}/token``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, identity: str, room_name: str = DEFAULT_ROOM) -> TokenGrant:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    "/token", json={"identity": identity, "roomName": room_name}
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "Token request rejected",
                    extra={"status_code": exc.response.status_code, "identity": identity},
                )
                raise TokenRequestError(
                    f"Token service returned {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise TokenRequestError(f"Token service unreachable: {exc}") from exc

        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TokenRequestError("Token service returned an invalid payload") from exc


__all__ = ["DEFAULT_ROOM", "TokenClient", "TokenGrant", "TokenRequestError"]
