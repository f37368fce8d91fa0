"""Reachability checks for the remote API."""

import logging

from .remote import ApiClient


logger = logging.getLogger(__name__)


class ConnectivityChecker:
    """Answers whether the API is reachable right now."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def is_connected(self) -> bool:
        connected = await self.api.health()
        if not connected:
            logger.info(f"API at {self.api.base_url} is unreachable")
        return connected
