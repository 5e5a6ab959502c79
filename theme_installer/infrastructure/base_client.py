"""Base class for async HTTP clients."""

import logging
from typing import Dict, Optional

import httpx

from ..application.exceptions import ConfigurationError


class BaseClient:
    """A base client that handles an async client and optional token."""

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            token: An optional authentication token. Public repositories can
                   be fetched without one.

        Raises:
            ConfigurationError: If the token appears to be a placeholder.
        """

        if token and "YOUR_" in token.upper():
            raise ConfigurationError(
                f"Authentication token for {self.__class__.__name__} is a "
                f"placeholder. Please check your config files."
            )

        self.client = client
        self.token = token or None
        self.logger = logging.getLogger(self.__class__.__name__)

    def _auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
