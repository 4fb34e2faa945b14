"""Token providers for authenticating the collaboration connection."""

import os
from typing import Optional

from .interfaces import TokenProvider


class StaticTokenProvider(TokenProvider):
    """Returns a fixed token (or None)."""

    def __init__(self, token: Optional[str]):
        self._token = token

    def get_access_token(self) -> Optional[str]:
        return self._token or None


class EnvTokenProvider(TokenProvider):
    """Reads the token from an environment variable on every call."""

    def __init__(self, variable: str = "MODELSYNC_ACCESS_TOKEN"):
        self.variable = variable

    def get_access_token(self) -> Optional[str]:
        token = os.getenv(self.variable, "").strip()
        return token or None
