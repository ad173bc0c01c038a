"""
httpx authentication flow that presents GitHub App JWTs.
"""

import threading
from typing import Generator, Optional

import httpx

from shared.clock import Clock, system_clock
from shared.config import BaseConfig
from shared.logging import get_logger
from .token_issuer import DEFAULT_EXPIRY_BUFFER_SECONDS, DEFAULT_TTL_SECONDS, TokenIssuer


class GitHubAppAuth(httpx.Auth):
    """Attach ``Authorization: Bearer <jwt>``, regenerating the JWT before it expires.

    The current token is owned by this auth object, not by the issuer. It is
    replaced whenever ``TokenIssuer.is_expired`` reports it inside the refresh
    buffer.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        refresh_buffer_seconds: int = DEFAULT_EXPIRY_BUFFER_SECONDS,
    ):
        self.issuer = issuer
        self.ttl_seconds = ttl_seconds
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.logger = get_logger("auth.http")
        self._token: Optional[str] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: BaseConfig, clock: Clock = system_clock) -> "GitHubAppAuth":
        """Build the issuer and refresh policy from settings."""
        return cls(
            TokenIssuer.from_config(config, clock=clock),
            ttl_seconds=config.jwt_ttl_seconds,
            refresh_buffer_seconds=config.jwt_expiry_buffer_seconds,
        )

    def current_token(self) -> str:
        """Return a token with at least ``refresh_buffer_seconds`` of life left."""
        with self._lock:
            if self._token is None or self.issuer.is_expired(self._token, self.refresh_buffer_seconds):
                self._token = self.issuer.generate(self.ttl_seconds)
                self.logger.info(
                    "Refreshed app JWT",
                    app_id=self.issuer.app_id,
                    expires_in=self.ttl_seconds
                )
            return self._token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.current_token()}"
        yield request
