"""
GitHub App token issuance.

Produces the short-lived RS256 JWTs a GitHub App presents as
``Authorization: Bearer <token>`` and offers two distinct ways of reading them
back: ``verify`` (signature and temporal claims checked, a trust decision) and
``is_expired`` / ``expiration_time`` (claims decoded without any signature
check, for cheap pre-flight refresh decisions only).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt
from jose.exceptions import JOSEError

from shared.clock import Clock, system_clock, to_datetime
from shared.config import BaseConfig
from shared.errors import ConfigurationError, SigningError
from shared.logging import get_logger

ALGORITHM = "RS256"
DEFAULT_TTL_SECONDS = 600
DEFAULT_EXPIRY_BUFFER_SECONDS = 60
# iat is backdated to absorb clock drift against GitHub's servers
CLOCK_SKEW_SECONDS = 60

_PEM_ENVELOPE = re.compile(
    r"^-----BEGIN (RSA )?PRIVATE KEY-----[\s\S]*-----END (RSA )?PRIVATE KEY-----$"
)


@dataclass(frozen=True)
class AppCredential:
    """GitHub App identity: numeric app id and PEM signing key."""

    app_id: int
    private_key: str = field(repr=False)


class TokenIssuer:
    """Issues and inspects JWTs for a single GitHub App identity."""

    def __init__(self, app_id: int, private_key: str, clock: Clock = system_clock):
        self.credential = AppCredential(app_id=app_id, private_key=private_key)
        self.logger = get_logger("auth.issuer")
        self._clock = clock
        self._public_key = self._derive_public_key(private_key)

    @classmethod
    def from_config(cls, config: BaseConfig, clock: Clock = system_clock) -> "TokenIssuer":
        """Build an issuer from settings, failing fast on an unusable key."""
        if config.app_id is None or not config.private_key:
            raise ConfigurationError(
                "GitHub App id and private key are required",
                details={"app_id_set": config.app_id is not None,
                         "private_key_set": bool(config.private_key)}
            )

        if not cls.validate_key(config.private_key):
            raise ConfigurationError(
                "GitHub App private key cannot sign RS256 tokens",
                details={"app_id": config.app_id}
            )

        return cls(config.app_id, config.private_key, clock=clock)

    @property
    def app_id(self) -> int:
        return self.credential.app_id

    def generate(self, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
        """Generate a signed app JWT valid for ``ttl_seconds``."""
        now = int(self._clock())
        claims = {
            "iat": now - CLOCK_SKEW_SECONDS,
            "exp": now + ttl_seconds,
            "iss": self.app_id,
        }

        try:
            token = jwt.encode(claims, self.credential.private_key, algorithm=ALGORITHM)
        except (JOSEError, TypeError, ValueError) as e:
            self.logger.error("Failed to generate app JWT", app_id=self.app_id, error=str(e))
            raise SigningError(
                f"JWT generation failed: {e}",
                details={"app_id": self.app_id}
            ) from e

        self.logger.debug("Generated app JWT", app_id=self.app_id, expires_in=ttl_seconds)
        return token

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify signature and temporal claims.

        Returns the decoded claims, or None when the token cannot be trusted.
        Failure is an expected outcome here and is never raised.
        """
        if self._public_key is None:
            self.logger.warning("Token verification failed", error="private key is not usable")
            return None

        try:
            # exp/nbf are checked below against the injected clock
            claims = jwt.decode(
                token,
                self._public_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_nbf": False, "verify_aud": False},
            )
        except JOSEError as e:
            self.logger.warning("Token verification failed", error=str(e))
            return None

        error = self._check_claims(claims)
        if error:
            self.logger.warning("Token verification failed", error=error)
            return None

        self.logger.debug(
            "Verified app JWT",
            app_id=claims.get("iss"),
            exp=claims["exp"]
        )
        return claims

    def is_expired(self, token: str, buffer_seconds: int = DEFAULT_EXPIRY_BUFFER_SECONDS) -> bool:
        """Report whether ``token`` expires within ``buffer_seconds``.

        The signature is not checked. Undecodable tokens count as expired.
        """
        exp = self._unverified_exp(token)
        if exp is None:
            return True
        return self._clock() + buffer_seconds >= exp

    def expiration_time(self, token: str) -> Optional[datetime]:
        """Raw exp claim as a UTC datetime, without verifying the signature."""
        exp = self._unverified_exp(token)
        if exp is None:
            return None
        try:
            return to_datetime(exp)
        except (OverflowError, OSError, ValueError):
            self.logger.warning("Token exp claim is out of range", exp=exp)
            return None

    @staticmethod
    def validate_key(private_key: str) -> bool:
        """Check that ``private_key`` is a PEM private key able to sign RS256."""
        logger = get_logger("auth.issuer")
        if not isinstance(private_key, str) or not _PEM_ENVELOPE.match(private_key.strip()):
            logger.warning("Private key validation failed", error="missing PEM private key envelope")
            return False

        try:
            jwt.encode({"test": True}, private_key, algorithm=ALGORITHM)
        except (JOSEError, TypeError, ValueError) as e:
            logger.warning("Private key validation failed", error=str(e))
            return False

        return True

    def _check_claims(self, claims: Dict[str, Any]) -> Optional[str]:
        now = self._clock()

        exp = claims.get("exp")
        if not _is_number(exp):
            return "Token is missing a numeric exp claim"
        if now >= exp:
            return "Token has expired"

        nbf = claims.get("nbf")
        if nbf is not None and (not _is_number(nbf) or now < nbf):
            return "Token is not yet valid"

        if claims.get("iss") != self.app_id:
            return f"Token issuer {claims.get('iss')!r} does not match app {self.app_id}"

        return None

    def _unverified_exp(self, token: str) -> Optional[float]:
        try:
            claims = jwt.get_unverified_claims(token)
        except (JOSEError, AttributeError) as e:
            self.logger.warning("Failed to decode token claims", error=str(e))
            return None

        exp = claims.get("exp")
        return exp if _is_number(exp) else None

    def _derive_public_key(self, private_key: str) -> Optional[str]:
        try:
            key = serialization.load_pem_private_key(private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            self.logger.warning("Private key could not be loaded", app_id=self.app_id, error=str(e))
            return None

        if not isinstance(key, rsa.RSAPrivateKey):
            self.logger.warning("Private key is not an RSA key", app_id=self.app_id)
            return None

        return key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
