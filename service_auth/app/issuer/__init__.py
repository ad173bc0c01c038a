"""
GitHub App token issuance package.

- ``token_issuer``: signs and inspects the App's RS256 JWTs.
- ``http_auth``: httpx auth flow presenting those JWTs as bearer tokens.
"""

from .token_issuer import AppCredential, TokenIssuer
from .http_auth import GitHubAppAuth

__all__ = ["AppCredential", "TokenIssuer", "GitHubAppAuth"]
