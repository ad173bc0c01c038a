"""
GitHub App authentication package for the Access Governor.

- app.issuer: RS256 JWT issuance for the App identity and the httpx auth
  flow that presents those tokens.

Design notes:
- Keep the package import side-effects minimal; module import must not
  read keys or perform network calls.
- Use the shared/ utilities for logging, configuration, clock and errors.
- Tokens are never cached by the issuer; whoever asked for one owns it.
"""
