"""API key credential supplied by the caller.

The key identifies the application; the secret is either exchanged for a
short‑lived token (legacy auth) or used as the bearer token directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Prefix carried by secrets issued for direct bearer authentication.
BEARER_SECRET_PREFIX = "cbkey_"


@dataclass(frozen=True, slots=True)
class Credential:
    """Immutable key/secret pair.  The secret is kept out of ``repr``."""

    key: str
    secret: str = field(repr=False)

    @property
    def is_bearer_secret(self) -> bool:
        """Return ``True`` if the secret can be sent as a bearer token as‑is."""
        return self.secret.startswith(BEARER_SECRET_PREFIX)
