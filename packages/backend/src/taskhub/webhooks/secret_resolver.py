"""Webhook secret resolution.

Precedence, first hit wins:
1. per-source secret from settings (TASKHUB_WEBHOOK_SECRETS / *_WEBHOOK_SECRET)
2. WEBHOOK_SECRET_<SOURCE> environment variable
3. WEBHOOK_SECRET environment variable

Source names are case-insensitive: `GitHub` and `github` share a secret.
Resolved per request, so rotated env vars take effect without a restart.
"""

import os
import re
from typing import Mapping, Optional


def env_key_for(source: str) -> str:
    return "WEBHOOK_SECRET_" + re.sub(r"[^A-Z0-9]", "_", source.upper())


class SecretResolver:
    def __init__(
        self,
        configured: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.configured = {k.lower(): v for k, v in (configured or {}).items()}
        self.environ = os.environ if environ is None else environ

    def resolve(self, source: str) -> Optional[str]:
        secret = self.configured.get(source.lower())
        if secret:
            return secret
        return (
            self.environ.get(env_key_for(source))
            or self.environ.get("WEBHOOK_SECRET")
            or None
        )
