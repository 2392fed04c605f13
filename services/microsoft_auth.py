# ticker/services/microsoft_auth.py
"""Cached Microsoft Graph bearer token.

The interactive sign-in flow lives outside this application; whatever
performs it hands the token to :meth:`TokenCredentials.store_token`.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Protocol

from core.settings import TOKEN_PATH
from utils.datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now


# Tokens this close to expiry are treated as expired.
EXPIRY_SKEW = timedelta(seconds=60)

logger = logging.getLogger("ticker.auth")


class CredentialProvider(Protocol):
    def get_access_token(self) -> Optional[str]: ...

    def is_signed_in(self) -> bool: ...


class TokenCredentials:
    def __init__(
        self,
        token_path: str | Path = TOKEN_PATH,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.token_path = Path(token_path)
        self._clock = clock

    def get_access_token(self) -> Optional[str]:
        data = self._load()
        token = data.get("access_token")
        if not token:
            return None
        expires_at = parse_rfc3339(data.get("expires_at"))
        if expires_at and expires_at - EXPIRY_SKEW <= ensure_utc(self._clock()):
            logger.info("Cached Microsoft token expired at %s", to_rfc3339_utc(expires_at))
            return None
        return str(token)

    def is_signed_in(self) -> bool:
        return self.get_access_token() is not None

    def store_token(self, access_token: str, expires_in: Optional[int] = None) -> None:
        payload = {"access_token": access_token, "expires_at": None}
        if expires_in:
            payload["expires_at"] = to_rfc3339_utc(
                ensure_utc(self._clock()) + timedelta(seconds=int(expires_in))
            )
        self._persist(payload)

    def sign_out(self) -> None:
        try:
            if self.token_path.exists():
                self.token_path.unlink()
                logger.info("Removed cached Microsoft token")
        except OSError as exc:
            logger.warning("Failed to remove cached token: %s", exc)

    # ----- helpers -----
    def _load(self) -> dict:
        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read %s: %s", self.token_path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self, payload: dict) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.token_path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload), encoding="utf-8")
            os.replace(tmp_path, self.token_path)
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass


__all__ = ["CredentialProvider", "TokenCredentials"]
