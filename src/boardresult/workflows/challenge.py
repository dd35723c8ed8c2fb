"""Short numeric challenges for the request-facing layer.

Codes are kept in memory per session token and are single use. The retriever
never consults this module; callers gate their own endpoints with it.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)

CHALLENGE_TTL_SECONDS = 600
CODE_MIN = 1000
CODE_MAX = 9999


class ChallengeIssuer:
    def __init__(self, ttl_seconds: float = CHALLENGE_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._codes: Dict[str, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._codes)

    def generate(self, session_token: str) -> str:
        if not session_token:
            raise ValueError("session token is required")
        self._purge_expired()
        code = str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))
        self._codes[session_token] = (code, self._clock() + self.ttl_seconds)
        return code

    def validate(self, session_token: str, user_input: str) -> bool:
        stored = self._codes.get(session_token)
        if stored is None:
            return False
        code, expires_at = stored
        if self._clock() > expires_at:
            self._codes.pop(session_token, None)
            logger.debug("challenge expired for session %s", session_token[:8])
            return False
        if not secrets.compare_digest(code, (user_input or "").strip()):
            return False
        self._codes.pop(session_token, None)
        return True

    def refresh(self, session_token: str) -> str:
        return self.generate(session_token)

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [t for t, (_, exp) in self._codes.items() if now > exp]:
            self._codes.pop(token, None)


__all__ = ["ChallengeIssuer", "CHALLENGE_TTL_SECONDS"]
