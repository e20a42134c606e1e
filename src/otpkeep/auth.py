"""Session lock backed by a biometric/device-credential collaborator.

Policy: when the device cannot authenticate (unsupported, or nothing
enrolled) the session is unlocked without a prompt. This fail-open
behaviour is deliberate and logged at WARNING so testers can see it.
If the collaborator itself errors, the session stays locked.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Please authenticate to access your authenticator codes"


class BiometricGate(Protocol):
    async def is_supported(self) -> bool: ...

    async def available_factors(self) -> set[str]: ...

    async def authenticate(self, prompt: str) -> bool: ...


class NoBiometrics:
    """Gate for headless use (CLI, servers): nothing is ever supported."""

    async def is_supported(self) -> bool:
        return False

    async def available_factors(self) -> set[str]:
        return set()

    async def authenticate(self, prompt: str) -> bool:
        return False


class SessionLock:
    def __init__(self, gate: BiometricGate) -> None:
        self._gate = gate
        self._locked = True

    @property
    def is_locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    async def unlock(self, prompt: str = DEFAULT_PROMPT) -> bool:
        """Try to unlock the session. Returns True when unlocked."""
        try:
            if not await self._gate.is_supported():
                logger.warning("Device authentication unsupported, unlocking without prompt")
                self._locked = False
                return True
            if not await self._gate.available_factors():
                logger.warning("No authentication factors enrolled, unlocking without prompt")
                self._locked = False
                return True
            ok = await self._gate.authenticate(prompt)
        except Exception:
            logger.error("Authentication error, session stays locked", exc_info=True)
            return False

        if ok:
            self._locked = False
        else:
            logger.info("Authentication declined")
        return ok
