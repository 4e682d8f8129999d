"""Session lock gate: keeps views closed until the session has been unlocked once."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
import logging
from typing import Optional, Set

from config import settings
from curation.types import ProfileSettings

logger = logging.getLogger(__name__)


class LockState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class ChallengeOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


class BaseUnlockChallenge(ABC):
    """A biometric/PIN style check run when the gate is locked."""

    @abstractmethod
    async def attempt(self) -> ChallengeOutcome:
        raise NotImplementedError


class UnavailableChallenge(BaseUnlockChallenge):
    """Used where the device offers no challenge at all."""

    async def attempt(self) -> ChallengeOutcome:
        return ChallengeOutcome.UNAVAILABLE


class SessionMarker:
    """Process-lifetime record of which owners unlocked during this session."""

    def __init__(self) -> None:
        self._unlocked: Set[str] = set()

    def is_unlocked(self, owner: Optional[str]) -> bool:
        return owner in self._unlocked

    def mark_unlocked(self, owner: Optional[str]) -> None:
        if owner:
            self._unlocked.add(owner)

    def clear(self) -> None:
        self._unlocked.clear()


class SessionLockGate:
    def __init__(
        self,
        marker: Optional[SessionMarker] = None,
        *,
        degrade_to_unlocked: Optional[bool] = None,
        challenge_timeout: Optional[float] = None,
    ) -> None:
        self.marker = marker or SessionMarker()
        self.degrade_to_unlocked = (
            settings.APP_LOCK_DEGRADE_TO_UNLOCKED if degrade_to_unlocked is None else degrade_to_unlocked
        )
        self.challenge_timeout = (
            settings.UNLOCK_CHALLENGE_TIMEOUT_SECONDS if challenge_timeout is None else challenge_timeout
        )
        self._owner: Optional[str] = None
        self._state = LockState.UNLOCKED

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is LockState.LOCKED

    def evaluate(self, owner: Optional[str], profile: ProfileSettings) -> LockState:
        """Set the initial state for a session start or a fresh login."""
        self._owner = owner
        if profile.app_lock_enabled and not self.marker.is_unlocked(owner):
            self._state = LockState.LOCKED
        else:
            self._state = LockState.UNLOCKED
        logger.info("lock_gate_evaluate user=%s state=%s", owner, self._state.value)
        return self._state

    async def _run_challenge(self, challenge: BaseUnlockChallenge) -> ChallengeOutcome:
        try:
            return await asyncio.wait_for(challenge.attempt(), timeout=self.challenge_timeout)
        except asyncio.TimeoutError:
            logger.warning("lock_gate_challenge_timeout user=%s timeout=%s", self._owner, self.challenge_timeout)
        except Exception as exc:
            logger.warning("lock_gate_challenge_error user=%s: %s", self._owner, exc)
        return ChallengeOutcome.FAILED

    async def unlock(self, challenge: BaseUnlockChallenge) -> ChallengeOutcome:
        """Run the challenge; the state only ever moves from Locked to Unlocked."""
        if not self.is_locked:
            return ChallengeOutcome.SUCCEEDED

        outcome = await self._run_challenge(challenge)
        if outcome is ChallengeOutcome.FAILED and not self.degrade_to_unlocked:
            logger.info("lock_gate_unlock_refused user=%s", self._owner)
            return outcome

        if outcome is not ChallengeOutcome.SUCCEEDED:
            logger.info("lock_gate_unlock_degraded user=%s outcome=%s", self._owner, outcome.value)
        self.marker.mark_unlocked(self._owner)
        self._state = LockState.UNLOCKED
        logger.info("lock_gate_unlocked user=%s", self._owner)
        return outcome
