"""Anonymous identity: collaborator interface and the session gate."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from .errors import IdentityFailure

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass
class User:
    id: str
    is_anonymous: bool = True


@dataclass
class Session:
    """An established anonymous session for this device."""

    access_token: str
    user: User


AuthListener = Callable[[str, "Session | None"], Awaitable[None]]


class Subscription:
    """Handle returned by :meth:`IdentityProvider.on_auth_state_change`."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._release()
            self._active = False


class IdentityProvider(ABC):
    """Abstract identity collaborator issuing anonymous device-scoped sessions."""

    @abstractmethod
    async def get_session(self) -> Session | None:
        ...

    @abstractmethod
    async def sign_in_anonymously(self) -> Session:
        """Create a new anonymous session.

        Raises:
            Exception: Whatever the provider raises when sign-in fails.
        """
        ...

    @abstractmethod
    async def get_user(self) -> User | None:
        ...

    @abstractmethod
    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        """Register a listener called with ``(event, session)`` on identity changes."""
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """Discard the device session and notify listeners with ``SIGNED_OUT``."""
        ...


class GateState(Enum):
    NO_SESSION = "no_session"
    SIGNING_IN = "signing_in"
    ACTIVE = "active"


class SessionGate:
    """Ensure an anonymous identity exists before any data operation.

    ``on_ready`` is awaited whenever a session becomes available: once from
    :meth:`start` and again on every ``SIGNED_IN`` notification.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        on_ready: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self._identity = identity
        self._on_ready = on_ready
        self._state = GateState.NO_SESSION
        self._subscription: Subscription | None = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is GateState.ACTIVE

    async def start(self) -> None:
        """Reuse the device session or sign in anonymously.

        Raises:
            IdentityFailure: If anonymous sign-in fails.
        """
        if self._subscription is None:
            self._subscription = self._identity.on_auth_state_change(
                self._handle_auth_event
            )

        session = await self._identity.get_session()
        if session is None:
            self._state = GateState.SIGNING_IN
            logger.info("匿名サインイン中...")
            try:
                session = await self._identity.sign_in_anonymously()
            except Exception as e:
                self._state = GateState.NO_SESSION
                logger.error("匿名サインインに失敗しました: %s", e)
                raise IdentityFailure(f"匿名サインインに失敗しました: {e}") from e
            if self._state is GateState.ACTIVE:
                # SIGNED_IN notification already signalled ready
                return

        self._state = GateState.ACTIVE
        logger.info("セッション確立: user=%s", session.user.id)
        await self._signal_ready()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def current_user_id(self) -> str:
        """Return the current user's id, asked fresh from the provider.

        Raises:
            IdentityFailure: If there is no signed-in user.
        """
        user = await self._identity.get_user()
        if user is None:
            logger.error("現在のユーザーを取得できませんでした")
            raise IdentityFailure(
                "ユーザーが確認できません。サインインし直してください。"
            )
        return user.id

    async def _handle_auth_event(self, event: str, session: Session | None) -> None:
        if event == SIGNED_IN and session is not None:
            self._state = GateState.ACTIVE
            await self._signal_ready()
        elif event == SIGNED_OUT:
            self._state = GateState.NO_SESSION

    async def _signal_ready(self) -> None:
        if self._on_ready is not None:
            await self._on_ready()
