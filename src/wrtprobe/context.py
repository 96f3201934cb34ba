"""Application-level holder of the active router session."""

import logging
import threading
from typing import Callable, Optional

from .errors import ConnectError, NotConnectedError
from .facts import RouterFacts
from .models import ConnectResult
from .ssh import ConnectionDescriptor, RemoteSession

logger = logging.getLogger(__name__)


class RouterContext:
    """
    Owns at most one live session and the RouterFacts bound to it.

    Connecting again replaces the previous session after disposing it.
    Request handlers reach the router through ``facts``, which raises
    NotConnectedError when there is no live session.
    """

    def __init__(self, session_factory: Callable[[], RemoteSession] = RemoteSession):
        self._session_factory = session_factory
        self._session: Optional[RemoteSession] = None
        self._facts: Optional[RouterFacts] = None
        self._lock = threading.Lock()

    @property
    def session(self) -> Optional[RemoteSession]:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_connected

    @property
    def facts(self) -> RouterFacts:
        """RouterFacts for the live session. Raises NotConnectedError if none."""
        if self._facts is None or not self.is_connected:
            raise NotConnectedError()
        return self._facts

    def connect(self, descriptor: ConnectionDescriptor) -> ConnectResult:
        """
        Open a new session, replacing any existing one.

        Args:
            descriptor: Connection parameters

        Returns:
            ConnectResult; ``success`` is False with the reason on failure
        """
        with self._lock:
            self._dispose_current()

            session = self._session_factory()
            try:
                session.connect(descriptor)
            except ConnectError as e:
                logger.error("Connection to %s failed: %s", descriptor.host, e)
                session.dispose()
                return ConnectResult(success=False, message=str(e), host=descriptor.host)

            self._session = session
            self._facts = RouterFacts(session)
            return ConnectResult(
                success=True,
                message=f"Connected to {descriptor.host}",
                host=descriptor.host,
            )

    def disconnect(self) -> None:
        """Dispose the active session, if any. Safe to call repeatedly."""
        with self._lock:
            self._dispose_current()

    def _dispose_current(self) -> None:
        if self._session is not None:
            self._session.dispose()
        self._session = None
        self._facts = None
