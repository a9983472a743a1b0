"""
Session Resolver

Owns the authentication lifecycle: turns the backend's stream of session
events into a ResolvedSession snapshot.

Flow:
1. start() -> fetch the current session once, then subscribe
2. Every event -> tag with the next sequence number, classify if a session
   is present, apply the result
3. stop() -> release the subscription (exactly once)

ORDERING: events arrive in order but classifications may finish out of
order. A result is only applied if its sequence number is newer than the
last applied one, so a slow lookup for an old event never overwrites the
outcome of a newer event.
"""

import asyncio
import itertools
from typing import Callable, Optional

import structlog

from ledger.audit import AuditLogger
from ledger.auth.classifier import AuthorizationClassifier, resolve_state
from ledger.errors import BackendError
from ledger.models.ledger import ApplicationState, ResolvedSession, Session
from ledger.services.gateway import BackendGateway, Subscription


logger = structlog.get_logger(__name__)

StateListener = Callable[[ResolvedSession], None]


class SessionResolver:
    """
    Converts raw session events into application state.

    The snapshot is only ever replaced by this class. Listeners are told
    after each applied transition.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        classifier: AuthorizationClassifier,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._classifier = classifier
        self._audit_logger = audit_logger

        self._snapshot = ResolvedSession(state=ApplicationState.LOADING)
        self._sequence = itertools.count(1)
        self._applied_sequence = 0
        self._listeners: list[StateListener] = []
        self._subscription: Optional[Subscription] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: set[asyncio.Task] = set()
        self._started = False
        self._stopped = False

    @property
    def snapshot(self) -> ResolvedSession:
        return self._snapshot

    @property
    def state(self) -> ApplicationState:
        return self._snapshot.state

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None and not self._subscription.cancelled

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start(self) -> ResolvedSession:
        """
        Resolve the current session, then follow changes.

        Must be awaited on the loop that should run classifications.
        """
        if self._started:
            return self._snapshot
        self._started = True
        self._loop = asyncio.get_running_loop()

        try:
            session = await self._gateway.get_session()
        except BackendError as e:
            logger.warning("initial_session_failed", error=str(e))
            session = None

        sequence = next(self._sequence)
        try:
            self._subscription = self._gateway.subscribe(self._on_session_change)
        except BackendError as e:
            # Still resolve the initial session; later changes are missed
            logger.error("session_subscribe_failed", error=str(e))
        await self._resolve(sequence, session)
        return self._snapshot

    def stop(self) -> None:
        """Release the subscription. Safe to call any number of times."""
        self._stopped = True
        if self._subscription is not None:
            self._subscription.cancel()

    async def settle(self) -> ResolvedSession:
        """Wait until every in-flight resolution has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        return self._snapshot

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    def _on_session_change(self, session: Optional[Session]) -> None:
        """Gateway callback; may run on any thread."""
        if self._stopped or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule, session)

    def _schedule(self, session: Optional[Session]) -> None:
        # Runs on the loop thread, in arrival order
        if self._stopped:
            return
        sequence = next(self._sequence)
        task = self._loop.create_task(self._resolve(sequence, session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _resolve(self, sequence: int, session: Optional[Session]) -> None:
        if session is None:
            # Discard any cached classification
            self._apply(sequence, ResolvedSession(state=ApplicationState.UNAUTHENTICATED))
            return

        classification = await self._classifier.classify(session.user_id)
        self._apply(sequence, ResolvedSession(
            state=resolve_state(session, classification),
            session=session,
            classification=classification,
        ))

    def _apply(self, sequence: int, snapshot: ResolvedSession) -> None:
        if self._stopped:
            logger.debug("resolution_after_stop", sequence=sequence)
            return
        if sequence <= self._applied_sequence:
            logger.info(
                "stale_resolution_discarded",
                sequence=sequence,
                applied_sequence=self._applied_sequence,
            )
            return

        self._applied_sequence = sequence
        previous = self._snapshot
        self._snapshot = snapshot

        if self._audit_logger:
            self._audit_logger.log_session_resolved(
                user_id=snapshot.user_id,
                state=snapshot.state.value,
                sequence=sequence,
            )

        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(
                    "state_listener_failed",
                    previous_state=previous.state.value,
                    state=snapshot.state.value,
                )
