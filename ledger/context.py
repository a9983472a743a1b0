"""
Application Context

DESIGN DECISION: No module-level singletons hold session state. One
LedgerContext is created at app start, passed to whatever needs it, and
torn down at exit:

    context = create_context()
    await context.init()
    ...
    context.teardown()

or simply ``async with create_context() as context: ...``.
"""

from typing import Optional

import structlog

from ledger.audit import AuditLogger, configure_logging
from ledger.auth import AuthorizationClassifier, SessionResolver
from ledger.config import Settings, get_settings
from ledger.models.ledger import ResolvedSession
from ledger.repository import TransactionRepository
from ledger.services.gateway import BackendGateway, InMemoryGateway


logger = structlog.get_logger(__name__)


class LedgerContext:
    """
    Explicit owner of the gateway, resolver, classifier and repository.

    The resolver and classifier own the session snapshot; the repository
    owns the transaction list. Nothing else mutates either.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.gateway = gateway
        self.audit_logger = audit_logger or AuditLogger()
        self.classifier = AuthorizationClassifier(gateway, audit_logger=self.audit_logger)
        self.resolver = SessionResolver(gateway, self.classifier, audit_logger=self.audit_logger)
        self.repository = TransactionRepository(gateway, audit_logger=self.audit_logger)
        self._initialized = False

    @property
    def snapshot(self) -> ResolvedSession:
        return self.resolver.snapshot

    async def init(self) -> ResolvedSession:
        """Start following the session."""
        snapshot = await self.resolver.start()
        self._initialized = True
        logger.info("context_initialized", state=snapshot.state.value)
        return snapshot

    def teardown(self) -> None:
        """Release the session subscription. Idempotent."""
        self.resolver.stop()
        self.repository.clear()
        if self._initialized:
            logger.info("context_torn_down")
        self._initialized = False

    async def __aenter__(self) -> "LedgerContext":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.teardown()


def create_gateway(settings: Optional[Settings] = None) -> BackendGateway:
    """
    Build the configured backend gateway.

    LEDGER_BACKEND=memory gives an empty in-memory backend; anything else
    needs SUPABASE_URL and SUPABASE_KEY.
    """
    settings = settings or get_settings()
    if settings.app.uses_memory_backend:
        logger.warning("using_memory_backend")
        return InMemoryGateway()

    # Imported here so the memory backend works without the client installed
    from ledger.services.gateway.supabase_gateway import SupabaseGateway
    return SupabaseGateway(settings=settings.supabase)


def create_context(
    settings: Optional[Settings] = None,
    gateway: Optional[BackendGateway] = None,
) -> LedgerContext:
    """
    Factory function to create the application context.

    Args:
        settings: Defaults to the cached environment settings.
        gateway: Overrides the configured backend (tests).
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)
    return LedgerContext(gateway or create_gateway(settings))
