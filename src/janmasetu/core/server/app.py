"""JanmaSetu identity MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from janmasetu.core.audit.logger import AuditLogger
from janmasetu.core.clock import Clock, SystemClock
from janmasetu.core.config.settings import get_settings
from janmasetu.core.storage.database import IdentityDatabase
from janmasetu.core.storage.encryption import EncryptionError, FieldEncryptor
from janmasetu.core.storage.repository import IdentityRepository
from janmasetu.domains.identity.connectors import (
    DistrictStatsSource,
    IdentityStore,
    SequenceSource,
)
from janmasetu.domains.identity.connectors.district_reports import YamlDistrictStatsProvider
from janmasetu.domains.identity.connectors.providers import (
    InMemoryDuplicateRegistry,
    InMemoryIdentityStore,
    MockDistrictStatsProvider,
)
from janmasetu.domains.identity.domain_logic.backlog import BacklogPredictor
from janmasetu.domains.identity.domain_logic.consent import ConsentLedger
from janmasetu.domains.identity.domain_logic.entity_resolution import EntityResolutionScorer
from janmasetu.domains.identity.domain_logic.fraud_detection import FraudPatternDetector
from janmasetu.domains.identity.domain_logic.identifiers import TempRefGenerator
from janmasetu.domains.identity.domain_logic.identity_factory import FoundationalIdentityFactory
from janmasetu.domains.identity.domain_logic.lifecycle_service import IdentityLifecycleService
from janmasetu.domains.identity.domain_logic.trust_anchors import TrustAnchorProcessor
from janmasetu.domains.identity.tools.district_tools import register_district_tools
from janmasetu.domains.identity.tools.identity_tools import register_identity_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "JanmaSetu Identity Lifecycle"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    store_override: IdentityStore | None = None,
    district_source_override: DistrictStatsSource | None = None,
    clock_override: Clock | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the JanmaSetu identity MCP server.

    1. Creates the FastMCP server instance
    2. Initializes the identity store (encrypted SQLite when a key is set)
    3. Wires the lifecycle engine: scorer, factory, anchors, consent
    4. Initializes the district statistics source (YAML reports or mock)
    5. Registers all tools
    """
    settings = get_settings()
    clock = clock_override or SystemClock()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "JanmaSetu birth-anchored identity lifecycle server. Creates "
            "demographic-only foundational identities at birth, strengthens them "
            "with ordered immunization trust anchors, manages per-purpose consent, "
            "and reports district fraud patterns and enrollment backlog forecasts."
        ),
    )

    # --- Identity store ---
    store: IdentityStore | None = store_override
    audit_logger: AuditLogger | None = audit_logger_override
    if store is None and settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            identity_db = IdentityDatabase(settings.db_path)
            identity_db.initialize()
            store = IdentityRepository(identity_db, encryptor)
            if audit_logger is None:
                audit_logger = AuditLogger(identity_db, clock)
            logger.info(
                "Identity registry initialized: %s (schema v%d)",
                settings.db_path,
                identity_db.get_schema_version(),
            )
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing with in-memory identities; nothing will be persisted")
    elif store is None:
        logger.info(
            "No ENCRYPTION_KEY configured; running with in-memory identities. "
            "Set ENCRYPTION_KEY to enable the persistent identity registry."
        )
    persistent = isinstance(store, IdentityRepository)
    if store is None:
        store = InMemoryIdentityStore()

    # --- Lifecycle engine ---
    registry = InMemoryDuplicateRegistry()
    if isinstance(store, IdentityRepository):
        for temp_ref, birth_event in store.iter_birth_events():
            registry.register(temp_ref, birth_event)

    sequence = store if isinstance(store, SequenceSource) else None
    factory = FoundationalIdentityFactory(
        scorer=EntityResolutionScorer(registry),
        id_generator=TempRefGenerator(shard=settings.id_shard, sequence=sequence),
        clock=clock,
    )
    service = IdentityLifecycleService(
        store,
        factory=factory,
        processor=TrustAnchorProcessor(clock),
        ledger=ConsentLedger(clock),
        duplicate_registry=registry,
        clock=clock,
        audit_logger=audit_logger,
        max_retries=settings.occ_max_retries,
    )

    # --- District statistics source ---
    if district_source_override is not None:
        district_source = district_source_override
    elif settings.district_reports_path:
        district_source = YamlDistrictStatsProvider(settings.district_reports_path)
        logger.info("Using district reports from %s", settings.district_reports_path)
    else:
        district_source = MockDistrictStatsProvider(seed=settings.mock_data_seed)
        logger.info("Using mock district statistics")

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": persistent,
            "identities_stored": store.count(),
            "district_data_source": district_source.data_source,
            "audit_enabled": audit_logger is not None,
        }

    register_identity_tools(server, service, clock, audit_logger)
    logger.info("Identity lifecycle tools registered")

    register_district_tools(
        server, FraudPatternDetector(), BacklogPredictor(), district_source, clock, audit_logger
    )
    logger.info("District fraud and backlog tools registered")

    if audit_logger is not None:
        from janmasetu.domains.identity.tools.audit_tools import register_audit_tools

        register_audit_tools(server, audit_logger, clock)
        logger.info("Audit tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
