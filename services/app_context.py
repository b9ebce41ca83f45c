"""
Explicit wiring of connectors, repositories and services.

Nothing here is global: callers build one context and pass it (or its parts)
to whatever needs them.
"""

import logging
from dataclasses import dataclass

from config.config import AppConfig
from connectors.blob_store import InMemoryBlobStore
from connectors.document_store import InMemoryDocumentStore
from connectors.identity_provider import InMemoryIdentityProvider
from services.accounts import AccountAdminService, AuthService
from services.ledger import InventoryLedger
from services.quote_export import QuoteExportFormatter, QuotePdfRenderer
from services.quote_workflow import QuoteStatusWorkflow
from services.repositories import (
    CategoryRepository,
    ClientRepository,
    ContactMessageRepository,
    ProductRepository,
    PublicServiceRepository,
    QuoteRepository,
    ServiceRepository,
    UnitRepository,
    UserRepository,
    WebsiteContentRepository,
)
from utils.logger import get_logger


@dataclass
class AppContext:
    config: AppConfig
    store: InMemoryDocumentStore
    identity: InMemoryIdentityProvider
    blobs: InMemoryBlobStore
    products: ProductRepository
    quotes: QuoteRepository
    users: UserRepository
    clients: ClientRepository
    categories: CategoryRepository
    units: UnitRepository
    services: ServiceRepository
    contact_messages: ContactMessageRepository
    public_services: PublicServiceRepository
    website_content: WebsiteContentRepository
    ledger: InventoryLedger
    workflow: QuoteStatusWorkflow
    auth: AuthService
    accounts: AccountAdminService
    exporter: QuoteExportFormatter
    renderer: QuotePdfRenderer

    @classmethod
    def build(
        cls,
        config: AppConfig | None = None,
        store: InMemoryDocumentStore | None = None,
        identity: InMemoryIdentityProvider | None = None,
        blobs: InMemoryBlobStore | None = None,
        logger: logging.Logger | None = None,
    ) -> "AppContext":
        config = config or AppConfig()
        logger = logger or get_logger("quote_manager", config.log_level)
        store = store or InMemoryDocumentStore()
        identity = identity or InMemoryIdentityProvider()
        blobs = blobs or InMemoryBlobStore()

        products = ProductRepository(store, blobs)
        quotes = QuoteRepository(store)
        users = UserRepository(store)
        ledger = InventoryLedger(products, config.ledger, logger=logger.getChild("ledger"))
        return cls(
            config=config,
            store=store,
            identity=identity,
            blobs=blobs,
            products=products,
            quotes=quotes,
            users=users,
            clients=ClientRepository(store),
            categories=CategoryRepository(store),
            units=UnitRepository(store),
            services=ServiceRepository(store),
            contact_messages=ContactMessageRepository(store),
            public_services=PublicServiceRepository(store),
            website_content=WebsiteContentRepository(store),
            ledger=ledger,
            workflow=QuoteStatusWorkflow(
                quotes, ledger, logger=logger.getChild("workflow"), max_attempts=config.ledger.max_cas_attempts
            ),
            auth=AuthService(identity, users, logger=logger.getChild("auth")),
            accounts=AccountAdminService(
                identity, users, config.password_policy, logger=logger.getChild("accounts")
            ),
            exporter=QuoteExportFormatter(config.export),
            renderer=QuotePdfRenderer(config.export),
        )
