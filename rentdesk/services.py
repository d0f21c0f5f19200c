"""
Service wiring.
Picks the record and document backends from config and connects the engines
through one event bus:

    property_status_changed  → MatchingEngine.handle_property_status_changed
    tenant_provisioned       → ContractService.handle_contract_event (occupancy)
    contract_status_changed  → ContractService.handle_contract_event (occupancy)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from rentdesk.bus.events import (
    EventBus, bus as default_bus,
    EVENT_PROPERTY_STATUS_CHANGED, EVENT_TENANT_PROVISIONED, EVENT_CONTRACT_STATUS_CHANGED,
)
from rentdesk.config import Config, config
from rentdesk.db.memory import InMemoryRecordStore, seed_demo_data
from rentdesk.db.postgres import PostgresRecordStore
from rentdesk.db.store import RecordStore
from rentdesk.engine.contracts import ContractService
from rentdesk.engine.matching import MatchingEngine
from rentdesk.engine.provisioning import ProvisioningOrchestrator
from rentdesk.engine.reminders import ReminderScheduler
from rentdesk.models import INQUIRY_ACTIVE
from rentdesk.storage.documents import DocumentStore, HttpDocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: RecordStore
    documents: DocumentStore
    bus: EventBus
    provisioning: ProvisioningOrchestrator
    matching: MatchingEngine
    reminders: ReminderScheduler
    contracts: ContractService


def build_store(cfg: Config = config) -> RecordStore:
    if cfg.STORE_BACKEND == 'memory':
        return InMemoryRecordStore()
    return PostgresRecordStore()


def build_documents(cfg: Config = config) -> DocumentStore:
    if cfg.DOCUMENT_BACKEND == 'http':
        return HttpDocumentStore(
            cfg.DOCUMENT_STORE_URL,
            cfg.DOCUMENT_STORE_KEY,
            bucket=cfg.DOCUMENT_BUCKET,
            timeout=cfg.DOCUMENT_TIMEOUT_SECONDS,
        )
    return InMemoryDocumentStore()


def wire(
    store: RecordStore,
    documents: DocumentStore,
    event_bus: Optional[EventBus] = None,
    default_lead_days: int = config.DEFAULT_REMINDER_LEAD_DAYS,
) -> Services:
    """Build the engines on top of given backends and subscribe the listeners."""
    event_bus = event_bus if event_bus is not None else EventBus()

    services = Services(
        store=store,
        documents=documents,
        bus=event_bus,
        provisioning=ProvisioningOrchestrator(store, documents, event_bus),
        matching=MatchingEngine(store, event_bus),
        reminders=ReminderScheduler(store, event_bus, default_lead_days=default_lead_days),
        contracts=ContractService(store, documents, event_bus),
    )

    event_bus.on(EVENT_PROPERTY_STATUS_CHANGED, services.matching.handle_property_status_changed)
    event_bus.on(EVENT_TENANT_PROVISIONED, services.contracts.handle_contract_event)
    event_bus.on(EVENT_CONTRACT_STATUS_CHANGED, services.contracts.handle_contract_event)
    return services


def build_services(cfg: Config = config, seed_demo: Optional[bool] = None) -> Services:
    """
    Services for the configured backends, wired to the process-wide bus.
    seed_demo defaults to True for the in-memory store, which starts empty.
    """
    store = build_store(cfg)
    documents = build_documents(cfg)
    default_bus.clear()
    services = wire(store, documents, default_bus, cfg.DEFAULT_REMINDER_LEAD_DAYS)

    if seed_demo is None:
        seed_demo = cfg.STORE_BACKEND == 'memory'
    if seed_demo:
        seed_demo_data(store)
        for inquiry in services.matching.list_inquiries(status=INQUIRY_ACTIVE):
            services.matching.match_inquiry_against_properties(inquiry)

    logger.debug(f"Services ready (store={cfg.STORE_BACKEND}, documents={cfg.DOCUMENT_BACKEND})")
    return services
