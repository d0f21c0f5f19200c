"""
Contract Status & Property Occupancy
Status changes go through the store's conditional update so the
one-Active-contract-per-property rule is checked where the data lives.
Occupancy follows contracts: a rental with an Active contract is Occupied,
otherwise Empty. Property status changes are published on the bus; the
matching engine listens for them.
"""

import logging
from typing import Any, Dict, List, Optional

from rentdesk.bus.events import (
    EventBus, EVENT_CONTRACT_STATUS_CHANGED, EVENT_PROPERTY_STATUS_CHANGED, EVENT_TENANT_DELETED,
)
from rentdesk.db.store import RecordStore, TENANTS, PROPERTIES, CONTRACTS
from rentdesk.errors import (
    NotFoundError, TenantHasActiveContractError, ValidationError,
    ERROR_CONTRACT_END_BEFORE_START, ERROR_CONTRACT_INVALID_STATUS, ERROR_PROPERTY_INVALID_STATUS,
)
from rentdesk.logging_config import log_call
from rentdesk.models import (
    Contract, Property, from_row,
    CONTRACT_ACTIVE, CONTRACT_STATUSES, PROPERTY_STATUSES, PROPERTY_TYPE_RENTAL,
    PROPERTY_EMPTY, PROPERTY_OCCUPIED, PROPERTY_INACTIVE,
)
from rentdesk.storage.documents import DocumentStore
from rentdesk.validation import parse_date

logger = logging.getLogger(__name__)


class ContractService:
    """Cross-entity contract operations: status, dates, occupancy, documents."""

    def __init__(self, store: RecordStore, documents: DocumentStore, bus: EventBus):
        self.store = store
        self.documents = documents
        self.bus = bus

    def _get(self, entity: str, row_id: str) -> Dict[str, Any]:
        row = self.store.get(entity, row_id)
        if row is None:
            raise NotFoundError(entity, row_id)
        return row

    def get_contract(self, contract_id: str) -> Contract:
        return from_row(Contract, self._get(CONTRACTS, contract_id))

    def get_property(self, property_id: str) -> Property:
        return from_row(Property, self._get(PROPERTIES, property_id))

    def active_contract_for(self, property_id: str) -> Optional[Contract]:
        rows = self.store.list(CONTRACTS, property_id=property_id, status=CONTRACT_ACTIVE)
        return from_row(Contract, rows[0]) if rows else None

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    @log_call
    def change_status(self, contract_id: str, new_status: str) -> Contract:
        """
        Move a contract to Active / Inactive / Archived.
        Raises ActiveContractConflictError if another contract on the same
        property is already Active.
        """
        if new_status not in CONTRACT_STATUSES:
            raise ValidationError(ERROR_CONTRACT_INVALID_STATUS, f"Unknown contract status {new_status!r}")

        before = self.get_contract(contract_id)
        if before.status == new_status:
            return before

        contract = from_row(Contract, self.store.update_contract_status(contract_id, new_status))
        logger.info(f"Contract {contract_id}: {before.status} → {new_status}")
        self.bus.emit(EVENT_CONTRACT_STATUS_CHANGED, {
            'contract_id': contract_id,
            'property_id': contract.property_id,
            'old_status': before.status,
            'new_status': new_status,
        })
        return contract

    @log_call
    def update_dates(self, contract_id: str, start_date=None, end_date=None) -> Contract:
        """Change lease dates; end must stay strictly after start."""
        contract = self.get_contract(contract_id)
        updates = {}
        if start_date is not None:
            updates['start_date'] = parse_date(start_date)
        if end_date is not None:
            updates['end_date'] = parse_date(end_date)
        if not updates:
            return contract

        start = updates.get('start_date', contract.start_date)
        end = updates.get('end_date', contract.end_date)
        if not end > start:
            raise ValidationError(ERROR_CONTRACT_END_BEFORE_START, "Contract end date must be after start date")

        return from_row(Contract, self.store.update(CONTRACTS, contract_id, updates))

    def document_url(self, contract_id: str) -> Optional[str]:
        contract = self.get_contract(contract_id)
        if not contract.document_path:
            return None
        return self.documents.public_url(contract.document_path)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @log_call
    def set_property_status(self, property_id: str, new_status: str) -> Property:
        """Validated status change; publishes property_status_changed when the status moves."""
        prop = self.get_property(property_id)
        allowed = PROPERTY_STATUSES.get(prop.property_type, ())
        if new_status not in allowed:
            raise ValidationError(
                ERROR_PROPERTY_INVALID_STATUS,
                f"{new_status!r} is not a {prop.property_type} status (allowed: {', '.join(allowed)})",
            )
        if prop.status == new_status:
            return prop

        updated = from_row(Property, self.store.update(PROPERTIES, property_id, {'status': new_status}))
        logger.info(f"Property {property_id}: {prop.status} → {new_status}")
        self.bus.emit(EVENT_PROPERTY_STATUS_CHANGED, {
            'property_id': property_id,
            'old_status': prop.status,
            'new_status': new_status,
        })
        return updated

    @log_call
    def sync_property_occupancy(self, property_id: str) -> Property:
        """Occupied with an Active contract, Empty without. Inactive and sale listings are left alone."""
        prop = self.get_property(property_id)
        if prop.property_type != PROPERTY_TYPE_RENTAL or prop.status == PROPERTY_INACTIVE:
            return prop
        target = PROPERTY_OCCUPIED if self.active_contract_for(property_id) else PROPERTY_EMPTY
        return self.set_property_status(property_id, target)

    def handle_contract_event(self, event: Dict[str, Any]) -> None:
        """Bus listener for tenant_provisioned / contract_status_changed."""
        property_id = event.get('property_id')
        if property_id is None and event.get('contract_id'):
            row = self.store.get(CONTRACTS, event['contract_id'])
            property_id = row['property_id'] if row else None
        if property_id is None:
            logger.warning(f"Occupancy sync skipped, no property in event {event}")
            return
        self.sync_property_occupancy(property_id)

    # -------------------------------------------------------------------------
    # Tenants
    # -------------------------------------------------------------------------

    @log_call
    def delete_tenant(self, tenant_id: str) -> bool:
        """Delete a tenant and its non-active contracts. Refused while a lease is Active."""
        self._get(TENANTS, tenant_id)
        if self.store.list(CONTRACTS, tenant_id=tenant_id, status=CONTRACT_ACTIVE):
            raise TenantHasActiveContractError(tenant_id)

        documents = [r['document_path'] for r in self.store.list(CONTRACTS, tenant_id=tenant_id) if r.get('document_path')]
        deleted = self.store.delete(TENANTS, tenant_id)
        for path in documents:
            try:
                self.documents.remove(path)
            except Exception as e:
                logger.warning(f"Could not remove document {path} of deleted tenant {tenant_id}: {e}")

        self.bus.emit(EVENT_TENANT_DELETED, {'tenant_id': tenant_id})
        return deleted

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    @log_call
    def add_property(self, values: Dict[str, Any]) -> Property:
        """
        Register a listing. A new listing counts as a status change from
        nothing, so an available one is matched against open inquiries.
        """
        property_type = values.get('property_type', PROPERTY_TYPE_RENTAL)
        allowed = PROPERTY_STATUSES.get(property_type)
        if allowed is None:
            raise ValidationError(ERROR_PROPERTY_INVALID_STATUS, f"Unknown property type {property_type!r}")
        status = values.get('status') or allowed[0]
        if status not in allowed:
            raise ValidationError(
                ERROR_PROPERTY_INVALID_STATUS,
                f"{status!r} is not a {property_type} status (allowed: {', '.join(allowed)})",
            )

        prop = from_row(Property, self.store.insert(
            PROPERTIES, dict(values, property_type=property_type, status=status),
        ))
        logger.info(f"Added {property_type} property {prop.id}: {prop.address}")
        self.bus.emit(EVENT_PROPERTY_STATUS_CHANGED, {
            'property_id': prop.id,
            'old_status': None,
            'new_status': status,
        })
        return prop

    def list_properties(self, property_type: Optional[str] = None, status: Optional[str] = None) -> List[Property]:
        filters = {}
        if property_type:
            filters['property_type'] = property_type
        if status:
            filters['status'] = status
        return [from_row(Property, row) for row in self.store.list(PROPERTIES, order_by='city', **filters)]
