"""
Provisioning Orchestrator - tenant + lease (+ document) as one unit
Either every piece exists afterwards, or the caller is told exactly what is
left behind:

  1. tenant and contract rows are created by a single atomic store call
  2. the lease document, if any, is uploaded and its path saved on the contract
  3. if step 2 fails, tenant and contract are removed again (compensation)

A failed compensation is reported with the ids of the orphaned rows and is
never retried here.
"""

import logging
import time
from datetime import date
from typing import Any, Dict, Optional

from rentdesk.bus.events import (
    EventBus, EVENT_TENANT_PROVISIONED, EVENT_PROVISIONING_ROLLED_BACK, EVENT_PROVISIONING_ROLLBACK_FAILED,
)
from rentdesk.db.store import RecordStore, TENANTS, CONTRACTS
from rentdesk.errors import (
    DocumentAttachError, NotFoundError, ProvisioningError, ValidationError,
    ERROR_TENANT_NAME_REQUIRED, ERROR_TENANT_PROPERTY_REQUIRED,
    ERROR_CONTRACT_START_DATE_REQUIRED, ERROR_CONTRACT_END_DATE_REQUIRED,
    ERROR_CONTRACT_END_BEFORE_START, ERROR_CONTRACT_INVALID_LEAD_DAYS,
    ERROR_CONTRACT_INVALID_STATUS, ERROR_TENANT_INVALID_RESPONSE,
)
from rentdesk.logging_config import log_call
from rentdesk.models import Contract, ProvisioningResult, Tenant, from_row, CONTRACT_STATUSES
from rentdesk.storage.documents import DocumentStore
from rentdesk.validation import blank, check_email, parse_date

logger = logging.getLogger(__name__)

DOCUMENT_FOLDER = 'contracts'
DEFAULT_DOCUMENT_EXTENSION = 'pdf'

_TENANT_FIELDS = ('name', 'email', 'phone', 'national_id', 'address', 'notes')
_LEASE_FIELDS = (
    'property_id', 'start_date', 'end_date', 'rent_amount', 'currency', 'status',
    'reminder_enabled', 'reminder_lead_days', 'expected_new_rent', 'reminder_notes', 'notes',
)


def document_path_for(contract_id: str, document_name: Optional[str] = None, now_ms: Optional[int] = None) -> str:
    """contracts/<contract_id>-<epoch ms>.<ext>, extension taken from the uploaded file name."""
    ext = DEFAULT_DOCUMENT_EXTENSION
    if document_name and '.' in document_name:
        ext = document_name.rsplit('.', 1)[1].lower() or DEFAULT_DOCUMENT_EXTENSION
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{DOCUMENT_FOLDER}/{contract_id}-{now_ms}.{ext}"


def validate_drafts(tenant_draft: Dict[str, Any], lease_draft: Dict[str, Any]):
    """
    Check both drafts before anything is written.
    Returns (tenant_values, contract_values) ready for the store.
    """
    name = tenant_draft.get('name')
    if not isinstance(name, str) or blank(name):
        raise ValidationError(ERROR_TENANT_NAME_REQUIRED, "Tenant name is required")
    if blank(lease_draft.get('property_id')):
        raise ValidationError(ERROR_TENANT_PROPERTY_REQUIRED, "A property must be selected for the lease")
    if blank(lease_draft.get('start_date')):
        raise ValidationError(ERROR_CONTRACT_START_DATE_REQUIRED, "Contract start date is required")
    if blank(lease_draft.get('end_date')):
        raise ValidationError(ERROR_CONTRACT_END_DATE_REQUIRED, "Contract end date is required")

    start = parse_date(lease_draft['start_date'])
    end = parse_date(lease_draft['end_date'])
    if not end > start:
        raise ValidationError(ERROR_CONTRACT_END_BEFORE_START, "Contract end date must be after start date")

    email = check_email(tenant_draft.get('email'))

    lead_days = lease_draft.get('reminder_lead_days')
    if lead_days is not None:
        try:
            lead_days = int(lead_days)
        except (TypeError, ValueError):
            raise ValidationError(ERROR_CONTRACT_INVALID_LEAD_DAYS, f"Invalid reminder lead days: {lead_days!r}")
        if lead_days < 0:
            raise ValidationError(ERROR_CONTRACT_INVALID_LEAD_DAYS, "Reminder lead days must be >= 0")

    status = lease_draft.get('status')
    if status is not None and status not in CONTRACT_STATUSES:
        raise ValidationError(ERROR_CONTRACT_INVALID_STATUS, f"Unknown contract status {status!r}")

    tenant_values = {k: tenant_draft[k] for k in _TENANT_FIELDS if tenant_draft.get(k) is not None}
    tenant_values['name'] = name.strip()
    if email is None:
        tenant_values.pop('email', None)
    else:
        tenant_values['email'] = email

    contract_values = {k: lease_draft[k] for k in _LEASE_FIELDS if lease_draft.get(k) is not None}
    contract_values.update(start_date=start, end_date=end)
    if lead_days is not None:
        contract_values['reminder_lead_days'] = lead_days

    return tenant_values, contract_values


class ProvisioningOrchestrator:
    """Creates a tenant, their lease and the lease document as one operation."""

    def __init__(self, store: RecordStore, documents: DocumentStore, bus: EventBus):
        self.store = store
        self.documents = documents
        self.bus = bus

    @log_call
    def provision_tenant_with_lease(
        self,
        tenant_draft: Dict[str, Any],
        lease_draft: Dict[str, Any],
        document: Optional[bytes] = None,
        document_name: Optional[str] = None,
    ) -> ProvisioningResult:
        """
        Returns:
            ProvisioningResult with the stored tenant, contract and the
            document's public URL (None without a document)

        Raises:
            ValidationError: a draft was rejected, nothing was written
            ActiveContractConflictError: the property already has an active lease, nothing was written
            ProvisioningError: the store answered without ids
            DocumentAttachError: the document step failed; see .rolled_back
        """
        tenant_values, contract_values = validate_drafts(tenant_draft, lease_draft)

        tenant_id, contract_id = self.store.create_tenant_and_contract(tenant_values, contract_values)
        if not tenant_id or not contract_id:
            raise ProvisioningError(
                ERROR_TENANT_INVALID_RESPONSE,
                f"Store returned no ids for tenant/contract (got {tenant_id!r}, {contract_id!r})",
            )
        logger.info(f"Created tenant {tenant_id} with contract {contract_id} on property {contract_values['property_id']}")

        document_url = None
        if document is not None:
            document_url = self._attach_document(tenant_id, contract_id, document, document_name)

        tenant_row = self.store.get(TENANTS, tenant_id)
        if tenant_row is None:
            raise NotFoundError(TENANTS, tenant_id)
        contract_row = self.store.get(CONTRACTS, contract_id)
        if contract_row is None:
            raise NotFoundError(CONTRACTS, contract_id)

        contract = from_row(Contract, contract_row)
        self.bus.emit(EVENT_TENANT_PROVISIONED, {
            'tenant_id': tenant_id,
            'contract_id': contract_id,
            'property_id': contract.property_id,
            'status': contract.status,
            'document_path': contract.document_path,
        })
        return ProvisioningResult(tenant=from_row(Tenant, tenant_row), contract=contract, document_url=document_url)

    def _attach_document(self, tenant_id: str, contract_id: str, document: bytes, document_name: Optional[str]) -> str:
        uploaded_path = None
        try:
            uploaded_path = self.documents.put(document, document_path_for(contract_id, document_name))
            self.store.update(CONTRACTS, contract_id, {'document_path': uploaded_path})
            return self.documents.public_url(uploaded_path)
        except Exception as e:
            logger.error(
                f"Document attach failed for contract {contract_id}, rolling back "
                f"({type(e).__name__}: {e})",
                exc_info=True,
            )
            if uploaded_path is not None:
                self._remove_blob(uploaded_path)
            self._compensate(tenant_id, contract_id, e)

    def _remove_blob(self, path: str) -> None:
        try:
            self.documents.remove(path)
        except Exception as e:
            logger.warning(f"Could not remove uploaded document {path}: {e}")

    def _compensate(self, tenant_id: str, contract_id: str, cause: Exception) -> None:
        """Undo step 1. Always raises DocumentAttachError."""
        try:
            self.store.rollback_tenant_and_contract(tenant_id, contract_id)
        except Exception as rollback_error:
            logger.critical(
                f"Rollback failed, manual cleanup required: tenant {tenant_id}, contract {contract_id} "
                f"({type(rollback_error).__name__}: {rollback_error})",
                exc_info=True,
            )
            self.bus.emit(EVENT_PROVISIONING_ROLLBACK_FAILED, {
                'tenant_id': tenant_id,
                'contract_id': contract_id,
                'error': str(cause),
                'rollback_error': str(rollback_error),
            })
            raise DocumentAttachError(
                cause, rolled_back=False, tenant_id=tenant_id, contract_id=contract_id,
                rollback_error=rollback_error,
            ) from cause

        logger.info(f"Rolled back tenant {tenant_id} and contract {contract_id}")
        self.bus.emit(EVENT_PROVISIONING_ROLLED_BACK, {
            'tenant_id': tenant_id,
            'contract_id': contract_id,
            'error': str(cause),
        })
        raise DocumentAttachError(cause, rolled_back=True, tenant_id=tenant_id, contract_id=contract_id) from cause


def lease_end_for(start: date, months: int) -> date:
    """Same day `months` later, clamped to the end of a shorter month."""
    month_index = start.month - 1 + months
    year, month = start.year + month_index // 12, month_index % 12 + 1
    for day in (start.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    raise ValueError(f"Cannot add {months} months to {start}")
