"""
Record Store interface.

The consistency core talks to durable storage only through this interface.
Two implementations exist: PostgresRecordStore (live database) and
InMemoryRecordStore (tests and demo mode). Which one is used is decided once,
in rentdesk.services.build_services().

Rows are plain dicts keyed by column name.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from rentdesk.errors import ValidationError, ERROR_VALIDATION_INVALID_FIELDS

TENANTS = 'tenants'
PROPERTIES = 'properties'
CONTRACTS = 'contracts'
INQUIRIES = 'inquiries'
MATCHES = 'matches'

# Allowlists for writes and filters; column names never come from user input directly
COLUMNS = {
    TENANTS: {
        'name', 'email', 'phone', 'national_id', 'address', 'notes',
    },
    PROPERTIES: {
        'owner_id', 'address', 'city', 'district', 'property_type', 'status',
        'rent_amount', 'sale_price', 'currency', 'notes',
    },
    CONTRACTS: {
        'tenant_id', 'property_id', 'start_date', 'end_date', 'rent_amount', 'currency',
        'status', 'reminder_enabled', 'reminder_lead_days', 'reminder_contacted',
        'expected_new_rent', 'reminder_notes', 'document_path', 'notes',
    },
    INQUIRIES: {
        'name', 'phone', 'email', 'inquiry_type', 'preferred_city', 'preferred_district',
        'min_rent_budget', 'max_rent_budget', 'min_sale_budget', 'max_sale_budget',
        'status', 'notes',
    },
    MATCHES: {
        'inquiry_id', 'property_id', 'notification_sent', 'contacted',
    },
}

# Columns that may be used as list() filters in addition to the writable ones
FILTER_EXTRAS = {'id'}


def validate_columns(entity: str, values: Dict[str, Any], extra: frozenset = frozenset()) -> None:
    """Raise ValidationError if the entity is unknown or any key is not an allowed column."""
    if entity not in COLUMNS:
        raise ValidationError(ERROR_VALIDATION_INVALID_FIELDS, f"Unknown entity: {entity!r}")
    invalid = set(values.keys()) - COLUMNS[entity] - set(extra)
    if invalid:
        raise ValidationError(ERROR_VALIDATION_INVALID_FIELDS, f"Invalid {entity} fields: {sorted(invalid)}")


class RecordStore(ABC):
    """Durable storage for tenants, properties, contracts, inquiries and matches."""

    @abstractmethod
    def get(self, entity: str, row_id: str) -> Optional[Dict[str, Any]]:
        """Return one row or None."""

    @abstractmethod
    def list(self, entity: str, order_by: Optional[str] = None, **filters) -> List[Dict[str, Any]]:
        """
        Return rows whose columns equal the given filters. A list/tuple/set filter
        value means "column is one of".
        """

    @abstractmethod
    def insert(self, entity: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it. Uniqueness violations raise ConflictError."""

    @abstractmethod
    def update(self, entity: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Update one row and return it. Raises NotFoundError when the row is missing."""

    @abstractmethod
    def delete(self, entity: str, row_id: str) -> bool:
        """Delete one row. Returns False if nothing was deleted."""

    @abstractmethod
    def create_tenant_and_contract(
        self, tenant_values: Dict[str, Any], contract_values: Dict[str, Any]
    ) -> Tuple[str, str]:
        """
        Create a tenant and its contract as one indivisible unit.
        Returns (tenant_id, contract_id). On any failure neither row exists.
        """

    @abstractmethod
    def rollback_tenant_and_contract(self, tenant_id: str, contract_id: str) -> None:
        """Compensate create_tenant_and_contract: remove the contract and its tenant together."""

    @abstractmethod
    def update_contract_status(self, contract_id: str, new_status: str) -> Dict[str, Any]:
        """
        Change a contract's status with the single-Active-per-property rule checked
        by the store. Raises ActiveContractConflictError on violation.
        """
