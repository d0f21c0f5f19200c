"""
In-memory Record Store
Used by the test suite and by demo/offline mode (STORE_BACKEND=memory).
Enforces the same constraints as schema.sql so that code exercised against it
behaves the way it would against PostgreSQL.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from rentdesk.db.store import (
    RecordStore, FILTER_EXTRAS, validate_columns,
    TENANTS, PROPERTIES, CONTRACTS, INQUIRIES, MATCHES,
)
from rentdesk.errors import (
    ActiveContractConflictError, DuplicateMatchError, NotFoundError, ValidationError,
    ERROR_CONTRACT_END_BEFORE_START,
)
from rentdesk.models import (
    CONTRACT_ACTIVE, INQUIRY_ACTIVE, PROPERTY_TYPE_RENTAL, PROPERTY_EMPTY,
    DEFAULT_REMINDER_LEAD_DAYS,
)

logger = logging.getLogger(__name__)

# Column defaults mirrored from schema.sql
_DEFAULTS = {
    TENANTS: {},
    PROPERTIES: {'property_type': PROPERTY_TYPE_RENTAL, 'status': PROPERTY_EMPTY},
    CONTRACTS: {
        'status': CONTRACT_ACTIVE,
        'reminder_enabled': True,
        'reminder_lead_days': DEFAULT_REMINDER_LEAD_DAYS,
        'reminder_contacted': False,
    },
    INQUIRIES: {'inquiry_type': PROPERTY_TYPE_RENTAL, 'status': INQUIRY_ACTIVE},
    MATCHES: {'notification_sent': False, 'contacted': False},
}

# (child entity, foreign key column) removed together with the parent row
_CASCADES = {
    TENANTS: [(CONTRACTS, 'tenant_id')],
    INQUIRIES: [(MATCHES, 'inquiry_id')],
    PROPERTIES: [(MATCHES, 'property_id')],
}

_FOREIGN_KEYS = {
    CONTRACTS: [('tenant_id', TENANTS), ('property_id', PROPERTIES)],
    MATCHES: [('inquiry_id', INQUIRIES), ('property_id', PROPERTIES)],
}


def _matches_filter(row: Dict[str, Any], key: str, value: Any) -> bool:
    if isinstance(value, (list, tuple, set)):
        return row.get(key) in value
    return row.get(key) == value


def _sort_key(value):
    # None sorts last, like NULLS LAST
    return (value is None, value)


class InMemoryRecordStore(RecordStore):
    """RecordStore kept in plain dicts. Every read returns copies."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {entity: {} for entity in _DEFAULTS}

    # -------------------------------------------------------------------------
    # Constraint checks
    # -------------------------------------------------------------------------

    def _check_foreign_keys(self, entity: str, row: Dict[str, Any]) -> None:
        for column, parent in _FOREIGN_KEYS.get(entity, []):
            ref = row.get(column)
            if ref is None or ref not in self._tables[parent]:
                raise NotFoundError(parent, ref)

    def _check_constraints(self, entity: str, row: Dict[str, Any]) -> None:
        self._check_foreign_keys(entity, row)

        if entity == CONTRACTS:
            start, end = row.get('start_date'), row.get('end_date')
            if start is not None and end is not None and not end > start:
                raise ValidationError(ERROR_CONTRACT_END_BEFORE_START, "Contract end date must be after start date")
            if row.get('status') == CONTRACT_ACTIVE:
                for other in self._tables[CONTRACTS].values():
                    if (other['id'] != row['id']
                            and other['property_id'] == row['property_id']
                            and other['status'] == CONTRACT_ACTIVE):
                        raise ActiveContractConflictError(row['property_id'])

        elif entity == MATCHES:
            for other in self._tables[MATCHES].values():
                if (other['id'] != row['id']
                        and other['inquiry_id'] == row['inquiry_id']
                        and other['property_id'] == row['property_id']):
                    raise DuplicateMatchError(row['inquiry_id'], row['property_id'])

    def _build_row(self, entity: str, values: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now()
        row = dict(_DEFAULTS[entity])
        row.update(values)
        row['id'] = str(uuid.uuid4())
        if entity == MATCHES:
            row['matched_at'] = now
        else:
            row['created_at'] = now
            row['updated_at'] = now
        return row

    # -------------------------------------------------------------------------
    # Generic row operations
    # -------------------------------------------------------------------------

    def get(self, entity: str, row_id: str) -> Optional[Dict[str, Any]]:
        validate_columns(entity, {})
        row = self._tables[entity].get(row_id)
        return dict(row) if row is not None else None

    def list(self, entity: str, order_by: Optional[str] = None, **filters) -> List[Dict[str, Any]]:
        validate_columns(entity, filters, extra=frozenset(FILTER_EXTRAS))
        rows = [
            dict(row) for row in self._tables[entity].values()
            if all(_matches_filter(row, k, v) for k, v in filters.items())
        ]
        if order_by:
            column = order_by.lstrip('-')
            rows.sort(key=lambda r: _sort_key(r.get(column)), reverse=order_by.startswith('-'))
        return rows

    def insert(self, entity: str, values: Dict[str, Any]) -> Dict[str, Any]:
        validate_columns(entity, values)
        row = self._build_row(entity, values)
        self._check_constraints(entity, row)
        self._tables[entity][row['id']] = row
        logger.debug(f"Inserted {entity} id={row['id']}")
        return dict(row)

    def update(self, entity: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        validate_columns(entity, values)
        current = self._tables[entity].get(row_id)
        if current is None:
            raise NotFoundError(entity, row_id)
        candidate = dict(current, **values)
        if entity != MATCHES:
            candidate['updated_at'] = datetime.now()
        self._check_constraints(entity, candidate)
        self._tables[entity][row_id] = candidate
        logger.debug(f"Updated {entity} id={row_id}: {list(values.keys())}")
        return dict(candidate)

    def delete(self, entity: str, row_id: str) -> bool:
        validate_columns(entity, {})
        if row_id not in self._tables[entity]:
            return False
        for child, column in _CASCADES.get(entity, []):
            for child_id in [cid for cid, r in self._tables[child].items() if r.get(column) == row_id]:
                self.delete(child, child_id)
        del self._tables[entity][row_id]
        logger.debug(f"Deleted {entity} id={row_id}")
        return True

    # -------------------------------------------------------------------------
    # Compound operations
    # -------------------------------------------------------------------------

    def create_tenant_and_contract(
        self, tenant_values: Dict[str, Any], contract_values: Dict[str, Any]
    ) -> Tuple[str, str]:
        validate_columns(TENANTS, tenant_values)
        validate_columns(CONTRACTS, contract_values)

        tenant = self._build_row(TENANTS, tenant_values)
        contract = self._build_row(CONTRACTS, dict(contract_values, tenant_id=tenant['id']))

        # Both rows land or neither does
        self._check_constraints(TENANTS, tenant)
        self._tables[TENANTS][tenant['id']] = tenant
        try:
            self._check_constraints(CONTRACTS, contract)
        except Exception:
            del self._tables[TENANTS][tenant['id']]
            raise
        self._tables[CONTRACTS][contract['id']] = contract
        logger.debug(f"Created tenant {tenant['id']} with contract {contract['id']}")
        return tenant['id'], contract['id']

    def rollback_tenant_and_contract(self, tenant_id: str, contract_id: str) -> None:
        contract = self._tables[CONTRACTS].get(contract_id)
        if contract is not None and contract['tenant_id'] == tenant_id:
            del self._tables[CONTRACTS][contract_id]
        self.delete(TENANTS, tenant_id)
        logger.debug(f"Rolled back tenant {tenant_id} and contract {contract_id}")

    def update_contract_status(self, contract_id: str, new_status: str) -> Dict[str, Any]:
        return self.update(CONTRACTS, contract_id, {'status': new_status})


# =============================================================================
# DEMO DATA
# =============================================================================

def seed_demo_data(store: RecordStore, today: Optional[date] = None) -> Dict[str, str]:
    """
    Fill a store with a small, self-consistent demo portfolio.
    Returns a name → id map of the rows created.
    """
    today = today or date.today()
    ids = {}

    ids['kadikoy_flat'] = store.insert(PROPERTIES, {
        'address': 'Moda Cad. 12/4', 'city': 'Istanbul', 'district': 'Kadıköy',
        'property_type': 'rental', 'status': 'Occupied', 'rent_amount': 22000, 'currency': 'TRY',
    })['id']
    ids['cankaya_flat'] = store.insert(PROPERTIES, {
        'address': 'Tunalı Hilmi Cad. 88/2', 'city': 'Ankara', 'district': 'Çankaya',
        'property_type': 'rental', 'status': 'Empty', 'rent_amount': 16000, 'currency': 'TRY',
    })['id']
    ids['besiktas_house'] = store.insert(PROPERTIES, {
        'address': 'Ihlamurdere Cad. 5', 'city': 'Istanbul', 'district': 'Beşiktaş',
        'property_type': 'sale', 'status': 'Available', 'sale_price': 9500000, 'currency': 'TRY',
    })['id']

    ids['ahmet'], ids['ahmet_lease'] = store.create_tenant_and_contract(
        {'name': 'Ahmet Kaya', 'email': 'ahmet.kaya@example.com', 'phone': '+90 532 123 4567'},
        {
            'property_id': ids['kadikoy_flat'],
            'start_date': today - timedelta(days=300),
            'end_date': today + timedelta(days=65),
            'rent_amount': 22000, 'currency': 'TRY', 'status': 'Active',
            'reminder_lead_days': 90, 'expected_new_rent': 26000,
        },
    )

    ids['ayse_inquiry'] = store.insert(INQUIRIES, {
        'name': 'Ayşe Demir', 'phone': '+90 533 987 6543', 'email': 'ayse@example.com',
        'inquiry_type': 'rental', 'preferred_city': 'Ankara', 'preferred_district': 'Çankaya',
        'min_rent_budget': 10000, 'max_rent_budget': 18000,
    })['id']
    ids['mehmet_inquiry'] = store.insert(INQUIRIES, {
        'name': 'Mehmet Öz', 'phone': '+90 535 222 1100',
        'inquiry_type': 'sale', 'preferred_city': 'Istanbul', 'max_sale_budget': 10000000,
    })['id']

    logger.info(f"Seeded demo data: {len(ids)} rows")
    return ids
