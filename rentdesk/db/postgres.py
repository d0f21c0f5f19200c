"""
PostgreSQL Record Store
Live implementation of RecordStore on top of get_db_cursor(). Each public
method runs in its own transaction; uniqueness and check constraints from
schema.sql are translated into ConflictError / ValidationError, every other
database error propagates unchanged.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import psycopg2.errors

from rentdesk.db.connection import get_db_cursor
from rentdesk.db.store import (
    RecordStore, FILTER_EXTRAS, validate_columns,
    TENANTS, PROPERTIES, CONTRACTS, INQUIRIES, MATCHES,
)
from rentdesk.errors import (
    ActiveContractConflictError, DuplicateMatchError, NotFoundError, ValidationError,
    ERROR_CONTRACT_END_BEFORE_START, ERROR_VALIDATION_INVALID_FIELDS,
)
from rentdesk.models import CONTRACT_ACTIVE

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / 'schema.sql'

# Tables carrying an updated_at column
_TIMESTAMPED = {TENANTS, PROPERTIES, CONTRACTS, INQUIRIES}

_ORDERABLE = {'created_at', 'updated_at', 'end_date', 'start_date', 'matched_at', 'name', 'city'}

_CONSTRAINT_ACTIVE_CONTRACT = 'contracts_one_active_per_property'
_CONSTRAINT_MATCH_PAIR = 'matches_inquiry_property_key'
_CONSTRAINT_END_AFTER_START = 'contracts_end_after_start'


def _constraint_name(exc: Exception) -> Optional[str]:
    diag = getattr(exc, 'diag', None)
    return getattr(diag, 'constraint_name', None)


@contextmanager
def _translate_integrity_errors(entity: str, values: Dict[str, Any]):
    """Map constraint violations raised inside the block onto the error taxonomy."""
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        constraint = _constraint_name(e)
        if constraint == _CONSTRAINT_ACTIVE_CONTRACT or (constraint is None and entity == CONTRACTS):
            raise ActiveContractConflictError(values.get('property_id')) from e
        if constraint == _CONSTRAINT_MATCH_PAIR or (constraint is None and entity == MATCHES):
            raise DuplicateMatchError(values.get('inquiry_id'), values.get('property_id')) from e
        raise
    except psycopg2.errors.CheckViolation as e:
        if _constraint_name(e) == _CONSTRAINT_END_AFTER_START:
            raise ValidationError(ERROR_CONTRACT_END_BEFORE_START, "Contract end date must be after start date") from e
        raise
    except psycopg2.errors.ForeignKeyViolation as e:
        raise NotFoundError(f"Row referenced by {entity}") from e


def _order_clause(order_by: Optional[str]) -> str:
    if not order_by:
        return ""
    column = order_by.lstrip('-')
    if column not in _ORDERABLE:
        raise ValidationError(ERROR_VALIDATION_INVALID_FIELDS, f"Cannot order by {order_by!r}")
    direction = "DESC" if order_by.startswith('-') else "ASC"
    return f" ORDER BY {column} {direction}"


class PostgresRecordStore(RecordStore):
    """RecordStore backed by the PostgreSQL database in config.DATABASE_URL."""

    def init_schema(self) -> None:
        """Create tables, indexes and constraints. Safe to run repeatedly."""
        sql = SCHEMA_PATH.read_text(encoding='utf-8')
        with get_db_cursor() as cur:
            cur.execute(sql)
        logger.info("Database schema applied")

    # -------------------------------------------------------------------------
    # Generic row operations
    # -------------------------------------------------------------------------

    def get(self, entity: str, row_id: str) -> Optional[Dict[str, Any]]:
        validate_columns(entity, {})
        with get_db_cursor() as cur:
            cur.execute(f"SELECT * FROM {entity} WHERE id = %s", (row_id,))
            row = cur.fetchone()
        if row is None:
            logger.debug(f"get: {entity} id={row_id} not found")
            return None
        return dict(row)

    def list(self, entity: str, order_by: Optional[str] = None, **filters) -> List[Dict[str, Any]]:
        # Guard: only known columns may appear in the WHERE clause
        validate_columns(entity, filters, extra=frozenset(FILTER_EXTRAS))

        conditions = []
        params = {}
        for key, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                conditions.append(f"{key} = ANY(%({key})s)")
                params[key] = list(value)
            elif value is None:
                conditions.append(f"{key} IS NULL")
            else:
                conditions.append(f"{key} = %({key})s")
                params[key] = value

        where_clause = f" WHERE {' AND '.join(conditions)}" if conditions else ""

        with get_db_cursor() as cur:
            cur.execute(f"SELECT * FROM {entity}{where_clause}{_order_clause(order_by)}", params)
            rows = cur.fetchall()

        logger.debug(f"list: {entity} {filters} → {len(rows)} rows")
        return [dict(r) for r in rows]

    def insert(self, entity: str, values: Dict[str, Any]) -> Dict[str, Any]:
        validate_columns(entity, values)
        columns = list(values.keys())
        placeholders = ', '.join(f"%({c})s" for c in columns)

        with _translate_integrity_errors(entity, values):
            with get_db_cursor() as cur:
                cur.execute(
                    f"INSERT INTO {entity} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                    values,
                )
                row = dict(cur.fetchone())

        logger.info(f"Inserted {entity} id={row['id']}")
        return row

    def update(self, entity: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        if not values:
            raise ValidationError(ERROR_VALIDATION_INVALID_FIELDS, f"No {entity} fields to update")

        # Guard: only known columns may appear in the SET clause
        validate_columns(entity, values)

        set_clauses = [f"{key} = %({key})s" for key in values.keys()]
        if entity in _TIMESTAMPED:
            set_clauses.append("updated_at = NOW()")
        params = dict(values, row_id=row_id)

        with _translate_integrity_errors(entity, values):
            with get_db_cursor() as cur:
                cur.execute(f"""
                    UPDATE {entity}
                    SET {', '.join(set_clauses)}
                    WHERE id = %(row_id)s
                    RETURNING *
                """, params)
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(entity, row_id)
        logger.info(f"Updated {entity} id={row_id}: {list(values.keys())}")
        return dict(row)

    def delete(self, entity: str, row_id: str) -> bool:
        validate_columns(entity, {})
        with _translate_integrity_errors(entity, {}):
            with get_db_cursor() as cur:
                cur.execute(f"DELETE FROM {entity} WHERE id = %s", (row_id,))
                deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Deleted {entity} id={row_id}")
        return deleted

    # -------------------------------------------------------------------------
    # Compound operations, one transaction each
    # -------------------------------------------------------------------------

    def create_tenant_and_contract(
        self, tenant_values: Dict[str, Any], contract_values: Dict[str, Any]
    ) -> Tuple[str, str]:
        validate_columns(TENANTS, tenant_values)
        validate_columns(CONTRACTS, contract_values)
        contract_values = {k: v for k, v in contract_values.items() if k != 'tenant_id'}

        tenant_cols = list(tenant_values.keys())
        contract_cols = list(contract_values.keys())

        with _translate_integrity_errors(CONTRACTS, contract_values):
            with get_db_cursor() as cur:
                cur.execute(
                    f"INSERT INTO tenants ({', '.join(tenant_cols)}) "
                    f"VALUES ({', '.join(f'%({c})s' for c in tenant_cols)}) RETURNING id",
                    tenant_values,
                )
                tenant_id = cur.fetchone()['id']

                cur.execute(
                    f"INSERT INTO contracts (tenant_id, {', '.join(contract_cols)}) "
                    f"VALUES (%(tenant_id)s, {', '.join(f'%({c})s' for c in contract_cols)}) RETURNING id",
                    dict(contract_values, tenant_id=tenant_id),
                )
                contract_id = cur.fetchone()['id']

        logger.info(f"Created tenant {tenant_id} with contract {contract_id}")
        return str(tenant_id), str(contract_id)

    def rollback_tenant_and_contract(self, tenant_id: str, contract_id: str) -> None:
        with get_db_cursor() as cur:
            cur.execute(
                "DELETE FROM contracts WHERE id = %s AND tenant_id = %s",
                (contract_id, tenant_id),
            )
            cur.execute("DELETE FROM tenants WHERE id = %s", (tenant_id,))
        logger.info(f"Rolled back tenant {tenant_id} and contract {contract_id}")

    def update_contract_status(self, contract_id: str, new_status: str) -> Dict[str, Any]:
        with _translate_integrity_errors(CONTRACTS, {}):
            with get_db_cursor() as cur:
                cur.execute(
                    "SELECT id, property_id FROM contracts WHERE id = %s FOR UPDATE",
                    (contract_id,),
                )
                current = cur.fetchone()
                if current is None:
                    raise NotFoundError(CONTRACTS, contract_id)

                if new_status == CONTRACT_ACTIVE:
                    cur.execute("""
                        SELECT 1 FROM contracts
                        WHERE property_id = %s AND status = %s AND id <> %s
                        LIMIT 1
                    """, (current['property_id'], CONTRACT_ACTIVE, contract_id))
                    if cur.fetchone():
                        raise ActiveContractConflictError(str(current['property_id']))

                cur.execute("""
                    UPDATE contracts
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING *
                """, (new_status, contract_id))
                row = dict(cur.fetchone())

        logger.info(f"Contract {contract_id} status → {new_status}")
        return row


