"""
Matching Engine - Inquiries ↔ Available Properties
Re-evaluates every qualifying pair in full whenever a property becomes
available or an inquiry is filed. Matches are recorded at most once per
(inquiry, property) pair and are never deleted automatically.

A failure on one inquiry does not stop the run: errors are collected on the
returned MatchRun and matches already created are kept.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from rentdesk.bus.events import (
    EventBus, EVENT_MATCH_CREATED, EVENT_INQUIRY_STATUS_CHANGED, EVENT_INQUIRY_FILED,
)
from rentdesk.db.store import RecordStore, PROPERTIES, INQUIRIES, MATCHES
from rentdesk.errors import (
    ConflictError, InvalidTransitionError, NotFoundError, ValidationError,
    ERROR_INQUIRY_CLOSED, ERROR_INQUIRY_NAME_REQUIRED, ERROR_INQUIRY_INVALID_TYPE,
    ERROR_INQUIRY_INVALID_BUDGET,
)
from rentdesk.logging_config import log_call
from rentdesk.models import (
    Inquiry, Match, MatchError, MatchRun, Property, from_row,
    AVAILABLE_STATUS, PROPERTY_TYPES, PROPERTY_TYPE_RENTAL,
    INQUIRY_ACTIVE, INQUIRY_MATCHED, INQUIRY_CONTACTED, INQUIRY_CLOSED,
)

logger = logging.getLogger(__name__)

Number = Optional[float]


# =============================================================================
# FILTERS (pure functions, no store access)
# =============================================================================

def _normalise(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text.lower() if text else None


def location_matches(preferred: Optional[str], actual: Optional[str]) -> bool:
    """
    No preference → always matches. A preference requires the property to have
    a value equal to it after trimming, case-insensitively.
    """
    wanted = _normalise(preferred)
    if wanted is None:
        return True
    have = _normalise(actual)
    if have is None:
        return False
    return have == wanted


def _as_number(value: Any) -> Number:
    # NUMERIC columns arrive as Decimal
    return None if value is None else float(value)


def budget_matches(amount: Any, min_budget: Any, max_budget: Any) -> bool:
    """
    Inclusive [min, max] check; a missing bound is unconstrained on that side.
    With any bound set, a property without the amount does not match.
    """
    low, high, value = _as_number(min_budget), _as_number(max_budget), _as_number(amount)
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def budget_bounds(inquiry: Inquiry) -> Tuple[Number, Number]:
    if inquiry.inquiry_type == PROPERTY_TYPE_RENTAL:
        return inquiry.min_rent_budget, inquiry.max_rent_budget
    return inquiry.min_sale_budget, inquiry.max_sale_budget


def listing_amount(prop: Property) -> Number:
    if prop.property_type == PROPERTY_TYPE_RENTAL:
        return prop.rent_amount
    return prop.sale_price


def property_matches(inquiry: Inquiry, prop: Property) -> bool:
    """Conjunction of type, city, district and budget filters; first failure wins."""
    if inquiry.inquiry_type != prop.property_type:
        return False
    if not location_matches(inquiry.preferred_city, prop.city):
        return False
    if not location_matches(inquiry.preferred_district, prop.district):
        return False
    low, high = budget_bounds(inquiry)
    return budget_matches(listing_amount(prop), low, high)


# =============================================================================
# ENGINE
# =============================================================================

class MatchingEngine:
    """Evaluates inquiries against properties and records matches."""

    def __init__(self, store: RecordStore, bus: EventBus):
        self.store = store
        self.bus = bus

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _get(self, entity: str, row_id: str) -> Dict[str, Any]:
        row = self.store.get(entity, row_id)
        if row is None:
            raise NotFoundError(entity, row_id)
        return row

    def get_inquiry(self, inquiry_id: str) -> Inquiry:
        return from_row(Inquiry, self._get(INQUIRIES, inquiry_id))

    def list_inquiries(self, status: Optional[str] = None, inquiry_type: Optional[str] = None) -> List[Inquiry]:
        filters = {}
        if status is not None:
            filters['status'] = status
        if inquiry_type is not None:
            filters['inquiry_type'] = inquiry_type
        return [from_row(Inquiry, r) for r in self.store.list(INQUIRIES, order_by='-created_at', **filters)]

    def matches_for_inquiry(self, inquiry_id: str) -> List[Match]:
        rows = self.store.list(MATCHES, order_by='-matched_at', inquiry_id=inquiry_id)
        return [from_row(Match, r) for r in rows]

    def matches_for_property(self, property_id: str) -> List[Match]:
        rows = self.store.list(MATCHES, order_by='-matched_at', property_id=property_id)
        return [from_row(Match, r) for r in rows]

    def unread_match_count(self) -> int:
        return len(self.store.list(MATCHES, notification_sent=False))

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def _set_inquiry_status(self, inquiry: Inquiry, new_status: str) -> Inquiry:
        if inquiry.status == INQUIRY_CLOSED and new_status != INQUIRY_CLOSED:
            raise InvalidTransitionError(ERROR_INQUIRY_CLOSED, f"Inquiry {inquiry.id} is closed")
        if inquiry.status == new_status:
            return inquiry
        row = self.store.update(INQUIRIES, inquiry.id, {'status': new_status})
        self.bus.emit(EVENT_INQUIRY_STATUS_CHANGED, {
            'inquiry_id': inquiry.id, 'old_status': inquiry.status, 'new_status': new_status,
        })
        return from_row(Inquiry, row)

    def _record_match(self, inquiry: Inquiry, prop: Property, run: MatchRun) -> Inquiry:
        """
        Create the match for a passing pair unless it already exists.
        An active inquiry with a match (new or existing) is moved to matched.
        Returns the current inquiry.
        """
        if self.store.list(MATCHES, inquiry_id=inquiry.id, property_id=prop.id):
            run.skipped.append(inquiry.id)
        else:
            try:
                row = self.store.insert(MATCHES, {
                    'inquiry_id': inquiry.id,
                    'property_id': prop.id,
                    'notification_sent': False,
                    'contacted': False,
                })
            except ConflictError:
                # Another trigger recorded the same pair between our check and insert
                logger.info(f"Match inquiry={inquiry.id} property={prop.id} already recorded concurrently")
                run.skipped.append(inquiry.id)
            else:
                match = from_row(Match, row)
                run.created.append(match)
                logger.info(f"Match created: inquiry={inquiry.id} property={prop.id}")
                self.bus.emit(EVENT_MATCH_CREATED, {
                    'match_id': match.id, 'inquiry_id': inquiry.id, 'property_id': prop.id,
                })

        # Also repairs an inquiry left active by an earlier failed status update
        if inquiry.status == INQUIRY_ACTIVE:
            inquiry = self._set_inquiry_status(inquiry, INQUIRY_MATCHED)
        return inquiry

    # -------------------------------------------------------------------------
    # Matching runs
    # -------------------------------------------------------------------------

    @log_call
    def match_property_against_inquiries(self, prop: Property) -> MatchRun:
        """
        Evaluate every active inquiry of the property's listing type against it.
        A property that is not available for its type yields an empty run.
        """
        run = MatchRun()
        if not prop.is_available:
            logger.debug(f"Property {prop.id} is {prop.status!r}, not available — skipping matching")
            return run

        candidates = [
            from_row(Inquiry, r)
            for r in self.store.list(INQUIRIES, status=INQUIRY_ACTIVE, inquiry_type=prop.property_type)
        ]

        for inquiry in candidates:
            try:
                if property_matches(inquiry, prop):
                    self._record_match(inquiry, prop, run)
            except Exception as e:
                logger.error(f"Matching inquiry {inquiry.id} against property {prop.id} failed: {e}", exc_info=True)
                run.errors.append(MatchError(inquiry_id=inquiry.id, error=f"{type(e).__name__}: {e}"))

        logger.info(
            f"Property {prop.id}: {len(candidates)} candidates, {len(run.created)} new matches, "
            f"{len(run.skipped)} existing, {len(run.errors)} errors"
        )
        return run

    @log_call
    def match_inquiry_against_properties(self, inquiry: Inquiry) -> MatchRun:
        """Symmetric run for one inquiry against every available property of its type."""
        run = MatchRun()
        if inquiry.status != INQUIRY_ACTIVE:
            logger.debug(f"Inquiry {inquiry.id} is {inquiry.status!r} — skipping matching")
            return run

        available = self.store.list(
            PROPERTIES,
            property_type=inquiry.inquiry_type,
            status=AVAILABLE_STATUS[inquiry.inquiry_type],
        )
        for prop in (from_row(Property, r) for r in available):
            try:
                if property_matches(inquiry, prop):
                    inquiry = self._record_match(inquiry, prop, run)
            except Exception as e:
                logger.error(f"Matching inquiry {inquiry.id} against property {prop.id} failed: {e}", exc_info=True)
                run.errors.append(MatchError(inquiry_id=inquiry.id, error=f"{type(e).__name__}: {e}"))

        logger.info(f"Inquiry {inquiry.id}: {len(run.created)} new matches, {len(run.errors)} errors")
        return run

    def handle_property_status_changed(self, event: Dict[str, Any]) -> None:
        """
        Bus listener. Fire-and-observe: failures are logged, never raised, so the
        property save that triggered the run is not affected.
        """
        property_id = event.get('property_id')
        try:
            row = self.store.get(PROPERTIES, property_id)
            if row is None:
                logger.warning(f"property_status_changed for unknown property {property_id}")
                return
            run = self.match_property_against_inquiries(from_row(Property, row))
            for err in run.errors:
                logger.warning(f"Matching error for property {property_id}, inquiry {err.inquiry_id}: {err.error}")
        except Exception as e:
            logger.error(f"Matching after status change of property {property_id} failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Inquiry lifecycle
    # -------------------------------------------------------------------------

    @log_call
    def file_inquiry(self, values: Dict[str, Any]) -> Tuple[Inquiry, MatchRun]:
        """Record a new inquiry as active and match it against current inventory."""
        name = (values.get('name') or '').strip()
        if not name:
            raise ValidationError(ERROR_INQUIRY_NAME_REQUIRED, "Inquiry name is required")
        inquiry_type = values.get('inquiry_type', PROPERTY_TYPE_RENTAL)
        if inquiry_type not in PROPERTY_TYPES:
            raise ValidationError(ERROR_INQUIRY_INVALID_TYPE, f"Unknown inquiry type {inquiry_type!r}")

        for low_key, high_key in (('min_rent_budget', 'max_rent_budget'), ('min_sale_budget', 'max_sale_budget')):
            low, high = values.get(low_key), values.get(high_key)
            for v in (low, high):
                if v is not None and v < 0:
                    raise ValidationError(ERROR_INQUIRY_INVALID_BUDGET, "Budgets cannot be negative")
            if low is not None and high is not None and low > high:
                raise ValidationError(ERROR_INQUIRY_INVALID_BUDGET, f"{low_key} is greater than {high_key}")

        row = self.store.insert(INQUIRIES, dict(values, name=name, inquiry_type=inquiry_type, status=INQUIRY_ACTIVE))
        inquiry = from_row(Inquiry, row)
        logger.info(f"Filed {inquiry_type} inquiry {inquiry.id}: {name}")
        self.bus.emit(EVENT_INQUIRY_FILED, {'inquiry_id': inquiry.id})

        run = self.match_inquiry_against_properties(inquiry)
        return self.get_inquiry(inquiry.id), run

    @log_call
    def mark_inquiry_contacted(self, inquiry_id: str) -> Inquiry:
        """The agent has reached out: inquiry and all of its matches are flagged."""
        inquiry = self._set_inquiry_status(self.get_inquiry(inquiry_id), INQUIRY_CONTACTED)
        for match in self.matches_for_inquiry(inquiry_id):
            if not match.contacted:
                self.store.update(MATCHES, match.id, {'contacted': True})
        return inquiry

    @log_call
    def close_inquiry(self, inquiry_id: str) -> Inquiry:
        return self._set_inquiry_status(self.get_inquiry(inquiry_id), INQUIRY_CLOSED)

    def mark_notification_sent(self, match_id: str) -> Match:
        self._get(MATCHES, match_id)
        return from_row(Match, self.store.update(MATCHES, match_id, {'notification_sent': True}))
