"""
Data Models
Dataclasses for all entities. These are pure Python objects, no database logic.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import List, Optional


# =============================================================================
# STATUS VOCABULARY
# =============================================================================

PROPERTY_TYPE_RENTAL = 'rental'
PROPERTY_TYPE_SALE = 'sale'
PROPERTY_TYPES = (PROPERTY_TYPE_RENTAL, PROPERTY_TYPE_SALE)

# Rental properties
PROPERTY_EMPTY = 'Empty'
PROPERTY_OCCUPIED = 'Occupied'
PROPERTY_INACTIVE = 'Inactive'
# Sale properties
PROPERTY_AVAILABLE = 'Available'
PROPERTY_UNDER_OFFER = 'Under Offer'
PROPERTY_SOLD = 'Sold'

PROPERTY_STATUSES = {
    PROPERTY_TYPE_RENTAL: (PROPERTY_EMPTY, PROPERTY_OCCUPIED, PROPERTY_INACTIVE),
    PROPERTY_TYPE_SALE: (PROPERTY_AVAILABLE, PROPERTY_UNDER_OFFER, PROPERTY_SOLD, PROPERTY_INACTIVE),
}

# The status in which a property is open to matching, per listing type
AVAILABLE_STATUS = {
    PROPERTY_TYPE_RENTAL: PROPERTY_EMPTY,
    PROPERTY_TYPE_SALE: PROPERTY_AVAILABLE,
}

CONTRACT_ACTIVE = 'Active'
CONTRACT_INACTIVE = 'Inactive'
CONTRACT_ARCHIVED = 'Archived'
CONTRACT_STATUSES = (CONTRACT_ACTIVE, CONTRACT_INACTIVE, CONTRACT_ARCHIVED)

INQUIRY_ACTIVE = 'active'
INQUIRY_MATCHED = 'matched'
INQUIRY_CONTACTED = 'contacted'
INQUIRY_CLOSED = 'closed'
INQUIRY_STATUSES = (INQUIRY_ACTIVE, INQUIRY_MATCHED, INQUIRY_CONTACTED, INQUIRY_CLOSED)

URGENCY_EXPIRED = 'expired'
URGENCY_URGENT = 'urgent'
URGENCY_SOON = 'soon'
URGENCY_UPCOMING = 'upcoming'

DEFAULT_REMINDER_LEAD_DAYS = 90


def from_row(cls, row: dict):
    """Build a dataclass from a store row, ignoring columns the model doesn't know."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in row.items() if k in known})


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Tenant:
    """Person renting a property"""
    id: Optional[str] = None
    name: str = ''
    email: Optional[str] = None
    phone: Optional[str] = None
    national_id: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Property:
    """Rental or sale listing"""
    id: Optional[str] = None
    owner_id: Optional[str] = None
    address: str = ''
    city: Optional[str] = None
    district: Optional[str] = None
    property_type: str = PROPERTY_TYPE_RENTAL
    status: str = PROPERTY_EMPTY
    rent_amount: Optional[float] = None
    sale_price: Optional[float] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        return AVAILABLE_STATUS.get(self.property_type) == self.status


@dataclass
class Contract:
    """Lease between a tenant and a property"""
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    property_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rent_amount: Optional[float] = None
    currency: Optional[str] = None
    status: str = CONTRACT_ACTIVE
    reminder_enabled: bool = True
    reminder_lead_days: int = DEFAULT_REMINDER_LEAD_DAYS
    reminder_contacted: bool = False
    expected_new_rent: Optional[float] = None
    reminder_notes: Optional[str] = None
    document_path: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Inquiry:
    """A prospective renter's or buyer's requirements"""
    id: Optional[str] = None
    name: str = ''
    phone: Optional[str] = None
    email: Optional[str] = None
    inquiry_type: str = PROPERTY_TYPE_RENTAL
    preferred_city: Optional[str] = None
    preferred_district: Optional[str] = None
    min_rent_budget: Optional[float] = None
    max_rent_budget: Optional[float] = None
    min_sale_budget: Optional[float] = None
    max_sale_budget: Optional[float] = None
    status: str = INQUIRY_ACTIVE
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Match:
    """Recorded correspondence between one inquiry and one property"""
    id: Optional[str] = None
    inquiry_id: Optional[str] = None
    property_id: Optional[str] = None
    matched_at: Optional[datetime] = None
    notification_sent: bool = False
    contacted: bool = False


# =============================================================================
# DERIVED / RESULT OBJECTS
# =============================================================================

@dataclass(frozen=True)
class ReminderState:
    """Renewal reminder state, computed on read. Never stored."""
    days_until_end: int
    reminder_date: date
    is_overdue: bool
    urgency: str


@dataclass
class Reminder:
    """A contract paired with its computed reminder state."""
    contract: Contract
    state: ReminderState


@dataclass
class ProvisioningResult:
    tenant: Tenant
    contract: Contract
    document_url: Optional[str] = None


@dataclass
class MatchError:
    inquiry_id: Optional[str]
    error: str


@dataclass
class MatchRun:
    """Outcome of one matching pass. Created matches are kept even when errors occur."""
    created: List[Match] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[MatchError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
