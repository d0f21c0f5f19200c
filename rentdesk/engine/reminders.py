"""
Reminder Scheduler - Renewal Conversations
Derives reminder state from a contract's end date and lead time on every read.
Nothing derived is stored; the only writes are the contacted flag and the
reminder settings on the contract row.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Union

from rentdesk.bus.events import (
    EventBus, EVENT_REMINDER_CONTACTED, EVENT_REMINDER_REOPENED, EVENT_REMINDER_SNOOZED,
)
from rentdesk.db.store import RecordStore, CONTRACTS
from rentdesk.errors import NotFoundError, ValidationError, ERROR_CONTRACT_INVALID_LEAD_DAYS
from rentdesk.logging_config import log_call
from rentdesk.models import (
    Contract, Reminder, ReminderState, from_row,
    CONTRACT_ACTIVE, CONTRACT_INACTIVE, DEFAULT_REMINDER_LEAD_DAYS,
    URGENCY_EXPIRED, URGENCY_URGENT, URGENCY_SOON, URGENCY_UPCOMING,
)

logger = logging.getLogger(__name__)

# Urgency bands, in days until lease end. Independent of the per-contract lead time.
URGENT_THRESHOLD_DAYS = 30
SOON_THRESHOLD_DAYS = 60

# Contracts whose renewal can still be discussed
_REMINDABLE_STATUSES = [CONTRACT_ACTIVE, CONTRACT_INACTIVE]


def _start_of_day(value: Union[date, datetime, str]) -> date:
    """Normalise a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def urgency_for(days_until_end: int) -> str:
    """Classify days remaining until lease end."""
    if days_until_end < 0:
        return URGENCY_EXPIRED
    if days_until_end <= URGENT_THRESHOLD_DAYS:
        return URGENCY_URGENT
    if days_until_end <= SOON_THRESHOLD_DAYS:
        return URGENCY_SOON
    return URGENCY_UPCOMING


def compute_reminder_state(
    today: Union[date, datetime, str],
    end_date: Union[date, datetime, str],
    reminder_lead_days: Optional[int] = DEFAULT_REMINDER_LEAD_DAYS,
    reminder_contacted: bool = False,
) -> ReminderState:
    """
    Pure function: reminder state of one lease on a given day.

    reminder_contacted is accepted for call-site symmetry with the contract row
    but does not influence the result; callers combine it with is_overdue.
    """
    if reminder_lead_days is None:
        reminder_lead_days = DEFAULT_REMINDER_LEAD_DAYS
    if reminder_lead_days < 0:
        raise ValueError(f"reminder_lead_days must be >= 0, got {reminder_lead_days}")

    today_d = _start_of_day(today)
    end_d = _start_of_day(end_date)
    reminder_date = end_d - timedelta(days=reminder_lead_days)
    days_until_end = (end_d - today_d).days

    return ReminderState(
        days_until_end=days_until_end,
        reminder_date=reminder_date,
        is_overdue=today_d >= reminder_date,
        urgency=urgency_for(days_until_end),
    )


def categorize(reminders: Iterable[Reminder]) -> Dict[str, List[Reminder]]:
    """
    Split reminders into the four buckets an agent works through:

      overdue    reminder date reached, lease not yet ended
      upcoming   not overdue yet, lease ends within the default lead time
                 (only possible for contracts with a shorter lead time)
      scheduled  not overdue, lease ends further out
      expired    lease already ended
    """
    buckets = {'overdue': [], 'upcoming': [], 'scheduled': [], 'expired': []}
    for r in reminders:
        days = r.state.days_until_end
        if days < 0:
            buckets['expired'].append(r)
        elif r.state.is_overdue:
            buckets['overdue'].append(r)
        elif days <= DEFAULT_REMINDER_LEAD_DAYS:
            buckets['upcoming'].append(r)
        else:
            buckets['scheduled'].append(r)
    return buckets


class ReminderScheduler:
    """Reads reminder state for contracts and records acknowledgement."""

    def __init__(self, store: RecordStore, bus: EventBus, default_lead_days: int = DEFAULT_REMINDER_LEAD_DAYS):
        self.store = store
        self.bus = bus
        self.default_lead_days = default_lead_days

    def _get_contract(self, contract_id: str) -> Contract:
        row = self.store.get(CONTRACTS, contract_id)
        if row is None:
            raise NotFoundError(CONTRACTS, contract_id)
        return from_row(Contract, row)

    def state_for(self, contract: Contract, today: Optional[date] = None) -> ReminderState:
        lead = contract.reminder_lead_days if contract.reminder_lead_days is not None else self.default_lead_days
        return compute_reminder_state(
            today or date.today(), contract.end_date, lead, contract.reminder_contacted,
        )

    @log_call
    def list_reminders(self, today: Optional[date] = None, include_contacted: bool = False) -> List[Reminder]:
        """
        Contracts with reminders switched on, still open for renewal, paired with
        their computed state. Soonest lease end first.
        """
        filters = {'reminder_enabled': True, 'status': _REMINDABLE_STATUSES}
        if not include_contacted:
            filters['reminder_contacted'] = False

        rows = self.store.list(CONTRACTS, order_by='end_date', **filters)
        reminders = [Reminder(contract=c, state=self.state_for(c, today))
                     for c in (from_row(Contract, row) for row in rows)]
        reminders.sort(key=lambda r: r.state.days_until_end)

        logger.debug(f"list_reminders: {len(reminders)} reminders (today={today})")
        return reminders

    def active_reminders(self, today: Optional[date] = None) -> List[Reminder]:
        """Reminders whose date has been reached on leases that have not ended yet."""
        return [r for r in self.list_reminders(today) if r.state.is_overdue and r.state.days_until_end >= 0]

    def reminder_for(self, contract_id: str, today: Optional[date] = None) -> Reminder:
        contract = self._get_contract(contract_id)
        return Reminder(contract=contract, state=self.state_for(contract, today))

    @log_call
    def mark_contacted(self, contract_id: str) -> Contract:
        """The tenant has been approached about renewal."""
        self._get_contract(contract_id)
        row = self.store.update(CONTRACTS, contract_id, {'reminder_contacted': True})
        logger.info(f"Contract {contract_id} reminder marked contacted")
        self.bus.emit(EVENT_REMINDER_CONTACTED, {'contract_id': contract_id})
        return from_row(Contract, row)

    @log_call
    def mark_not_contacted(self, contract_id: str) -> Contract:
        """Reopen a renewal conversation."""
        self._get_contract(contract_id)
        row = self.store.update(CONTRACTS, contract_id, {'reminder_contacted': False})
        logger.info(f"Contract {contract_id} reminder reopened")
        self.bus.emit(EVENT_REMINDER_REOPENED, {'contract_id': contract_id})
        return from_row(Contract, row)

    @log_call
    def snooze(self, contract_id: str, days: int) -> Contract:
        """
        Push the reminder date back by `days` by shortening the lead time.
        The lease end date is never touched; lead time bottoms out at zero.
        """
        if days <= 0:
            raise ValidationError(ERROR_CONTRACT_INVALID_LEAD_DAYS, "Snooze days must be positive")
        contract = self._get_contract(contract_id)
        current = contract.reminder_lead_days if contract.reminder_lead_days is not None else self.default_lead_days
        new_lead = max(current - days, 0)

        row = self.store.update(CONTRACTS, contract_id, {'reminder_lead_days': new_lead})
        logger.info(f"Contract {contract_id} reminder snoozed {days}d (lead {current} → {new_lead})")
        self.bus.emit(EVENT_REMINDER_SNOOZED, {'contract_id': contract_id, 'days': days, 'lead_days': new_lead})
        return from_row(Contract, row)

    @log_call
    def update_settings(
        self,
        contract_id: str,
        enabled: Optional[bool] = None,
        lead_days: Optional[int] = None,
        expected_new_rent: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Contract:
        updates = {}
        if enabled is not None:
            updates['reminder_enabled'] = enabled
        if lead_days is not None:
            if lead_days < 0:
                raise ValidationError(ERROR_CONTRACT_INVALID_LEAD_DAYS, "Reminder lead days must be >= 0")
            updates['reminder_lead_days'] = lead_days
        if expected_new_rent is not None:
            updates['expected_new_rent'] = expected_new_rent
        if notes is not None:
            updates['reminder_notes'] = notes

        if not updates:
            return self._get_contract(contract_id)
        self._get_contract(contract_id)
        return from_row(Contract, self.store.update(CONTRACTS, contract_id, updates))
