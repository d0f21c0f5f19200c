"""
Unit tests for the Matching Engine (rentdesk/engine/matching.py).

Pure filter functions are tested directly; the engine runs over an
InMemoryRecordStore with a private EventBus (fixtures in tests/conftest.py).
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from rentdesk.bus.events import EVENT_MATCH_CREATED, EVENT_INQUIRY_STATUS_CHANGED
from rentdesk.db.store import PROPERTIES, INQUIRIES, MATCHES
from rentdesk.engine.matching import (
    MatchingEngine, budget_matches, location_matches, property_matches,
)
from rentdesk.errors import (
    DuplicateMatchError, InvalidTransitionError, ValidationError,
    ERROR_INQUIRY_CLOSED, ERROR_INQUIRY_INVALID_BUDGET, ERROR_INQUIRY_NAME_REQUIRED,
)
from rentdesk.models import Inquiry, Property, from_row


# ---------------------------------------------------------------------------
# Pure filters
# ---------------------------------------------------------------------------

class TestLocationMatches:

    def test_no_preference_matches_anything(self):
        assert location_matches(None, 'Ankara')
        assert location_matches('  ', None)

    def test_case_and_whitespace_insensitive(self):
        assert location_matches(' ankara ', 'Ankara')

    def test_preference_requires_value(self):
        assert not location_matches('Ankara', None)

    def test_different_location(self):
        assert not location_matches('Ankara', 'Istanbul')


class TestBudgetMatches:

    def test_bounds_are_inclusive(self):
        assert budget_matches(10000, 10000, 18000)
        assert budget_matches(18000, 10000, 18000)

    def test_outside_bounds(self):
        assert not budget_matches(9999, 10000, 18000)
        assert not budget_matches(18001, 10000, 18000)

    def test_missing_bound_is_unconstrained(self):
        assert budget_matches(50, None, 100)
        assert budget_matches(10 ** 9, 100, None)

    def test_no_bounds_matches_missing_amount(self):
        assert budget_matches(None, None, None)

    def test_missing_amount_fails_when_bounded(self):
        assert not budget_matches(None, None, 100)

    def test_decimal_values(self):
        assert budget_matches(Decimal('16000.00'), Decimal('10000'), 18000)


class TestPropertyMatches:

    def test_type_must_agree(self):
        inquiry = Inquiry(inquiry_type='sale')
        prop = Property(property_type='rental', status='Empty')
        assert not property_matches(inquiry, prop)

    def test_rental_uses_rent_budget(self):
        inquiry = Inquiry(inquiry_type='rental', min_sale_budget=1, max_rent_budget=15000)
        assert property_matches(inquiry, Property(property_type='rental', rent_amount=15000))
        assert not property_matches(inquiry, Property(property_type='rental', rent_amount=15001))

    def test_sale_uses_sale_price(self):
        inquiry = Inquiry(inquiry_type='sale', max_sale_budget=10_000_000)
        prop = Property(property_type='sale', status='Available', sale_price=9_500_000, rent_amount=99_999_999)
        assert property_matches(inquiry, prop)

    def test_district_filter(self):
        inquiry = Inquiry(preferred_city='Ankara', preferred_district='Çankaya')
        assert property_matches(inquiry, Property(city='Ankara', district='çankaya'))
        assert not property_matches(inquiry, Property(city='Ankara', district='Keçiören'))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@pytest.fixture
def engine(store, event_bus):
    return MatchingEngine(store, event_bus)


@pytest.fixture
def ankara_flat(store):
    return from_row(Property, store.insert(PROPERTIES, {
        'address': 'Tunalı Hilmi 88', 'city': 'Ankara', 'district': 'Çankaya',
        'property_type': 'rental', 'status': 'Empty', 'rent_amount': 16000,
    }))


def _inquiry(store, **values):
    base = {'name': 'Ayşe Demir', 'inquiry_type': 'rental', 'preferred_city': 'Ankara',
            'min_rent_budget': 10000, 'max_rent_budget': 18000}
    base.update(values)
    return from_row(Inquiry, store.insert(INQUIRIES, base))


class TestMatchPropertyAgainstInquiries:

    def test_creates_match_and_marks_inquiry_matched(self, engine, store, ankara_flat, event_bus):
        inquiry = _inquiry(store)
        events = []
        event_bus.on(EVENT_MATCH_CREATED, events.append)

        run = engine.match_property_against_inquiries(ankara_flat)

        assert len(run.created) == 1
        assert run.ok
        assert store.get(INQUIRIES, inquiry.id)['status'] == 'matched'
        match = store.list(MATCHES)[0]
        assert match['notification_sent'] is False
        assert match['contacted'] is False
        assert events == [{'match_id': match['id'], 'inquiry_id': inquiry.id, 'property_id': ankara_flat.id}]

    def test_unavailable_property_yields_empty_run(self, engine, store, ankara_flat):
        _inquiry(store)
        occupied = from_row(Property, store.update(PROPERTIES, ankara_flat.id, {'status': 'Occupied'}))
        run = engine.match_property_against_inquiries(occupied)
        assert run.created == [] and run.skipped == [] and run.errors == []
        assert store.list(MATCHES) == []

    def test_only_active_inquiries_are_candidates(self, engine, store, ankara_flat):
        for status in ('matched', 'contacted', 'closed'):
            _inquiry(store, status=status)
        run = engine.match_property_against_inquiries(ankara_flat)
        assert run.created == []

    def test_non_matching_inquiry_is_ignored(self, engine, store, ankara_flat):
        _inquiry(store, preferred_city='Izmir')
        assert engine.match_property_against_inquiries(ankara_flat).created == []

    def test_existing_pair_is_skipped(self, engine, store, ankara_flat):
        inquiry = _inquiry(store)
        store.insert(MATCHES, {'inquiry_id': inquiry.id, 'property_id': ankara_flat.id})

        run = engine.match_property_against_inquiries(ankara_flat)

        assert run.created == []
        assert run.skipped == [inquiry.id]
        assert len(store.list(MATCHES)) == 1
        assert store.get(INQUIRIES, inquiry.id)['status'] == 'matched'

    def test_concurrent_duplicate_counts_as_skip(self, engine, store, ankara_flat):
        inquiry = _inquiry(store)
        with patch.object(store, 'insert', side_effect=DuplicateMatchError(inquiry.id, ankara_flat.id)):
            run = engine.match_property_against_inquiries(ankara_flat)
        assert run.skipped == [inquiry.id]
        assert run.ok
        assert store.get(INQUIRIES, inquiry.id)['status'] == 'matched'

    def test_rerun_promotes_inquiry_left_active_by_failed_update(self, engine, store, ankara_flat):
        inquiry = _inquiry(store)
        real_update = store.update
        failures = []

        def update_fails_once(entity, row_id, values):
            if entity == INQUIRIES and not failures:
                failures.append(row_id)
                raise ConnectionError("db went away")
            return real_update(entity, row_id, values)

        with patch.object(store, 'update', side_effect=update_fails_once):
            first = engine.match_property_against_inquiries(ankara_flat)
            second = engine.match_property_against_inquiries(ankara_flat)

        assert len(first.errors) == 1
        assert second.skipped == [inquiry.id]
        assert second.ok
        assert len(store.list(MATCHES)) == 1
        assert store.get(INQUIRIES, inquiry.id)['status'] == 'matched'

    def test_failure_on_one_inquiry_keeps_others(self, engine, store, ankara_flat):
        first = _inquiry(store, name='First')
        second = _inquiry(store, name='Second')
        real_insert = store.insert

        def flaky_insert(entity, values):
            if entity == MATCHES and values['inquiry_id'] == first.id:
                raise RuntimeError("connection reset")
            return real_insert(entity, values)

        with patch.object(store, 'insert', side_effect=flaky_insert):
            run = engine.match_property_against_inquiries(ankara_flat)

        assert [m.inquiry_id for m in run.created] == [second.id]
        assert len(run.errors) == 1
        assert run.errors[0].inquiry_id == first.id
        assert 'connection reset' in run.errors[0].error
        assert not run.ok


class TestMatchInquiryAgainstProperties:

    def test_matches_every_available_property(self, engine, store, ankara_flat):
        second = store.insert(PROPERTIES, {
            'address': 'Kızılay 3', 'city': 'Ankara', 'property_type': 'rental',
            'status': 'Empty', 'rent_amount': 12000,
        })
        store.insert(PROPERTIES, {
            'address': 'Bahçeli 7', 'city': 'Ankara', 'property_type': 'rental',
            'status': 'Occupied', 'rent_amount': 12000,
        })
        inquiry = _inquiry(store)

        run = engine.match_inquiry_against_properties(inquiry)

        assert {m.property_id for m in run.created} == {ankara_flat.id, second['id']}
        assert store.get(INQUIRIES, inquiry.id)['status'] == 'matched'

    def test_status_change_event_emitted_once(self, engine, store, ankara_flat, event_bus):
        store.insert(PROPERTIES, {'address': 'Kızılay 3', 'city': 'Ankara', 'property_type': 'rental',
                                  'status': 'Empty', 'rent_amount': 12000})
        events = []
        event_bus.on(EVENT_INQUIRY_STATUS_CHANGED, events.append)
        engine.match_inquiry_against_properties(_inquiry(store))
        assert len(events) == 1
        assert events[0]['new_status'] == 'matched'

    def test_inactive_inquiry_is_not_matched(self, engine, store, ankara_flat):
        inquiry = _inquiry(store, status='closed')
        assert engine.match_inquiry_against_properties(inquiry).created == []


class TestPropertyStatusListener:

    def test_listener_runs_matching(self, engine, store, ankara_flat):
        _inquiry(store)
        engine.handle_property_status_changed({'property_id': ankara_flat.id, 'new_status': 'Empty'})
        assert len(store.list(MATCHES)) == 1

    def test_listener_never_raises(self, engine, store, ankara_flat):
        with patch.object(store, 'list', side_effect=RuntimeError("db down")):
            engine.handle_property_status_changed({'property_id': ankara_flat.id})

    def test_listener_ignores_unknown_property(self, engine):
        engine.handle_property_status_changed({'property_id': 'ghost'})


class TestInquiryLifecycle:

    def test_file_inquiry_matches_immediately(self, engine, store, ankara_flat):
        inquiry, run = engine.file_inquiry({
            'name': '  Ayşe Demir ', 'inquiry_type': 'rental', 'preferred_city': 'Ankara',
            'max_rent_budget': 18000,
        })
        assert inquiry.name == 'Ayşe Demir'
        assert inquiry.status == 'matched'
        assert len(run.created) == 1

    def test_file_inquiry_without_match_stays_active(self, engine):
        inquiry, run = engine.file_inquiry({'name': 'Mehmet', 'inquiry_type': 'sale'})
        assert inquiry.status == 'active'
        assert run.created == []

    def test_file_inquiry_requires_name(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.file_inquiry({'name': '  '})
        assert exc_info.value.code == ERROR_INQUIRY_NAME_REQUIRED

    @pytest.mark.parametrize('values', [
        {'min_rent_budget': -1},
        {'min_rent_budget': 20000, 'max_rent_budget': 10000},
        {'min_sale_budget': 5, 'max_sale_budget': 1},
    ])
    def test_file_inquiry_rejects_bad_budgets(self, engine, values):
        with pytest.raises(ValidationError) as exc_info:
            engine.file_inquiry(dict(values, name='X'))
        assert exc_info.value.code == ERROR_INQUIRY_INVALID_BUDGET

    def test_mark_contacted_flags_all_matches(self, engine, store, ankara_flat):
        inquiry, _ = engine.file_inquiry({'name': 'Ayşe', 'preferred_city': 'Ankara'})
        updated = engine.mark_inquiry_contacted(inquiry.id)
        assert updated.status == 'contacted'
        assert all(m['contacted'] for m in store.list(MATCHES, inquiry_id=inquiry.id))

    def test_closed_inquiry_is_terminal(self, engine, store):
        inquiry = _inquiry(store)
        engine.close_inquiry(inquiry.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.mark_inquiry_contacted(inquiry.id)
        assert exc_info.value.code == ERROR_INQUIRY_CLOSED

    def test_mark_notification_sent(self, engine, store, ankara_flat):
        inquiry = _inquiry(store)
        engine.match_property_against_inquiries(ankara_flat)
        match = engine.matches_for_inquiry(inquiry.id)[0]
        assert engine.mark_notification_sent(match.id).notification_sent is True
        assert engine.unread_match_count() == 0

    def test_matches_for_property(self, engine, store, ankara_flat):
        inquiry = _inquiry(store)
        engine.match_property_against_inquiries(ankara_flat)
        assert [m.inquiry_id for m in engine.matches_for_property(ankara_flat.id)] == [inquiry.id]
