#!/usr/bin/env python3
"""
RentDesk Terminal CLI
Command-line interface for leases, inquiries and renewal reminders.
"""

import functools
import logging
from datetime import date
from typing import Optional

import click

from rentdesk.errors import RentDeskError
from rentdesk.logging_config import configure_logging, log_call
from rentdesk.models import (
    CONTRACT_STATUSES, INQUIRY_STATUSES, PROPERTY_TYPES, PROPERTY_TYPE_RENTAL, DEFAULT_REMINDER_LEAD_DAYS,
)
from rentdesk.engine.provisioning import lease_end_for
from rentdesk.engine.reminders import categorize
from rentdesk.services import Services, build_services
from rentdesk.validation import valid_email

_services: Optional[Services] = None

_URGENCY_MARK = {'expired': '✗', 'urgent': '!!', 'soon': '!', 'upcoming': ''}


def get_services() -> Services:
    """Build services on first use so --help works without a database."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def expected_errors(func):
    """Print coded failures as 'Error [CODE]: message' and exit 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RentDeskError as e:
            click.echo(f"Error [{e.code}]: {e.message}", err=True)
            raise click.exceptions.Exit(1)
    return wrapper


@log_call
def _prompt_date(label: str, default: Optional[date] = None) -> Optional[date]:
    """Prompt for a date, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("rentdesk")
    default_str = str(default) if default else ""
    while True:
        raw = click.prompt(label, default=default_str, show_default=bool(default_str)) or ""
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.debug(f"_prompt_date | rejected input={raw!r}")
            click.echo("  Invalid format, please use YYYY-MM-DD.", err=True)


@log_call
def _prompt_email() -> Optional[str]:
    """Prompt for an email address, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("rentdesk")
    while True:
        raw = click.prompt("Email", default="", show_default=False) or None
        if raw is None:
            return None
        if valid_email(raw):
            return raw
        logger.debug(f"_prompt_email | rejected input={raw!r}")
        click.echo("  Invalid email address, try again or press Enter to skip.", err=True)


@click.group()
def cli():
    """RentDesk - Rental Agency Back Office"""
    configure_logging()


# =============================================================================
# DATABASE COMMANDS
# =============================================================================

@cli.group()
def db():
    """Database maintenance"""
    pass


@db.command('init')
@log_call
def db_init():
    """Create tables, indexes and constraints"""
    store = get_services().store
    if not hasattr(store, 'init_schema'):
        click.echo("In-memory store in use, nothing to initialise.")
        return
    store.init_schema()
    click.echo("✓ Database schema applied")


# =============================================================================
# TENANTS COMMANDS
# =============================================================================

@cli.group()
def tenants():
    """Manage tenants and their leases"""
    pass


@tenants.command('provision')
@click.option('--document', 'document_path', type=click.Path(exists=True, dir_okay=False),
              help='Lease document to attach (PDF)')
@expected_errors
@log_call
def tenants_provision(document_path):
    """Create a tenant with a lease (interactive)"""
    click.echo("\n=== NEW TENANT & LEASE ===\n")

    name = click.prompt("Tenant name", type=str)
    email = _prompt_email()
    phone = click.prompt("Phone", default="", show_default=False) or None
    national_id = click.prompt("National ID", default="", show_default=False) or None

    property_id = click.prompt("Property ID", type=str)
    start_date = _prompt_date("Lease start (YYYY-MM-DD)", default=date.today())
    end_default = lease_end_for(start_date, 12) if start_date else None
    end_date = _prompt_date("Lease end (YYYY-MM-DD)", default=end_default)
    rent_amount = click.prompt("Monthly rent", type=float, default=0.0)
    currency = click.prompt("Currency", default="TRY")
    lead_days = click.prompt("Reminder lead days", type=int, default=DEFAULT_REMINDER_LEAD_DAYS)

    document = None
    document_name = None
    if document_path:
        with open(document_path, 'rb') as f:
            document = f.read()
        document_name = click.format_filename(document_path)

    result = get_services().provisioning.provision_tenant_with_lease(
        {'name': name, 'email': email, 'phone': phone, 'national_id': national_id},
        {
            'property_id': property_id,
            'start_date': start_date,
            'end_date': end_date,
            'rent_amount': rent_amount or None,
            'currency': currency,
            'reminder_lead_days': lead_days,
        },
        document=document,
        document_name=document_name,
    )

    click.echo(f"\n✓ Created tenant {result.tenant.id}: {result.tenant.name}")
    click.echo(f"✓ Lease {result.contract.id}: {result.contract.start_date} → {result.contract.end_date}")
    if result.document_url:
        click.echo(f"✓ Document: {result.document_url}")


@tenants.command('delete')
@click.argument('tenant_id')
@click.confirmation_option(prompt='Delete this tenant and their past contracts?')
@expected_errors
@log_call
def tenants_delete(tenant_id):
    """Delete a tenant (refused while a lease is Active)"""
    get_services().contracts.delete_tenant(tenant_id)
    click.echo(f"✓ Deleted tenant {tenant_id}")


# =============================================================================
# PROPERTIES COMMANDS
# =============================================================================

@cli.group()
def properties():
    """Manage rental and sale listings"""
    pass


@properties.command('list')
@click.option('--type', 'property_type', type=click.Choice(PROPERTY_TYPES), help='rental or sale')
@click.option('--status', help='Filter by status')
@log_call
def properties_list(property_type, status):
    """List properties"""
    results = get_services().contracts.list_properties(property_type=property_type, status=status)

    if not results:
        click.echo("No properties found.")
        return

    click.echo(f"\nFound {len(results)} properties:\n")
    click.echo(f"{'ID':<38} {'Address':<28} {'City':<12} {'Type':<7} {'Status':<12}")
    click.echo("-" * 100)
    for p in results:
        click.echo(
            f"{p.id:<38} {(p.address or '')[:26]:<28} {(p.city or '')[:10]:<12} "
            f"{p.property_type:<7} {p.status:<12}"
        )


@properties.command('add')
@expected_errors
@log_call
def properties_add():
    """Add a listing (interactive)"""
    click.echo("\n=== ADD PROPERTY ===\n")

    property_type = click.prompt("Type", type=click.Choice(PROPERTY_TYPES), default=PROPERTY_TYPE_RENTAL)
    address = click.prompt("Address", type=str)
    city = click.prompt("City", default="", show_default=False) or None
    district = click.prompt("District", default="", show_default=False) or None
    label = "Monthly rent" if property_type == PROPERTY_TYPE_RENTAL else "Sale price"
    amount = click.prompt(label, type=float, default=0.0)

    values = {'property_type': property_type, 'address': address, 'city': city, 'district': district}
    values['rent_amount' if property_type == PROPERTY_TYPE_RENTAL else 'sale_price'] = amount or None

    prop = get_services().contracts.add_property(values)
    click.echo(f"\n✓ Added property {prop.id}: {prop.address} ({prop.status})")


@properties.command('status')
@click.argument('property_id')
@click.argument('new_status')
@expected_errors
@log_call
def properties_status(property_id, new_status):
    """Change a property's status (matching runs when it becomes available)"""
    prop = get_services().contracts.set_property_status(property_id, new_status)
    click.echo(f"✓ Property {prop.id} is now {prop.status}")

    matches = get_services().matching.matches_for_property(prop.id)
    if matches:
        click.echo(f"  {len(matches)} inquiries matched so far")


# =============================================================================
# CONTRACTS COMMANDS
# =============================================================================

@cli.group()
def contracts():
    """Manage lease contracts"""
    pass


@contracts.command('status')
@click.argument('contract_id')
@click.argument('new_status', type=click.Choice(CONTRACT_STATUSES))
@expected_errors
@log_call
def contracts_status(contract_id, new_status):
    """Set a contract Active, Inactive or Archived"""
    contract = get_services().contracts.change_status(contract_id, new_status)
    click.echo(f"✓ Contract {contract.id} is now {contract.status}")


@contracts.command('dates')
@click.argument('contract_id')
@click.option('--start', help='New start date (YYYY-MM-DD)')
@click.option('--end', help='New end date (YYYY-MM-DD)')
@expected_errors
@log_call
def contracts_dates(contract_id, start, end):
    """Change lease start and/or end date"""
    if not start and not end:
        click.echo("No updates specified. Use --start or --end", err=True)
        return
    contract = get_services().contracts.update_dates(contract_id, start_date=start, end_date=end)
    click.echo(f"✓ Contract {contract.id}: {contract.start_date} → {contract.end_date}")


@contracts.command('document')
@click.argument('contract_id')
@expected_errors
@log_call
def contracts_document(contract_id):
    """Print the lease document URL"""
    url = get_services().contracts.document_url(contract_id)
    if url is None:
        click.echo(f"Contract {contract_id} has no document.")
        return
    click.echo(url)


# =============================================================================
# INQUIRIES COMMANDS
# =============================================================================

@cli.group()
def inquiries():
    """Manage buyer and renter inquiries"""
    pass


@inquiries.command('add')
@expected_errors
@log_call
def inquiries_add():
    """File a new inquiry (interactive); matching runs immediately"""
    click.echo("\n=== NEW INQUIRY ===\n")

    name = click.prompt("Name", type=str)
    phone = click.prompt("Phone", default="", show_default=False) or None
    email = _prompt_email()
    inquiry_type = click.prompt("Looking to", type=click.Choice(PROPERTY_TYPES), default=PROPERTY_TYPE_RENTAL)
    city = click.prompt("Preferred city", default="", show_default=False) or None
    district = click.prompt("Preferred district", default="", show_default=False) or None
    low = click.prompt("Minimum budget (Enter to skip)", type=float, default=0.0, show_default=False)
    high = click.prompt("Maximum budget (Enter to skip)", type=float, default=0.0, show_default=False)

    prefix = 'rent' if inquiry_type == PROPERTY_TYPE_RENTAL else 'sale'
    values = {
        'name': name, 'phone': phone, 'email': email, 'inquiry_type': inquiry_type,
        'preferred_city': city, 'preferred_district': district,
        f'min_{prefix}_budget': low or None,
        f'max_{prefix}_budget': high or None,
    }

    inquiry, run = get_services().matching.file_inquiry(values)
    click.echo(f"\n✓ Filed inquiry {inquiry.id}: {inquiry.name}")
    click.echo(f"  {len(run.created)} matching properties found")


@inquiries.command('list')
@click.option('--status', type=click.Choice(INQUIRY_STATUSES), help='Filter by status')
@click.option('--type', 'inquiry_type', type=click.Choice(PROPERTY_TYPES), help='rental or sale')
@log_call
def inquiries_list(status, inquiry_type):
    """List inquiries"""
    results = get_services().matching.list_inquiries(status=status, inquiry_type=inquiry_type)

    if not results:
        click.echo("No inquiries found.")
        return

    click.echo(f"\nFound {len(results)} inquiries:\n")
    click.echo(f"{'ID':<38} {'Name':<24} {'Type':<7} {'City':<12} {'Status':<10}")
    click.echo("-" * 95)
    for i in results:
        click.echo(
            f"{i.id:<38} {i.name[:22]:<24} {i.inquiry_type:<7} "
            f"{(i.preferred_city or '')[:10]:<12} {i.status:<10}"
        )


@inquiries.command('matches')
@click.argument('inquiry_id')
@expected_errors
@log_call
def inquiries_matches(inquiry_id):
    """Show properties matched to an inquiry"""
    services = get_services()
    inquiry = services.matching.get_inquiry(inquiry_id)
    matches = services.matching.matches_for_inquiry(inquiry_id)

    click.echo(f"\n=== MATCHES: {inquiry.name} ({inquiry.status}) ===\n")
    if not matches:
        click.echo("No matches yet.")
        return
    for m in matches:
        prop = services.contracts.get_property(m.property_id)
        flags = []
        if m.notification_sent:
            flags.append('notified')
        if m.contacted:
            flags.append('contacted')
        click.echo(f"  {prop.id}  {prop.address}, {prop.city or ''}  [{', '.join(flags) or 'new'}]")


@inquiries.command('match')
@click.argument('inquiry_id')
@expected_errors
@log_call
def inquiries_match(inquiry_id):
    """Re-run matching for an active inquiry"""
    matching = get_services().matching
    run = matching.match_inquiry_against_properties(matching.get_inquiry(inquiry_id))
    click.echo(f"✓ {len(run.created)} new, {len(run.skipped)} already matched")
    for err in run.errors:
        click.echo(f"  ✗ {err.error}", err=True)


@inquiries.command('contacted')
@click.argument('inquiry_id')
@expected_errors
@log_call
def inquiries_contacted(inquiry_id):
    """Mark an inquiry and its matches as contacted"""
    inquiry = get_services().matching.mark_inquiry_contacted(inquiry_id)
    click.echo(f"✓ Inquiry {inquiry.id} marked contacted")


@inquiries.command('close')
@click.argument('inquiry_id')
@expected_errors
@log_call
def inquiries_close(inquiry_id):
    """Close an inquiry"""
    inquiry = get_services().matching.close_inquiry(inquiry_id)
    click.echo(f"✓ Inquiry {inquiry.id} closed")


# =============================================================================
# REMINDERS COMMANDS
# =============================================================================

@cli.group()
def reminders():
    """Lease renewal reminders"""
    pass


@reminders.command('list')
@click.option('--all', 'include_contacted', is_flag=True, help='Include already contacted leases')
@log_call
def reminders_list(include_contacted):
    """Show renewal reminders, grouped by urgency"""
    services = get_services()
    buckets = categorize(services.reminders.list_reminders(include_contacted=include_contacted))

    if not any(buckets.values()):
        click.echo("No reminders.")
        return

    for title, key in (("OVERDUE", 'overdue'), ("UPCOMING", 'upcoming'),
                       ("SCHEDULED", 'scheduled'), ("EXPIRED", 'expired')):
        items = buckets[key]
        if not items:
            continue
        click.echo(f"\n{'='*80}")
        click.echo(f"{title} ({len(items)})")
        click.echo(f"{'='*80}")
        for r in items:
            c = r.contract
            mark = _URGENCY_MARK.get(r.state.urgency, '')
            contacted = ' (contacted)' if c.reminder_contacted else ''
            click.echo(
                f"{mark:<3}{c.id}  ends {c.end_date} ({r.state.days_until_end:+d}d), "
                f"remind from {r.state.reminder_date}{contacted}"
            )
    click.echo()


@reminders.command('contacted')
@click.argument('contract_id')
@expected_errors
@log_call
def reminders_contacted(contract_id):
    """Tenant has been approached about renewal"""
    get_services().reminders.mark_contacted(contract_id)
    click.echo(f"✓ Contract {contract_id} marked contacted")


@reminders.command('reopen')
@click.argument('contract_id')
@expected_errors
@log_call
def reminders_reopen(contract_id):
    """Reopen a renewal conversation"""
    get_services().reminders.mark_not_contacted(contract_id)
    click.echo(f"✓ Contract {contract_id} reminder reopened")


@reminders.command('snooze')
@click.argument('contract_id')
@click.option('--days', type=int, default=7, help='Days to push the reminder back (default: 7)')
@expected_errors
@log_call
def reminders_snooze(contract_id, days):
    """Push a reminder back"""
    contract = get_services().reminders.snooze(contract_id, days)
    click.echo(f"✓ Contract {contract_id} reminder lead time is now {contract.reminder_lead_days} days")


@reminders.command('settings')
@click.argument('contract_id')
@click.option('--enable/--disable', default=None, help='Switch reminders on or off')
@click.option('--lead-days', type=int, help='Days before lease end the reminder becomes due')
@click.option('--expected-rent', type=float, help='Expected rent after renewal')
@click.option('--notes', help='Renewal notes')
@expected_errors
@log_call
def reminders_settings(contract_id, enable, lead_days, expected_rent, notes):
    """Change a contract's reminder settings"""
    contract = get_services().reminders.update_settings(
        contract_id, enabled=enable, lead_days=lead_days, expected_new_rent=expected_rent, notes=notes,
    )
    state = 'on' if contract.reminder_enabled else 'off'
    click.echo(f"✓ Contract {contract_id}: reminders {state}, lead {contract.reminder_lead_days} days")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
