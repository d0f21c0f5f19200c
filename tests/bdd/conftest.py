"""
Shared fixtures and step definitions for BDD tests.

- runner, app, context: available to all scenario files in this directory
- app: the CLI talks to engines wired over the in-memory store
- no_logging: autouse, prevents log file creation during tests
- 'the output contains' / 'the command fails with' steps: shared across all feature files
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, then, parsers

from rentdesk.db.store import PROPERTIES


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def app(services):
    with patch("rentdesk.cli.main.get_services", return_value=services):
        yield services


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("rentdesk.cli.main.configure_logging"):
        yield


@given(parsers.parse('an {status} rental flat in {city} renting for {rent:d}'))
def rental_flat(app, context, status, city, rent):
    context["property"] = app.store.insert(PROPERTIES, {
        'address': f'{city} Merkez 1', 'city': city, 'property_type': 'rental',
        'status': status, 'rent_amount': rent,
    })


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse('the command fails with "{code}"'))
def command_fails_with(context, code):
    result = context["result"]
    assert result.exit_code == 1, result.output
    assert f"Error [{code}]" in result.output
