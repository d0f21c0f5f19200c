"""
Input validation helpers shared by the engines and the CLI.
"""

import re
from datetime import date, datetime
from typing import Optional, Union

from rentdesk.errors import ValidationError, ERROR_CONTRACT_INVALID_DATE, ERROR_TENANT_INVALID_EMAIL

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_date(value: Union[date, datetime, str], code: str = ERROR_CONTRACT_INVALID_DATE) -> date:
    """Accept a date, datetime or YYYY-MM-DD string; raise ValidationError otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(code, f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value.strip()) is not None


def check_email(value: Optional[str]) -> Optional[str]:
    """Optional email: empty passes as None, anything else must look like an address."""
    if blank(value):
        return None
    if not valid_email(value):
        raise ValidationError(ERROR_TENANT_INVALID_EMAIL, f"Invalid email address: {value!r}")
    return value.strip()
