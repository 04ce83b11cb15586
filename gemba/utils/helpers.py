"""Shared input-parsing helpers used by services and blueprints.

parse_date_input:  date / ISO string / DD.MM.YYYY -> date, ValidationError on bad input
clean_str:         strip a possibly-None string, "" -> None
parse_id_list:     normalise a list of user ids (dedupe, keep order)
parse_int_arg:     query-string int with default and lower bound
"""

import logging
from datetime import date, datetime

from gemba.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date objects.
    Empty input returns None; callers decide whether the field is required.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: value},
        ) from exc


def clean_str(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_id_list(values, field="participant_ids"):
    """Return a de-duplicated list of non-empty string ids, order preserved."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list", details={field: values})
    seen = []
    for v in values:
        text = clean_str(v)
        if text and text not in seen:
            seen.append(text)
    return seen


def parse_int_arg(value, default, minimum=1):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default
