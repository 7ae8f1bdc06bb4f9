"""
Duplicate / Update Decision - one routine shared by every strategy.

    create ──ok──────────────────────────────> created
       │
       └─duplicate_key─> find_by_natural_key
                             │
                             ├─ no comparable field differs ─> existing (no write)
                             └─ some differ ─> update(changed only) ─> updated

Any other failure along the way ends in outcome=error with the original
reason. Only whitelisted comparable fields are ever compared or written
on the update path.
"""
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from .results import Outcome, ProcessResult
from .store import RecordStore

logger = logging.getLogger(__name__)

MONEY_TOLERANCE = 0.005

# Plain decimals only; "NaN", "inf" and "1e3" stay text
NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")


def normalize_value(value: Any) -> Any:
    """Normalize value for comparison (dates to ISO, numbers to float, blanks to None)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return value
    if isinstance(value, (Decimal, int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if NUMBER_PATTERN.match(stripped):
            return float(stripped)
        try:
            return datetime.fromisoformat(stripped).date().isoformat()
        except ValueError:
            return stripped
    return value


def values_equal(old: Any, new: Any) -> bool:
    old_norm = normalize_value(old)
    new_norm = normalize_value(new)

    if isinstance(old_norm, float) and isinstance(new_norm, float):
        return abs(old_norm - new_norm) < MONEY_TOLERANCE
    return old_norm == new_norm


def changed_fields(record: Any, attrs: Dict[str, Any], comparable_fields: Iterable[str]) -> List[str]:
    """
    Comparable fields whose incoming value differs from the stored one.

    Incoming None/blank values never count as a change: a thinner scrape
    (e.g. a failed detail fetch) must not erase stored data.
    """
    changed = []
    for field_name in comparable_fields:
        if field_name not in attrs:
            continue
        new_value = attrs[field_name]
        if normalize_value(new_value) is None:
            continue
        if not values_equal(getattr(record, field_name, None), new_value):
            changed.append(field_name)
    return changed


def upsert_record(
    store: RecordStore,
    attrs: Dict[str, Any],
    natural_key: Iterable[str],
    comparable_fields: Iterable[str],
) -> ProcessResult:
    """
    Create a record, or reconcile it with the stored copy.

    Args:
        store: Persistence collaborator
        attrs: Normalized record attributes (must include the natural key)
        natural_key: Attribute names forming the unique key
        comparable_fields: Whitelist of fields compared on duplicates

    Returns:
        ProcessResult with outcome created / updated / existing / error
    """
    key = {name: attrs.get(name) for name in natural_key}
    regulator_id = attrs.get("regulator_id")

    created = store.create(attrs)
    if created.ok:
        return ProcessResult(Outcome.CREATED, regulator_id=regulator_id, record=created.record)

    if not created.is_duplicate:
        logger.warning(f"Failed to create record {key}: {created.reason}")
        return ProcessResult.error(created.reason, regulator_id=regulator_id)

    found = store.find_by_natural_key(key)
    if not found.ok:
        logger.warning(f"Lookup failed after duplicate key for {key}: {found.reason}")
        return ProcessResult.error(found.reason, regulator_id=regulator_id)
    if found.record is None:
        # Duplicate reported but nothing under the key: keep the original reason
        return ProcessResult.error(created.reason, regulator_id=regulator_id)

    existing = found.record
    changed = changed_fields(existing, attrs, comparable_fields)
    if not changed:
        return ProcessResult(Outcome.EXISTING, regulator_id=regulator_id, record=existing)

    updated = store.update(existing, {name: attrs[name] for name in changed})
    if not updated.ok:
        logger.warning(f"Update failed for {key}: {updated.reason}")
        return ProcessResult.error(updated.reason, regulator_id=regulator_id)

    logger.debug(f"Updated {key}: {', '.join(changed)}")
    return ProcessResult(
        Outcome.UPDATED,
        regulator_id=regulator_id,
        record=updated.record,
        changed_fields=changed,
    )
