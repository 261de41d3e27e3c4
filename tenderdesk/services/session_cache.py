"""
Session Cache

Remembers the last successful forecast per (commodity, basis set) so the
prediction screen can redisplay it instantly. Entries are JSON-encoded
SavedSession snapshots in a plain key-value store; the store has no TTL of
its own, so each entry carries ``savedAt`` and expiry is checked on read.

Key layout:
    prediction:lastResult:v2:<commodity>::<basis sorted, joined by "|">

The basis list is sorted before joining so selection order never causes a
miss. Unparseable entries and entries without ``savedAt`` are misses;
entries whose ``savedAt`` cannot be parsed count as expired.

Stores:
    InMemoryKeyValueStore: dict-backed, for tests and short-lived sessions
    JsonFileKeyValueStore: one JSON object on disk, used by the terminal client
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union

from pydantic import ValidationError

from tenderdesk.models.enums import ScreenStatus
from tenderdesk.models.schemas import SavedSession
from tenderdesk.services.normalizer import safe_json_parse


logger = logging.getLogger(__name__)


# =============================================================================
# Keys
# =============================================================================

STORAGE_PREFIX: str = "prediction:lastResult:v2:"
PRINT_PREFIX: str = "print:"

# Remembered selections, cleared together with cached forecasts (except commodity)
LS_COMMODITY: str = "ai_commodity_selected"
LS_BASIS: str = "ai_basis_selected"
LS_BASE_PRICE: str = "ai_base_price_selected"

DEFAULT_MAX_AGE = timedelta(hours=24)


# =============================================================================
# Key-value stores
# =============================================================================

class KeyValueStore(Protocol):
    """String-to-string store with no expiry of its own."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class JsonFileKeyValueStore:
    """
    Key-value store persisted as a single JSON object.

    The file is re-read on every access so several terminal sessions see each
    other's writes; a corrupt or unreadable file behaves as an empty store.
    Writes go to a sibling temp file that then replaces the original.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session cache {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if items.pop(key, None) is not None:
            self._save(items)

    def keys(self) -> List[str]:
        return list(self._load())


# =============================================================================
# Entry primitives
# =============================================================================

def make_storage_key(commodity: str, basis: Sequence[str]) -> str:
    """
    >>> make_storage_key("Sulphur", ["us-gulf", "middle-east"])
    'prediction:lastResult:v2:sulphur::middle-east|us-gulf'
    """
    basis_key = "|".join(sorted(basis or [])).lower()
    return f"{STORAGE_PREFIX}{(commodity or '').lower()}::{basis_key}"


def parse_saved_at(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp ("Z" accepted); naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_entry(store: KeyValueStore, key: str) -> Optional[SavedSession]:
    """Read an entry; None for absent, unparseable or ``savedAt``-less entries."""
    data = safe_json_parse(store.get_item(key))
    if not isinstance(data, dict) or not data.get("savedAt"):
        return None

    try:
        return SavedSession.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Treating malformed cache entry {key} as a miss: {e.error_count()} errors")
        return None


def set_entry(
    store: KeyValueStore,
    key: str,
    session: SavedSession,
    timestamp: datetime,
) -> SavedSession:
    """Write ``session`` under ``key`` with ``savedAt`` set to ``timestamp``; returns the stored snapshot."""
    snapshot = session.model_copy(update={"savedAt": timestamp.isoformat()})
    store.set_item(key, snapshot.model_dump_json())
    return snapshot


def is_expired(entry: SavedSession, now: datetime, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """True when the entry is older than ``max_age`` or its ``savedAt`` is unreadable."""
    saved_at = parse_saved_at(entry.savedAt)
    if saved_at is None:
        return True
    return now - saved_at > max_age


# =============================================================================
# Read / write contracts
# =============================================================================

def restore_session(
    store: KeyValueStore,
    commodity: str,
    basis: Sequence[str],
    now: datetime,
    max_age: timedelta = DEFAULT_MAX_AGE,
) -> Optional[SavedSession]:
    """
    Look up the cached snapshot for (commodity, basis).

    Returns None on a miss. Expired entries are removed from the store and
    also reported as a miss.
    """
    key = make_storage_key(commodity, basis)
    entry = get_entry(store, key)
    if entry is None:
        return None

    if is_expired(entry, now, max_age):
        logger.info(f"Discarding expired cache entry {key}")
        store.remove_item(key)
        return None

    return entry


def should_persist(session: SavedSession) -> bool:
    """Only successful screens with something to show are written."""
    if session.status != ScreenStatus.SUCCESS:
        return False
    return session.result is not None or session.bundle is not None or len(session.multi) > 0


def persist_session(
    store: KeyValueStore,
    session: SavedSession,
    now: datetime,
) -> Optional[SavedSession]:
    """
    Write ``session`` under its own (commodity, basis) key when it qualifies.

    Returns:
        The stored snapshot, or None when nothing was written.
    """
    if not should_persist(session):
        return None
    return set_entry(store, make_storage_key(session.commodity, session.basis), session, now)


def clear_prediction_storage(store: KeyValueStore) -> List[str]:
    """
    Drop every cached forecast, print snapshot and remembered basis / base price.

    Returns:
        The removed keys.
    """
    removed = [key for key in store.keys() if key.startswith((STORAGE_PREFIX, PRINT_PREFIX))]
    for key in removed:
        store.remove_item(key)

    for key in (LS_BASIS, LS_BASE_PRICE):
        if store.get_item(key) is not None:
            store.remove_item(key)
            removed.append(key)

    return removed
