"""
Prediction Screen Session

PredictionSession owns the state of one prediction screen and applies the
session cache contracts at the same points the dashboard does:

- restore: whenever commodity or basis change (never while a run is loading)
- write: after every state change, when the screen shows a successful result

It also implements the screen operations (commodity change, basis toggling,
base price entry, tab and active-basis selection, running a forecast) so that
any front end, such as the terminal client, only has to render ``state``.

Remembered selections (commodity, basis, base prices) are kept in the same
key-value store under the ``ai_*_selected`` keys.

Usage:
    session = PredictionSession(JsonFileKeyValueStore("~/.tenderdesk/cache.json"))
    session.load_remembered_selection()
    session.set_future_date("2026-11-03")
    body = session.start_run()
    session.apply_response(await post_predict(body))
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from tenderdesk.models.enums import JustificationTab, ScreenStatus
from tenderdesk.models.options import DEFAULT_BASIS, DEFAULT_COMMODITY, MAX_BASIS, normalize_commodity
from tenderdesk.models.schemas import JustificationRow, MultiItem, PredictionResult, SavedSession
from tenderdesk.services.justification import build_justification
from tenderdesk.services.normalizer import safe_json_parse, to_number_loose
from tenderdesk.services.result_mapper import shape_forecast_response
from tenderdesk.services.session_cache import (
    DEFAULT_MAX_AGE,
    LS_BASE_PRICE,
    LS_BASIS,
    LS_COMMODITY,
    KeyValueStore,
    clear_prediction_storage,
    persist_session,
    restore_session,
)


logger = logging.getLogger(__name__)


class PredictionScreenState(BaseModel):
    """Everything the prediction screen renders."""

    commodity: str = DEFAULT_COMMODITY
    basis: List[str] = Field(default_factory=lambda: list(DEFAULT_BASIS))
    futureDate: str = ""
    status: ScreenStatus = ScreenStatus.IDLE
    error: Optional[str] = None
    justTab: JustificationTab = JustificationTab.CALI
    activeIdx: int = 0
    multi: List[MultiItem] = Field(default_factory=list)
    result: Optional[PredictionResult] = None
    bundle: Optional[Dict[str, Any]] = None
    basePricesByBasis: Dict[str, str] = Field(default_factory=dict)


class PredictionSession:
    """
    Controller for one prediction screen backed by a session cache store.

    Args:
        store: Key-value store holding cached forecasts and remembered inputs.
        clock: Returns the current aware datetime; defaults to UTC now.
        max_age: Age after which cached forecasts are discarded.
        max_basis: Maximum number of selected bases.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Callable[[], datetime]] = None,
        max_age: timedelta = DEFAULT_MAX_AGE,
        max_basis: int = MAX_BASIS,
    ):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_age = max_age
        self.max_basis = max_basis
        self.state = PredictionScreenState()

    # -------------------------------------------------------------------------
    # Cache contracts
    # -------------------------------------------------------------------------

    def snapshot(self) -> SavedSession:
        state = self.state
        return SavedSession(
            commodity=state.commodity,
            basis=list(state.basis),
            futureDate=state.futureDate,
            status=state.status,
            justTab=state.justTab,
            activeIdx=state.activeIdx,
            multi=[item.model_copy() for item in state.multi],
            result=state.result,
            bundle=state.bundle,
            basePricesByBasis=dict(state.basePricesByBasis),
        )

    def restore(self) -> bool:
        """
        Apply the cached snapshot for the current (commodity, basis).

        Returns:
            True when a snapshot was applied. Misses, expired entries and
            loading screens leave the state untouched.
        """
        state = self.state
        if state.status == ScreenStatus.LOADING:
            return False

        cached = restore_session(self.store, state.commodity, state.basis, self.clock(), self.max_age)
        if cached is None:
            return False

        state.futureDate = cached.futureDate
        state.error = None
        state.justTab = cached.justTab
        state.basePricesByBasis = dict(cached.basePricesByBasis)
        state.multi = list(cached.multi)
        state.activeIdx = max(0, min(cached.activeIdx, max(0, len(cached.multi) - 1)))

        if cached.multi:
            active = cached.multi[state.activeIdx]
            state.bundle = active.bundle
            state.result = active.result
        else:
            state.bundle = cached.bundle
            state.result = cached.result

        state.status = ScreenStatus.SUCCESS if state.result is not None else ScreenStatus.IDLE
        logger.debug(f"Restored cached forecast for {state.commodity} {state.basis}")
        return True

    def persist(self) -> Optional[SavedSession]:
        """Write the current screen to the cache when it shows a successful result."""
        return persist_session(self.store, self.snapshot(), self.clock())

    def _selection_changed(self) -> None:
        self._remember_selection()
        self.restore()
        self.persist()

    # -------------------------------------------------------------------------
    # Remembered selection
    # -------------------------------------------------------------------------

    def _remember_selection(self) -> None:
        self.store.set_item(LS_COMMODITY, self.state.commodity.lower())
        self.store.set_item(LS_BASIS, json.dumps(self.state.basis))
        self.store.set_item(LS_BASE_PRICE, json.dumps(self.state.basePricesByBasis))

    def load_remembered_selection(self) -> None:
        """
        Load commodity, basis and base prices remembered by a previous session,
        then restore the cached forecast for that selection.

        A legacy single-number base price applies to the first basis.
        """
        state = self.state
        state.commodity = normalize_commodity(self.store.get_item(LS_COMMODITY) or DEFAULT_COMMODITY)

        raw_basis = self.store.get_item(LS_BASIS)
        if raw_basis:
            parsed = safe_json_parse(raw_basis)
            if isinstance(parsed, list):
                if parsed:
                    state.basis = [str(value) for value in parsed][: self.max_basis]
            else:
                state.basis = [raw_basis]

        raw_prices = self.store.get_item(LS_BASE_PRICE)
        parsed_prices = safe_json_parse(raw_prices)
        if isinstance(parsed_prices, dict):
            state.basePricesByBasis = {str(k): str(v) for k, v in parsed_prices.items()}
        else:
            legacy = to_number_loose(raw_prices or "")
            if legacy is not None and state.basis:
                state.basePricesByBasis = {**state.basePricesByBasis, state.basis[0]: str(legacy)}

        self._selection_changed()

    # -------------------------------------------------------------------------
    # Screen operations
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Back to an empty screen; the commodity is kept."""
        self.state = PredictionScreenState(commodity=self.state.commodity)

    def change_commodity(self, value: str) -> bool:
        """
        Switch commodity. Unknown values become the default commodity.

        A real change clears every cached forecast and resets the screen.

        Returns:
            False when the normalized commodity is already selected.
        """
        next_commodity = normalize_commodity(value)
        if next_commodity == self.state.commodity:
            return False

        removed = clear_prediction_storage(self.store)
        logger.info(f"Commodity changed to {next_commodity}; cleared {len(removed)} cached keys")

        self.reset()
        self.state.commodity = next_commodity
        self._selection_changed()
        return True

    def toggle_basis(self, value: str) -> bool:
        """
        Select or deselect a basis; selecting beyond the limit is ignored.

        Returns:
            True when the selection changed.
        """
        basis = list(self.state.basis)
        if value in basis:
            basis.remove(value)
        elif len(basis) >= self.max_basis:
            return False
        else:
            basis.append(value)

        self.state.basis = basis
        self._selection_changed()
        return True

    def select_basis(self, values: Sequence[str]) -> None:
        """Replace the selection (duplicates dropped, truncated to the limit)."""
        basis: List[str] = []
        for value in values:
            value = value.strip()
            if value and value not in basis:
                basis.append(value)

        self.state.basis = basis[: self.max_basis]
        self._selection_changed()

    def set_base_price(self, basis_key: str, text: str) -> None:
        self.state.basePricesByBasis = {**self.state.basePricesByBasis, basis_key: text}
        self._remember_selection()
        self.persist()

    def set_future_date(self, value: str) -> None:
        self.state.futureDate = value
        self.persist()

    def select_tab(self, tab: Union[JustificationTab, str]) -> None:
        self.state.justTab = JustificationTab(tab)
        self.persist()

    def select_active(self, index: int) -> bool:
        """Show another basis of a multi-basis result."""
        if not 0 <= index < len(self.state.multi):
            return False

        item = self.state.multi[index]
        self.state.activeIdx = index
        self.state.bundle = item.bundle
        self.state.result = item.result
        self.persist()
        return True

    # -------------------------------------------------------------------------
    # Forecast runs
    # -------------------------------------------------------------------------

    @property
    def can_run(self) -> bool:
        state = self.state
        return (
            bool(state.commodity.strip())
            and bool(state.futureDate.strip())
            and len(state.basis) > 0
            and state.status != ScreenStatus.LOADING
        )

    def request_body(self) -> Dict[str, Any]:
        """``/predict`` body for the current selection; base prices parsed loosely."""
        basis = self.state.basis[: self.max_basis]
        return {
            "commodity": self.state.commodity,
            "basis": list(self.state.basis),
            "futureDate": self.state.futureDate,
            "basePrices": [to_number_loose(self.state.basePricesByBasis.get(b, "")) for b in basis],
        }

    def start_run(self) -> Optional[Dict[str, Any]]:
        """
        Enter the loading state and return the request body.

        Returns:
            None (and no state change) when the screen cannot run.
        """
        if not self.can_run:
            return None

        state = self.state
        state.status = ScreenStatus.LOADING
        state.error = None
        state.result = None
        state.bundle = None
        state.multi = []
        state.activeIdx = 0
        return self.request_body()

    def apply_response(self, data: Any) -> None:
        """Show a successful ``/predict`` response and cache it."""
        view = shape_forecast_response(data)

        state = self.state
        state.multi = view.multi
        state.activeIdx = view.activeIdx
        state.bundle = view.bundle
        state.result = view.result
        state.justTab = view.justTab
        state.error = None
        state.status = ScreenStatus.SUCCESS
        self.persist()

    def fail_run(self, message: str) -> None:
        self.state.error = message or "Unknown error"
        self.state.status = ScreenStatus.ERROR

    def justification(self, tab: Optional[Union[JustificationTab, str]] = None) -> List[JustificationRow]:
        """Rows for ``tab`` (default: the selected tab) of the active bundle."""
        return build_justification(self.state.bundle, tab or self.state.justTab)
