"""
Terminal client for the prediction screen.

Keeps its screen state in a JSON session cache (SESSION_CACHE_PATH), so a
forecast stays visible across invocations for 24 hours per
(commodity, basis set), exactly like the dashboard.

Examples:
    tenderdesk select --commodity urea --basis middle-east --basis us-gulf --date 2026-11-03
    tenderdesk price middle-east 410
    tenderdesk run --id-token "$FIREBASE_ID_TOKEN"
    tenderdesk tab evidence
    tenderdesk show
"""

from __future__ import annotations

import argparse
import logging
import os
from datetime import timedelta
from typing import List, Optional

import httpx

from tenderdesk.core.config import get_settings
from tenderdesk.models.enums import JustificationTab, ScreenStatus
from tenderdesk.models.options import BASES, COMMODITIES, basis_option_label
from tenderdesk.services.justification import format_number
from tenderdesk.services.normalizer import is_finite_number
from tenderdesk.services.prediction_session import PredictionSession
from tenderdesk.services.result_mapper import format_unit, market_bias
from tenderdesk.services.session_cache import JsonFileKeyValueStore, clear_prediction_storage


logger = logging.getLogger(__name__)


ID_TOKEN_ENV = "TENDERDESK_ID_TOKEN"

# Each command is a new process, so the future date is remembered too
CLI_FUTURE_DATE = "cli:futureDate"


def _open_session() -> PredictionSession:
    settings = get_settings()
    session = PredictionSession(
        JsonFileKeyValueStore(settings.session_cache_path),
        max_age=timedelta(hours=settings.session_cache_max_age_hours),
        max_basis=settings.max_basis,
    )
    session.load_remembered_selection()
    if not session.state.futureDate:
        session.state.futureDate = session.store.get_item(CLI_FUTURE_DATE) or ""
    return session


def render_state(session: PredictionSession) -> str:
    """Plain-text rendering of the screen."""
    state = session.state
    labels = ", ".join(basis_option_label(value) for value in state.basis) or "—"

    lines = [
        f"Commodity:   {state.commodity}",
        f"Basis:       {labels}",
        f"Future date: {state.futureDate or '—'}",
        f"Status:      {state.status.value}",
    ]
    if state.error:
        lines.append(f"Error:       {state.error}")

    for basis_key, text in state.basePricesByBasis.items():
        if basis_key in state.basis and text:
            lines.append(f"Base price:  {basis_option_label(basis_key)} = {text}")

    if state.multi:
        lines.append("")
        for index, item in enumerate(state.multi):
            marker = "*" if index == state.activeIdx else " "
            lines.append(f" {marker} [{index}] {item.basisLabel or item.basisKey}")

    if state.result is not None:
        tender = (state.bundle or {}).get("tender") or {}
        signals = tender.get("signals") if isinstance(tender.get("signals"), dict) else {}
        score = signals.get("sentimentScore")
        bias = market_bias(score if is_finite_number(score) else None)

        lines += [
            "",
            f"Action:      {tender.get('tenderAction') or '—'}",
            f"Price:       {format_number(state.result.tenderPredictedPrice)} {format_unit(state.result.currency)}",
            f"Risk:        {state.result.riskLevel.value}",
            f"Bias:        {bias.label}",
        ]

        tab = state.justTab if state.justTab != JustificationTab.CALI else JustificationTab.DRIVERS
        lines += ["", f"Justification ({tab.value}):"]
        for row in session.justification(tab):
            lines.append(f"  - {row.factor} [{row.impact.value}/{row.confidence.value}] {row.comment}")

    return "\n".join(lines)


# =============================================================================
# Commands
# =============================================================================

def _cmd_show(args: argparse.Namespace) -> int:
    print(render_state(_open_session()))
    return 0


def _cmd_options(args: argparse.Namespace) -> int:
    print("Commodities: " + ", ".join(option["value"] for option in COMMODITIES))
    print("Bases:       " + ", ".join(option["value"] for option in BASES))
    return 0


def _cmd_select(args: argparse.Namespace) -> int:
    session = _open_session()
    if args.commodity and session.change_commodity(args.commodity):
        # the screen reset cleared futureDate; forget the remembered one as well
        session.store.remove_item(CLI_FUTURE_DATE)
    if args.basis:
        session.select_basis(args.basis)
    if args.date is not None:
        session.set_future_date(args.date)
        session.store.set_item(CLI_FUTURE_DATE, args.date)
    print(render_state(session))
    return 0


def _cmd_price(args: argparse.Namespace) -> int:
    session = _open_session()
    session.set_base_price(args.basis, args.value)
    print(render_state(session))
    return 0


def _cmd_tab(args: argparse.Namespace) -> int:
    session = _open_session()
    session.select_tab(args.tab)
    print(render_state(session))
    return 0


def _cmd_active(args: argparse.Namespace) -> int:
    session = _open_session()
    if not session.select_active(args.index):
        print(f"No basis result at index {args.index}")
        return 1
    print(render_state(session))
    return 0


def _cmd_clear(args: argparse.Namespace) -> int:
    settings = get_settings()
    removed = clear_prediction_storage(JsonFileKeyValueStore(settings.session_cache_path))
    print(f"Removed {len(removed)} cached entries")
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    settings = get_settings()
    token = args.id_token or os.environ.get(ID_TOKEN_ENV)
    if not token:
        print(f"Not logged in: pass --id-token or set {ID_TOKEN_ENV}")
        return 2

    session = _open_session()
    body = session.start_run()
    if body is None:
        print("Cannot run: choose a commodity, at least one basis and a future date")
        return 2

    url = f"{args.api_url or settings.api_base_url}".rstrip("/") + "/predict"
    try:
        with httpx.Client(timeout=settings.webhook_timeout_seconds) as client:
            response = client.post(url, json=body, headers={"Authorization": f"Bearer {token}"})
        if not response.is_success:
            raise RuntimeError(f"API failed ({response.status_code}): {response.text or 'Unknown error'}")
        session.apply_response(response.json())
    except (httpx.HTTPError, RuntimeError, ValueError) as e:
        logger.debug("Forecast run failed", exc_info=True)
        session.fail_run(str(e))

    print(render_state(session))
    return 0 if session.state.status == ScreenStatus.SUCCESS else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="tenderdesk", description="Tender Desk terminal client")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_show = sub.add_parser("show", help="Show the current screen")
    p_show.set_defaults(func=_cmd_show)

    p_options = sub.add_parser("options", help="List commodities and bases")
    p_options.set_defaults(func=_cmd_options)

    p_select = sub.add_parser("select", help="Change commodity, basis or future date")
    p_select.add_argument("--commodity")
    p_select.add_argument("--basis", action="append", help="Repeat for a second basis")
    p_select.add_argument("--date", help="Future date, YYYY-MM-DD")
    p_select.set_defaults(func=_cmd_select)

    p_price = sub.add_parser("price", help="Set the base price of a basis")
    p_price.add_argument("basis")
    p_price.add_argument("value")
    p_price.set_defaults(func=_cmd_price)

    p_tab = sub.add_parser("tab", help="Select the justification tab")
    p_tab.add_argument("tab", choices=[tab.value for tab in JustificationTab])
    p_tab.set_defaults(func=_cmd_tab)

    p_active = sub.add_parser("active", help="Show another basis of a multi-basis result")
    p_active.add_argument("index", type=int)
    p_active.set_defaults(func=_cmd_active)

    p_clear = sub.add_parser("clear", help="Forget cached forecasts")
    p_clear.set_defaults(func=_cmd_clear)

    p_run = sub.add_parser("run", help="Run a forecast for the current selection")
    p_run.add_argument("--id-token", help=f"Firebase ID token (default: ${ID_TOKEN_ENV})")
    p_run.add_argument("--api-url", help="API base URL (default: API_BASE_URL)")
    p_run.set_defaults(func=_cmd_run)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
