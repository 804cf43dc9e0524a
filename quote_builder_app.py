from __future__ import annotations

import os
import uuid
from datetime import date
from typing import Optional

import streamlit as st
from dotenv import load_dotenv

from app_config import SETTINGS_KEYS, Settings, configure_logging, load_settings
from event_aggregator import (
    NUMERIC_KEY_PRESSED,
    SEQUENCE_CELL_CLICKED,
    TABLE_CELL_CLICKED,
    TABLE_HEADER_CLICKED,
    USER_REQUESTED_DELETE_ROW,
    USER_REQUESTED_INSERT_ROW,
    USER_REQUESTED_LOAD,
    USER_REQUESTED_NEW_QUOTE,
    USER_REQUESTED_PRICE_CALCULATION,
    USER_REQUESTED_SAVE,
    USER_REQUESTED_SUMMATION,
    Notification,
)
from quote_model import LineItem
from quote_pdf import format_amount, make_quote_pdf_bytes, quote_pdf_artifact_from_quote
from quote_session import QuoteSession, build_session
from state_manager import HEIGHT, TYPE_COLUMN, WIDTH, StateSnapshot, UIState

_SESSION_KEY = "quote_session"
_QUOTE_ID_KEY = "quote_id"

_KEYPAD_ROWS = (
    ("7", "8", "9", "DEL"),
    ("4", "5", "6", "W"),
    ("1", "2", "3", "H"),
    ("0", "ENT"),
)


def _read_secret_or_env_str(key: str) -> str:
    """
    Read a configuration value from Streamlit Secrets (preferred) or environment variables.

    Returns a stripped string; returns "" when missing.
    """
    val: object = ""
    try:
        val = st.secrets.get(key, "")  # type: ignore[attr-defined]
    except Exception:
        val = ""
    if not val:
        val = os.environ.get(key, "")
    if isinstance(val, str):
        return val.strip()
    return str(val).strip() if val is not None else ""


def _load_app_settings() -> Settings:
    load_dotenv()
    env = dict(os.environ)
    for key in SETTINGS_KEYS:
        value = _read_secret_or_env_str(key)
        if value:
            env[key] = value
    return load_settings(env)


def _get_session() -> QuoteSession:
    session = st.session_state.get(_SESSION_KEY)
    if not isinstance(session, QuoteSession):
        settings = _load_app_settings()
        configure_logging(settings.log_level)
        session = build_session(settings)
        st.session_state[_SESSION_KEY] = session
        st.session_state[_QUOTE_ID_KEY] = uuid.uuid4().hex[:8].upper()
    return session


def _cell_label(value: object, *, active: bool) -> str:
    text = "" if value is None else str(getattr(value, "value", value))
    if active:
        return f"▶ {text}" if text else "▶"
    return text or "·"


def _price_label(item: LineItem) -> str:
    if item.line_price is None:
        return ""
    return format_amount(int(round(item.line_price * 100)))


def _is_active(ui: UIState, row_index: int, column: str) -> bool:
    return ui.active_cell.row_index == row_index and ui.active_cell.column == column


def _render_notifications(notifications: list[Notification]) -> None:
    for n in notifications:
        if n.type == "error":
            st.toast(n.message, icon="⚠️")
        else:
            st.toast(n.message)


def _render_table(session: QuoteSession, snapshot: StateSnapshot) -> None:
    ui = snapshot.ui
    widths = [1, 2, 2, 2, 2]
    head = st.columns(widths)
    head[0].markdown("**#**")
    head[1].markdown("**Width**")
    head[2].markdown("**Height**")
    head[3].button(
        "TYPE",
        key="header_type",
        on_click=session.dispatch,
        args=(TABLE_HEADER_CLICKED, {"column": TYPE_COLUMN}),
        use_container_width=True,
    )
    head[4].markdown("**Price**")

    for idx, item in enumerate(snapshot.quote_data.items):
        cols = st.columns(widths)
        seq_label = f"[{idx + 1}]" if ui.selected_row_index == idx else str(idx + 1)
        cols[0].button(
            seq_label,
            key=f"seq_{item.item_id}",
            on_click=session.dispatch,
            args=(SEQUENCE_CELL_CLICKED, {"rowIndex": idx}),
            use_container_width=True,
        )
        for col, column in ((cols[1], WIDTH), (cols[2], HEIGHT)):
            col.button(
                _cell_label(getattr(item, column), active=_is_active(ui, idx, column)),
                key=f"{column}_{item.item_id}",
                on_click=session.dispatch,
                args=(TABLE_CELL_CLICKED, {"rowIndex": idx, "column": column}),
                use_container_width=True,
            )
        cols[3].button(
            _cell_label(item.fabric_type, active=False),
            key=f"type_{item.item_id}",
            on_click=session.dispatch,
            args=(TABLE_CELL_CLICKED, {"rowIndex": idx, "column": TYPE_COLUMN}),
            use_container_width=True,
        )
        cols[4].markdown(_price_label(item))

    total = snapshot.quote_data.summary.total_sum
    if total is not None:
        st.markdown(f"**Total:** {format_amount(int(round(total * 100)))}")


def _render_keypad(session: QuoteSession, ui: UIState) -> None:
    mode = "Width" if ui.input_mode == WIDTH else "Height"
    editing = " (editing)" if ui.is_editing else ""
    st.caption(f"{mode}{editing}")
    st.markdown(f"### {ui.input_value or '0'}")
    for row in _KEYPAD_ROWS:
        cols = st.columns(len(row))
        for col, key in zip(cols, row):
            col.button(
                key,
                key=f"key_{key}",
                on_click=session.dispatch,
                args=(NUMERIC_KEY_PRESSED, {"key": key}),
                use_container_width=True,
            )


def _render_actions(session: QuoteSession) -> None:
    actions = (
        ("Insert row", USER_REQUESTED_INSERT_ROW),
        ("Delete row", USER_REQUESTED_DELETE_ROW),
        ("Price", USER_REQUESTED_PRICE_CALCULATION),
        ("Sum", USER_REQUESTED_SUMMATION),
        ("Save", USER_REQUESTED_SAVE),
        ("Load", USER_REQUESTED_LOAD),
        ("New quote", USER_REQUESTED_NEW_QUOTE),
    )
    cols = st.columns(len(actions))
    for col, (label, topic) in zip(cols, actions):
        col.button(label, key=f"action_{topic}", on_click=session.dispatch, args=(topic,), use_container_width=True)


def _quote_pdf_bytes(snapshot: StateSnapshot, quote_id: str, quote_date: Optional[date] = None) -> bytes:
    artifact = quote_pdf_artifact_from_quote(
        snapshot.quote_data,
        quote_id=quote_id,
        quote_date=quote_date or date.today(),
    )
    return make_quote_pdf_bytes(artifact)


def main() -> None:
    st.set_page_config(page_title="Roller Blind Quick Quote", layout="wide")
    st.title("Roller Blind Quick Quote")

    session = _get_session()
    snapshot = session.snapshot or session.state_manager.get_state()
    _render_notifications(session.drain_notifications())

    left, right = st.columns([3, 2], gap="large")
    with left:
        _render_table(session, snapshot)
        _render_actions(session)
    with right:
        _render_keypad(session, snapshot.ui)
        quote_id = str(st.session_state.get(_QUOTE_ID_KEY) or "DRAFT")
        st.download_button(
            "Download PDF",
            data=_quote_pdf_bytes(snapshot, quote_id),
            file_name=f"quote_{quote_id}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )


if __name__ == "__main__":
    main()
