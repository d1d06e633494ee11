"""Shared sidebar and connection handling for the multi-page dashboard."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator

import streamlit as st

from . import db
from .buckets import list_buckets
from .config import DEFAULT_OWNER_ID, configure_logging
from .formatting import format_currency
from .records import (
    list_bills,
    list_incomes,
    remaining_budget,
    total_expected_income,
    total_received_income,
)
from .budget import total_monthly_expenses, total_monthly_income


_FLASH_KEY = "_bucket_flash"


def flash(message: str) -> None:
    """Queue a success message to show after the next ``st.rerun()``."""
    st.session_state[_FLASH_KEY] = message


def render_flash() -> None:
    message = st.session_state.pop(_FLASH_KEY, None)
    if message:
        st.success(message)


@contextmanager
def page_connection() -> Iterator[sqlite3.Connection]:
    """Open the dashboard database for one script run."""
    configure_logging()
    with db.connect() as conn:
        db.init_db(conn)
        yield conn


def render_shared_sidebar(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Render the budget summary shown on every page.

    Returns:
        Dict with keys: 'owner_id', 'total_income', 'total_bills', 'remaining'
    """
    owner_id = st.sidebar.text_input("Profile", value=DEFAULT_OWNER_ID, help="Every record is scoped to this owner.")

    total_income = total_monthly_income(list_incomes(conn, owner_id))
    total_bills = total_monthly_expenses(list_bills(conn, owner_id))
    remaining = remaining_budget(conn, owner_id)

    st.sidebar.subheader("💰 This month")
    st.sidebar.metric("Monthly income", format_currency(total_income))
    st.sidebar.caption(
        f"Received {format_currency(total_received_income(conn, owner_id))} · "
        f"still expected {format_currency(total_expected_income(conn, owner_id))}"
    )
    st.sidebar.metric("Bills & debts", format_currency(total_bills))
    st.sidebar.metric("Left for buckets", format_currency(remaining))

    buckets = list_buckets(conn, owner_id)
    if buckets:
        default = next((b for b in buckets if b.is_default), None)
        st.sidebar.caption(
            f"{len(buckets)} buckets · default: {default.name if default else 'none'}"
        )
    else:
        st.sidebar.caption("No buckets yet. Create them on the Buckets page.")

    return {
        'owner_id': owner_id,
        'total_income': total_income,
        'total_bills': total_bills,
        'remaining': remaining,
    }
