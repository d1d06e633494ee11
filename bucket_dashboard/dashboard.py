"""Overview page: income, obligations and how the rest is split across buckets."""

from __future__ import annotations

import streamlit as st

from .allocation import calculate_allocations
from .budget import days_in_month, default_bucket_daily_limit
from .buckets import create_default_buckets, list_buckets
from .exceptions import BucketError
from .formatting import format_currency
from .records import list_expenses
from .reports import allocation_frame, bucket_summary_frame
from .shared_sidebar import page_connection, render_shared_sidebar
from .visualization import create_allocation_bar, create_bucket_progress_chart


def main() -> None:
    st.set_page_config(page_title="Bucket Budget", page_icon="🪣", layout="wide")
    st.title("🪣 Bucket Budget")

    with page_connection() as conn:
        sidebar = render_shared_sidebar(conn)
        owner_id = sidebar['owner_id']
        buckets = list_buckets(conn, owner_id)

        if not buckets:
            st.info("You have no buckets yet.")
            if st.button("Start with Savings / Daily Spending / Flex"):
                try:
                    create_default_buckets(conn, owner_id)
                except BucketError as exc:
                    st.error(exc.message)
                else:
                    st.rerun()
            return

        # Preview only; the Buckets page persists allocations.
        allocations = calculate_allocations(buckets, sidebar['remaining'])
        frame = allocation_frame(buckets, allocations, sidebar['total_income'])

        cols = st.columns(3)
        cols[0].metric("Left for buckets", format_currency(sidebar['remaining']))
        cols[1].metric("Allocated", format_currency(frame["Allocated"].sum()))
        cols[2].metric(
            "Daily limit",
            format_currency(default_bucket_daily_limit(buckets, sidebar['remaining'], days_in_month())),
        )

        st.plotly_chart(create_allocation_bar(frame), use_container_width=True)
        st.dataframe(frame.drop(columns=["Color"]), use_container_width=True, hide_index=True)

        st.subheader("Spending by bucket")
        summary = bucket_summary_frame(buckets, list_expenses(conn, owner_id))
        st.plotly_chart(create_bucket_progress_chart(summary), use_container_width=True)
        for _, row in summary.iterrows():
            progress = min(1.0, row["Used %"] / 100) if row["Allocated"] > 0 else 0.0
            st.progress(progress, text=f"{row['Bucket']}: {format_currency(row['Spent'])} of {format_currency(row['Allocated'])}")
