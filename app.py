# app.py
"""
Application Performance Dashboard - Main Entry Point

Version: 1.2.0

Thin Streamlit shell over PerformancePipeline: pick a viewer profile and a
month, render the Area -> Sator -> Promoter tables.
"""

import streamlit as st
import logging

from utils.config import config
from utils.db import check_db_connection
from utils.application_performance import (
    PerformancePipeline,
    PerformanceFilters,
    AccessControl,
    DataSourceError,
    current_month,
    bucket_color,
)
from utils.application_performance.constants import (
    FILTER_ALL,
    ORDER_BY_NAME,
    ORDER_BY_TOTAL,
    DATE_PRESETS,
    NODE_AREA,
    NODE_TEAM_LEAD,
    NODE_PROMOTER,
)
from utils.application_performance.queries import ProfileRepository

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.get_app_setting("ENABLE_DEBUG_MODE") else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ==================== PAGE CONFIGURATION ====================

APP_NAME = "Application Performance"
APP_ICON = "📊"
APP_VERSION = "1.2.0"

st.set_page_config(
    page_title=APP_NAME,
    page_icon=APP_ICON,
    layout="wide",
    initial_sidebar_state="expanded"
)

# ==================== HELPER FUNCTIONS ====================

def load_viewer():
    """Viewer profile for the user id entered in the sidebar."""
    user_id = st.sidebar.text_input("User ID", key="viewer_user_id")
    if not user_id:
        return None
    try:
        return ProfileRepository().get_viewer_profile(user_id)
    except DataSourceError as e:
        st.sidebar.error(f"⚠️ Cannot load profile: {e}")
        return None


def render_filters(access: AccessControl) -> tuple:
    with st.sidebar:
        st.caption(f"Role: {access.get_role_label()}")
        month = st.text_input("Month (YYYY-MM)", value=current_month())
        preset = st.selectbox("Period", ["month"] + DATE_PRESETS)

        areas = access.get_accessible_areas()
        area = FILTER_ALL
        if len(areas) > 1:
            area = st.selectbox("Area", [FILTER_ALL] + areas)

        team_leads = access.get_accessible_team_leads()
        team_lead = FILTER_ALL
        if team_leads and len(team_leads) > 1:
            team_lead = st.selectbox("Sator", [FILTER_ALL] + team_leads)

        store_prefix = st.text_input("Store prefix (e.g. SPC)") or None
        order_by = st.radio("Order by", [ORDER_BY_TOTAL, ORDER_BY_NAME], horizontal=True)

    filters = PerformanceFilters.for_preset(
        None if preset == "month" else preset,
        area=area,
        team_lead=team_lead,
        store_prefix=store_prefix,
        order_by=order_by,
    )
    if filters.date_to is not None:
        # targets follow the month the period ends in
        month = current_month(filters.date_to)
    return month, filters


def show_report(report):
    if report.is_partial:
        failed = list(report.merge.failed_sources) + list(report.failed_target_tiers)
        st.warning(f"⚠️ Partial data: {', '.join(failed)} unavailable")

    summary = report.summary
    cols = st.columns(5)
    cols[0].metric("Pengajuan", summary.get('total', 0))
    cols[1].metric("Closing (ACC)", summary.get('approved', 0), f"{summary.get('closing_rate', 0)}%")
    cols[2].metric("Pending", summary.get('pending_or_unresolved', 0))
    cols[3].metric("Reject", summary.get('rejected', 0))
    cols[4].metric("Dapat Limit", summary.get('credit_limit_granted', 0))

    for warning in report.warnings:
        st.info(f"🎯 {warning.message}")

    buckets = report.tree_report.bucket_counts()
    if buckets:
        legend = " ".join(
            f'<span style="color:{bucket_color(bucket)}">● {bucket}: {count}</span>'
            for bucket, count in sorted(buckets.items())
        )
        st.markdown(legend, unsafe_allow_html=True)

    tab_area, tab_sator, tab_promoter, tab_store = st.tabs(["Area", "Sator", "Promoter", "Toko"])
    with tab_area:
        st.dataframe(report.frame(NODE_AREA), use_container_width=True, hide_index=True)
    with tab_sator:
        st.dataframe(report.frame(NODE_TEAM_LEAD), use_container_width=True, hide_index=True)
    with tab_promoter:
        st.dataframe(report.frame(NODE_PROMOTER), use_container_width=True, hide_index=True)
        if report.no_activity:
            with st.expander("Promoter tanpa pengajuan"):
                for team_lead, names in report.no_activity.items():
                    st.markdown(f"**{team_lead}**: {', '.join(names)}")
    with tab_store:
        st.dataframe(report.frame('stores'), use_container_width=True, hide_index=True)

    st.caption(f"{APP_NAME} v{APP_VERSION} | generated {report.generated_at:%Y-%m-%d %H:%M}")


# ==================== MAIN ====================

def main():
    """Main application entry point"""
    st.title(f"{APP_ICON} {APP_NAME}")

    db_ok, db_error = check_db_connection()
    if not db_ok:
        st.error(f"⚠️ {db_error}")
        return

    viewer = load_viewer()
    if viewer is None:
        st.info("Enter an active user ID to view performance.")
        return

    access = AccessControl(viewer, config.get_areas())
    month, filters = render_filters(access)

    try:
        with st.spinner("Loading..."):
            report = PerformancePipeline().run(viewer, month, filters)
    except (DataSourceError, ValueError) as e:
        logger.error(f"❌ Report failed: {e}")
        st.error(f"⚠️ {e}")
        return

    if report.is_empty:
        st.info("No data visible for this profile.")
        return

    show_report(report)


if __name__ == "__main__":
    main()
