from contextlib import contextmanager
from datetime import timedelta
from typing import Optional

import streamlit as st

from core.cache import FileStore, ResultCache
from core.config import configure_logging, get_settings
from core.data import process_upload
from core.errors import AnalysisError
from core.filters import ALL_SERVICE_TYPES, filtered_hour_buckets, filtered_records, filtered_zip_aggregates, normalize_filters
from core.metrics_datediff import compute_datediff, export_histogram_csv, histogram_export_filename
from core.metrics_hours import compute_hours, export_hours_csv, hours_export_filename
from core.metrics_statistics import compute_statistics
from core.metrics_zip import compute_zip, export_zip_csv, zip_export_filename
from core.session import upload_token

configure_logging()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #6b7280;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div class="card-actions">{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_chart(payload: dict, key: str, empty_message: str):
    spec = payload.get("charts", {}).get(key)
    if not spec:
        st.info(empty_message)
        return
    st.vega_lite_chart(spec, use_container_width=True)


@st.cache_resource
def get_result_cache() -> ResultCache:
    settings = get_settings()
    return ResultCache(FileStore(settings.cache_dir), ttl=timedelta(days=settings.cache_ttl_days))


def reset_results():
    st.session_state.pop("results", None)
    st.session_state.pop("upload_key", None)
    st.session_state.pop("service_type", None)


# ---------- UI setup ----------
st.set_page_config(page_title="Service Request Analyzer", layout="wide")
inject_base_styles()
st.title("Service Request Analyzer")
st.caption("Upload a service-request CSV to see how long requests take to close.")

uploaded = st.file_uploader(
    "CSV file (needs CREATED_DATE, CLOSED_DATE, SR_TYPE; ZIP_CODE optional)",
    type=["csv"],
    key=f"uploader_{st.session_state.get('uploader_nonce', 0)}",
)

if uploaded is None:
    reset_results()
    st.stop()

upload_key = upload_token(uploaded)
if st.session_state.get("upload_key") != upload_key:
    # A new upload replaces whatever was shown before.
    reset_results()
    with card("Processing CSV File", "Analyzing your data and calculating date differences..."):
        bar = st.progress(0, text="0% complete")
        try:
            outcome = process_upload(
                uploaded,
                name=uploaded.name,
                size=uploaded.size,
                content_type=uploaded.type,
                cache=get_result_cache(),
                progress=lambda value: bar.progress(value, text=f"{value}% complete"),
            )
        except AnalysisError as exc:
            st.error(str(exc))
            st.stop()
    st.session_state["results"] = outcome.result
    st.session_state["upload_key"] = upload_key
    if outcome.from_cache:
        st.toast("Loaded cached analysis for this file.")

results = st.session_state["results"]

# ----- Filters -----
with st.sidebar:
    st.markdown("### Filters")
    options = [ALL_SERVICE_TYPES] + results.service_types
    selected = st.selectbox(
        "Filter by Service Type",
        options=options,
        format_func=lambda v: "All Service Types" if v == ALL_SERVICE_TYPES else v,
        key="service_type",
    )
    top_n = st.slider("ZIP codes shown", min_value=5, max_value=50, value=20, step=5)
    st.markdown("---")
    if st.button("Upload New File"):
        st.session_state["uploader_nonce"] = st.session_state.get("uploader_nonce", 0) + 1
        reset_results()
        st.rerun()

filters = normalize_filters({"service_type": selected, "top_n": top_n}, available_service_types=results.service_types)
records = filtered_records(results, filters.service_type)

with card(
    "Analysis Results",
    f"Found {results.global_stats.total:,} valid records across {len(results.service_types)} service types",
):
    st.markdown(f"<span class='chip'>{len(records):,} records</span>", unsafe_allow_html=True)

tab_datediff, tab_hours, tab_zip, tab_stats = st.tabs(["Date Difference", "Hour Analysis", "ZIP Analysis", "Statistics"])

with tab_datediff:
    payload = compute_datediff(filters, results)
    with card(f"Days to Close: {filters.title}", f"{payload['record_count']:,} requests analyzed"):
        render_chart(payload, "histogram", "No data available. Please select a service type that contains data.")
        if payload["bins"]:
            st.download_button(
                "Download Data",
                data=export_histogram_csv(payload["bins"]).encode("utf-8"),
                file_name=histogram_export_filename(filters),
                mime="text/csv",
            )

with tab_hours:
    payload = compute_hours(filters, results)
    kpis = payload["kpis"]
    with card("Requests by Hour of Day", f"{filters.title} • {kpis['total_requests']:,} total requests"):
        render_chart(payload, "hourly_trend", "No data available. Please select a service type that contains data.")
        cols = st.columns(3)
        cols[0].metric("Peak Hour", kpis["peak_hour"]["label"], f"{kpis['peak_hour']['count']:,} requests", delta_color="off")
        cols[1].metric("Avg per Hour", kpis["avg_per_hour"])
        cols[2].metric("Total Requests", f"{kpis['total_requests']:,}")
        st.download_button(
            "Download Data",
            data=export_hours_csv(filtered_hour_buckets(results, filters.service_type)).encode("utf-8"),
            file_name=hours_export_filename(filters),
            mime="text/csv",
        )

with tab_zip:
    payload = compute_zip(filters, results)
    with card(
        "Median Days to Close by ZIP Code",
        f"{filters.title} • Top {len(payload['top'])} ZIP codes by request volume (sorted by median days)",
    ):
        render_chart(
            payload,
            "median_by_zip",
            "No ZIP data. Ensure your CSV has a ZIP_CODE column, or try a different service type.",
        )
        if payload["zip_aggregates"]:
            st.download_button(
                "Download Full Data",
                data=export_zip_csv(filtered_zip_aggregates(results, filters.service_type)).encode("utf-8"),
                file_name=zip_export_filename(filters),
                mime="text/csv",
            )

with tab_stats:
    payload = compute_statistics(filters, results)
    stats = payload["statistics"]
    display = payload["display"]
    with card(f"Statistics: {filters.title}", f"Analysis based on {stats['total']:,} service requests"):
        cols = st.columns(3)
        cols[0].metric("Total Requests", f"{stats['total']:,}")
        cols[1].metric("Mean Days to Close", display["mean"], display["mean_indicator"], delta_color="off")
        cols[2].metric("Median Days to Close", display["median"], display["median_indicator"], delta_color="off")
