"""Fee Tiers — Streamlit admin page for tiered commission / delivery-fee ranges.

Layout: sidebar (category, backend, refresh) → main area with three tabs
(Ranges | Calculator | Import / Export).
The page only renders; all create/edit/delete behaviour lives in
``RangeEditor`` so it is the same object the tests drive.

Run with:
    streamlit run src/fee_tiers/dashboard/app.py
"""

from __future__ import annotations

import io

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from fee_tiers.config.settings import Settings, configure_logging
from fee_tiers.dashboard.editor import NEW_ROW, RangeEditor
from fee_tiers.engine.resolver import fee_schedule
from fee_tiers.engine.store import RangeStore
from fee_tiers.engine.tabular import export_csv, read_drafts_csv
from fee_tiers.errors import RangeValidationError, RemoteError

FIELD_LABELS = {
    "label": "Name",
    "min": "Minimum",
    "max": "Maximum",
    "base": "Base amount",
    "per_unit": "Per-unit rate",
}

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(page_title="Fee Tiers", page_icon="💸", layout="wide")


# ---------------------------------------------------------------------------
# Session objects — one store per browser session, one editor per category
# ---------------------------------------------------------------------------
@st.cache_resource
def _settings() -> Settings:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return settings


def _store() -> RangeStore:
    if "store" not in st.session_state:
        st.session_state["store"] = RangeStore.from_settings(_settings())
    return st.session_state["store"]


def _editor(category: str) -> RangeEditor:
    editors = st.session_state.setdefault("editors", {})
    if category not in editors:
        editor = RangeEditor(_store(), category)
        editor.load()
        editors[category] = editor
    return editors[category]


def _show_notice(editor: RangeEditor) -> None:
    notice = editor.take_notice()
    if notice is None:
        return
    level, message = notice
    if level == "error":
        st.error(message)
    else:
        st.toast(message)


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
settings = _settings()
store = _store()

with st.sidebar:
    st.header("Fee Tiers")
    titles = {cat.key: cat.title for cat in store.categories}
    category = st.selectbox("Category", list(titles), format_func=titles.get)
    cfg = store.category(category)
    st.caption(f"Backend: `{settings.api_url}` · timeout {settings.timeout_seconds:g}s")
    st.caption(
        f"Persistence: **{cfg.persistence}** · "
        + ("at least one rule required" if cfg.requires_rule else "may be empty")
    )

editor = _editor(category)

with st.sidebar:
    if st.button("🔄  Refresh", use_container_width=True, disabled=editor.busy):
        editor.load()

st.title(cfg.title)
st.caption(
    f"Ranges over **{cfg.input_label}**. Each range covers [min, max) and pays "
    "base + per-unit × input. Gaps mean no rule applies."
)
_show_notice(editor)

tab_ranges, tab_calc, tab_io = st.tabs(["Ranges", "Calculator", "Import / Export"])


# ---------------------------------------------------------------------------
# Edit form
# ---------------------------------------------------------------------------
def _render_form(editor: RangeEditor) -> None:
    prefix = f"{editor.category}-{editor.editing_id}"
    heading = "New range" if editor.editing_id == NEW_ROW else f"Edit “{editor.form['label']}”"
    st.subheader(heading)

    c1, c2, c3 = st.columns(3)
    with c1:
        label = st.text_input(FIELD_LABELS["label"], value=editor.form["label"], key=f"{prefix}-label")
    with c2:
        min_value = st.text_input(FIELD_LABELS["min"], value=editor.form["min"], key=f"{prefix}-min")
    with c3:
        unbounded = st.checkbox("Unlimited (no maximum)", value=editor.form["unbounded"], key=f"{prefix}-unbounded")
        max_value = st.text_input(
            FIELD_LABELS["max"], value=editor.form["max"], key=f"{prefix}-max", disabled=unbounded,
        )

    c4, c5, c6 = st.columns(3)
    with c4:
        base = st.text_input(FIELD_LABELS["base"], value=editor.form["base"], key=f"{prefix}-base")
    with c5:
        per_unit = st.text_input(FIELD_LABELS["per_unit"], value=editor.form["per_unit"], key=f"{prefix}-per_unit")
    with c6:
        active = st.checkbox("Active", value=editor.form["active"], key=f"{prefix}-active")

    for name, value in (
        ("label", label), ("min", min_value), ("max", max_value), ("unbounded", unbounded),
        ("base", base), ("per_unit", per_unit), ("active", active),
    ):
        if editor.form[name] != value:
            editor.set_field(name, value)

    for name, messages in editor.field_errors.items():
        for message in messages:
            st.error(f"**{FIELD_LABELS.get(name, name)}** — {message}")

    b1, b2, _ = st.columns([1, 1, 4])
    with b1:
        if st.button("💾  Save", type="primary", disabled=editor.busy, key=f"{prefix}-save"):
            if editor.save() is not None:
                st.rerun()
    with b2:
        if st.button("Cancel", disabled=editor.busy, key=f"{prefix}-cancel"):
            editor.cancel()
            st.rerun()


def _request_edit(editor: RangeEditor, row_id: str) -> None:
    """Switch rows; ask before throwing away an unsaved draft."""
    if row_id == NEW_ROW:
        entered = editor.begin_create()
    else:
        entered = editor.begin_edit(row_id)
    if not entered:
        st.session_state["pending_edit"] = (editor.category, row_id)


# ---------------------------------------------------------------------------
# Tab 1 — range table with inline actions
# ---------------------------------------------------------------------------
with tab_ranges:
    f1, f2 = st.columns([3, 1])
    with f1:
        query = st.text_input("Search by name or bound", key=f"{category}-search")
    with f2:
        status_filter = st.selectbox("Status", ["All", "Active", "Inactive"], key=f"{category}-status")
    status = {"All": None, "Active": True, "Inactive": False}[status_filter]
    visible_ids = {r.id for r in store.search(category, query, status)}
    rows = [r for r in editor.rows() if r.id in visible_ids]

    st.metric("Ranges", f"{len(rows)} / {len(store.list(category))}")

    if not rows:
        st.info("No ranges yet. Add the first one below." if not query else "No ranges match the search.")
    else:
        header = st.columns([0.5, 2, 2, 3, 1, 2.5])
        for col, title in zip(header, ["SL", "Name", cfg.input_label, "Formula", "Status", "Actions"]):
            col.markdown(f"**{title}**")
        for row in rows:
            cols = st.columns([0.5, 2, 2, 3, 1, 2.5])
            cols[0].write(row.sl)
            cols[1].write(row.label + ("  ✏️" if row.state != "viewing" else ""))
            cols[2].write(row.interval)
            cols[3].write(row.formula)
            cols[4].write("🟢 Active" if row.active else "⚪ Inactive")
            a1, a2, a3 = cols[5].columns(3)
            if a1.button("Edit", key=f"edit-{row.id}", disabled=editor.busy):
                _request_edit(editor, row.id)
                st.rerun()
            if a2.button("Toggle", key=f"toggle-{row.id}", disabled=editor.busy):
                editor.toggle(row.id)
                st.rerun()
            can_delete = store.can_delete(category, row.id)
            if a3.button("Delete", key=f"delete-{row.id}", disabled=editor.busy or not can_delete):
                editor.delete(row.id)
                st.rerun()

    pending = st.session_state.get("pending_edit")
    if pending and pending[0] == category:
        st.warning("You have unsaved changes. Discard them?")
        d1, d2, _ = st.columns([1, 1, 4])
        if d1.button("Discard changes", type="primary"):
            target = pending[1]
            if target == NEW_ROW:
                editor.begin_create(confirm_discard=True)
            else:
                editor.begin_edit(target, confirm_discard=True)
            del st.session_state["pending_edit"]
            st.rerun()
        if d2.button("Keep editing"):
            del st.session_state["pending_edit"]
            st.rerun()

    st.divider()
    if editor.editing_id is None:
        if st.button("➕  Add range", disabled=editor.busy):
            _request_edit(editor, NEW_ROW)
            st.rerun()
    else:
        _render_form(editor)


# ---------------------------------------------------------------------------
# Tab 2 — calculator + schedule chart
# ---------------------------------------------------------------------------
with tab_calc:
    rules = store.list(category)
    value = st.number_input(cfg.input_label, min_value=0.0, value=1.0, step=0.5, key=f"{category}-calc")
    result = editor.preview(value)
    if result is None:
        st.warning(f"No active range covers {value:g}. Pricing for this input is undefined.")
    else:
        m1, m2 = st.columns(2)
        m1.metric("Amount", f"{result.amount:,.{cfg.currency_decimals}f}")
        m2.metric("Matched range", result.label)

    finite_bounds = [r.max for r in rules if r.max is not None] + [r.min for r in rules]
    upper = max(finite_bounds + [value]) * 1.25 if finite_bounds else max(value, 10.0)
    xs, ys = fee_schedule(rules, upper, decimals=cfg.currency_decimals)
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=xs, y=ys, mode="lines", name="Amount", connectgaps=False))
    if result is not None:
        fig.add_trace(go.Scatter(x=[value], y=[result.amount], mode="markers", name="Input",
                                 marker=dict(size=10)))
    fig.update_layout(
        xaxis_title=cfg.input_label, yaxis_title="Amount",
        height=380, margin=dict(l=20, r=20, t=30, b=20),
    )
    st.plotly_chart(fig, use_container_width=True)


# ---------------------------------------------------------------------------
# Tab 3 — CSV export / import
# ---------------------------------------------------------------------------
with tab_io:
    st.download_button(
        "⬇️  Export CSV",
        data=export_csv(store.list(category)),
        file_name=f"{category}.csv",
        mime="text/csv",
    )
    uploaded = st.file_uploader("Import ranges from CSV", type=["csv"])
    if uploaded is not None:
        drafts, problems = read_drafts_csv(io.StringIO(uploaded.getvalue().decode("utf-8")))
        st.dataframe(
            pd.DataFrame([
                {"label": d.label, "interval": d.interval_text(), "formula": d.formula.describe()}
                for d in drafts
            ]),
            use_container_width=True, hide_index=True,
        )
        for problem in problems:
            st.warning(problem)
        if drafts and st.button("Create imported ranges", disabled=editor.busy):
            created, rejected = 0, []
            for draft in drafts:
                try:
                    store.create(category, draft)
                    created += 1
                except (RangeValidationError, RemoteError) as exc:
                    rejected.append(f"{draft.label or draft.interval_text()}: {exc}")
            st.success(f"Created {created} range(s)")
            for message in rejected:
                st.error(message)
