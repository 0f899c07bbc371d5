"""
Streamlit front-end for the harvest trip log.

- New trip: paste slip text (or upload a text-layer PDF), run `extract()`,
  review the prefilled form with per-field confidence, then save. A likely
  duplicate is shown and needs an explicit "Save anyway".
- Trips: filtered table with totals, CSV download, edit and delete.
- Backup: download a backup, restore one (preview errors/warnings first,
  replace or merge, optional safety download before replacing).
- Lists: known dealers and areas used to anchor extraction.

State lives in the sqlite store; every change is saved right away.
"""

from __future__ import annotations

# --- ensure package imports work when launched directly ---
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import streamlit as st

# --- Internal modules ---
from harvestlog.models.schemas import AppState, Confidence, TripRecord
from harvestlog.services.backup import (
    BackupReadError,
    BackupValidationError,
    backup_filename,
    build_backup_payload,
    import_backup,
    load_backup_text,
    needs_safety_export,
    normalize_backup,
)
from harvestlog.services.extract import extract
from harvestlog.services.normalize import format_mdy
from harvestlog.services.parse_pdf import text_from_pdf
from harvestlog.services.store import erase_all, load_state, save_state
from harvestlog.services.trips import (
    FILTERS,
    add_area,
    add_dealer,
    commit_trip,
    delete_trip,
    filter_trips,
    price_per_pound,
    remove_area,
    remove_dealer,
    totals,
)
from harvestlog.util.config import load_config

# ---------------------------- Page setup ----------------------------

st.set_page_config(page_title="Shellfish Tracker", layout="wide")
st.title("Shellfish Tracker")
st.caption("Paste a dealer slip → review the extracted fields → save the trip.")

if "app_state" not in st.session_state:
    st.session_state["app_state"] = load_state()
state: AppState = st.session_state["app_state"]

# ---------------------------- Sidebar ----------------------------

with st.sidebar:
    st.header("How it works")
    st.markdown(
        "- Extraction never guesses: a field it can't find stays blank.\n"
        "- Confidence: **high** = labelled on the slip, **med** = found by layout, "
        "**low** = best guess from repeated numbers.\n"
        "- Duplicates: same date and dealer, pounds within 0.25 and amount within $2.00."
    )
    st.divider()
    with st.expander("Danger zone"):
        if st.button("Erase all data", type="secondary"):
            erase_all()
            st.session_state["app_state"] = AppState()
            st.rerun()


# ---------------------------- Helpers ----------------------------

def file_hash(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()[:16]


def ensure_tmp_dir() -> Path:
    tmp_dir = Path.cwd() / ".tmp_uploads"
    tmp_dir.mkdir(parents=True, exist_ok=True)
    return tmp_dir


def trip_to_row(t: TripRecord) -> Dict[str, Any]:
    return {
        "id": t.id,
        "date": format_mdy(t.harvest_date),
        "dealer": t.dealer,
        "area": t.area,
        "pounds": t.pounds,
        "amount": t.amount,
        "price_per_lb": price_per_pound(t.pounds, t.amount),
        "source": t.source,
    }


def rows_to_dataframe(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    cols = ["id", "date", "dealer", "area", "pounds", "amount", "price_per_lb", "source"]
    df = pd.DataFrame(rows)
    for c in cols:
        if c not in df.columns:
            df[c] = None
    return df[cols]


def confidence_note(conf: Confidence) -> str:
    return "not found" if conf == Confidence.ABSENT else f"{conf.label} confidence"


def persist(msg: str = ""):
    save_state(state)
    if msg:
        st.success(msg)


def trip_form(key: str, prefill: Dict[str, str], notes: Dict[str, str]) -> Dict[str, str] | None:
    """Five review inputs; returns the entered strings when submitted."""
    with st.form(key):
        c1, c2 = st.columns(2)
        with c1:
            date_s = st.text_input("Date (MM/DD/YYYY)", prefill.get("date", ""), help=notes.get("date"))
            dealer_s = st.text_input("Dealer", prefill.get("dealer", ""), help=notes.get("dealer"))
            area_s = st.text_input("Area", prefill.get("area", ""), help=notes.get("area"))
        with c2:
            pounds_s = st.text_input("Pounds", prefill.get("pounds", ""), help=notes.get("pounds"))
            amount_s = st.text_input("Amount ($)", prefill.get("amount", ""), help=notes.get("amount"))
        submitted = st.form_submit_button("Save trip", type="primary")
    if not submitted:
        return None
    return {
        "date": date_s, "dealer": dealer_s, "area": area_s,
        "pounds": pounds_s, "amount": amount_s,
        "source": prefill.get("source", "manual"),
        "raw_text": prefill.get("raw_text", ""),
    }


def handle_commit(inputs: Dict[str, str], edit_id: str | None = None):
    result = commit_trip(state, inputs, edit_id=edit_id)
    if result.status == "saved":
        persist(f"Saved trip for {result.trip.dealer} on {format_mdy(result.trip.harvest_date)}.")
        st.session_state.pop("draft", None)
        st.session_state.pop("pending", None)
    elif result.status == "invalid":
        st.error("Missing/invalid: " + ", ".join(result.errors))
    elif result.status == "not_found":
        st.error("Trip not found; it may have been deleted.")
    else:
        st.session_state["pending"] = {"inputs": inputs, "edit_id": edit_id, "dup": result.duplicate}


def duplicate_prompt():
    pending = st.session_state.get("pending")
    if not pending:
        return
    dup: TripRecord = pending["dup"]
    st.warning(
        f"This looks like a duplicate of: {format_mdy(dup.harvest_date)} - {dup.dealer} "
        f"(${dup.amount:,.2f} / {dup.pounds} lbs)"
    )
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Save anyway"):
            result = commit_trip(state, pending["inputs"], edit_id=pending["edit_id"], confirm_duplicate=True)
            st.session_state.pop("pending", None)
            if result.status == "saved":
                st.session_state.pop("draft", None)
                persist("Saved.")
    with c2:
        if st.button("Cancel"):
            st.session_state.pop("pending", None)


# ---------------------------- Tabs ----------------------------

tab_new, tab_trips, tab_backup, tab_lists = st.tabs(["New trip", "Trips", "Backup", "Lists"])

with tab_new:
    pasted = st.text_area("Paste slip / receipt text", height=200)
    uploaded_pdf = st.file_uploader("…or upload a slip PDF", type=["pdf"])

    if st.button("Extract", type="primary"):
        text = pasted
        if uploaded_pdf is not None:
            data = uploaded_pdf.read()
            tmp_path = ensure_tmp_dir() / f"{uploaded_pdf.name}-{file_hash(data)}.pdf"
            with open(tmp_path, "wb") as f:
                f.write(data)
            text = text_from_pdf(str(tmp_path))
            if not text.strip():
                st.warning("No text layer in that PDF; enter the trip by hand.")
        st.session_state["draft"] = extract(text, state.dealers, state.areas)

    draft = st.session_state.get("draft")
    prefill = draft.to_inputs() if draft else {"source": "manual"}
    notes = {k: confidence_note(v) for k, v in draft.confidence.items()} if draft else {}
    if draft:
        st.markdown("**Extracted:** " + ", ".join(f"{k}: {n}" for k, n in notes.items()))
        for flag in draft.flags:
            st.caption(f"⚠ {flag}")

    entered = trip_form("new_trip", prefill, notes)
    if entered is not None:
        handle_commit(entered)
    duplicate_prompt()

with tab_trips:
    label = st.radio("Show", FILTERS, index=FILTERS.index(state.filter) if state.filter in FILTERS else 0,
                     horizontal=True)
    if label != state.filter:
        state.filter = label
        persist()

    shown = sorted(filter_trips(state.trips, label), key=lambda t: t.harvest_date, reverse=True)
    tot = totals(shown)
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Trips", tot["trips"])
    m2.metric("Pounds", f"{tot['pounds']:,.2f}")
    m3.metric("Amount", f"${tot['amount']:,.2f}")
    m4.metric("Avg $/lb", f"${tot['price_per_pound']:,.2f}")

    df = rows_to_dataframe([trip_to_row(t) for t in shown])
    st.dataframe(df, use_container_width=True)
    st.download_button(
        "Download CSV",
        data=df.to_csv(index=False),
        file_name=f"shellfish_trips_{label}.csv",
        mime="text/csv",
    )

    if shown:
        pick = st.selectbox(
            "Edit or delete a trip",
            [t.id for t in shown],
            format_func=lambda i: next(f"{format_mdy(t.harvest_date)} - {t.dealer} - ${t.amount:,.2f}"
                                       for t in shown if t.id == i),
        )
        chosen = next(t for t in shown if t.id == pick)
        edited = trip_form(
            f"edit_{pick}",
            {
                "date": format_mdy(chosen.harvest_date), "dealer": chosen.dealer, "area": chosen.area,
                "pounds": f"{chosen.pounds:g}", "amount": f"{chosen.amount:.2f}", "source": chosen.source,
            },
            {},
        )
        if edited is not None:
            handle_commit(edited, edit_id=pick)
        if st.button("Delete this trip"):
            if delete_trip(state, pick):
                persist("Trip deleted.")
                st.rerun()

with tab_backup:
    st.subheader("Create backup")
    st.download_button(
        "Download backup (JSON)",
        data=json.dumps(build_backup_payload(state), indent=2),
        file_name=backup_filename(),
        mime="application/json",
    )

    st.subheader("Restore backup")
    backup_file = st.file_uploader("Choose a backup file", type=["json"], key="backup_upload")
    if backup_file is not None:
        text = backup_file.getvalue().decode("utf-8", errors="replace")
        try:
            check = normalize_backup(load_backup_text(text))
        except BackupReadError as e:
            st.error(str(e))
            check = None

        if check is not None:
            for err in check.errors:
                st.error(err)
            for warn in check.warnings:
                st.warning(warn)

        if check is not None and check.ok:
            p = check.payload
            st.write(f"{len(p.trips)} trips, {len(p.areas)} areas, {len(p.dealers)} dealers in file.")
            mode = st.radio("Restore mode", ["merge", "replace"], horizontal=True,
                            help="Merge skips likely duplicates. Replace swaps out everything on this device.")
            if mode == "replace" and needs_safety_export(state):
                prefix = load_config()["backup"]["safety_prefix"]
                st.download_button(
                    "Download safety backup of current data first",
                    data=json.dumps(build_backup_payload(state), indent=2),
                    file_name=backup_filename(prefix),
                    mime="application/json",
                )
            if st.button("Apply restore", type="primary"):
                try:
                    summary = import_backup(state, text, mode)
                except (BackupReadError, BackupValidationError) as e:
                    st.error(f"Restore failed: {e}")
                else:
                    st.success(summary.message())

with tab_lists:
    col_d, col_a = st.columns(2)
    with col_d:
        st.subheader("Dealers")
        for name in list(state.dealers):
            if st.button(f"Remove {name}", key=f"rm_dealer_{name}"):
                remove_dealer(state, name)
                persist()
                st.rerun()
        new_dealer = st.text_input("Add dealer", key="add_dealer")
        if st.button("Add", key="add_dealer_btn") and new_dealer:
            if add_dealer(state, new_dealer):
                persist()
                st.rerun()
            else:
                st.info("Already in the list.")
    with col_a:
        st.subheader("Areas")
        for name in list(state.areas):
            if st.button(f"Remove {name}", key=f"rm_area_{name}"):
                remove_area(state, name)
                persist()
                st.rerun()
        new_area = st.text_input("Add area", key="add_area")
        if st.button("Add", key="add_area_btn") and new_area:
            if add_area(state, new_area):
                persist()
                st.rerun()
            else:
                st.info("Already in the list.")
