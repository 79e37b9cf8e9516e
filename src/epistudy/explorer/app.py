"""
Evidence Explorer: browse the tables prepared by `epistudy explorer prepare`.

Run through `epistudy explorer launch`, which starts:
    streamlit run app.py -- --data_folder <dir> --blind <true|false>
"""

from __future__ import annotations

import sys

import streamlit as st

from epistudy.canonical import load_canonical
from epistudy.explorer.launch import ExplorerSettings
from epistudy.explorer.store import blind_view, list_database_ids, load_database_table, table_names


def render(settings: ExplorerSettings) -> None:
    canonical = load_canonical()
    st.set_page_config(page_title="Evidence Explorer", layout="wide")
    st.title("Evidence Explorer")
    if settings.blind:
        st.caption("Blinded: comparative effect estimates are hidden.")

    database_ids = list_database_ids(settings.data_folder, canonical)
    if not database_ids:
        st.warning(f"No prepared results found in {settings.data_folder}")
        return

    database_id = st.sidebar.selectbox("Database", database_ids)
    tables = table_names(settings.data_folder, database_id, canonical)
    table_name = st.sidebar.selectbox("Table", tables)

    frame = load_database_table(settings.data_folder, table_name, database_id, canonical)
    frame = blind_view(table_name, frame, blind=settings.blind, canonical=canonical)

    st.subheader(f"{table_name} ({database_id})")
    st.caption(f"{len(frame)} rows")
    st.dataframe(frame, use_container_width=True)


if __name__ == "__main__":
    render(ExplorerSettings.from_args(sys.argv[1:]))
