"""Shared page setup and styling for the form builder screens."""

from __future__ import annotations

from html import escape
from typing import Optional

import streamlit as st

_BUILDER_CSS = """
<style>
:root {
    --fe-accent: #0F766E;
    --fe-accent-soft: #CCFBF1;
    --fe-border: rgba(15, 118, 110, 0.2);
    --fe-text: #111827;
    --fe-muted: #6B7280;
    --fe-warning: #B45309;
    --fe-error: #B91C1C;
}

.block-container {
    padding-top: 2rem;
    padding-bottom: 3rem;
}

.fe-header {
    border-left: 6px solid var(--fe-accent);
    padding: 0.75rem 1.25rem;
    margin-bottom: 1.5rem;
    background: #FFFFFF;
    border-radius: 0.75rem;
    box-shadow: 0 8px 24px rgba(17, 24, 39, 0.06);
}

.fe-header h1 {
    margin: 0;
    font-size: 2rem;
    color: var(--fe-text);
}

.fe-header p {
    margin: 0.25rem 0 0 0;
    color: var(--fe-muted);
}

.fe-badge {
    display: inline-block;
    padding: 0.1rem 0.6rem;
    margin-right: 0.35rem;
    border-radius: 999px;
    font-size: 0.75rem;
    font-weight: 600;
    background: var(--fe-accent-soft);
    color: var(--fe-accent);
    border: 1px solid var(--fe-border);
}

.fe-badge--warning {
    background: #FEF3C7;
    color: var(--fe-warning);
}

.fe-badge--error {
    background: #FEE2E2;
    color: var(--fe-error);
}
</style>
"""


def apply_app_theme(page_title: str, page_icon: Optional[str] = None) -> None:
    """Set the page configuration and inject the shared CSS."""

    st.set_page_config(page_title=page_title, page_icon=page_icon, layout="wide")
    st.markdown(_BUILDER_CSS, unsafe_allow_html=True)


def page_header(title: str, subtitle: Optional[str] = None) -> None:
    subtitle_markup = f"<p>{escape(subtitle)}</p>" if subtitle else ""
    st.markdown(
        f"<div class='fe-header'><h1>{escape(title)}</h1>{subtitle_markup}</div>",
        unsafe_allow_html=True,
    )


def badge(text: str, tone: str = "default") -> str:
    """Return the HTML for a small inline status badge."""

    modifier = f" fe-badge--{tone}" if tone in {"warning", "error"} else ""
    return f"<span class='fe-badge{modifier}'>{escape(text)}</span>"
