from __future__ import annotations

import logging

import streamlit as st
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core.bootstrap import ensure_demo_seeded
from core.config import get_settings
from core.db import session_scope
from core.logging_config import setup_logging
from core.models import User
from core.security import verify_password
from pages import plan_builder

st.set_page_config(page_title="Practice Plan Builder", layout="wide")
setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)


@st.cache_resource
def _bootstrap() -> bool:
    return ensure_demo_seeded()


def auth_panel() -> None:
    st.title("Practice Plan Builder")
    with st.form("login"):
        u = st.text_input("Username")
        p = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login")
    if not submitted:
        return
    username = u.strip().lower()
    try:
        with session_scope() as s:
            user = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
            ok = user is not None and verify_password(p, user.password_hash)
            user_id = user.id if ok else None
    except SQLAlchemyError as e:
        logger.exception("login_failed")
        st.error(f"Login unavailable: {e}")
        return
    if user_id is None:
        st.error("Invalid credentials")
        return
    st.session_state.user_id = user_id
    st.session_state.username = username
    st.rerun()


def main() -> None:
    _bootstrap()
    if "user_id" not in st.session_state:
        auth_panel()
        return

    with st.sidebar:
        st.write(f"Signed in as **{st.session_state.username}**")
        plan_id = plan_builder.plan_list(int(st.session_state.user_id))
        if st.button("Logout"):
            st.session_state.clear()
            st.rerun()

    st.header("Edit Practice Plan" if plan_id else "Create Practice Plan")
    plan_builder.render(int(st.session_state.user_id), plan_id=plan_id)


main()
