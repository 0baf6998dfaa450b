"""
Session management for the Apartment Feed.

This module persists client state across executions: the signed-in (or
guest) user, the last applied filters and a short filter history. The
session lives in ``<base_dir>/<session_id>.json``.
"""

import json
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from apartment_feed.models import CurrentUser, FilterSpec


logger = logging.getLogger(__name__)

MAX_FILTER_HISTORY = 20


class UserSessionManager:
    """Persists the client session and acts as the authentication collaborator.

    Storage failures never stop the CLI: a session that cannot be read
    starts empty, and a session that cannot be written is kept in memory.

    Attributes:
        session_id: Name of the session file
        base_dir: Directory holding session files
    """

    def __init__(self, session_id: str, base_dir: str = "./app_sessions"):
        self.session_id = session_id
        self.base_dir = Path(base_dir)

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create session directory {self.base_dir}: {e}")

    @property
    def path(self) -> Path:
        return self.base_dir / f"{self.session_id}.json"

    def new_session(self) -> Dict[str, Any]:
        """A session with nobody signed in and no saved filters."""
        return {
            "session_id": self.session_id,
            "last_run": None,
            "user": None,
            "filters": {},
            "filter_history": [],
        }

    def load_session(self) -> Dict[str, Any]:
        """Read the session file.

        Keys missing from an older file are filled from ``new_session()``.
        A missing, unreadable or corrupt file yields a new session.
        """
        if not self.path.exists():
            logger.info(f"No session at {self.path}, starting a new one")
            return self.new_session()

        try:
            with open(self.path, 'r') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable session {self.path}: {e}")
            return self.new_session()

        if not isinstance(stored, dict):
            logger.error(f"Ignoring session {self.path}: expected an object")
            return self.new_session()

        logger.debug(f"Loaded session {self.session_id}")
        return {**self.new_session(), **stored}

    def save_session(self, state: Dict[str, Any]) -> bool:
        """Write the session file.

        The state is written to a temporary file that then replaces the
        session file, so an interrupted save leaves the previous session.

        Returns:
            Whether the session was written
        """
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Session {self.session_id} kept in memory only, save failed: {e}")
            if tmp_path.exists():
                tmp_path.unlink()
            return False

        logger.debug(f"Saved session {self.session_id}")
        return True

    def update_session_timestamp(self, state: Dict[str, Any]) -> Dict[str, Any]:
        state["last_run"] = datetime.now().isoformat()
        return state

    def current_user(self, state: Dict[str, Any]) -> Optional[CurrentUser]:
        """The signed-in or guest user, or None when nobody is signed in."""
        user = state.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            return None
        try:
            return CurrentUser.from_dict(user)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session user: {e}")
            return None

    def current_user_id(self, state: Dict[str, Any]) -> Optional[str]:
        user = self.current_user(state)
        return user.id if user else None

    def sign_in(self, state: Dict[str, Any], user: CurrentUser) -> Dict[str, Any]:
        state["user"] = user.to_dict()
        return state

    def sign_out(self, state: Dict[str, Any]) -> Dict[str, Any]:
        state["user"] = None
        return state

    def continue_as_guest(self, state: Dict[str, Any]) -> CurrentUser:
        """Sign in as a generated guest user.

        Returns:
            The guest user, with id ``guest-<epoch milliseconds>``
        """
        stamp = int(time.time() * 1000)
        guest = CurrentUser(
            id=f"guest-{stamp}",
            name="Guest",
            email=f"guest-{stamp}@example.com",
            is_guest=True,
        )
        self.sign_in(state, guest)
        logger.info(f"Continuing as guest {guest.id}")
        return guest

    def saved_filters(self, state: Dict[str, Any]) -> FilterSpec:
        """Last applied filters; empty filters if none or unreadable."""
        try:
            return FilterSpec.from_dict(state.get("filters") or {})
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable saved filters: {e}")
            return FilterSpec()

    def save_filters(self, state: Dict[str, Any], spec: FilterSpec) -> Dict[str, Any]:
        """Store the applied filters and add them to the history.

        Args:
            state: Session state dictionary
            spec: Filters that were applied

        Returns:
            Updated session state
        """
        filters = spec.to_dict()
        state["filters"] = filters

        if "filter_history" not in state:
            state["filter_history"] = []

        state["filter_history"].append({
            "filters": filters,
            "timestamp": datetime.now().isoformat(),
        })
        state["filter_history"] = state["filter_history"][-MAX_FILTER_HISTORY:]
        return state
