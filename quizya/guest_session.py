"""
Guest exam-taker identity, stored per browser tab.

The resolver never touches a global store: it is handed a storage object with
get/set/remove. Inside a Streamlit run that is the tab's st.session_state;
anywhere else (scripts, tests, server-side code) it is a NullStorage.
"""
import json
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from engine import GUEST_SESSION_KEY

logger = logging.getLogger(__name__)


@dataclass
class GuestSessionData:
    sessionId: str
    examId: str
    guestName: str
    guestEmail: str
    isGuest: bool = True

    @classmethod
    def from_dict(cls, raw) -> Optional["GuestSessionData"]:
        """Build from parsed JSON; None unless isGuest is exactly True and the ids are strings."""
        if not isinstance(raw, dict) or raw.get("isGuest") is not True:
            return None
        fields = ("sessionId", "examId", "guestName", "guestEmail")
        if not all(isinstance(raw.get(f), str) for f in fields):
            return None
        return cls(**{f: raw[f] for f in fields}, isGuest=True)

    def to_json(self) -> str:
        return json.dumps(asdict(self))


# ============= Storage backends =============

class MemoryStorage:
    """Dict-backed storage (tests, CLI)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class NullStorage:
    """No tab storage available: reads are empty, writes are dropped."""

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str) -> None:
        pass

    def remove(self, key: str) -> None:
        pass


class SessionStateStorage:
    """Streamlit st.session_state, which is scoped to one browser tab."""

    def __init__(self, state=None):
        if state is None:
            import streamlit as st
            state = st.session_state
        self._state = state

    def get(self, key: str) -> Optional[str]:
        return self._state.get(key)

    def set(self, key: str, value: str) -> None:
        self._state[key] = value

    def remove(self, key: str) -> None:
        if key in self._state:
            del self._state[key]


def default_storage():
    """SessionStateStorage inside a Streamlit script run, NullStorage otherwise."""
    try:
        from streamlit.runtime.scriptrunner import get_script_run_ctx
    except ImportError:
        return NullStorage()
    if get_script_run_ctx() is None:
        return NullStorage()
    return SessionStateStorage()


# ============= Resolver =============

class GuestSessionResolver:
    """Reads, writes and clears the guest record under a single storage key."""

    def __init__(self, storage=None, key: str = GUEST_SESSION_KEY):
        self.storage = storage if storage is not None else NullStorage()
        self.key = key

    def get_guest_session(self) -> Optional[GuestSessionData]:
        try:
            raw = self.storage.get(self.key)
            if not raw:
                return None
            return GuestSessionData.from_dict(json.loads(raw))
        except Exception as e:
            logger.debug(f"Ignoring unreadable guest session: {e}")
            return None

    def save_guest_session(self, data: GuestSessionData) -> bool:
        try:
            self.storage.set(self.key, data.to_json())
            return True
        except Exception as e:
            logger.error(f"Error saving guest session: {e}")
            return False

    def clear_guest_session(self) -> None:
        try:
            self.storage.remove(self.key)
        except Exception as e:
            logger.debug(f"Could not clear guest session: {e}")

    def is_guest_session(self) -> bool:
        return self.get_guest_session() is not None

    def get_session_identifier(self) -> Dict[str, str]:
        """{"guestEmail": ...} for a guest; {} otherwise (signed-in users are identified by auth)."""
        guest = self.get_guest_session()
        if guest:
            return {"guestEmail": guest.guestEmail}
        return {}
