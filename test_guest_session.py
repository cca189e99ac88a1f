"""Guest identity stored in tab-scoped storage."""
import json

import pytest

from engine import GUEST_SESSION_KEY
from quizya.guest_session import (
    GuestSessionData,
    GuestSessionResolver,
    MemoryStorage,
    NullStorage,
    SessionStateStorage,
    default_storage,
)

RECORD = {"sessionId": "s1", "examId": "e1", "guestName": "Jo", "guestEmail": "jo@x.com", "isGuest": True}


def resolver_with(raw):
    storage = MemoryStorage({GUEST_SESSION_KEY: raw} if raw is not None else None)
    return GuestSessionResolver(storage)


class BrokenStorage:
    def get(self, key):
        raise OSError("storage disabled")

    def set(self, key, value):
        raise OSError("storage disabled")

    def remove(self, key):
        raise OSError("storage disabled")


@pytest.mark.parametrize("raw", [
    None,
    "",
    "{not json",
    json.dumps({**RECORD, "isGuest": False}),
    json.dumps({**RECORD, "isGuest": "true"}),
    json.dumps({k: v for k, v in RECORD.items() if k != "guestEmail"}),
    json.dumps([RECORD]),
    "null",
])
def test_invalid_or_missing_record_is_absent(raw):
    resolver = resolver_with(raw)
    assert resolver.get_guest_session() is None
    assert resolver.is_guest_session() is False
    assert resolver.get_session_identifier() == {}


def test_valid_record_is_returned():
    resolver = resolver_with(json.dumps(RECORD))
    assert resolver.get_guest_session() == GuestSessionData("s1", "e1", "Jo", "jo@x.com", True)
    assert resolver.is_guest_session() is True
    assert resolver.get_session_identifier() == {"guestEmail": "jo@x.com"}


def test_clear_then_get_is_none_and_idempotent():
    resolver = resolver_with(json.dumps(RECORD))
    resolver.clear_guest_session()
    assert resolver.get_guest_session() is None
    resolver.clear_guest_session()
    assert resolver.get_guest_session() is None


def test_save_round_trips_through_storage():
    storage = MemoryStorage()
    resolver = GuestSessionResolver(storage)
    assert resolver.save_guest_session(GuestSessionData("s9", "e9", "Ana", "ana@x.com"))
    assert json.loads(storage.get(GUEST_SESSION_KEY))["isGuest"] is True
    assert resolver.get_guest_session().sessionId == "s9"


def test_storage_failures_degrade_to_no_guest():
    resolver = GuestSessionResolver(BrokenStorage())
    assert resolver.get_guest_session() is None
    resolver.clear_guest_session()
    assert resolver.save_guest_session(GuestSessionData("s1", "e1", "Jo", "jo@x.com")) is False
    assert resolver.get_session_identifier() == {}


def test_null_storage_behaves_as_no_guest():
    resolver = GuestSessionResolver(NullStorage())
    resolver.save_guest_session(GuestSessionData("s1", "e1", "Jo", "jo@x.com"))
    assert resolver.get_guest_session() is None
    resolver.clear_guest_session()


def test_default_resolver_uses_null_storage():
    assert isinstance(GuestSessionResolver().storage, NullStorage)


def test_default_storage_outside_streamlit_run():
    assert isinstance(default_storage(), NullStorage)


def test_session_state_storage_wraps_mapping():
    state = {}
    resolver = GuestSessionResolver(SessionStateStorage(state))
    resolver.save_guest_session(GuestSessionData("s1", "e1", "Jo", "jo@x.com"))
    assert GUEST_SESSION_KEY in state
    resolver.clear_guest_session()
    assert state == {}
