"""Shared fixtures for the test suite."""

from __future__ import annotations

import pytest

from hidemyemail.models.store import ClientState
from hidemyemail.storage import CLIENT_STATE_KEY, SESSION_KEY, MemoryStore
from tests.fakes import SETUP_URL, SIGN_IN_HEADERS, WEBSERVICES, FakeICloud


def signed_in_store_data() -> dict:
    return {
        CLIENT_STATE_KEY: ClientState(setup_url=SETUP_URL, webservices=WEBSERVICES).to_wire(),
        SESSION_KEY: {
            "headers": {name.lower(): value for name, value in SIGN_IN_HEADERS.items()},
            "webservices": WEBSERVICES,
        },
    }


@pytest.fixture()
def icloud() -> FakeICloud:
    return FakeICloud()


@pytest.fixture()
def store() -> MemoryStore:
    """An empty store, as on first install."""
    return MemoryStore()


@pytest.fixture()
def signed_in_store() -> MemoryStore:
    """A store holding a complete session and client state."""
    return MemoryStore(signed_in_store_data())
