"""Tests for hidemyemail.session — header capture and the authenticated predicate."""

from __future__ import annotations

import itertools

import pytest

from hidemyemail.models.store import Webservice
from hidemyemail.session import (
    REQUIRED_HEADERS,
    SCNT_HEADER,
    TRUST_TOKEN_HEADER,
    SessionState,
)
from hidemyemail.storage import SESSION_KEY, MemoryStore
from tests.fakes import PMS_URL, SIGN_IN_HEADERS

SERVICES = {"premiummailsettings": Webservice(url=PMS_URL)}


def full_headers() -> dict[str, str]:
    return {name: f"value-{name}" for name in REQUIRED_HEADERS}


class TestAuthenticated:
    def test_complete_session_is_authenticated(self, store: MemoryStore) -> None:
        session = SessionState(store, SIGN_IN_HEADERS, SERVICES)
        assert session.authenticated is True

    def test_needs_webservices(self, store: MemoryStore) -> None:
        session = SessionState(store, SIGN_IN_HEADERS)
        assert session.authenticated is False

    @pytest.mark.parametrize(
        "missing",
        [c for n in range(1, len(REQUIRED_HEADERS) + 1) for c in itertools.combinations(REQUIRED_HEADERS, n)],
    )
    def test_any_missing_required_header(self, store: MemoryStore, missing: tuple[str, ...]) -> None:
        headers = {k: v for k, v in full_headers().items() if k not in missing}
        session = SessionState(store, headers, SERVICES)
        assert session.authenticated is False
        assert set(session.missing_headers()) == set(missing)

    def test_trust_token_is_optional(self, store: MemoryStore) -> None:
        session = SessionState(store, full_headers(), SERVICES)
        assert TRUST_TOKEN_HEADER not in session.headers
        assert session.authenticated is True

    def test_predicate_follows_live_state(self, store: MemoryStore) -> None:
        session = SessionState(store, full_headers(), SERVICES)
        assert session.authenticated
        del session.headers[SCNT_HEADER]
        assert not session.authenticated


class TestSetHeaders:
    def test_names_are_case_insensitive(self, store: MemoryStore) -> None:
        session = SessionState(store)
        session.set_headers({"SCNT": "abc", "X-Apple-ID-Session-Id": "sid"})
        assert session.headers == {"scnt": "abc", "x-apple-id-session-id": "sid"}

    def test_partial_updates_accumulate(self, store: MemoryStore) -> None:
        session = SessionState(store)
        session.set_headers({"scnt": "one"})
        session.set_headers({"x-apple-session-token": "tok"})
        session.set_headers({"scnt": "two"})
        assert session.headers == {"scnt": "two", "x-apple-session-token": "tok"}

    def test_absent_or_empty_values_keep_existing(self, store: MemoryStore) -> None:
        session = SessionState(store, {"scnt": "kept"})
        session.set_headers({"content-type": "application/json"})
        session.set_headers({"scnt": ""})
        assert session.headers == {"scnt": "kept"}

    def test_unrelated_headers_ignored(self, store: MemoryStore) -> None:
        session = SessionState(store)
        session.set_headers({"Set-Cookie": "x=y", "X-Apple-TwoSV-Trust-Token": "trust"})
        assert session.headers == {TRUST_TOKEN_HEADER: "trust"}


class TestPersistence:
    @pytest.mark.asyncio
    async def test_persist_and_load(self, store: MemoryStore) -> None:
        session = SessionState(store, SIGN_IN_HEADERS, SERVICES)
        await session.persist()

        loaded = await SessionState.load(store)
        assert loaded.headers == session.headers
        assert loaded.webservices["premiummailsettings"].url == PMS_URL
        assert loaded.authenticated

    @pytest.mark.asyncio
    async def test_reset_clears_and_persists(self, store: MemoryStore) -> None:
        session = SessionState(store, SIGN_IN_HEADERS, SERVICES)
        await session.persist()
        await session.reset()

        assert session.headers == {}
        assert session.webservices == {}
        assert (await store.get(SESSION_KEY)) == {"headers": {}, "webservices": {}}

    @pytest.mark.asyncio
    async def test_load_from_empty_store(self, store: MemoryStore) -> None:
        loaded = await SessionState.load(store)
        assert loaded.headers == {}
        assert not loaded.authenticated
