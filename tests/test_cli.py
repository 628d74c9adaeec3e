"""Tests for the `hme` command line."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner

from hidemyemail.cli.main import main
from hidemyemail.popup import Popup
from hidemyemail.storage import POPUP_STATE_KEY, MemoryStore
from tests.fakes import PMS_URL, SETUP_URL, SIGN_IN_HEADERS, FakeICloud, hme_email

LOGIN_ARGS = [arg for name, value in SIGN_IN_HEADERS.items() for arg in ("-H", f"{name}={value}")]


@pytest.fixture()
def use_store(monkeypatch, icloud: FakeICloud):
    def install(store: MemoryStore) -> MemoryStore:
        monkeypatch.setattr("hidemyemail.cli.main._get_popup", lambda: Popup(store, http=icloud.http()))
        return store
    return install


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


class TestAuth:
    def test_login(self, runner, use_store, store) -> None:
        use_store(store)
        result = runner.invoke(main, ["auth", "login", *LOGIN_ARGS, "--setup-url", SETUP_URL])

        assert result.exit_code == 0, result.output
        assert "Signed in to iCloud." in result.output
        assert store.snapshot()[POPUP_STATE_KEY] == "Authenticated"

    def test_login_from_headers_file(self, runner, use_store, store, tmp_path) -> None:
        use_store(store)
        headers_file = tmp_path / "headers.json"
        headers_file.write_text(json.dumps(SIGN_IN_HEADERS))

        result = runner.invoke(main, ["auth", "login", "--headers-file", str(headers_file),
                                      "--setup-url", SETUP_URL])
        assert result.exit_code == 0, result.output

    def test_login_with_missing_header(self, runner, use_store, store, icloud) -> None:
        use_store(store)
        result = runner.invoke(main, ["auth", "login", "-H", "scnt=abc", "--setup-url", SETUP_URL])

        assert result.exit_code == 1
        assert "missing required headers" in result.output
        assert icloud.requests == []

    def test_malformed_header(self, runner, use_store, store) -> None:
        use_store(store)
        result = runner.invoke(main, ["auth", "login", "-H", "no-equals-sign"])
        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output

    def test_login_when_signed_in(self, runner, use_store, signed_in_store) -> None:
        use_store(signed_in_store)
        result = runner.invoke(main, ["auth", "login", *LOGIN_ARGS])
        assert result.exit_code == 0
        assert "Already signed in." in result.output

    def test_status(self, runner, use_store, store, signed_in_store) -> None:
        use_store(store)
        result = runner.invoke(main, ["auth", "status"])
        assert "Not signed in" in result.output

        use_store(signed_in_store)
        result = runner.invoke(main, ["auth", "status"])
        assert "Signed in" in result.output and "Authenticated" in result.output

    def test_logout(self, runner, use_store, signed_in_store, icloud) -> None:
        use_store(signed_in_store)
        result = runner.invoke(main, ["auth", "logout", "--trust"])

        assert result.exit_code == 0, result.output
        assert "Signed out." in result.output
        assert signed_in_store.snapshot()[POPUP_STATE_KEY] == "SignedOut"
        assert b'"trustBrowsers":true' in icloud.calls("/logout")[0].read().replace(b" ", b"")


class TestAliasCommands:
    def test_requires_sign_in(self, runner, use_store, store) -> None:
        use_store(store)
        result = runner.invoke(main, ["generate"])
        assert result.exit_code == 1
        assert "Not signed in" in result.output

    def test_generate(self, runner, use_store, signed_in_store) -> None:
        use_store(signed_in_store)
        result = runner.invoke(main, ["generate"])
        assert result.exit_code == 0, result.output
        assert "abc.def@icloud.com" in result.output

    def test_generate_error(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("POST", f"{PMS_URL}/v1/hme/generate",
                  {"success": False, "error": {"errorMessage": "rate limited"}})
        use_store(signed_in_store)
        result = runner.invoke(main, ["generate"])
        assert result.exit_code == 1
        assert "rate limited" in result.output

    def test_reserve(self, runner, use_store, signed_in_store) -> None:
        use_store(signed_in_store)
        result = runner.invoke(main, ["reserve", "abc.def@icloud.com", "--label", "shop"])
        assert result.exit_code == 0, result.output
        assert "Reserved abc.def@icloud.com" in result.output

    def test_list_json(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", {
            "success": True,
            "result": {"hmeEmails": [hme_email()], "selectedForwardTo": "me@example.com",
                       "forwardToEmails": ["me@example.com"]},
        })
        use_store(signed_in_store)
        result = runner.invoke(main, ["list", "--json"])

        assert result.exit_code == 0, result.output
        listing = json.loads(result.output)
        assert listing["hmeEmails"][0]["hme"] == "abc.def@icloud.com"
        assert signed_in_store.snapshot()[POPUP_STATE_KEY] == "AuthenticatedAndManaging"

    def test_list_table(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", {
            "success": True,
            "result": {"hmeEmails": [hme_email()], "selectedForwardTo": "me@example.com",
                       "forwardToEmails": ["me@example.com"]},
        })
        use_store(signed_in_store)
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0, result.output
        assert "1 total" in result.output
        assert "Forwarding to me@example.com" in result.output

    @pytest.mark.parametrize("command, endpoint, verb", [
        ("deactivate", "deactivate", "Deactivated"),
        ("reactivate", "reactivate", "Reactivated"),
        ("delete", "delete", "Deleted"),
    ])
    def test_manager_commands(self, runner, use_store, signed_in_store, icloud, command, endpoint, verb) -> None:
        icloud.on("POST", f"{PMS_URL}/v1/hme/{endpoint}", {"success": True})
        use_store(signed_in_store)
        result = runner.invoke(main, [command, "anon-1"])

        assert result.exit_code == 0, result.output
        assert f"{verb} anon-1." in result.output
        assert json.loads(icloud.calls(f"/{endpoint}")[0].read()) == {"anonymousId": "anon-1"}

    def test_update_and_forward_to(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("POST", f"{PMS_URL}/v1/hme/updateMetaData", {"success": True})
        icloud.on("POST", f"{PMS_URL}/v1/hme/updateForwardTo", {"success": True})
        use_store(signed_in_store)

        assert runner.invoke(main, ["update", "anon-1", "--label", "shop"]).exit_code == 0
        result = runner.invoke(main, ["forward-to", "me@example.com"])
        assert result.exit_code == 0, result.output
        assert "Forwarding to me@example.com." in result.output

    def test_state(self, runner, use_store, store) -> None:
        use_store(store)
        result = runner.invoke(main, ["state"])
        assert result.output.strip() == "SignedOut"


def listing(*emails: dict) -> dict:
    return {"success": True, "result": {"hmeEmails": list(emails), "selectedForwardTo": "me@example.com",
                                        "forwardToEmails": ["me@example.com"]}}


SEARCHABLE = listing(
    hme_email("abc.def@icloud.com", label="github.com", anonymousId="anon-1"),
    hme_email("ghi.jkl@icloud.com", label="shop.example.com", anonymousId="anon-2"),
    hme_email("mno.pqr@icloud.com", label="news", anonymousId="anon-3"),
)


class TestListSearch:
    def test_search_json(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", SEARCHABLE)
        use_store(signed_in_store)
        result = runner.invoke(main, ["list", "--search", "gihtub", "--json"])

        assert result.exit_code == 0, result.output
        assert [e["label"] for e in json.loads(result.output)["hmeEmails"]] == ["github.com"]

    def test_search_table(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", SEARCHABLE)
        use_store(signed_in_store)
        result = runner.invoke(main, ["list", "-s", "shop"])

        assert result.exit_code == 0, result.output
        assert "1 matching" in result.output
        assert "ghi.jkl@icloud.com" in result.output
        assert "abc.def@icloud.com" not in result.output

    def test_search_without_hits(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", SEARCHABLE)
        use_store(signed_in_store)
        result = runner.invoke(main, ["list", "--search", "zzzz", "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["hmeEmails"] == []


def html_page(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"})


class TestMalformedUpstream:
    def test_generate_non_json_body(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("POST", f"{PMS_URL}/v1/hme/generate", html_page)
        use_store(signed_in_store)
        result = runner.invoke(main, ["generate"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "is not valid JSON" in " ".join(result.output.split())
        assert "Traceback" not in result.output

    def test_list_null_aliases(self, runner, use_store, signed_in_store, icloud) -> None:
        icloud.on("GET", f"{PMS_URL}/v2/hme/list", {"success": True, "result": {"hmeEmails": None}})
        use_store(signed_in_store)
        result = runner.invoke(main, ["list"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Unexpected ListHmeResult result" in result.output
