"""
Tests for the slk command line, with the network and the browser stubbed out.
"""

import functools
import importlib
import json
import os
import sys
from unittest import mock

import pytest

import slk
import slk.oauth
import slk.utils
from helpers import FakeBrowser
from slk.__main__ import cli, main
from slk.credentials import credentialsPath
from slk.messages import SlackConversation, SlackMessage
from slk.oauth import SlackOAuthFlow
from slk.utils import CallbackTimeout, ProviderDenied, SlkException

# The package re-exports the client class under the module name.
slack_api_module = importlib.import_module("slk.SlackApi")


def _run_main(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["slk"] + list(args))
    return main()


@pytest.fixture
def api(monkeypatch):
    instance = mock.Mock()
    monkeypatch.setattr(slack_api_module, "SlackApi", mock.Mock(return_value=instance))
    return instance


def test_version(capsys):
    cli(["slk", "version"])
    assert capsys.readouterr().out.strip() == "slk version %s" % slk.__version__


def test_invalid_action(monkeypatch, capsys):
    assert _run_main(monkeypatch, "frobnicate") == 1
    assert "invalid action: frobnicate" in capsys.readouterr().err


def test_debug_flag_is_removed(monkeypatch, capsys):
    monkeypatch.setattr(slk.utils, "DEFAULT_PRINT_DEBUG_FN", None)
    assert _run_main(monkeypatch, "version", "--debug") == 0
    assert "slk version" in capsys.readouterr().out


def test_login_success(monkeypatch, capsys):
    perform = mock.Mock(return_value="/tmp/slk/credentials.json")
    monkeypatch.setattr(slk.oauth, "perform_login", perform)

    assert _run_main(monkeypatch, "login", "--no-browser") == 0

    perform.assert_called_once_with(no_browser=True)
    assert "Token saved to /tmp/slk/credentials.json" in capsys.readouterr().out


def test_login_denied(monkeypatch, capsys):
    denied = ProviderDenied("Slack returned error: access_denied", error="access_denied")
    monkeypatch.setattr(slk.oauth, "perform_login", mock.Mock(side_effect=denied))

    with pytest.raises(SystemExit) as exc_info:
        _run_main(monkeypatch, "login")

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "provider denied" in err
    assert "access_denied" in err


def test_login_timeout(monkeypatch, capsys):
    monkeypatch.setattr(slk.oauth, "perform_login", mock.Mock(side_effect=CallbackTimeout("No callback within 300 seconds")))

    with pytest.raises(SystemExit):
        _run_main(monkeypatch, "login")
    assert "timeout" in capsys.readouterr().err


def test_login_interrupted(monkeypatch, capsys):
    monkeypatch.setattr(slk.oauth, "perform_login", mock.Mock(side_effect=KeyboardInterrupt))

    with pytest.raises(SystemExit) as exc_info:
        _run_main(monkeypatch, "login")

    assert exc_info.value.code == 1
    assert "Login cancelled by user." in capsys.readouterr().err


def test_login_without_client_config(monkeypatch, capsys):
    assert _run_main(monkeypatch, "login") == 1
    assert "SLK_CLIENT_ID" in capsys.readouterr().err


def test_list(api, capsys):
    api.listConversations.return_value = [SlackConversation("C1", "general"), SlackConversation("D1", "")]

    cli(["slk", "list"])

    out = capsys.readouterr().out
    assert "ID" in out and "NAME" in out
    assert "general" in out


def test_history(api, capsys):
    messages = [SlackMessage("U1", "hello", "0.0")]
    api.getHistory.return_value = messages
    api.resolveUserNames.return_value = {"U1": "alice"}

    cli(["slk", "history", "C1"])

    api.getHistory.assert_called_once_with("C1")
    assert capsys.readouterr().out.strip() == "1970-01-01 00:00:00 @alice hello"


def test_thread_from_url(api, capsys):
    api.getThread.return_value = []
    api.resolveUserNames.return_value = {}

    cli(["slk", "thread", "https://myteam.slack.com/archives/C081VT5GLQH/p1770689887565249"])

    api.getThread.assert_called_once_with("C081VT5GLQH", "1770689887.565249")


def test_thread_from_ids(api):
    api.getThread.return_value = []
    api.resolveUserNames.return_value = {}

    cli(["slk", "thread", "C081VT5GLQH", "1770689887.565249"])

    api.getThread.assert_called_once_with("C081VT5GLQH", "1770689887.565249")


def test_thread_needs_timestamp(api):
    with pytest.raises(SystemExit):
        cli(["slk", "thread", "C081VT5GLQH"])
    api.getThread.assert_not_called()


def test_thread_bad_url(api, monkeypatch, capsys):
    assert _run_main(monkeypatch, "thread", "https://myteam.slack.com/messages/C1/p1770689887565249") == 1
    assert "/archives/" in capsys.readouterr().err


def test_who(api, capsys):
    api.checkAuth.return_value = {"ok": True, "user": "alice", "user_id": "U1", "team": "Acme", "team_id": "T1"}

    cli(["slk", "who"])

    out = capsys.readouterr().out
    assert "USER: alice (U1)" in out
    assert "TEAM: Acme (T1)" in out


def test_not_logged_in(monkeypatch, capsys):
    assert _run_main(monkeypatch, "list") == 1
    assert "slk login" in capsys.readouterr().err


def test_api_errors_are_reported(api, monkeypatch, capsys):
    api.listConversations.side_effect = SlkException("Slack API error: invalid_auth")

    assert _run_main(monkeypatch, "list") == 1
    assert "Error: Slack API error: invalid_auth" in capsys.readouterr().err


class TestLoginEndToEnd:
    """Real listener and certificate, stubbed browser and token endpoint."""

    pytestmark = pytest.mark.filterwarnings("ignore::urllib3.exceptions.InsecureRequestWarning")

    @pytest.fixture(autouse=True)
    def client_config(self, monkeypatch):
        monkeypatch.setenv("SLK_CLIENT_ID", "client-id")
        monkeypatch.setenv("SLK_CLIENT_SECRET", "client-secret")

    def _use_browser(self, monkeypatch, free_port, query):
        browser = FakeBrowser("https://127.0.0.1:%d/?%s" % (free_port, query))
        monkeypatch.setattr(slk.oauth, "SlackOAuthFlow", functools.partial(
            SlackOAuthFlow,
            port=free_port,
            state_factory=lambda: "abc123",
            open_browser=browser
        ))
        return browser

    def test_success_exits_zero(self, monkeypatch, capsys, free_port):
        self._use_browser(monkeypatch, free_port, "code=XYZ&state=abc123")
        token_response = mock.Mock(status_code=200)
        token_response.json.return_value = {"access_token": "xoxp-test", "ok": True}
        post = mock.Mock(return_value=token_response)
        monkeypatch.setattr(slk.oauth.requests, "post", post)

        assert _run_main(monkeypatch, "login") == 0

        assert post.call_count == 1
        assert post.call_args[1]["data"]["code"] == "XYZ"
        assert post.call_args[1]["data"]["redirect_uri"] == "https://127.0.0.1:%d" % free_port
        with open(credentialsPath()) as f:
            assert json.load(f)["access_token"] == "xoxp-test"
        assert "Token saved to" in capsys.readouterr().out

    def test_denied_exits_non_zero(self, monkeypatch, capsys, free_port):
        self._use_browser(monkeypatch, free_port, "error=access_denied&state=abc123")
        post = mock.Mock()
        monkeypatch.setattr(slk.oauth.requests, "post", post)

        with pytest.raises(SystemExit) as exc_info:
            _run_main(monkeypatch, "login")

        assert exc_info.value.code != 0
        assert "provider denied" in capsys.readouterr().err
        post.assert_not_called()
        assert not os.path.exists(credentialsPath())

    def test_unwritable_credentials_exit_non_zero(self, monkeypatch, capsys, free_port, tmp_path):
        # The config dir cannot be created under a regular file.
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(blocker))
        self._use_browser(monkeypatch, free_port, "code=XYZ&state=abc123")
        token_response = mock.Mock(status_code=200)
        token_response.json.return_value = {"access_token": "xoxp-test", "ok": True}
        post = mock.Mock(return_value=token_response)
        monkeypatch.setattr(slk.oauth.requests, "post", post)

        with pytest.raises(SystemExit) as exc_info:
            _run_main(monkeypatch, "login")

        assert exc_info.value.code == 1
        assert post.call_count == 1
        err = capsys.readouterr().err
        assert "credential persist failed" in err
        assert "Token saved" not in err
        assert not os.path.exists(credentialsPath())
