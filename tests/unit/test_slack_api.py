import importlib
from unittest import mock

import pytest
import requests

from slk.credentials import Credential, saveCredential
from slk.messages import SlackConversation, SlackMessage
from slk.SlackApi import SlackApi
from slk.utils import NotLoggedIn, SlackApiError, SlkException

# The package re-exports the client class under the module name.
slack_api_module = importlib.import_module("slk.SlackApi")


def _response(payload, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def mock_get(monkeypatch):
    get = mock.Mock()
    monkeypatch.setattr(slack_api_module.requests, "get", get)
    return get


def test_token_from_env(monkeypatch):
    monkeypatch.setenv("SLACK_TOKEN", "xoxp-env")
    assert SlackApi()._token == "xoxp-env"


def test_token_from_stored_credential():
    saveCredential(Credential("xoxp-stored"))
    assert SlackApi()._token == "xoxp-stored"


def test_no_token():
    with pytest.raises(NotLoggedIn):
        SlackApi()


def test_call_sends_bearer_token(mock_get):
    mock_get.return_value = _response({"ok": True, "channels": [{"id": "C1", "name": "general"}]})

    conversations = SlackApi("xoxp-test", root_url="https://slack.test/api/").listConversations()

    assert conversations == [SlackConversation("C1", "general")]
    args, kwargs = mock_get.call_args
    assert args[0] == "https://slack.test/api/conversations.list"
    assert kwargs["headers"]["Authorization"] == "Bearer xoxp-test"
    assert kwargs["headers"]["User-Agent"].startswith("slk-py/")
    assert kwargs["params"] == {"types": "public_channel,private_channel,mpim,im"}


def test_get_thread(mock_get):
    mock_get.return_value = _response({"ok": True, "messages": [{"user": "U1", "text": "hi", "ts": "1.0"}]})

    messages = SlackApi("xoxp-test").getThread("C081VT5GLQH", "1770689887.565249")

    assert messages == [SlackMessage("U1", "hi", "1.0")]
    assert mock_get.call_args[0][0].endswith("/conversations.replies")
    assert mock_get.call_args[1]["params"] == {"channel": "C081VT5GLQH", "ts": "1770689887.565249"}


def test_get_history(mock_get):
    mock_get.return_value = _response({"ok": True, "messages": []})

    assert SlackApi("xoxp-test").getHistory("C1") == []
    assert mock_get.call_args[1]["params"] == {"channel": "C1"}


def test_resolve_user_names_once_per_user(mock_get):
    mock_get.return_value = _response({"ok": True, "user": {"name": "alice"}})
    messages = [
        SlackMessage("U1", "a", "1.0"),
        SlackMessage("U1", "b", "2.0"),
        SlackMessage("deploybot", "c", "3.0"),
    ]

    assert SlackApi("xoxp-test").resolveUserNames(messages) == {"U1": "alice"}
    assert mock_get.call_count == 1
    assert mock_get.call_args[1]["params"] == {"user": "U1"}


def test_api_error(mock_get):
    mock_get.return_value = _response({"ok": False, "error": "channel_not_found"})

    with pytest.raises(SlackApiError) as exc_info:
        SlackApi("xoxp-test").getHistory("C404")
    assert exc_info.value.error == "channel_not_found"


def test_transport_failure(mock_get):
    mock_get.side_effect = requests.exceptions.ConnectionError("unreachable")

    with pytest.raises(SlkException) as exc_info:
        SlackApi("xoxp-test").checkAuth()
    assert "auth.test" in str(exc_info.value)


def test_non_json_response(mock_get):
    mock_get.return_value = _response(ValueError("no json"), status_code=502)

    with pytest.raises(SlkException) as exc_info:
        SlackApi("xoxp-test").checkAuth()
    assert exc_info.value.code == 502


def test_check_auth(mock_get):
    mock_get.return_value = _response({"ok": True, "user": "alice", "user_id": "U1", "team": "Acme", "team_id": "T1"})

    assert SlackApi("xoxp-test").checkAuth()["user_id"] == "U1"


def test_debug_messages(mock_get):
    mock_get.return_value = _response({"ok": True, "messages": []})
    debug = []

    SlackApi("xoxp-test", print_debug_fn=debug.append).getHistory("C1")

    assert any("conversations.history" in m for m in debug)
