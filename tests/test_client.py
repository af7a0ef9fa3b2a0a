from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from recipe_chat.agent import AgentResult
from recipe_chat.client import CHAT_PATH, HttpChatGateway
from recipe_chat.controller import ChatController
from recipe_chat.server import create_app
from recipe_chat.store import ConversationStore, JsonFileStorage


def test_send_posts_messages_and_returns_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}, "runId": "r1"})

    with HttpChatGateway("http://chat.local", transport=httpx.MockTransport(handler)) as gw:
        body = gw.send([{"role": "user", "content": "hello"}])

    assert seen == {"path": CHAT_PATH, "body": {"messages": [{"role": "user", "content": "hello"}]}}
    assert body["runId"] == "r1"


def test_send_returns_error_envelopes_regardless_of_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "messages: too short"}))
    with HttpChatGateway("http://chat.local", transport=transport) as gw:
        assert gw.send([]) == {"error": "messages: too short"}


def test_send_raises_value_error_on_bad_body():
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
    with HttpChatGateway("http://chat.local", transport=transport) as gw:
        with pytest.raises(ValueError):
            gw.send([{"role": "user", "content": "x"}])


def test_send_propagates_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with HttpChatGateway("http://chat.local", transport=httpx.MockTransport(handler)) as gw:
        with pytest.raises(httpx.HTTPError):
            gw.send([{"role": "user", "content": "x"}])


class InProcessGateway:
    """Gateway that talks to the in-process app through FastAPI's TestClient."""
    def __init__(self, client: TestClient):
        self.client = client

    def send(self, messages):
        return self.client.post(CHAT_PATH, json={"messages": messages}).json()


class DummyAgent:
    def generate(self, messages):
        return AgentResult(text=f"# Idea\n- answer to {messages[-1]['content']}", response_id=f"r{len(messages)}")


def test_controller_against_real_app(tmp_data_dir: Path, tmp_path: Path, clean_env):
    app = create_app(config_path=str(tmp_path / "missing.yaml"), agent=DummyAgent())
    store = ConversationStore(JsonFileStorage(str(tmp_data_dir)))
    controller = ChatController(store, InProcessGateway(TestClient(app)))
    controller.hydrate()

    conv = controller.submit("noodles")
    conv = controller.submit("make it spicy")

    assert [m.role for m in conv] == ["assistant", "user", "assistant", "user", "assistant"]
    assert conv[2].id == "r2"
    assert conv[4].id == "r4"
    assert conv[4].content == "# Idea\n- answer to make it spicy"
