"""HttpServer 路由: URL 验证、消息推送、健康检查"""

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from fakes.fake_wechat_client import FakeWeChatClient
from helpers import NONCE, TIMESTAMP, compute_signature_for, text_xml
from wechat_adapter import HttpServer, WeChatAdapter
from wechat_adapter_protocol import parse_xml


async def echo(activity, turn_buffer):
    if activity.text:
        turn_buffer.append(activity.create_reply(f"echo: {activity.text}"))


def _query(**extra) -> dict:
    return {
        "signature": compute_signature_for(TIMESTAMP, NONCE),
        "timestamp": TIMESTAMP,
        "nonce": NONCE,
        "openid": "user1",
        **extra,
    }


async def _serve(adapter: WeChatAdapter):
    server = HttpServer(adapter, echo, path="/api/messages")
    http = TestClient(TestServer(server.create_app()))
    await http.start_server()
    return server, http


@pytest.fixture
def wechat() -> FakeWeChatClient:
    return FakeWeChatClient()


@pytest_asyncio.fixture
async def async_server(settings, wechat):
    server, http = await _serve(WeChatAdapter(settings, wechat))
    yield server, http
    await server.stop()
    await http.close()


@pytest_asyncio.fixture
async def passive_server(passive_settings, wechat):
    server, http = await _serve(WeChatAdapter(passive_settings, wechat))
    yield server, http
    await server.stop()
    await http.close()


@pytest.mark.asyncio
async def test_url_verification_echoes(async_server) -> None:
    _, http = async_server
    resp = await http.get("/api/messages", params=_query(echostr="hello-echo"))
    assert resp.status == 200
    assert await resp.text() == "hello-echo"


@pytest.mark.asyncio
async def test_url_verification_rejects_bad_signature(async_server) -> None:
    _, http = async_server
    resp = await http.get("/api/messages", params=_query(signature="bad", echostr="x"))
    assert resp.status == 401


@pytest.mark.asyncio
async def test_post_with_bad_signature(async_server, wechat) -> None:
    _, http = async_server
    resp = await http.post("/api/messages", params=_query(signature="bad"), data=text_xml())
    assert resp.status == 401
    assert wechat.calls == []


@pytest.mark.asyncio
async def test_post_with_malformed_body(async_server, wechat) -> None:
    _, http = async_server
    resp = await http.post("/api/messages", params=_query(), data="<xml><oops>")
    assert resp.status == 400
    assert wechat.calls == []


@pytest.mark.asyncio
async def test_async_mode_acknowledges_then_sends(async_server, wechat) -> None:
    server, http = async_server
    resp = await http.post("/api/messages", params=_query(), data=text_xml("你好"))
    assert resp.status == 200
    assert await resp.text() == ""

    await server.stop()
    assert wechat.calls == [("send_text", "user1", "echo: 你好")]


@pytest.mark.asyncio
async def test_passive_mode_returns_xml(passive_server, wechat) -> None:
    _, http = passive_server
    resp = await http.post("/api/messages", params=_query(), data=text_xml("你好"))

    assert resp.status == 200
    assert resp.content_type == "application/xml"
    reply = parse_xml(await resp.text())
    assert reply["MsgType"] == "text"
    assert reply["Content"] == "echo: 你好"
    assert reply["ToUserName"] == "user1"
    assert wechat.calls == []


@pytest.mark.asyncio
async def test_passive_mode_without_reply(passive_server) -> None:
    _, http = passive_server
    event = (
        "<xml><ToUserName>bot</ToUserName><FromUserName>user1</FromUserName>"
        "<CreateTime>1700000000</CreateTime><MsgType>event</MsgType>"
        "<Event>unsubscribe</Event></xml>"
    )
    resp = await http.post("/api/messages", params=_query(), data=event)
    assert await resp.text() == "success"


@pytest.mark.asyncio
async def test_health(passive_server) -> None:
    _, http = passive_server
    resp = await http.get("/api/health")
    assert resp.status == 200
    assert await resp.json() == {"ok": True, "passive_response": True, "pending_turns": 0}
