import pytest
import requests

from spendlog.core.exceptions import ExternalServiceError, ExternalTimeoutError
from spendlog.services.ai_client import AIClient, parse_json_content

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self.payload

class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response

def _reply(content):
    return FakeResponse(payload={"choices": [{"message": {"content": content}}]})

def test_parse_plain_and_fenced_json():
    assert parse_json_content('{"a": 1}') == {"a": 1}
    assert parse_json_content('Sure!\n```json\n{"a": 2}\n```') == {"a": 2}
    assert parse_json_content('Here you go: {"a": 3} hope it helps') == {"a": 3}

def test_bare_array_becomes_transactions():
    assert parse_json_content('rows: [{"amount": 1}]') == {"transactions": [{"amount": 1}]}
    assert parse_json_content('[{"amount": 2}]') == {"transactions": [{"amount": 2}]}
    assert parse_json_content("```json\n[{\"amount\": 3}]\n```") == {"transactions": [{"amount": 3}]}

def test_unparseable_reply():
    with pytest.raises(ExternalServiceError):
        parse_json_content("no json at all")

@pytest.mark.asyncio
async def test_chat_returns_first_choice():
    session = FakeSession(_reply("hello"))
    client = AIClient(api_key="Key abc", api_url="http://ai.test", timeout=5, session=session)

    assert await client.chat([{"role": "user", "content": "hi"}], temperature=0.1) == "hello"
    sent = session.requests[0]
    assert sent["headers"]["Authorization"] == "Key abc"
    assert sent["json"]["temperature"] == 0.1
    assert sent["timeout"] == 5

@pytest.mark.asyncio
async def test_timeout_maps_to_timeout_error():
    client = AIClient(api_key="k", session=FakeSession(error=requests.Timeout()))

    with pytest.raises(ExternalTimeoutError) as exc_info:
        await client.chat([{"role": "user", "content": "hi"}])
    assert exc_info.value.status_code == 504

@pytest.mark.asyncio
async def test_rate_limit_keeps_upstream_status():
    client = AIClient(api_key="k", session=FakeSession(FakeResponse(status_code=429, text="slow down")))

    with pytest.raises(ExternalServiceError) as exc_info:
        await client.chat([{"role": "user", "content": "hi"}])
    assert exc_info.value.upstream_status == 429
    assert "busy" in exc_info.value.message

@pytest.mark.asyncio
async def test_empty_reply_is_an_error():
    client = AIClient(api_key="k", session=FakeSession(_reply("   ")))

    with pytest.raises(ExternalServiceError):
        await client.chat([{"role": "user", "content": "hi"}])

@pytest.mark.asyncio
async def test_unconfigured_client():
    client = AIClient(api_key="", session=FakeSession(_reply("x")))

    assert not client.is_configured
    with pytest.raises(ExternalServiceError):
        await client.chat([{"role": "user", "content": "hi"}])
