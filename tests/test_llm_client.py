"""Tests for the Groq chat client."""
import json

import httpx
import pytest

from docqa.errors import GenerationError
from docqa.llm_client import DEFAULT_TITLE, EMPTY_RESPONSE, GroqClient


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_client(handler, history_window=10):
    return GroqClient(
        api_key="gsk_test",
        base_url="https://groq.test/openai/v1",
        model="test-model",
        history_window=history_window,
        transport=httpx.MockTransport(handler),
    )


async def test_generate_response_sends_context_history_and_question():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion("It is blue."))

    history = [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ]
    answer = await make_client(handler).generate_response(
        "What colour is the sky?", "The sky is blue.", history
    )

    body = captured["body"]
    assert answer == "It is blue."
    assert captured["url"] == "https://groq.test/openai/v1/chat/completions"
    assert captured["auth"] == "Bearer gsk_test"
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.1
    assert body["max_tokens"] == 1024
    assert body["messages"][0]["role"] == "system"
    assert "The sky is blue." in body["messages"][0]["content"]
    assert body["messages"][1:3] == history
    assert body["messages"][-1] == {"role": "user", "content": "What colour is the sky?"}


def test_history_is_truncated_to_window():
    client = make_client(lambda request: httpx.Response(200, json=completion("")))
    history = [
        {"role": "user" if i % 2 == 0 else "assistant", "content": f"m{i}"}
        for i in range(15)
    ]

    messages = client.build_messages("q", "ctx", history)

    assert len(messages) == 12
    assert [m["content"] for m in messages[1:-1]] == [f"m{i}" for i in range(5, 15)]


async def test_empty_completion_uses_placeholder():
    client = make_client(lambda request: httpx.Response(200, json={"choices": []}))
    assert await client.generate_response("q", "ctx") == EMPTY_RESPONSE


async def test_http_failure_raises_generation_error():
    client = make_client(lambda request: httpx.Response(500, json={"error": "down"}))
    with pytest.raises(GenerationError):
        await client.generate_response("q", "ctx")


async def test_generate_title():
    client = make_client(lambda request: httpx.Response(200, json=completion("  Sky Colours \n")))
    assert await client.generate_title("What colour is the sky?") == "Sky Colours"


async def test_generate_title_falls_back_on_failure():
    client = make_client(lambda request: httpx.Response(503, text="unavailable"))
    assert await client.generate_title("anything") == DEFAULT_TITLE


@pytest.mark.parametrize("body", [["not", "a", "dict"], "plain string", None])
async def test_non_object_completion_raises_generation_error(body):
    client = make_client(lambda request: httpx.Response(200, json=body))
    with pytest.raises(GenerationError):
        await client.generate_response("q", "ctx")


async def test_non_json_completion_raises_generation_error():
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(GenerationError):
        await client.generate_response("q", "ctx")


@pytest.mark.parametrize("body", [["not", "a", "dict"], {"choices": ["bad"]}])
async def test_malformed_title_completion_falls_back(body):
    client = make_client(lambda request: httpx.Response(200, json=body))
    assert await client.generate_title("anything") == DEFAULT_TITLE


def test_message_content_tolerates_odd_shapes():
    assert GroqClient.message_content([]) == ""
    assert GroqClient.message_content({"choices": [{"message": None}]}) == ""
    assert GroqClient.message_content({"choices": [{"message": {"content": 5}}]}) == ""
