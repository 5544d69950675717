import json

import pytest
from langchain_core.prompts import ChatPromptTemplate

from agents.prompts import bind_capabilities
from agents.types import TopicExtraction, TurnScore
from config.registry import TOPIC_EXTRACTION_KEY, TURN_SCORING_KEY, get_model
from config.routes import AppConfig, LlmRoute
from llm_gateway import LlmGatewayError, bind_route, call, chat, runnable


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class FakeClient:
    def __init__(self, *contents, status_code=200):
        self.contents = list(contents)
        self.status_code = status_code
        self.requests = []

    def post(self, url, *, json, headers, timeout):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        content = self.contents.pop(0)
        return FakeResponse({"choices": [{"message": {"content": content}}]}, self.status_code)


@pytest.fixture
def route():
    return LlmRoute(
        name="grader",
        base_url="http://llm.local",
        endpoint="/v1/chat/completions",
        model="test-model",
        timeout_s=5,
        max_retries=1,
        api_key_env="GRADER_API_KEY",
        extra_headers={"X-Team": "interviews"},
    )


def test_call_validates_reply(route, monkeypatch):
    monkeypatch.setenv("GRADER_API_KEY", "secret")
    client = FakeClient('{"score": 1.5, "rationale": "clear"}')
    result = call("grade this", TurnScore, cfg=route, client=client)

    assert result == TurnScore(score=1.5, rationale="clear")
    request = client.requests[0]
    assert request["url"] == "http://llm.local/v1/chat/completions"
    assert request["headers"]["Authorization"] == "Bearer secret"
    assert request["headers"]["X-Team"] == "interviews"
    assert request["json"]["model"] == "test-model"
    assert request["json"]["messages"][0]["role"] == "system"
    assert request["json"]["messages"][-1] == {"role": "user", "content": "grade this"}


def test_code_fences_are_stripped(route):
    client = FakeClient('```json\n{"topics": ["Kafka"]}\n```')
    assert chat([{"role": "user", "content": "x"}], TopicExtraction, cfg=route, client=client).topics == ["Kafka"]


def test_invalid_reply_is_retried_with_hint(route):
    client = FakeClient('{"score": 9}', '{"score": 0.5}')
    result = call("grade", TurnScore, cfg=route, client=client)
    assert result.score == 0.5
    assert len(client.requests) == 2
    hint = client.requests[1]["json"]["messages"][-1]
    assert hint["role"] == "system"
    assert hint["content"].startswith("The previous reply failed validation.")


def test_retries_exhausted(route):
    client = FakeClient("not json", "still not json")
    with pytest.raises(LlmGatewayError):
        call("grade", TurnScore, cfg=route, client=client)
    assert len(client.requests) == 2


def test_error_status_raises(route):
    client = FakeClient('{"score": 1}', status_code=503)
    with pytest.raises(LlmGatewayError):
        call("grade", TurnScore, cfg=route, client=client)


def test_malformed_messages_rejected(route):
    with pytest.raises(ValueError):
        chat([{"content": "no role"}], TurnScore, cfg=route, client=FakeClient())


def test_runnable_accepts_prompt_values(route):
    prompt = ChatPromptTemplate.from_messages([("system", "grade"), ("human", "{answer}")])
    client = FakeClient('{"score": 2.0}')
    result = (prompt | runnable(route, TurnScore, client=client)).invoke({"answer": "solid"})
    assert result.score == 2.0
    roles = [message["role"] for message in client.requests[0]["json"]["messages"]]
    assert roles[-2:] == ["system", "user"]


def test_bind_route_registers_model(route):
    prompt = ChatPromptTemplate.from_messages([("human", "Q: {question} A: {answer}")])
    client = FakeClient('{"topics": ["GraphQL"]}')
    bind_route(TOPIC_EXTRACTION_KEY, route, TopicExtraction, prompt, client=client)

    reply = get_model(TOPIC_EXTRACTION_KEY)(inputs={"question": "what", "answer": "GraphQL"}, temperature=0.0)
    assert reply == {"topics": ["GraphQL"]}
    assert client.requests[0]["json"]["messages"][-1]["content"] == "Q: what A: GraphQL"


def test_bind_capabilities_from_app_config(route):
    config = AppConfig(llm_routes={"grader": route}, registry={TURN_SCORING_KEY: "grader"})
    client = FakeClient('{"score": 1.0, "rationale": "ok"}')
    assert bind_capabilities(config, client=client) == [TURN_SCORING_KEY]
    reply = get_model(TURN_SCORING_KEY)(inputs={"question": "q", "answer": "a", "history": [{"q": "x"}]})
    assert reply["score"] == 1.0
    assert client.requests[0]["json"]["temperature"] == 0.0
    with pytest.raises(KeyError):
        get_model(TOPIC_EXTRACTION_KEY)
