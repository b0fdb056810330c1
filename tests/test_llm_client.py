import json
from types import SimpleNamespace

import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions

from assessment.errors import NetworkError, ServiceUnavailable, UnexpectedFormat, UpstreamError
from assessment.llm_client import MODE_TEXT, MODE_TOOL_CALL, AnalysisClient
from assessment.model_props import is_openai_model, parse_model_name
from assessment.models import MaturityTier, Scores
from assessment.prompts import ANALYSIS_TOOL_NAME, PromptBuilder

from conftest import SAMPLE_ANALYSIS, SAMPLE_PROFILE

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.response


def fake_openai(response=None, error=None):
    completions = FakeCompletions(response, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def tool_call_response(arguments):
    function = SimpleNamespace(name=ANALYSIS_TOOL_NAME, arguments=arguments)
    message = SimpleNamespace(tool_calls=[SimpleNamespace(function=function)], content=None)
    usage = SimpleNamespace(prompt_tokens=120, completion_tokens=800, total_tokens=920)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def text_response(content):
    message = SimpleNamespace(tool_calls=None, content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None)


def prompt(structured=True):
    scores = Scores(dimensions={"strategy": 3.0}, overall=3.0)
    return PromptBuilder().build_prompt(
        SAMPLE_PROFILE, scores, MaturityTier(name="Developing", level=3), structured=structured
    )


def test_forced_tool_call_returns_arguments():
    openai_client, completions = fake_openai(tool_call_response(json.dumps(SAMPLE_ANALYSIS)))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    output = client.request_analysis(prompt())

    assert output.mode == MODE_TOOL_CALL
    assert json.loads(output.text) == SAMPLE_ANALYSIS
    assert completions.kwargs["model"] == "gpt-4o"
    assert completions.kwargs["max_tokens"] == 2000
    assert completions.kwargs["temperature"] == 0.7
    assert completions.kwargs["tool_choice"] == {"type": "function", "function": {"name": ANALYSIS_TOOL_NAME}}
    assert [m["role"] for m in completions.kwargs["messages"]] == ["system", "user"]
    assert output.usage["total_token_count"] == 920


def test_text_mode_sends_no_tools():
    openai_client, completions = fake_openai(text_response("  {\"summary\": \"S\"}  "))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    output = client.request_analysis(prompt(structured=False))

    assert output.mode == MODE_TEXT
    assert output.text == '{"summary": "S"}'
    assert "tools" not in completions.kwargs


def test_service_tier_suffix_is_forwarded():
    openai_client, completions = fake_openai(tool_call_response("{}x"))
    client = AnalysisClient("gpt-4o_flex", openai_client=openai_client)

    client.request_analysis(prompt())

    assert completions.kwargs["model"] == "gpt-4o"
    assert completions.kwargs["service_tier"] == "flex"


def test_missing_tool_call_is_unexpected_format():
    openai_client, _ = fake_openai(text_response("I'd rather just chat."))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    with pytest.raises(UnexpectedFormat) as exc_info:
        client.request_analysis(prompt())
    assert exc_info.value.retryable is True


def test_missing_api_key_is_service_unavailable():
    client = AnalysisClient("gpt-4o", api_key=None)

    with pytest.raises(ServiceUnavailable) as exc_info:
        client.request_analysis(prompt())
    assert exc_info.value.retryable is False


def test_http_error_is_upstream_error():
    error = openai.InternalServerError(
        "boom", response=httpx.Response(500, request=_REQUEST), body=None
    )
    openai_client, _ = fake_openai(error=error)
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    with pytest.raises(UpstreamError) as exc_info:
        client.request_analysis(prompt())
    assert exc_info.value.upstream_status == 500
    assert exc_info.value.status_code == 502


def test_connection_failure_is_network_error():
    openai_client, _ = fake_openai(error=openai.APIConnectionError(request=_REQUEST))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    with pytest.raises(NetworkError):
        client.request_analysis(prompt())


def test_timeout_is_network_error():
    openai_client, _ = fake_openai(error=openai.APITimeoutError(request=_REQUEST))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    with pytest.raises(NetworkError):
        client.request_analysis(prompt())


class FakeVertexChat:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.bound = None
        self.messages = None

    def bind_tools(self, tools, tool_choice=None):
        self.bound = (tools, tool_choice)
        return self

    def invoke(self, messages):
        self.messages = messages
        if self.error is not None:
            raise self.error
        return self.response


def test_vertex_tool_call_returns_payload():
    response = SimpleNamespace(
        tool_calls=[{"name": ANALYSIS_TOOL_NAME, "args": SAMPLE_ANALYSIS}],
        usage_metadata={"input_tokens": 100, "output_tokens": 700, "total_tokens": 800},
    )
    chat = FakeVertexChat(response)
    client = AnalysisClient("gemini-2.5-flash", vertex_chat=chat)

    output = client.request_analysis(prompt())

    assert client.provider == "vertex"
    assert chat.bound[1] == ANALYSIS_TOOL_NAME
    assert output.mode == MODE_TOOL_CALL
    assert output.payload == SAMPLE_ANALYSIS
    assert output.usage["total_token_count"] == 800


@pytest.mark.parametrize(
    "error, expected",
    [
        (google_exceptions.DeadlineExceeded("slow"), NetworkError),
        (google_exceptions.ServiceUnavailable("down"), UpstreamError),
        (ConnectionError("reset"), NetworkError),
    ],
)
def test_vertex_errors_are_classified(error, expected):
    client = AnalysisClient("gemini-2.5-flash", vertex_chat=FakeVertexChat(error=error))

    with pytest.raises(expected):
        client.request_analysis(prompt())


def test_model_name_parsing():
    assert parse_model_name("gpt-4o") == ("gpt-4o", {})
    assert parse_model_name("gpt-4o_priority") == ("gpt-4o", {"service_tier": "priority"})
    assert is_openai_model("o3-mini")
    assert not is_openai_model("gemini-2.5-flash")

    with pytest.raises(ValueError):
        parse_model_name("gemini-2.5-flash_flex")
    with pytest.raises(ValueError):
        parse_model_name("gpt-4o_turbo")


def test_usage_is_reported_per_call():
    openai_client, completions = fake_openai(tool_call_response(json.dumps(SAMPLE_ANALYSIS)))
    client = AnalysisClient("gpt-4o", openai_client=openai_client)

    first = client.request_analysis(prompt())
    second = client.request_analysis(prompt())
    completions.response = text_response('{"summary": "S"}')
    third = client.request_analysis(prompt(structured=False))

    assert first.usage == second.usage == {
        "prompt_token_count": 120,
        "candidates_token_count": 800,
        "total_token_count": 920,
    }
    assert third.usage is None
    assert not hasattr(client, "last_usage")
