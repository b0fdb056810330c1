# assessment/llm_client.py

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from google.api_core import exceptions as google_exceptions
from google.auth.exceptions import DefaultCredentialsError
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_google_vertexai import ChatVertexAI

from assessment.errors import NetworkError, ServiceUnavailable, UnexpectedFormat, UpstreamError
from assessment.model_props import is_openai_model, parse_model_name
from assessment.prompts import PromptBundle

logger = logging.getLogger("maturity_backend")

MODE_TOOL_CALL = "tool_call"
MODE_TEXT = "text"


@dataclass
class RawModelOutput:
    """
    What the provider handed back, before any normalization.

    - mode: MODE_TOOL_CALL when the answer came through the forced function call,
      MODE_TEXT for free-text answers
    - text: the raw JSON arguments / message content
    - payload: already-decoded arguments when the provider returns them as a dict
    - usage: token counts for this call, when the provider reports them
    """

    mode: str
    text: str
    payload: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, int]] = None


class AnalysisClient:
    """
    One completion request per call, no retry loop: retryability is reported to the
    caller through the raised error's `retryable` flag.

    Under the hood:
    - OpenAI: Chat Completions, with the analysis schema as a forced tool in structured mode
    - Vertex: ChatVertexAI, with the same schema bound as a tool in structured mode
    """

    def __init__(
        self,
        model_name: str,
        *,
        api_key: Optional[str] = None,
        vertex_project: str = "",
        vertex_region: str = "us-central1",
        timeout: float | None = 60.0,
        max_output_tokens: int = 2000,
        temperature: float = 0.7,
        openai_client: Any = None,
        vertex_chat: Any = None,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name, self._provider_params = parse_model_name(model_name)
        self._api_key = api_key
        self._vertex_project = vertex_project
        self._vertex_region = vertex_region
        self._timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self._client = openai_client
        self._vertex = vertex_chat

    # -----------------------
    # Provider plumbing
    # -----------------------

    def _openai(self):
        if self._client is None:
            if not self._api_key:
                logger.error("OpenAI API key not configured")
                raise ServiceUnavailable("OPENAI_API_KEY is not configured")
            client_kwargs: Dict[str, Any] = {"api_key": self._api_key, "max_retries": 0}
            if self._timeout is not None:
                client_kwargs["timeout"] = self._timeout
            self._client = OpenAI(**client_kwargs)
        return self._client

    def _vertex_chat(self):
        if self._vertex is None:
            try:
                self._vertex = ChatVertexAI(
                    project=self._vertex_project or None,
                    location=self._vertex_region,
                    model_name=self.model_name,
                    temperature=self.temperature,
                    max_output_tokens=self.max_output_tokens,
                    max_retries=0,
                    timeout=self._timeout,
                )
            except DefaultCredentialsError as e:
                logger.error("Vertex AI credentials not configured: %s", e)
                raise ServiceUnavailable(f"Vertex AI credentials not configured: {e}") from e
        return self._vertex

    def _to_openai_messages(self, messages: List[SystemMessage | HumanMessage | AIMessage]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "system"
            elif isinstance(m, HumanMessage):
                role = "user"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out

    def _usage_counts(self, usage: Any) -> Optional[Dict[str, int]]:
        """
        Token counts of one call, normalized across providers; logged and returned
        to the caller rather than kept on the shared client.
        """
        if not usage:
            return None

        def get(*keys: str) -> int:
            for k in keys:
                v = usage.get(k) if isinstance(usage, dict) else getattr(usage, k, None)
                if v:
                    return int(v)
            return 0

        counts = {
            "prompt_token_count": get("prompt_tokens", "input_tokens", "prompt_token_count"),
            "candidates_token_count": get("completion_tokens", "output_tokens", "candidates_token_count"),
            "total_token_count": get("total_tokens", "total_token_count"),
        }
        logger.debug("LLM usage (%s): %s", self.model_name, counts)
        return counts

    # -----------------------
    # Requests
    # -----------------------

    def _invoke_openai(self, prompt: PromptBundle, messages) -> RawModelOutput:
        client = self._openai()
        kwargs: Dict[str, Any] = dict(self._provider_params)
        if prompt.structured:
            tool_name = prompt.output_schema["function"]["name"]
            kwargs["tools"] = [prompt.output_schema]
            kwargs["tool_choice"] = {"type": "function", "function": {"name": tool_name}}

        try:
            resp = client.chat.completions.create(
                model=self.model_name,
                messages=self._to_openai_messages(messages),
                max_tokens=self.max_output_tokens,
                temperature=self.temperature,
                **kwargs,
            )
        except openai.APIConnectionError as e:
            # APITimeoutError is a subclass
            raise NetworkError(f"OpenAI transport failure: {e}") from e
        except openai.APIStatusError as e:
            logger.error("OpenAI API error: %s %s", e.status_code, e.message)
            raise UpstreamError(
                f"OpenAI returned HTTP {e.status_code}", upstream_status=e.status_code
            ) from e

        usage = self._usage_counts(getattr(resp, "usage", None))

        choices = getattr(resp, "choices", None) or []
        message = choices[0].message if choices else None
        if message is None:
            raise UnexpectedFormat("OpenAI response has no choices")

        if prompt.structured:
            tool_calls = getattr(message, "tool_calls", None) or []
            function = getattr(tool_calls[0], "function", None) if tool_calls else None
            if function is None or not getattr(function, "arguments", None):
                logger.error("OpenAI did not return a function call response")
                raise UnexpectedFormat("OpenAI did not return a function call response")
            return RawModelOutput(mode=MODE_TOOL_CALL, text=function.arguments, usage=usage)

        content = (getattr(message, "content", "") or "").strip()
        if not content:
            raise UnexpectedFormat("OpenAI returned an empty message")
        return RawModelOutput(mode=MODE_TEXT, text=content, usage=usage)

    def _invoke_vertex(self, prompt: PromptBundle, messages) -> RawModelOutput:
        chat = self._vertex_chat()
        if prompt.structured:
            tool_name = prompt.output_schema["function"]["name"]
            chat = chat.bind_tools([prompt.output_schema], tool_choice=tool_name)

        try:
            resp = chat.invoke(messages)
        except DefaultCredentialsError as e:
            raise ServiceUnavailable(f"Vertex AI credentials not configured: {e}") from e
        except google_exceptions.DeadlineExceeded as e:
            raise NetworkError(f"Vertex AI timed out: {e}") from e
        except google_exceptions.GoogleAPICallError as e:
            raise UpstreamError(f"Vertex AI returned an error: {e}", upstream_status=getattr(e, "code", None)) from e
        except (ConnectionError, TimeoutError) as e:
            raise NetworkError(f"Vertex AI transport failure: {e}") from e

        usage = self._usage_counts(getattr(resp, "usage_metadata", None))

        if prompt.structured:
            tool_calls = getattr(resp, "tool_calls", None) or []
            args = tool_calls[0].get("args") if tool_calls else None
            if not isinstance(args, dict) or not args:
                logger.error("Vertex AI did not return a function call response")
                raise UnexpectedFormat("Vertex AI did not return a function call response")
            return RawModelOutput(mode=MODE_TOOL_CALL, text=json.dumps(args), payload=args, usage=usage)

        content = getattr(resp, "content", "")
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
        content = (content or "").strip()
        if not content:
            raise UnexpectedFormat("Vertex AI returned an empty message")
        return RawModelOutput(mode=MODE_TEXT, text=content, usage=usage)

    def request_analysis(self, prompt: PromptBundle) -> RawModelOutput:
        """
        Single request; raises ServiceUnavailable / UpstreamError / UnexpectedFormat / NetworkError.
        """
        messages = [
            SystemMessage(content=prompt.system_message),
            HumanMessage(content=prompt.user_message),
        ]
        start_time = time.time()
        if self.provider == "openai":
            output = self._invoke_openai(prompt, messages)
        else:
            output = self._invoke_vertex(prompt, messages)
        logger.info(
            "Analysis request to %s completed in %.2fs (mode=%s)",
            self.model_name, time.time() - start_time, output.mode,
        )
        return output
