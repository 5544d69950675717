from __future__ import annotations  # Schema-validated chat completions for LLM-backed capabilities

import json
import logging
import os
import threading
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple, Type, TypeVar

import httpx
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import RunnableLambda
from pydantic import BaseModel, ValidationError

from config.registry import bind_model
from config.routes import LlmRoute


logger = logging.getLogger(__name__)  # Module logger setup


_ROUTE_LOCKS: Dict[str, threading.Lock] = {}
_ROUTE_LOCKS_GUARD = threading.Lock()


class HttpClient(Protocol):  # Minimal HTTP client protocol
    def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> "HttpResponse": ...


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class LlmGatewayError(RuntimeError):  # Base gateway error
    pass


T = TypeVar("T", bound=BaseModel)


def _lock_for(cfg: LlmRoute) -> threading.Lock:
    key = cfg.name or f"{cfg.base_url}{cfg.endpoint}"
    with _ROUTE_LOCKS_GUARD:
        lock = _ROUTE_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _ROUTE_LOCKS[key] = lock
    return lock


def call(
    task: str,
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:  # Single user message shortcut for chat()
    return chat([{"role": "user", "content": task}], schema, cfg=cfg, client=client, options=options)


def chat(
    messages: Sequence[Dict[str, str]],
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:  # Invoke a route and validate the reply against schema, retrying on invalid output
    if cfg.sequential:
        with _lock_for(cfg):
            return _execute(messages, schema, cfg, client, options)
    return _execute(messages, schema, cfg, client, options)


def _execute(
    messages: Sequence[Dict[str, str]],
    schema: Type[T],
    cfg: LlmRoute,
    client: Optional[HttpClient],
    options: Optional[Dict[str, Any]],
) -> T:
    base_messages = _base_messages(messages, schema, cfg.enforce_json)
    attempts = cfg.max_retries + 1
    last_error: Optional[Exception] = None
    preview = _preview(base_messages)
    logger.info("LLM request start route=%s model=%s attempts=%d preview=%s", cfg.name, cfg.model, attempts, preview)
    for attempt in range(attempts):
        attempt_messages = list(base_messages)
        if last_error is not None:
            attempt_messages.append({"role": "system", "content": _retry_hint(str(last_error), cfg.enforce_json)})
        payload = _payload(cfg, attempt_messages, options)
        try:
            response, close_cb = _post(f"{cfg.base_url}{cfg.endpoint}", payload, _headers(cfg), cfg.timeout_s, client)
        except Exception as exc:  # noqa: BLE001
            logger.error("LLM transport failure route=%s: %s", cfg.name, exc)
            raise LlmGatewayError("LLM transport failed") from exc
        try:
            if response.status_code >= 400:
                logger.error("LLM error status route=%s status=%s", cfg.name, response.status_code)
                raise LlmGatewayError(f"LLM returned status {response.status_code}")
            try:
                data = response.json()
            except ValueError as exc:
                raise LlmGatewayError("LLM payload was not JSON") from exc
            try:
                parsed = _validate(schema, _extract_content(data))
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning("LLM output validation failed route=%s attempt=%d: %s", cfg.name, attempt + 1, exc)
                last_error = exc
                continue
        finally:
            _close_safely(close_cb)
        logger.info("LLM request done route=%s model=%s attempt=%d", cfg.name, cfg.model, attempt + 1)
        return parsed
    raise LlmGatewayError("LLM output validation failed") from last_error


def runnable(
    route: LlmRoute,
    schema: Type[T],
    *,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> RunnableLambda:  # Expose a route as a LangChain runnable
    def _invoke(payload: Any) -> T:
        return chat(_coerce_messages(payload), schema, cfg=route, client=client, options=options)

    return RunnableLambda(_invoke)


def bind_route(
    key: str,
    route: LlmRoute,
    schema: Type[T],
    prompt: ChatPromptTemplate,
    *,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> None:
    """Bind ``prompt | route`` into the model registry under ``key``.

    The bound callable follows the registry convention ``fn(inputs={...})``:
    each prompt variable is read from ``inputs`` and the validated reply is
    returned as a plain dict.
    """

    chain = prompt | runnable(route, schema, client=client, options=options)

    def _model(*, inputs: Dict[str, Any], **_: Any) -> Dict[str, Any]:
        variables = {name: _as_prompt_text(inputs.get(name)) for name in prompt.input_variables}
        return chain.invoke(variables).model_dump()

    bind_model(key, _model)


def _as_prompt_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _base_messages(messages: Sequence[Dict[str, str]], schema: Type[BaseModel], enforce_json: bool) -> list[Dict[str, str]]:
    base: list[Dict[str, str]] = []
    if enforce_json:
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        base.append({"role": "system", "content": "Reply with a single JSON object matching this schema:\n" + schema_json})
    base.extend(_normalize_messages(messages))
    return base


def _payload(cfg: LlmRoute, messages: list[Dict[str, str]], options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"model": cfg.model, "messages": messages}
    if options:
        payload.update(options)
    if cfg.response_format:
        payload["response_format"] = {"type": cfg.response_format}
    return payload


def _headers(cfg: LlmRoute) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if cfg.api_key_env:
        api_key = os.getenv(cfg.api_key_env)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
    headers.update(cfg.extra_headers)
    return headers


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float, client: Optional[HttpClient]) -> Tuple[HttpResponse, Optional[Callable[[], None]]]:  # Dispatch HTTP request
    if client is not None:
        return client.post(url, json=payload, headers=headers, timeout=timeout), None
    http_client = httpx.Client(timeout=timeout)
    try:
        response = http_client.post(url, json=payload, headers=headers)
    except httpx.HTTPError:
        http_client.close()
        raise
    return response, http_client.close


def _close_safely(close_cb: Optional[Callable[[], None]]) -> None:
    if close_cb is not None:
        close_cb()


def _normalize_messages(messages: Sequence[Dict[str, str]]) -> list[Dict[str, str]]:  # Ensure message payload shape
    normalized: list[Dict[str, str]] = []
    for item in messages:
        if not isinstance(item, dict):
            raise TypeError("Each chat message must be a dict with role/content")
        role = str(item.get("role", "")).strip()
        if not role:
            raise ValueError("Chat message missing role")
        normalized.append({"role": role, "content": str(item.get("content", ""))})
    return normalized


def _preview(messages: Sequence[Dict[str, str]], limit: int = 120) -> str:
    for message in reversed(messages):
        text = message.get("content", "").strip()
        if text:
            line = text.splitlines()[0]
            return line if len(line) <= limit else line[: limit - 3] + "..."
    return ""


def _extract_content(data: Any) -> str:  # Pull message content out of an OpenAI-style reply
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message = choices[0].get("message") if isinstance(choices[0], dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, str):
                return content
        if isinstance(data.get("content"), str):
            return data["content"]
    raise LlmGatewayError("LLM response missing content")


def _validate(schema: Type[T], content: str) -> T:
    return schema.model_validate_json(_strip_code_fences(content))


def _strip_code_fences(content: str) -> str:  # Remove markdown fences around JSON replies
    text = content.strip()
    if not text.startswith("```"):
        return text
    lines = text.splitlines()[1:]
    while lines and not lines[-1].strip():
        lines.pop()
    if lines and lines[-1].strip() == "```":
        lines.pop()
    return "\n".join(lines).strip()


def _retry_hint(error_text: Optional[str], enforce_json: bool) -> str:  # Compose retry instructions including last error
    base = "The previous reply failed validation."
    if error_text:
        truncated = error_text.splitlines()[0].strip()
        if len(truncated) > 200:
            truncated = truncated[:197] + "..."
        base += f" Reason: {truncated}."
    if enforce_json:
        return base + " Return a single JSON object that matches the schema."
    return base + " Follow the requested format precisely."


def _coerce_messages(payload: Any) -> Sequence[Dict[str, str]]:  # Convert LangChain prompt values into dict messages
    if hasattr(payload, "to_messages"):
        payload = payload.to_messages()
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, BaseMessage):
        return [_message_dict(payload)]
    if isinstance(payload, (list, tuple)):
        if all(isinstance(item, dict) for item in payload):
            return list(payload)
        if all(isinstance(item, BaseMessage) for item in payload):
            return [_message_dict(item) for item in payload]
    raise TypeError("Unsupported message payload for LLM runnable")


def _message_dict(message: BaseMessage) -> Dict[str, str]:
    role = {"human": "user", "ai": "assistant"}.get(message.type, message.type)
    content = message.content
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"role": role, "content": content}
