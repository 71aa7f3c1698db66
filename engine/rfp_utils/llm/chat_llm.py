"""
Features
- Async chat completions against an OpenAI-compatible endpoint
  (system instruction + user message, model id, sampling params).
- Per-call timeout override on top of the client-wide httpx timeout.
- Non-2xx responses and transport failures surface as `ChatCompletionError`.
- No internal retries: the caller owns the attempt policy (see
  `rfp_tools.auto_score.ai_scoring`).

Environment (Vault or process env)
- LLM_API_KEY (required)
- LLM_BASE_URL (optional, default https://apis.abacus.ai)
- LLM_CHAT_PATH (optional, default /chatllm/chat)

Usage:
    from rfp_utils.llm.chat_llm import AsyncChatLLM, ChatMessage
    async with AsyncChatLLM.from_env() as client:
        resp = await client.chat(
            model="gpt-4o-mini",
            messages=[ChatMessage(role="user", content="Say hello!")],
        )
        print(resp.text)
"""

from __future__ import annotations

import httpx
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rfp_utils.vault import DEFAULT_LLM_BASE_URL, DEFAULT_LLM_CHAT_PATH, secrets

DEFAULT_BASE_URL = DEFAULT_LLM_BASE_URL
DEFAULT_CHAT_PATH = DEFAULT_LLM_CHAT_PATH


@dataclass
class ChatMessage:
    role: str  # "system" | "user" | "assistant"
    content: str
    name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        msg = {"role": self.role, "content": self.content}
        if self.name:
            msg["name"] = self.name
        return msg


@dataclass
class LLMResponse:
    """Normalized response surface."""
    raw: Dict[str, Any]
    model: str
    created: int
    usage: Optional[Dict[str, int]]
    finish_reason: Optional[str]
    text: str  # first choice's content


class ChatCompletionError(Exception):
    def __init__(self, status_code: int, message: str, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(f"[{status_code}] {message}")
        self.status_code = status_code
        self.message = message
        self.metadata = metadata or {}


@dataclass
class AsyncChatLLM:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    chat_path: str = DEFAULT_CHAT_PATH
    timeout: float = 30.0  # seconds
    connect_timeout: float = 10.0
    default_headers: Dict[str, str] = field(default_factory=dict)
    transport: Optional[httpx.AsyncBaseTransport] = None
    _client: Optional[httpx.AsyncClient] = field(default=None, init=False)

    @classmethod
    def from_env(cls, **kwargs) -> "AsyncChatLLM":
        api_key = secrets.llm_api_key()
        if not api_key:
            raise RuntimeError("LLM_API_KEY not set (set in Vault or env)")
        kwargs.setdefault("base_url", secrets.llm_base_url())
        kwargs.setdefault("chat_path", secrets.llm_chat_path())
        return cls(api_key=api_key, **kwargs)

    async def __aenter__(self) -> "AsyncChatLLM":
        self._client = self._make_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
            headers=self._build_headers(),
            transport=self.transport,
            http2=True,
        )

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.default_headers)
        return headers

    async def chat(
        self,
        model: str,
        messages: List[ChatMessage],
        *,
        timeout: Optional[float] = None,
        response_format: Optional[Dict[str, Any]] = None,
        user: Optional[str] = None,
        **params: Any,
    ) -> LLMResponse:
        """
        Single non-streaming chat completion.

        `timeout` overrides the client-wide timeout for this call only.
        Raises ChatCompletionError on non-2xx, transport failure or an unreadable body.
        """
        payload = self._build_payload(
            model=model,
            messages=messages,
            response_format=response_format,
            user=user,
            **params,
        )
        req_timeout = (
            httpx.Timeout(timeout, connect=min(timeout, self.connect_timeout))
            if timeout is not None
            else None
        )
        resp = await self._request("POST", self.chat_path, json=payload, timeout=req_timeout)
        if resp.status_code // 100 != 2:
            err = _read_error_safely(resp)
            raise ChatCompletionError(err["code"], err["message"], err.get("metadata"))
        try:
            data = resp.json()
        except ValueError as e:
            raise ChatCompletionError(502, f"Invalid JSON body from {model}") from e
        return self._to_llm_response(data)

    def _build_payload(
        self,
        *,
        model: str,
        messages: List[ChatMessage],
        response_format: Optional[Dict[str, Any]],
        user: Optional[str],
        **params: Any,
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("`messages` must be provided.")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [m.to_payload() for m in messages],
        }
        if response_format is not None:
            payload["response_format"] = response_format
        if user:
            payload["user"] = user

        # Pass through sampling params (temperature, top_p, max_tokens, ...)
        payload.update(params)
        return payload

    @staticmethod
    def _to_llm_response(data: Dict[str, Any]) -> LLMResponse:
        if not isinstance(data, dict):
            raise ChatCompletionError(502, "Unexpected response body")
        choices = data.get("choices") or []
        text = ""
        finish_reason = None
        if choices:
            c0 = choices[0] or {}
            msg = c0.get("message") or {}
            text = (msg.get("content") or "") if isinstance(msg, dict) else ""
            finish_reason = c0.get("finish_reason")

        return LLMResponse(
            raw=data,
            model=data.get("model", ""),
            created=data.get("created", 0),
            usage=data.get("usage"),
            finish_reason=finish_reason,
            text=text or "",
        )

    async def _request(self, method: str, path: str, *, timeout=None, **kwargs) -> httpx.Response:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with self._make_client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ChatCompletionError(408, f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ChatCompletionError(503, f"Network error: {e}") from e


def _read_error_safely(resp: httpx.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"code": resp.status_code, "message": f"HTTP {resp.status_code}"}
    err = data.get("error") if isinstance(data, dict) else None
    if not isinstance(err, dict):
        message = err if isinstance(err, str) else f"HTTP {resp.status_code}"
        return {"code": resp.status_code, "message": message}
    return {
        "code": err.get("code") if isinstance(err.get("code"), int) else resp.status_code,
        "message": err.get("message") or err.get("error") or f"HTTP {resp.status_code}",
        "metadata": err.get("metadata") or {},
    }
