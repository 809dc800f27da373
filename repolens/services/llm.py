import json
import logging
import time
from typing import Any, Callable

from openai import APIConnectionError, APIError, AuthenticationError, OpenAI, RateLimitError

from repolens.core.config import Settings, get_openai_keys
from repolens.core.errors import ExternalAnalysisError

logger = logging.getLogger(__name__)

OPENAI_RETRY_WAIT = 1.5
OPENAI_RETRY_ONCE = (RateLimitError, APIConnectionError)
# The next key is tried when one fails auth or hits its limit
OPENAI_FALLBACK_EXCEPTIONS = (AuthenticationError, RateLimitError)

Message = dict[str, str]


def _provider_message(exc: Exception) -> str:
    """Readable message for a provider failure; stored on the job as is."""
    if isinstance(exc, AuthenticationError):
        return "LLM provider rejected the API key."
    if isinstance(exc, RateLimitError):
        return "LLM provider is rate limiting requests. Please try again later."
    if isinstance(exc, APIConnectionError):
        return "Could not reach the LLM provider."
    if isinstance(exc, APIError):
        return f"LLM provider error: {exc}"
    return f"Unexpected LLM error: {exc}"


class LLMClient:
    def __init__(self, keys: list[str], model: str = "gpt-4o-mini", timeout: float = 60.0):
        self.keys = keys
        self.model = model
        self.timeout = timeout
        # One client per key
        self._clients: dict[str, OpenAI] = {}

    @classmethod
    def from_settings(cls, s: Settings) -> "LLMClient":
        return cls(get_openai_keys(s), model=s.openai_model, timeout=s.openai_timeout)

    def _client_for_key(self, key: str) -> OpenAI:
        if key not in self._clients:
            self._clients[key] = OpenAI(api_key=key, timeout=self.timeout)
        return self._clients[key]

    @staticmethod
    def _safe_call(create_fn: Callable[[], Any]) -> Any:
        """One retry after OPENAI_RETRY_WAIT on rate limit or connection errors."""
        try:
            return create_fn()
        except OPENAI_RETRY_ONCE as e:
            logger.warning("OpenAI retry after %s: %s", type(e).__name__, e)
            time.sleep(OPENAI_RETRY_WAIT)
            return create_fn()

    def _create_with_fallback(self, create_fn: Callable[[OpenAI], Any]) -> Any:
        if not self.keys:
            raise ExternalAnalysisError("OPENAI_API_KEY is not configured.")
        last_exc: Exception | None = None
        for key in self.keys:
            try:
                return create_fn(self._client_for_key(key))
            except OPENAI_FALLBACK_EXCEPTIONS as e:
                last_exc = e
                logger.warning("OpenAI key skipped (%s), trying the next one: %s", key[:12] + "...", e)
        raise ExternalAnalysisError(_provider_message(last_exc)) from last_exc

    def complete_json(self, messages: list[Message]) -> dict[str, Any]:
        """Chat completion constrained to a JSON object; any failure becomes ExternalAnalysisError."""

        def _create(client: OpenAI):
            return self._safe_call(lambda: client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
            ))

        try:
            response = self._create_with_fallback(_create)
        except ExternalAnalysisError:
            raise
        except (APIConnectionError, APIError) as e:
            logger.exception("OpenAI API error: %s", e)
            raise ExternalAnalysisError(_provider_message(e)) from e

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise ExternalAnalysisError("LLM returned an empty response")
        try:
            data = json.loads(content)
        except ValueError as e:
            raise ExternalAnalysisError("LLM returned malformed JSON") from e
        if not isinstance(data, dict):
            raise ExternalAnalysisError("LLM returned JSON that is not an object")
        return data

    def ping(self) -> tuple[bool, float, str | None]:
        """
        Minimal one-token request for /health/ai. Tries each key in turn.
        Returns: (success, latency_ms, error_message_or_none)
        """
        t0 = time.perf_counter()
        last_err: str | None = None
        for key in self.keys:
            try:
                self._client_for_key(key).chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": "Hi"}],
                    max_tokens=1,
                )
                return (True, round((time.perf_counter() - t0) * 1000, 2), None)
            except Exception as e:
                last_err = str(e).strip()[:500] or type(e).__name__
                if isinstance(e, OPENAI_FALLBACK_EXCEPTIONS):
                    continue
                return (False, round((time.perf_counter() - t0) * 1000, 2), last_err)
        return (False, round((time.perf_counter() - t0) * 1000, 2), last_err or "No usable OpenAI key.")
