"""
Completion provider adapters.

Each adapter wraps one external text-generation backend behind the same
interface: ``is_available()`` and ``complete(request)``. Adapters translate a
generic CompletionRequest into the backend's call shape and normalize the
response and its errors. They do no caching and no cost accounting; the
orchestrator owns both.

Providers, in default priority order:
1. Gemini (free tier, REST via httpx, local requests-per-minute limit)
2. Anthropic Claude (paid, official SDK)
3. OpenAI (paid, REST via httpx)
"""

import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Optional

import httpx

try:
    import anthropic
except ImportError:
    anthropic = None  # type: ignore

from .config import ProviderSettings, Settings
from .ledger import estimate_tokens
from .models import CompletionRequest, CompletionResult, TaskType, TokenUsage

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """
    Raised by an adapter when a completion call fails.

    Transient errors send the orchestrator on to the next adapter; permanent
    errors (the request itself is bad) stop the whole call.
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"

    def __init__(
        self,
        provider: str,
        message: str,
        kind: str = TRANSIENT,
        usage: Optional[TokenUsage] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.reason = message
        self.kind = kind
        self.usage = usage
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.kind == self.TRANSIENT


# Status codes that mean "this request is malformed everywhere"
PERMANENT_STATUSES = {400, 413, 422}
# Status codes that mean "this adapter is misconfigured" (fall back, go cold)
ADAPTER_FAULT_STATUSES = {401, 403, 404}


def classify_status(status_code: int) -> str:
    """Map an HTTP status from a provider to a ProviderError kind."""
    if status_code in PERMANENT_STATUSES:
        return ProviderError.PERMANENT
    return ProviderError.TRANSIENT


SYSTEM_PROMPT = (
    "You are an SEO copywriting expert. Follow the requested output format "
    "exactly. Never add explanations or commentary."
)

DEFAULT_MAX_TOKENS = {
    TaskType.TITLE_VARIANTS: 512,
    TaskType.DESCRIPTION_VARIANTS: 1024,
    TaskType.KEYWORD_SUGGESTIONS: 512,
    TaskType.FREE_TEXT: 2048,
}

DEFAULT_VARIANT_COUNT = 5


def build_prompt(request: CompletionRequest, count: Optional[int] = None) -> str:
    """
    Build the user prompt for a request.

    Args:
        request: The completion request.
        count: Override for the number of candidates asked for.

    Returns:
        Prompt text.
    """
    n = count or request.variant_count or DEFAULT_VARIANT_COUNT
    title = request.text_field("title")
    content = request.text_field("content") or request.text_field("text")
    excerpt = request.text_field("excerpt")
    category = request.text_field("category") or "General"
    keywords = request.keywords
    primary = keywords[0] if keywords else ""
    preview = content[:500]

    if request.task is TaskType.TITLE_VARIANTS:
        limit = request.max_length or 60
        return f"""Generate {n} distinct SEO-optimized page title variations.

Current title: {title or "None"}
Category: {category}
Primary keyword: {primary or "None"}
Other keywords: {", ".join(keywords[1:]) or "None"}

Content preview:
{preview}

Requirements:
- Each title at most {limit} characters
- Include the primary keyword as an exact phrase, ideally near the start
- Make each variation meaningfully different

Return ONLY a JSON array of {n} strings."""

    if request.task is TaskType.DESCRIPTION_VARIANTS:
        limit = request.max_length or 160
        return f"""Generate {n} distinct meta description variations.

Page title: {title or "None"}
Current description: {excerpt or "None"}
Category: {category}
Primary keyword: {primary or "None"}
Other keywords: {", ".join(keywords[1:]) or "None"}

Content preview:
{preview}

Requirements:
- Each description at most {limit} characters
- Include the primary keyword naturally
- End with a clear call to action (e.g. "Learn more", "Get started")

Return ONLY a JSON array of {n} strings."""

    if request.task is TaskType.KEYWORD_SUGGESTIONS:
        return f"""Analyze the following content and suggest {n} highly relevant SEO keywords and phrases.

Title: {title or "None"}
Category: {category}
Existing keywords: {", ".join(keywords) or "None"}

Content:
{content[:1000]}

Return ONLY JSON in this format:
{{"keywords": ["keyword1", "keyword2"], "longTailKeywords": ["long tail phrase"]}}"""

    instruction = request.text_field("text") or request.text_field("content")
    limit_line = f"\nKeep the answer under {request.max_length} characters." if request.max_length else ""
    return f"{instruction}{limit_line}"


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.):])\s*")
_JSON_BLOCK_RE = re.compile(r"(\[.*\]|\{.*\})", re.DOTALL)
_LIST_KEYS = ("variants", "titles", "descriptions", "keywords", "suggestions", "longTailKeywords", "long_tail_keywords")


def parse_candidates(task: TaskType, text: str, count: Optional[int] = None) -> list[str]:
    """
    Normalize a raw provider answer into candidate strings.

    Accepts a JSON array, a JSON object holding arrays, fenced JSON, or
    numbered/bulleted lines. Free-text answers come back as one candidate.
    """
    cleaned = (text or "").strip()
    fence = _FENCE_RE.match(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    if task is TaskType.FREE_TEXT:
        return [cleaned] if cleaned else []

    items = _parse_json_items(cleaned)
    if items is None:
        items = [_clean_line(line) for line in cleaned.splitlines()]
        items = [line for line in items if line and not line.endswith(":")]

    seen = set()
    candidates = []
    for item in items:
        item = item.strip().strip('"').strip()
        if item and item.lower() not in seen:
            seen.add(item.lower())
            candidates.append(item)

    return candidates[:count] if count else candidates


def _parse_json_items(text: str) -> Optional[list[str]]:
    data = _loads_lenient(text)
    if data is None:
        return None

    if isinstance(data, dict):
        items: list = []
        for key in _LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                items.extend(value)
        data = items

    if not isinstance(data, list):
        return None

    result = []
    for item in data:
        if isinstance(item, str):
            result.append(item)
        elif isinstance(item, dict):
            value = item.get("text") or item.get("title") or item.get("description") or item.get("keyword")
            if isinstance(value, str):
                result.append(value)
    return result


def _loads_lenient(text: str):
    try:
        return json.loads(text)
    except ValueError:
        pass
    match = _JSON_BLOCK_RE.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        return None


def _clean_line(line: str) -> str:
    return _BULLET_RE.sub("", line).strip().strip('"').strip("'").strip()


class ProviderAdapter(ABC):
    """
    Uniform wrapper around one text-generation backend.

    Subclasses implement ``_check_available`` and ``_generate``. The base class
    builds prompts, parses candidates and times the call.
    """

    name = "base"
    cost_tier = "unknown"
    supports_batch = True

    def __init__(
        self,
        settings: ProviderSettings,
        availability_ttl: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings
        self.availability_ttl = availability_ttl
        self._clock = clock or time.monotonic
        self._available: Optional[bool] = None
        self._available_until = 0.0
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """Cheap availability check, cached for ``availability_ttl`` seconds."""
        now = self._clock()
        with self._lock:
            if self._available is not None and now < self._available_until:
                return self._available
        available = self._check_available()
        with self._lock:
            self._available = available
            self._available_until = now + self.availability_ttl
        return available

    def mark_unavailable(self, reason: str) -> None:
        """Take the adapter out of rotation for the availability interval."""
        logger.warning(f"{self.name} marked unavailable: {reason}")
        with self._lock:
            self._available = False
            self._available_until = self._clock() + self.availability_ttl

    def complete(self, request: CompletionRequest) -> CompletionResult:
        """
        Perform one completion call.

        Raises:
            ProviderError: On backend failure, timeout or an unusable answer.
        """
        start = time.perf_counter()
        count = request.variant_count or DEFAULT_VARIANT_COUNT
        max_tokens = DEFAULT_MAX_TOKENS[request.task]

        if request.task.is_variant_task and not self.supports_batch and count > 1:
            candidates: list[str] = []
            usage = TokenUsage()
            single = build_prompt(request, count=1)
            for _ in range(count):
                text, call_usage = self._generate(single, max_tokens, request.temperature)
                call_usage = call_usage or TokenUsage(estimate_tokens(single), estimate_tokens(text))
                usage = TokenUsage(
                    usage.input_tokens + call_usage.input_tokens,
                    usage.output_tokens + call_usage.output_tokens,
                )
                candidates.extend(parse_candidates(request.task, text, 1))
        else:
            prompt = build_prompt(request)
            text, usage = self._generate(prompt, max_tokens, request.temperature)
            usage = usage or TokenUsage(estimate_tokens(prompt), estimate_tokens(text))
            limit = count if request.task.is_variant_task else None
            candidates = parse_candidates(request.task, text, limit)

        if not candidates:
            raise ProviderError(self.name, "Empty or unparseable response", usage=usage)

        return CompletionResult(
            candidates=tuple(candidates),
            provider=self.name,
            served_from_cache=False,
            duration_seconds=time.perf_counter() - start,
            usage=usage,
        )

    @abstractmethod
    def _check_available(self) -> bool:
        ...

    @abstractmethod
    def _generate(
        self, prompt: str, max_tokens: int, temperature: float
    ) -> tuple[str, Optional[TokenUsage]]:
        ...

    def _fail_http(self, error: Exception, usage: Optional[TokenUsage] = None) -> ProviderError:
        """Translate an httpx failure into a ProviderError."""
        if isinstance(error, httpx.TimeoutException):
            return ProviderError(self.name, f"Timed out after {self.settings.timeout}s")
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status in ADAPTER_FAULT_STATUSES:
                self.mark_unavailable(f"HTTP {status}")
            return ProviderError(
                self.name,
                f"HTTP {status}: {error.response.text[:200]}",
                kind=classify_status(status),
                usage=usage,
                status_code=status,
            )
        return ProviderError(self.name, f"Request failed: {error}")

    def info(self) -> dict:
        return {
            "name": self.name,
            "model": self.settings.model,
            "cost": self.cost_tier,
            "status": "available" if self.is_available() else (
                "unavailable" if self.settings.is_configured else "not_configured"
            ),
        }


class GeminiAdapter(ProviderAdapter):
    """Google Gemini over the Generative Language REST API (free tier)."""

    name = "gemini"
    cost_tier = "free"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, settings: ProviderSettings, http_client: Optional[httpx.Client] = None, **kwargs):
        super().__init__(settings, **kwargs)
        self._http = http_client
        self._recent: deque[float] = deque()

    def is_available(self) -> bool:
        return super().is_available() and not self._rate_limited()

    def _check_available(self) -> bool:
        return self.settings.is_configured

    def _rate_limited(self) -> bool:
        limit = self.settings.max_requests_per_minute
        if not limit:
            return False
        now = self._clock()
        with self._lock:
            self._expire(now)
            return len(self._recent) >= limit

    def _reserve_slot(self) -> bool:
        """Claim one request in the current window; the check and the claim share the lock."""
        limit = self.settings.max_requests_per_minute
        now = self._clock()
        with self._lock:
            self._expire(now)
            if limit and len(self._recent) >= limit:
                return False
            self._recent.append(now)
            return True

    def _expire(self, now: float) -> None:
        while self._recent and now - self._recent[0] >= 60.0:
            self._recent.popleft()

    def _generate(self, prompt: str, max_tokens: int, temperature: float) -> tuple[str, Optional[TokenUsage]]:
        if not self._reserve_slot():
            raise ProviderError(self.name, "Free-tier rate limit reached")

        base_url = self.settings.base_url or self.BASE_URL
        url = f"{base_url}/models/{self.settings.model}:generateContent"
        body = {
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }

        try:
            response = self._client().post(
                url,
                json=body,
                headers={"x-goog-api-key": self.settings.api_key or ""},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise self._fail_http(e) from e
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response: {e}") from e

        try:
            meta = data.get("usageMetadata") or {}
            usage = None
            if meta:
                usage = TokenUsage(
                    int(meta.get("promptTokenCount") or 0),
                    int(meta.get("candidatesTokenCount") or 0),
                )

            parts = ((data.get("candidates") or [{}])[0].get("content") or {}).get("parts") or []
            text = "".join(part.get("text") or "" for part in parts)
        except (AttributeError, TypeError, ValueError, IndexError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e
        return text, usage

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=httpx.Timeout(self.settings.timeout, connect=10.0))
        return self._http


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Claude through the official SDK (paid)."""

    name = "anthropic"
    cost_tier = "paid"

    def __init__(self, settings: ProviderSettings, client=None, **kwargs):
        super().__init__(settings, **kwargs)
        self._sdk_client = client

    def _check_available(self) -> bool:
        if self._sdk_client is not None:
            return True
        return self.settings.is_configured and anthropic is not None

    def _generate(self, prompt: str, max_tokens: int, temperature: float) -> tuple[str, Optional[TokenUsage]]:
        client = self._client()
        try:
            response = client.messages.create(
                model=self.settings.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise self._translate(e) from e

        try:
            text = "".join(
                getattr(block, "text", None) or "" for block in (response.content or [])
            )
            usage = None
            if getattr(response, "usage", None) is not None:
                usage = TokenUsage(
                    int(response.usage.input_tokens or 0),
                    int(response.usage.output_tokens or 0),
                )
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e
        return text, usage

    def _translate(self, error: Exception) -> ProviderError:
        if anthropic is not None:
            if isinstance(error, anthropic.APITimeoutError):
                return ProviderError(self.name, f"Timed out after {self.settings.timeout}s")
            if isinstance(error, anthropic.APIConnectionError):
                return ProviderError(self.name, f"Connection failed: {error}")
            if isinstance(error, anthropic.APIStatusError):
                status = error.status_code
                if status in ADAPTER_FAULT_STATUSES:
                    self.mark_unavailable(f"HTTP {status}")
                return ProviderError(
                    self.name,
                    f"HTTP {status}: {error.message}",
                    kind=classify_status(status),
                    status_code=status,
                )
        status = getattr(error, "status_code", None)
        if isinstance(status, int):
            return ProviderError(self.name, str(error), kind=classify_status(status), status_code=status)
        return ProviderError(self.name, f"Claude API call failed: {error}")

    def _client(self):
        if self._sdk_client is None:
            if anthropic is None:
                raise ProviderError(
                    self.name,
                    "anthropic package not installed. Run: pip install anthropic",
                    kind=ProviderError.TRANSIENT,
                )
            http_client = httpx.Client(
                timeout=httpx.Timeout(self.settings.timeout, connect=10.0),
                follow_redirects=True,
            )
            self._sdk_client = anthropic.Anthropic(
                api_key=self.settings.api_key,
                http_client=http_client,
                max_retries=0,
            )
        return self._sdk_client


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions over REST (paid)."""

    name = "openai"
    cost_tier = "paid"
    BASE_URL = "https://api.openai.com/v1"

    def __init__(self, settings: ProviderSettings, http_client: Optional[httpx.Client] = None, **kwargs):
        super().__init__(settings, **kwargs)
        self._http = http_client

    def _check_available(self) -> bool:
        return self.settings.is_configured

    def _generate(self, prompt: str, max_tokens: int, temperature: float) -> tuple[str, Optional[TokenUsage]]:
        base_url = self.settings.base_url or self.BASE_URL
        body = {
            "model": self.settings.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }

        try:
            response = self._client().post(
                f"{base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.settings.api_key or ''}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise self._fail_http(e) from e
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response: {e}") from e

        try:
            usage_data = data.get("usage") or {}
            usage = None
            if usage_data:
                usage = TokenUsage(
                    int(usage_data.get("prompt_tokens") or 0),
                    int(usage_data.get("completion_tokens") or 0),
                )

            choices = data.get("choices") or [{}]
            text = ((choices[0].get("message") or {}).get("content")) or ""
        except (AttributeError, TypeError, ValueError, IndexError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e
        if not isinstance(text, str):
            raise ProviderError(self.name, f"Unexpected response shape: content is {type(text).__name__}")
        return text, usage

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=httpx.Timeout(self.settings.timeout, connect=10.0))
        return self._http


ADAPTER_TYPES = {
    "gemini": GeminiAdapter,
    "anthropic": AnthropicAdapter,
    "openai": OpenAIAdapter,
}


def build_adapters(settings: Optional[Settings] = None) -> list[ProviderAdapter]:
    """
    Build the fixed, ordered adapter list from configuration.

    Every provider named in the settings gets an adapter, configured or not;
    unconfigured adapters simply report unavailable.

    Args:
        settings: Configuration. If None, reads the environment.

    Returns:
        Adapters in priority order.
    """
    settings = settings or Settings.from_env()
    adapters = []
    for provider in settings.providers:
        adapter_type = ADAPTER_TYPES.get(provider.name)
        if adapter_type is None:
            logger.warning(f"No adapter for provider '{provider.name}', skipping")
            continue
        adapters.append(adapter_type(provider))

    configured = [a.name for a in adapters if a.settings.is_configured]
    logger.info(f"AI providers configured: {', '.join(configured) or 'none'}")
    return adapters


def provider_info(adapters: list[ProviderAdapter]) -> dict[str, dict]:
    """Describe cost tier, model and status of each adapter."""
    return {adapter.name: adapter.info() for adapter in adapters}
