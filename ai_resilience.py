"""AI Resilience Layer — Retry, Circuit Breaker, Cache.

Provides a single resilient_llm_call() entry point that wraps Gemini calls
with retry logic, circuit breaking and optional response caching. Every
failure leaves this module as a ConnectivityError.

The cache holds note generations for a day; the shared scheduler purges
expired entries hourly through purge_response_cache().
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from errors import ConnectivityError

logger = logging.getLogger(__name__)

PROVIDER = "gemini"


def cache_key(model: str, prompt: str, system: str = "", json_mode: bool = False) -> str:
    raw = "\x1f".join((model, "json" if json_mode else "text", system, prompt))
    return hashlib.sha256(raw.encode()).hexdigest()


# ── Response cache ──────────────────────────────────────────

class ResponseCache:
    """Least-recently-used cache of model responses, each with its own expiry."""

    def __init__(self, capacity: int = 500) -> None:
        self.capacity = capacity
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, text = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return text

    def put(self, key: str, text: str, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, text)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        """Drop expired responses; returns how many went."""
        now = time.monotonic()
        with self._lock:
            stale = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ── Circuit breaker ─────────────────────────────────────────

CLOSED, OPEN, HALF_OPEN = "closed", "open", "half_open"


class CircuitBreaker:
    """Guards the Gemini endpoint: closed -> open -> half_open -> closed.

    After ``threshold`` consecutive failures calls are refused for
    ``recovery_seconds``. Then exactly one trial call is let through; its
    outcome closes or re-opens the circuit.
    """

    def __init__(self, threshold: int = 3, recovery_seconds: float = 60) -> None:
        self.threshold = threshold
        self.recovery_seconds = recovery_seconds
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._state = CLOSED
            self._failures = 0
            self._opened_at = 0.0

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def allow(self) -> bool:
        with self._lock:
            if self._state == CLOSED:
                return True
            if self._state == OPEN and time.monotonic() - self._opened_at >= self.recovery_seconds:
                self._state = HALF_OPEN
                return True
            # Open and cooling down, or a trial call is already out
            return False

    def record_success(self) -> None:
        with self._lock:
            self._state = CLOSED
            self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN or self._failures >= self.threshold:
                if self._state != OPEN:
                    logger.warning("Circuit for %s opened after %d failures", PROVIDER, self._failures)
                self._state = OPEN
                self._opened_at = time.monotonic()


_circuit_breaker = CircuitBreaker()
_cache = ResponseCache()


# ── Transient error detection ───────────────────────────────

_TRANSIENT_TYPES = (ConnectionError, TimeoutError, OSError)
_TRANSIENT_MARKERS = (
    "rate limit",
    "resource exhausted",
    "429",
    "500",
    "502",
    "503",
    "overloaded",
    "unavailable",
    "timeout",
    "deadline",
)


def _is_transient(exc: BaseException) -> bool:
    """Check if an exception is transient (worth retrying)."""
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    msg = str(exc).lower()
    return any(marker in msg for marker in _TRANSIENT_MARKERS)


class TransientLLMError(Exception):
    """Wrapper for transient LLM errors that should be retried."""


# ── Main entry point ────────────────────────────────────────

def _do_call(api_key: str, model: str, prompt: str, system: str, json_mode: bool) -> str:
    """Execute the actual Gemini call (no retry, no cache)."""
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    m = genai.GenerativeModel(model)
    full_prompt = f"{system}\n\n{prompt}" if system else prompt
    kwargs: dict = {}
    if json_mode:
        kwargs["generation_config"] = {"response_mime_type": "application/json"}
    response = m.generate_content(full_prompt, **kwargs)
    return response.text


@retry(
    retry=retry_if_exception_type(TransientLLMError),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    stop=stop_after_attempt(3),
    reraise=True,
)
def _call_with_retry(api_key: str, model: str, prompt: str, system: str, json_mode: bool) -> str:
    """Call Gemini with tenacity retry on transient errors."""
    try:
        return _do_call(api_key, model, prompt, system, json_mode)
    except Exception as exc:
        if _is_transient(exc):
            raise TransientLLMError(str(exc)) from exc
        raise


def resilient_llm_call(
    api_key: str,
    model: str,
    prompt: str,
    system: str = "",
    json_mode: bool = False,
    cache_ttl: int = 0,
) -> tuple[str, dict]:
    """Resilient Gemini call.

    Args:
        api_key: Google API key
        model: Model name string
        prompt: The prompt text
        system: System preamble (optional)
        json_mode: Ask the model for a JSON response body
        cache_ttl: Cache TTL in seconds (0 = no caching)

    Returns:
        (response_text, metadata_dict) where metadata has latency_ms,
        cache_hit and model.
    """
    # Cached answers are served even while the circuit is open
    key = cache_key(model, prompt, system, json_mode)
    if cache_ttl > 0:
        cached = _cache.get(key)
        if cached is not None:
            return cached, {"cache_hit": True, "model": model, "latency_ms": 0}

    if not _circuit_breaker.allow():
        raise ConnectivityError("AI service is temporarily unavailable. Please try again shortly.")

    start = time.monotonic()
    try:
        response_text = _call_with_retry(api_key, model, prompt, system, json_mode)
    except Exception as exc:
        _circuit_breaker.record_failure()
        logger.warning("Gemini call failed (%s): %s", model, exc)
        raise ConnectivityError(f"AI service error: {exc}") from exc

    latency_ms = int((time.monotonic() - start) * 1000)
    _circuit_breaker.record_success()

    if cache_ttl > 0:
        _cache.put(key, response_text, cache_ttl)

    return response_text, {"cache_hit": False, "model": model, "latency_ms": latency_ms}


def get_circuit_breaker() -> CircuitBreaker:
    """Access the module-level circuit breaker singleton."""
    return _circuit_breaker


def get_cache() -> ResponseCache:
    """Access the module-level response cache."""
    return _cache


def purge_response_cache() -> int:
    """Scheduler job: drop expired cached responses."""
    removed = _cache.purge_expired()
    if removed:
        logger.info("Purged %d expired AI responses", removed)
    return removed
