# Completion Router - ordered provider attempts with deterministic fallback
# Tries each catalog provider for a category in order; the first acceptable
# answer wins, otherwise the template fallback answers. route() never raises.

import os
import time
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from prometheus_client import Counter

from ..models import (
    ConversationTurn,
    ProviderAttempt,
    RequestCategory,
    RouterResult,
    SkipReason,
    StudentContextSnapshot,
    TranslationDirection,
)
from .fallback_responder import FallbackResponder
from .intent_classifier import classify
from .prompt_builder import (
    PromptBuilder,
    build_context_prompt,
    contains_japanese,
    contains_latin,
    detect_translation_direction,
    extract_translation_text,
)
from .provider_catalog import ProviderCatalog, ProviderConfig
from .response_parser import clean_response, decode_body, extract_text

logger = logging.getLogger(__name__)

try:
    provider_attempts_total = Counter(
        "tutor_provider_attempts_total", "Completion provider attempts", ["provider", "outcome"]
    )
    fallback_responses_total = Counter(
        "tutor_fallback_responses_total", "Replies served by the template fallback", ["reason"]
    )
except ValueError:
    # metrics already registered
    pass

DETERMINISTIC_CATEGORIES = (RequestCategory.TRANSLATION, RequestCategory.SUMMARIZATION)
LOG_SNIPPET_CHARS = 200


@dataclass
class RouterSettings:
    """Provider-side settings, read once from the environment at startup"""
    api_key: Optional[str] = None
    timeout_s: float = 20.0
    similarity_tolerance: int = 10
    short_output_chars: int = 50
    catalog_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RouterSettings":
        return cls(
            api_key=os.getenv("HUGGINGFACE_API_KEY") or None,
            timeout_s=float(os.getenv("PROVIDER_TIMEOUT_S", "20")),
            similarity_tolerance=int(os.getenv("TRANSLATION_SIMILARITY_TOLERANCE", "10")),
            short_output_chars=int(os.getenv("TRANSLATION_SHORT_OUTPUT_CHARS", "50")),
            catalog_path=os.getenv("PROVIDER_CATALOG_PATH") or None,
        )


class CompletionRouter:
    """
    Routes one classified message through the provider catalog.

    Providers are awaited one at a time in catalog order. Every attempt is
    recorded on the result so callers and tests can see which providers were
    skipped and why; user-facing text never carries those diagnostics.
    """

    def __init__(
        self,
        catalog: ProviderCatalog,
        settings: Optional[RouterSettings] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        fallback_responder: Optional[FallbackResponder] = None,
        logger: Optional[logging.Logger] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.catalog = catalog
        self.settings = settings or RouterSettings()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.fallback_responder = fallback_responder or FallbackResponder()
        self.logger = logger or logging.getLogger(__name__)

        # Persistent HTTP client shared by every provider call
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.settings.timeout_s)

    @property
    def providers_enabled(self) -> bool:
        return bool(self.settings.api_key)

    async def route(
        self,
        category: Optional[RequestCategory],
        message: str,
        history: Optional[Sequence[ConversationTurn]] = None,
        context: Optional[StudentContextSnapshot] = None,
    ) -> RouterResult:
        attempts: List[ProviderAttempt] = []
        if category is None:
            category = classify(message)

        if not self.providers_enabled:
            self.logger.warning("HUGGINGFACE_API_KEY not set, answering from templates")
            return self._fallback(category, message, context, attempts, reason="no_api_key")

        try:
            context_text = build_context_prompt(context)
            direction = None
            if category == RequestCategory.TRANSLATION:
                direction = detect_translation_direction(extract_translation_text(message))

            for provider in self.catalog.route_plan(category, direction):
                try:
                    attempt, text = await self._attempt(provider, category, message, history, context_text, direction)
                except Exception as e:
                    self.logger.exception(f"Provider {provider.identifier} failed unexpectedly: {e}")
                    attempt, text = self._skip(provider, SkipReason.PROVIDER_ERROR), None
                attempts.append(attempt)
                provider_attempts_total.labels(
                    provider=provider.identifier,
                    outcome="accepted" if attempt.accepted else attempt.skip_reason.value,
                ).inc()
                if attempt.accepted:
                    self.logger.info(f"✅ {category.value} answered by {provider.identifier} "
                                     f"after {len(attempts)} attempt(s)")
                    return RouterResult(
                        text=text, category=category, provider_used=provider.identifier, attempts=attempts
                    )
        except Exception as e:
            self.logger.exception(f"Provider loop failed for {category.value}: {e}")
            return self._fallback(category, message, context, attempts, reason="router_error")

        self.logger.warning(f"⚠️ All {len(attempts)} providers failed for {category.value}, using fallback")
        return self._fallback(category, message, context, attempts, reason="providers_exhausted")

    async def _attempt(
        self,
        provider: ProviderConfig,
        category: RequestCategory,
        message: str,
        history: Optional[Sequence[ConversationTurn]],
        context_text: str,
        direction: Optional[TranslationDirection],
    ) -> Tuple[ProviderAttempt, Optional[str]]:
        """One provider call; returns the attempt record and the accepted text, if any"""
        prompt = self.prompt_builder.build(
            category,
            context_text,
            message,
            history,
            provider_identifier=provider.identifier,
            provider_direction=provider.direction,
        )
        payload = {
            "inputs": prompt,
            "parameters": provider.request_parameters(do_sample=category not in DETERMINISTIC_CATEGORIES),
        }
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

        t0 = time.perf_counter()
        try:
            response = await self.client.post(provider.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            latency = round((time.perf_counter() - t0) * 1000, 1)
            self.logger.warning(f"Provider {provider.identifier} transport error: {e}")
            return self._skip(provider, SkipReason.TRANSPORT_ERROR, latency_ms=latency), None
        latency = round((time.perf_counter() - t0) * 1000, 1)

        if response.status_code == 503:
            self.logger.info(f"Provider {provider.identifier} is warming up (503), trying next")
            return self._skip(provider, SkipReason.WARMING_UP, 503, latency), None
        if not response.is_success:
            self.logger.warning(
                f"Provider {provider.identifier} returned {response.status_code}: "
                f"{response.text[:LOG_SNIPPET_CHARS]}"
            )
            return self._skip(provider, SkipReason.HTTP_ERROR, response.status_code, latency), None

        text = clean_response(extract_text(decode_body(response.text)), category, message)
        if not text:
            self.logger.warning(
                f"Provider {provider.identifier} gave no usable text: {response.text[:LOG_SNIPPET_CHARS]}"
            )
            return self._skip(provider, SkipReason.EMPTY_RESPONSE, response.status_code, latency), None

        if category == RequestCategory.TRANSLATION:
            reason = self.validate_translation(text, message, direction)
            if reason is not None:
                self.logger.info(f"Provider {provider.identifier} translation rejected ({reason.value})")
                return self._skip(provider, reason, response.status_code, latency), None
            text = f"Translation: {text}"

        attempt = ProviderAttempt(
            provider=provider.identifier, accepted=True, status_code=response.status_code, latency_ms=latency
        )
        return attempt, text

    def validate_translation(self, text: str, message: str, direction: Optional[TranslationDirection]) -> Optional[SkipReason]:
        """
        None when `text` is a plausible translation of the message, otherwise
        the reason to skip it. Echoes of the source span and output in the
        wrong script are rejected.
        """
        source = extract_translation_text(message).lower().strip()
        candidate = text.lower().strip()
        direction = direction or detect_translation_direction(source)

        if candidate == source:
            return SkipReason.SIMILAR_TO_INPUT
        if source and source in candidate and len(candidate) < len(source) + self.settings.similarity_tolerance:
            return SkipReason.SIMILAR_TO_INPUT

        has_japanese = contains_japanese(text)
        if direction == "en-jp" and not has_japanese and contains_latin(text) \
                and len(text) < self.settings.short_output_chars:
            return SkipReason.WRONG_SCRIPT

        if direction == "en-jp" and has_japanese:
            return None
        if direction == "jp-en" and contains_latin(text):
            return None
        return SkipReason.WRONG_SCRIPT

    def _skip(self, provider: ProviderConfig, reason: SkipReason, status_code: Optional[int] = None,
              latency_ms: Optional[float] = None) -> ProviderAttempt:
        return ProviderAttempt(
            provider=provider.identifier,
            accepted=False,
            skip_reason=reason,
            status_code=status_code,
            latency_ms=latency_ms,
        )

    def _fallback(
        self,
        category: RequestCategory,
        message: str,
        context: Optional[StudentContextSnapshot],
        attempts: List[ProviderAttempt],
        reason: str,
    ) -> RouterResult:
        fallback_responses_total.labels(reason=reason).inc()
        text = self.fallback_responder.respond(context, message, category)
        return RouterResult(text=text, category=category, provider_used=None, attempts=attempts)

    async def health_check(self) -> Dict[str, Any]:
        """Configuration view of the router; providers are not probed"""
        return {
            "providers_enabled": self.providers_enabled,
            "timeout_s": self.settings.timeout_s,
            "categories": {
                category.value: [p.identifier for p in self.catalog.providers_for(category)]
                for category in RequestCategory
            },
        }

    async def close(self):
        """Clean up the persistent HTTP client"""
        if self._owns_client:
            with suppress(Exception):
                await self.client.aclose()
