# Provider Catalog - static, ordered completion providers per request category
# Built once at startup and handed to the router; never mutated afterwards.

import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..models import RequestCategory, TranslationDirection

logger = logging.getLogger(__name__)

HF_INFERENCE_ENDPOINT = "https://api-inference.huggingface.co/models/{model}"


@dataclass(frozen=True)
class ProviderConfig:
    """
    One completion backend.

    `direction` is only set for dedicated machine-translation models; general
    instruction models leave it as None and can serve either direction.
    """
    identifier: str
    endpoint_template: str = HF_INFERENCE_ENDPOINT
    parameters: Mapping[str, Any] = field(default_factory=dict)
    direction: Optional[TranslationDirection] = None

    def __post_init__(self):
        # freeze the parameter mapping so a shared catalog can't drift between requests
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def endpoint(self) -> str:
        return self.endpoint_template.format(model=self.identifier)

    def request_parameters(self, **overrides: Any) -> Dict[str, Any]:
        return {**self.parameters, **overrides}


def _chat_params(max_new_tokens: int, temperature: float = 0.7, top_p: Optional[float] = 0.9) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "max_new_tokens": max_new_tokens,
        "temperature": temperature,
        "return_full_text": False,
    }
    if top_p is not None:
        params["top_p"] = top_p
    return params


_TRANSLATION_PARAMS = {"return_full_text": False}
_SUMMARY_PARAMS = {"max_length": 100, "min_length": 30, "return_full_text": False}

GENERAL_PURPOSE_PROVIDER = ProviderConfig("gpt2", parameters=_chat_params(200))


def default_provider_table() -> Dict[RequestCategory, Tuple[ProviderConfig, ...]]:
    """Default line-up: Japanese-specialised and multilingual instruction models first, gpt2 last."""
    return {
        RequestCategory.QA: (
            ProviderConfig("Qwen/Qwen2.5-7B-Instruct", parameters=_chat_params(512)),
            ProviderConfig("elyza/ELYZA-japanese-Llama-2-7b-fast-instruct", parameters=_chat_params(400)),
            ProviderConfig("rinna/youri-7b-instruction", parameters=_chat_params(400)),
            ProviderConfig("elyza/ELYZA-japanese-Llama-2-7b-instruct", parameters=_chat_params(400)),
            ProviderConfig("Qwen/Qwen2.5-3B-Instruct", parameters=_chat_params(512)),
            ProviderConfig("google/gemma-2-2b-it", parameters=_chat_params(300)),
            ProviderConfig("mistralai/Mistral-Nemo-Mini-4B-Instruct", parameters=_chat_params(400)),
            GENERAL_PURPOSE_PROVIDER,
        ),
        RequestCategory.GRAMMAR: (
            ProviderConfig("rinna/japanese-gpt-neox-3.6b-instruction-sft", parameters=_chat_params(200, 0.3, None)),
            ProviderConfig("elyza/ELYZA-japanese-Llama-2-7b-fast-instruct", parameters=_chat_params(200, 0.3, None)),
            ProviderConfig("rinna/youri-7b-instruction", parameters=_chat_params(200, 0.3, None)),
            ProviderConfig("Qwen/Qwen2.5-7B-Instruct", parameters=_chat_params(200, 0.3, None)),
            ProviderConfig("gpt2", parameters=_chat_params(200, 0.3, None)),
        ),
        RequestCategory.TRANSLATION: (
            ProviderConfig("staka/fugumt-en-ja", parameters=_TRANSLATION_PARAMS, direction="en-jp"),
            ProviderConfig("staka/fugumt-ja-en", parameters=_TRANSLATION_PARAMS, direction="jp-en"),
            ProviderConfig("Helsinki-NLP/opus-mt-en-jp", parameters=_TRANSLATION_PARAMS, direction="en-jp"),
            ProviderConfig("Helsinki-NLP/opus-mt-jp-en", parameters=_TRANSLATION_PARAMS, direction="jp-en"),
            ProviderConfig("Helsinki-NLP/opus-mt-en-jap", parameters=_TRANSLATION_PARAMS, direction="en-jp"),
            ProviderConfig("Helsinki-NLP/opus-mt-ja-en", parameters=_TRANSLATION_PARAMS, direction="jp-en"),
            # general model as last resort for either direction
            ProviderConfig("Qwen/Qwen2.5-7B-Instruct", parameters=_chat_params(200, 0.3, None)),
        ),
        RequestCategory.SUMMARIZATION: (
            ProviderConfig("google/pegasus-xsum", parameters=_SUMMARY_PARAMS),
            ProviderConfig("facebook/bart-large-cnn", parameters=_SUMMARY_PARAMS),
        ),
        RequestCategory.GENERAL: (
            GENERAL_PURPOSE_PROVIDER,
        ),
    }


class ProviderCatalog:
    """
    Read-only provider table.

    Lookups never raise and never come back empty for a category: anything
    unknown or unconfigured resolves to the general-purpose provider.
    """

    def __init__(
        self,
        table: Mapping[RequestCategory, Iterable[ProviderConfig]],
        general_provider: ProviderConfig = GENERAL_PURPOSE_PROVIDER,
    ):
        self._table = MappingProxyType({
            RequestCategory(category): tuple(providers)
            for category, providers in table.items()
        })
        self._general_provider = general_provider

    @classmethod
    def default(cls) -> "ProviderCatalog":
        return cls(default_provider_table())

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ProviderCatalog":
        """
        Build a catalog from a JSON-style mapping:
            {"qa": [{"identifier": "...", "endpoint_template": "...", "parameters": {...}}], ...}
        Unknown category names are ignored with a warning.
        """
        table: Dict[RequestCategory, Tuple[ProviderConfig, ...]] = {}
        for name, entries in raw.items():
            try:
                category = RequestCategory(name)
            except ValueError:
                logger.warning(f"Ignoring unknown provider category in catalog: {name}")
                continue
            table[category] = tuple(
                ProviderConfig(
                    identifier=entry["identifier"],
                    endpoint_template=entry.get("endpoint_template", HF_INFERENCE_ENDPOINT),
                    parameters=entry.get("parameters", {}),
                    direction=entry.get("direction"),
                )
                for entry in entries
            )
        return cls(table)

    @classmethod
    def from_file(cls, path: str) -> "ProviderCatalog":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def providers_for(self, category: RequestCategory) -> Tuple[ProviderConfig, ...]:
        """Ordered providers for a category, general-purpose fallback if none are configured"""
        try:
            providers = self._table.get(RequestCategory(category))
        except ValueError:
            providers = None
        if not providers:
            return (self._general_provider,)
        return providers

    def provider_at(self, category: RequestCategory, index: int = 0) -> ProviderConfig:
        """Provider at `index`, clamped into the category's range"""
        providers = self.providers_for(category)
        return providers[max(0, min(index, len(providers) - 1))]

    def route_plan(self, category: RequestCategory, direction: Optional[TranslationDirection] = None) -> Tuple[ProviderConfig, ...]:
        """
        Providers the router should try, in catalog order.

        With a translation direction, MT models for the opposite direction are
        dropped; the relative order of the rest is untouched.
        """
        providers = self.providers_for(category)
        if direction is None:
            return providers
        plan = tuple(p for p in providers if p.direction in (None, direction))
        return plan or providers

    def categories(self) -> Tuple[RequestCategory, ...]:
        return tuple(self._table.keys())


def load_catalog(path: Optional[str] = None) -> ProviderCatalog:
    """Catalog from a JSON file when a path is configured, otherwise the built-in default"""
    if not path:
        return ProviderCatalog.default()
    try:
        catalog = ProviderCatalog.from_file(path)
        logger.info(f"Loaded provider catalog from {path} ({len(catalog.categories())} categories)")
        return catalog
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Failed to load provider catalog from {path}, using defaults: {e}")
        return ProviderCatalog.default()
