"""Static table translating caller-facing model names to NIM model names."""

from types import MappingProxyType
from typing import Any, List, Mapping

DEFAULT_MODEL = "gpt-3.5-turbo"

MODEL_MAPPING: Mapping[str, str] = MappingProxyType({
    "gpt-3.5-turbo": "meta/llama-3.1-8b-instruct",
    "gpt-4": "meta/llama-3.1-70b-instruct",
    "gpt-4-turbo": "meta/llama-3.1-405b-instruct",
    "gpt-4o": "meta/llama-3.1-405b-instruct",
    "claude-3-opus": "meta/llama-3.1-405b-instruct",
    "claude-3-sonnet": "meta/llama-3.1-70b-instruct",
    "gemini-pro": "meta/llama-3.1-70b-instruct",
    "deepseek-v3.2": "deepseek-ai/deepseek-v3.1",
    "deepseek-r1-0528": "deepseek-ai/deepseek-r1-0528",
})


class ModelTranslator:
    """
    Resolves caller model identifiers against an immutable mapping table.
    Unknown identifiers fall back to the entry for the default model, so
    the table must contain that key; this is checked once, at construction.
    """

    def __init__(self, mapping: Mapping[str, str] = MODEL_MAPPING, default_model: str = DEFAULT_MODEL):
        if default_model not in mapping:
            raise ValueError(f"Model mapping has no entry for the default model '{default_model}'")
        self._mapping: Mapping[str, str] = MappingProxyType(dict(mapping))
        self.default_model = default_model

    @property
    def mapping(self) -> Mapping[str, str]:
        return self._mapping

    def model_ids(self) -> List[str]:
        return list(self._mapping.keys())

    def resolve_upstream_model(self, requested: Any) -> str:
        if isinstance(requested, str) and requested in self._mapping:
            return self._mapping[requested]
        return self._mapping[self.default_model]


default_translator = ModelTranslator()


def resolve_upstream_model(requested: Any) -> str:
    return default_translator.resolve_upstream_model(requested)
