import pytest

from model_mapping import DEFAULT_MODEL, MODEL_MAPPING, ModelTranslator, resolve_upstream_model


@pytest.mark.parametrize("requested", sorted(MODEL_MAPPING))
def test_known_models_resolve_to_their_entry(requested):
    assert resolve_upstream_model(requested) == MODEL_MAPPING[requested]


@pytest.mark.parametrize("requested", ["gpt-5", "", "GPT-4", None, 42, ["gpt-4"]])
def test_unknown_models_fall_back_to_default_entry(requested):
    assert resolve_upstream_model(requested) == MODEL_MAPPING[DEFAULT_MODEL]


def test_default_entry_is_llama_8b():
    assert resolve_upstream_model("gpt-3.5-turbo") == "meta/llama-3.1-8b-instruct"


def test_translator_rejects_table_without_default():
    with pytest.raises(ValueError, match="gpt-3.5-turbo"):
        ModelTranslator({"gpt-4": "meta/llama-3.1-70b-instruct"})


def test_translator_copies_table():
    table = {"gpt-3.5-turbo": "a", "gpt-4": "b"}
    translator = ModelTranslator(table)
    table["gpt-4"] = "changed"

    assert translator.resolve_upstream_model("gpt-4") == "b"
    with pytest.raises(TypeError):
        translator.mapping["gpt-4"] = "x"


def test_model_ids_lists_every_key():
    translator = ModelTranslator({"gpt-3.5-turbo": "a", "custom": "b"}, default_model="gpt-3.5-turbo")
    assert translator.model_ids() == ["gpt-3.5-turbo", "custom"]
