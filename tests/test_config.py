import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from memochat.config.loader import load_config, save_config
from memochat.config.schema import Config, PromptsConfig
from memochat.errors import ConfigError


def test_defaults() -> None:
    config = Config()
    prompts = config.prompts
    assert prompts.completion_token_limit == 4096
    assert prompts.response_token_limit == 1024
    assert prompts.max_request_token_budget == 4096 - 20 - 1024
    assert prompts.memories_response_context_weight == pytest.approx(0.6)
    assert config.chat_store.type == "volatile"
    assert config.auth.is_default_user("c05c61eb-65e4-4223-915a-fe72b0c9ece1")


def test_camel_case_keys_are_accepted() -> None:
    config = Config.model_validate({
        "prompts": {"completionTokenLimit": 8192, "functionCallingTokenLimit": 100},
        "service": {"timeoutLimitS": 5, "streamPersistEvery": 2},
    })
    assert config.prompts.max_request_token_budget == 8192 - 20 - 1024 - 100
    assert config.service.timeout_limit_s == 5
    assert config.service.stream_persist_every == 2


def test_prompt_texts_are_trimmed_and_must_not_be_blank() -> None:
    prompts = PromptsConfig(system_description="  Be brief.  ")
    assert prompts.system_description == "Be brief."

    with pytest.raises(ValidationError):
        PromptsConfig(system_intent="   ")


def test_relevance_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        PromptsConfig(semantic_memory_relevance_upper=1.5)


def test_memory_map_and_container_names() -> None:
    prompts = PromptsConfig()
    assert list(prompts.memory_map) == ["LongTermMemory", "WorkingMemory"]
    assert prompts.memory_container_name("longtermmemory") == "LongTermMemory"
    assert prompts.memory_container_name("WorkingMemory") == "WorkingMemory"
    assert prompts.memory_container_name("EpisodicMemory") is None
    assert "{{chat_history}}" in prompts.memory_map["WorkingMemory"]


def test_copy_with_description_leaves_original() -> None:
    prompts = PromptsConfig()
    copy = prompts.copy_with_description("Pirate bot.")
    assert copy.system_persona.startswith("Pirate bot.\n\n")
    assert prompts.system_description != "Pirate bot."


def test_load_missing_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path / "missing.json") == Config()


def test_load_invalid_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize(
    "data",
    [
        {"prompts": {"semanticMemoryRelevanceUpper": 1.5}},
        {"prompts": {"longTermMemoryName": "  "}},
    ],
)
def test_load_invalid_values_raises(tmp_path: Path, data: dict) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(ConfigError, match="config.json"):
        load_config(path)


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = Config.model_validate({"provider": {"model": "azure/gpt-4o"}, "chatStore": {"type": "filesystem"}})

    save_config(config, path)

    assert json.loads(path.read_text(encoding="utf-8"))["provider"]["model"] == "azure/gpt-4o"
    loaded = load_config(path)
    assert loaded.provider.model == "azure/gpt-4o"
    assert loaded.chat_store.type == "filesystem"
