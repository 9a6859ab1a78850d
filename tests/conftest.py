"""Root-level test configuration and fixtures."""

from pathlib import Path

import pytest

from careerflow.core.settings import ENV_DEFAULT_MODEL, ENV_FLOWS_DIR, SettingsManager
from tests.shared.llm_mock import create_mock_get_async_model, create_mock_get_model


@pytest.fixture(autouse=True, scope="function")
def mock_llm_calls(monkeypatch, request):
    """Auto-applied fixture that mocks all LLM calls to prevent API usage.

    Both the sync and async model factories are replaced; tests configure
    responses through the ``mock_llm_responses`` fixture.
    """
    mock_get_model = create_mock_get_model()
    mock_get_async_model = create_mock_get_async_model()
    monkeypatch.setattr("llm.get_model", mock_get_model)
    monkeypatch.setattr("llm.get_async_model", mock_get_async_model)

    # Make the mocks available to tests that want to configure them
    request.node.mock_llm = mock_get_model
    request.node.mock_async_llm = mock_get_async_model

    yield mock_get_model

    mock_get_model.reset()
    mock_get_async_model.reset()


@pytest.fixture
def mock_llm_responses(request):
    """Fixture to configure LLM mock responses for specific tests.

    Usage:
        def test_something(mock_llm_responses):
            mock_llm_responses.set_response({"answer": "..."})
    """
    return request.node.mock_llm


@pytest.fixture
def mock_async_llm_responses(request):
    return request.node.mock_async_llm


@pytest.fixture(autouse=True, scope="function")
def isolate_careerflow_config(tmp_path: Path, monkeypatch) -> dict[str, Path]:
    """Ensure all tests use an isolated settings file.

    Patches the default SettingsManager path so no test touches the
    user's real ~/.careerflow directory, and clears environment overrides.
    """
    test_settings_path = tmp_path / ".careerflow" / "settings.json"

    original_init = SettingsManager.__init__

    def patched_settings_init(self, settings_path=None):
        original_init(self, settings_path=settings_path or test_settings_path)

    monkeypatch.setattr(SettingsManager, "__init__", patched_settings_init)
    monkeypatch.delenv(ENV_DEFAULT_MODEL, raising=False)
    monkeypatch.delenv(ENV_FLOWS_DIR, raising=False)

    return {"settings_path": test_settings_path}
