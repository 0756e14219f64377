"""Tests for dependency health checks."""

from types import SimpleNamespace

import pytest

from docdialogue.api.health import check_all_dependencies
from docdialogue.services import health


class FakeModelsAPI:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def list(self):
        self.calls += 1
        if self.error:
            raise self.error
        return SimpleNamespace(data=[])


@pytest.fixture
def openai_key(monkeypatch):
    monkeypatch.setattr(health.settings, "openai_api_key", "sk-test")


@pytest.fixture
def no_backends(monkeypatch):
    """Leave the optional backends unconfigured so only OpenAI is checked."""
    monkeypatch.setattr(health.settings, "qdrant_url", "")
    monkeypatch.setattr(health.settings, "postgres_url", "")


def container(embedding_service):
    return SimpleNamespace(
        vector_db=None,
        database=None,
        cache_service=SimpleNamespace(enabled=False, client=None),
        embedding_service=embedding_service,
    )


class TestCheckOpenAI:
    @pytest.mark.asyncio
    async def test_missing_key_is_unhealthy(self, embedding_service, fake_openai, monkeypatch):
        monkeypatch.setattr(health.settings, "openai_api_key", "")
        fake_openai.models = FakeModelsAPI()

        status = await health.check_openai(embedding_service)

        assert status == {"status": "unhealthy", "error": "API key not set"}
        assert fake_openai.models.calls == 0

    @pytest.mark.asyncio
    async def test_uses_shared_embedding_client(self, embedding_service, fake_openai, openai_key):
        fake_openai.models = FakeModelsAPI()

        first = await health.check_openai(embedding_service)
        second = await health.check_openai(embedding_service)

        assert first["status"] == "healthy"
        assert second["status"] == "healthy"
        assert fake_openai.models.calls == 2
        assert embedding_service.client is fake_openai

    @pytest.mark.asyncio
    async def test_rejected_key_is_reported(self, embedding_service, fake_openai, openai_key):
        fake_openai.models = FakeModelsAPI(RuntimeError("Authentication failed"))

        status = await health.check_openai(embedding_service)

        assert status == {"status": "unhealthy", "error": "Invalid API key"}


class TestCheckAllDependencies:
    @pytest.mark.asyncio
    async def test_missing_openai_key_fails_overall(
        self, embedding_service, fake_openai, no_backends, monkeypatch
    ):
        monkeypatch.setattr(health.settings, "openai_api_key", "")
        fake_openai.models = FakeModelsAPI()

        result = await check_all_dependencies(container(embedding_service))

        assert result["status"] == "unhealthy"
        assert result["services"]["openai"]["status"] == "unhealthy"
        assert result["services"]["redis"] == {"status": "not_configured"}

    @pytest.mark.asyncio
    async def test_unconfigured_optional_backends_stay_healthy(
        self, embedding_service, fake_openai, no_backends, openai_key
    ):
        fake_openai.models = FakeModelsAPI()

        result = await check_all_dependencies(container(embedding_service))

        assert result["status"] == "healthy"
        assert result["services"]["qdrant"] == {"status": "not_configured"}
        assert result["services"]["postgres"] == {"status": "not_configured"}
