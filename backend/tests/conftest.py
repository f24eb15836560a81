import pytest
from fastapi.testclient import TestClient  # in-process HTTP client, no real server needed

from timegrid.main import app
from timegrid.schemas.generator import GenerateTimetableRequest, GenerationSettings
from timegrid.services.normalizer import normalize_request


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def build_context():
    """Normalize raw request records into a run context for service-level tests."""

    def _build(settings: GenerationSettings | None = None, **records):
        settings = settings or GenerationSettings()
        result = normalize_request(GenerateTimetableRequest(**records), settings)
        assert result.context is not None
        return result.context, settings

    return _build

