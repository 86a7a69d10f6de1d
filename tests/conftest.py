import pytest
from photocanto import create_app
from photocanto.services.data_service import data_service
from photocanto.services.storage import MemoryBackend


@pytest.fixture
def app(tmp_path):
    data_service.use_backend(MemoryBackend())
    app = create_app({"TESTING": True, "LOG_DIR": str(tmp_path / "logs")})
    yield app
    data_service.use_backend(MemoryBackend())


@pytest.fixture
def client(app):
    return app.test_client()
