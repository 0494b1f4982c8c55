import pytest

from companion_sdk.config import get_sdk_config, settings


@pytest.fixture(autouse=True)
def _restore_settings():
    original = get_sdk_config()
    try:
        yield
    finally:
        for group in ("connection", "supervisor", "stream"):
            target = getattr(settings, group)
            for name, value in getattr(original, group).model_dump().items():
                setattr(target, name, value)


@pytest.fixture
def service_root(tmp_path):
    """App root holding an empty ``companion`` service directory, with fast supervisor timings."""
    (tmp_path / "companion").mkdir()
    settings.supervisor.app_root = str(tmp_path)
    settings.supervisor.cwd = None
    settings.supervisor.external_base_url = None
    settings.supervisor.health_poll_interval = 0.01
    settings.supervisor.start_timeout = 2.0
    settings.supervisor.shutdown_grace_period = 0.5
    settings.connection.host = "127.0.0.1"
    settings.connection.port = 8765
    return tmp_path
