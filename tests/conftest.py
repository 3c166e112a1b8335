"""Shared test fixtures for inspectr."""

import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from helpers import make_result


# ---------------------------------------------------------------------------
# Environment fixture (needed by any test that instantiates Settings)
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_env(monkeypatch):
    """Set minimal environment for Settings to load."""
    monkeypatch.setenv("INSPECTR_PROJECT_NAME", "proj")
    monkeypatch.setenv("INSPECTR_CLUSTER_NAME", "clus")


# ---------------------------------------------------------------------------
# Singleton reset fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset all module-level singletons between tests."""
    modules_and_attrs = [
        ("inspectr.k8s_client", "_k8s_client"),
        ("inspectr.monitor", "_monitor"),
    ]

    yield

    for mod_path, attr in modules_and_attrs:
        mod = sys.modules.get(mod_path)
        if mod is not None:
            setattr(mod, attr, None)


# ---------------------------------------------------------------------------
# httpx / FastAPI test client
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_monitor():
    monitor = MagicMock()
    monitor.get_status.return_value = {
        "running": True,
        "cycles": 3,
        "last_cycle": 0.0,
        "last_result": "success",
        "next_sleep_seconds": 60,
        "groups_with_upgrades": 1,
        "registered_groups": 1,
    }
    monitor.get_upgrades.return_value = {
        "proj:clus:img:pod:ctr": [make_result(upgrades=["1.1"]).to_dict()],
    }
    monitor.start = AsyncMock()
    monitor.stop = AsyncMock()
    return monitor


@pytest.fixture
def app_no_lifespan(settings_env, mock_monitor):
    """Create the app without running lifespan (no poll loop)."""
    import inspectr.monitor
    from inspectr.api import create_app

    inspectr.monitor._monitor = mock_monitor
    app = create_app()
    app.router.lifespan_context = None
    return app


@pytest_asyncio.fixture
async def async_client(app_no_lifespan):
    """Async httpx test client for FastAPI endpoint tests."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app_no_lifespan)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
