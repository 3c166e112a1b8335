"""Test helpers for inspectr."""

from unittest.mock import AsyncMock, MagicMock

from inspectr.models import ResultGroup


def make_result(version="1.0", namespace="ns1", upgrades=None, name="img", quantity=1):
    return ResultGroup(
        name=name,
        namespace=namespace,
        version=version,
        quantity=quantity,
        upgrades=list(upgrades or []),
    )


def mock_httpx_client(*, response=None, raise_on_call=None):
    """Build a mock httpx.AsyncClient context manager.

    ``get``, ``post`` and ``request`` all return ``response`` (or raise
    ``raise_on_call``).
    """
    if response is None:
        response = json_response({})

    client = AsyncMock()
    for method in ("get", "post", "request"):
        if raise_on_call is not None:
            setattr(client, method, AsyncMock(side_effect=raise_on_call))
        else:
            setattr(client, method, AsyncMock(return_value=response))

    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def json_response(data, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = data
    resp.raise_for_status = MagicMock()
    return resp
