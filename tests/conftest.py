import json
import time
from unittest.mock import MagicMock, patch

import pytest
import requests

from finicity_connect.client import FinicityClient
from finicity_connect.config import FinicityConfig


def make_response(status_code=200, json_data=None, text=None, reason="OK"):
    """Build a fake requests.Response."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.reason = reason
    if text is None:
        text = json.dumps(json_data) if json_data is not None else ""
    resp.text = text
    resp.content = text.encode()
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = requests.JSONDecodeError("Expecting value", text, 0)
    return resp


@pytest.fixture
def config():
    return FinicityConfig(
        api_url="https://api.example.test",
        app_key="app-key",
        partner_id="partner-1",
        partner_secret="secret",
    )


@pytest.fixture
def new_client(config):
    """Factory for clients with a mocked session and no cached token."""

    def factory(cfg=None):
        with patch("finicity_connect.client.requests_cache.CachedSession") as mock_cs:
            mock_cs.return_value = MagicMock()
            return FinicityClient(cfg or config)

    return factory


@pytest.fixture
def client(new_client):
    """Return a FinicityClient with mocked session and a live token."""
    c = new_client()
    # Pre-set token so tests don't trigger authentication automatically
    c._token = "initial-token"
    c._token_expires_at = time.monotonic() + 300
    return c
