from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from scripts.deploy.webapp_health import probe_webapp

URL = "https://public-demo.azurewebsites.net"


def test_probe_ok():
    response = MagicMock(ok=True, status_code=200, text="hello")
    with patch("requests.get", return_value=response) as mock_get:
        result = probe_webapp(URL, timeout=5)

    mock_get.assert_called_once_with(URL, timeout=5, allow_redirects=True)
    assert result.ok
    assert result.status_code == 200
    assert result.describe() == f"✅ {URL} responded 200"


def test_probe_error_status():
    response = MagicMock(ok=False, status_code=503, text="Application Error\n:(")
    with patch("requests.get", return_value=response):
        result = probe_webapp(URL)

    assert not result.ok
    assert result.status_code == 503
    assert result.error == "Application Error :("
    assert "responded 503" in result.describe()


def test_probe_unreachable():
    with patch("requests.get", side_effect=requests.ConnectionError("name resolution failed")):
        result = probe_webapp(URL)

    assert not result.ok
    assert result.status_code is None
    assert "unreachable" in result.describe()
    assert "name resolution failed" in result.error
