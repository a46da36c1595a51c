"""
End-to-end tests for the greeting service over real HTTP.
"""

import os
import signal
import subprocess
import sys

import pytest
import requests

from greeting_service.config import DEFAULT_GREETING

GREETING = os.environ.get("GREETING_SERVICE_GREETING", DEFAULT_GREETING)


def test_hello(api_url):
    """Service returns the greeting."""
    response = requests.get(api_url, timeout=1)
    assert response.status_code == 200
    assert response.content.decode("utf-8") == GREETING


def test_repeated_gets_are_identical(api_url):
    first = requests.get(f"{api_url}/", timeout=1)
    second = requests.get(f"{api_url}/", timeout=1)
    assert first.content == second.content


def test_post_root_is_method_not_allowed(api_url):
    for _ in range(2):
        response = requests.post(f"{api_url}/", data=b"payload", timeout=1)
        assert response.status_code == 405


def test_unknown_path_is_not_found(api_url):
    response = requests.get(f"{api_url}/anything", timeout=1)
    assert response.status_code == 404


def test_health(api_url):
    response = requests.get(f"{api_url}/health", timeout=1)
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_second_process_on_same_port_fails_fast(api_url, launch_env):
    if os.environ.get("API_BASE_URL"):
        pytest.skip("service is not running in this environment")

    result = subprocess.run(
        [sys.executable, "-m", "greeting_service"],
        env=launch_env,
        capture_output=True,
        timeout=10,
    )

    assert result.returncode == 1
    assert b"address already in use" in result.stderr.lower()


def test_sigterm_shuts_down_gracefully_then_dies_by_signal(spawn_service):
    if os.environ.get("API_BASE_URL"):
        pytest.skip("service is not running in this environment")
    process, url = spawn_service()
    assert requests.get(url, timeout=1).status_code == 200

    process.send_signal(signal.SIGTERM)
    _, stderr = process.communicate(timeout=10)

    # uvicorn re-raises the signal once shutdown completes.
    assert process.returncode == -signal.SIGTERM
    assert b"Finished server process" in stderr
