"""
Fixtures for running the greeting service as a real process.
"""

import os
import socket
import subprocess
import sys
import time

import pytest
import requests

STARTUP_TIMEOUT = 5.0


def free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def service_env(port):
    env = os.environ.copy()
    env["GREETING_SERVICE_HOST"] = "127.0.0.1"
    env["GREETING_SERVICE_PORT"] = str(port)
    return env


def wait_until_ready(url, process=None, timeout=STARTUP_TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if process is not None and process.poll() is not None:
            raise RuntimeError(f"service exited early with status {process.returncode}")
        try:
            requests.get(url, timeout=0.5)
            return
        except requests.ConnectionError:
            time.sleep(0.1)
    raise TimeoutError(f"service at {url} not ready after {timeout}s")


@pytest.fixture(scope="session")
def service_port():
    return free_port()


@pytest.fixture(scope="session")
def launch_env(service_port):
    return service_env(service_port)


@pytest.fixture(scope="session")
def api_url(service_port, launch_env):
    """API URL from the environment, or a locally started service."""
    base_url = os.environ.get("API_BASE_URL")
    if base_url:
        yield base_url
        return

    url = f"http://127.0.0.1:{service_port}"
    process = subprocess.Popen(
        [sys.executable, "-m", "greeting_service"],
        env=launch_env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        wait_until_ready(url, process)
        yield url
    finally:
        process.terminate()
        process.wait(timeout=10)


@pytest.fixture
def spawn_service():
    """Start a private service process on its own port; killed on teardown."""
    processes = []

    def spawn():
        port = free_port()
        url = f"http://127.0.0.1:{port}"
        process = subprocess.Popen(
            [sys.executable, "-m", "greeting_service"],
            env=service_env(port),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
        processes.append(process)
        wait_until_ready(url, process)
        return process, url

    yield spawn

    for process in processes:
        if process.poll() is None:
            process.kill()
            process.wait(timeout=10)
        if process.stderr is not None:
            process.stderr.close()
