"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import socket

from typing import TYPE_CHECKING

import pytest

from nativeauth.config import clear_settings
from tests.helpers import FakeBrowser, TokenEndpoint


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop NATIVEAUTH_* variables and the cached settings around each test."""
    for key in list(os.environ):
        if key.startswith("NATIVEAUTH_"):
            monkeypatch.delenv(key)
    clear_settings()
    yield
    clear_settings()


@pytest.fixture
def free_port() -> int:
    """Return a loopback port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    """A token endpoint answering with a Microsoft-style token response."""
    return TokenEndpoint()


@pytest.fixture
def browser() -> Generator[Callable[[str | None], FakeBrowser], None, None]:
    """Factory for fake browsers; redirect threads are joined on teardown."""
    created: list[FakeBrowser] = []

    def factory(query: str | None) -> FakeBrowser:
        fake = FakeBrowser(query)
        created.append(fake)
        return fake

    yield factory
    for fake in created:
        fake.join()
