# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pytest fixtures: running servers and raw clients connected to them."""

from __future__ import annotations

import pytest
import pytest_asyncio

from smtp_test_server import AuthPolicy, SmtpServer
from tests.helpers import RawSmtpClient

USERNAME = "user"
PASSWORD = "pwd"


@pytest.fixture
def credentials():
    return USERNAME, PASSWORD


@pytest_asyncio.fixture
async def smtp_server():
    """Server without authentication on an ephemeral localhost port."""
    server = await SmtpServer.create()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def login_server():
    """Server requiring AUTH with USERNAME / PASSWORD."""
    server = await SmtpServer.create(auth=AuthPolicy.login(USERNAME, PASSWORD))
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def accept_all_server():
    """Server accepting anonymous clients and any credentials."""
    server = await SmtpServer.create(auth=AuthPolicy.accept_all())
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def connect():
    """Factory opening raw clients to a server; all are closed at teardown."""
    clients: list[RawSmtpClient] = []

    async def _connect(server: SmtpServer) -> RawSmtpClient:
        client = await RawSmtpClient.connect(*server.address)
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        await client.close()
