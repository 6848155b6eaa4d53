"""
Shared Test Fixtures for Switchboard
======================================

Reusable pytest fixtures for the whole test suite, organized by layer:

    1. Configuration fixtures
    2. Routing fixtures (Router, Client, Broadcaster)
    3. Transport fixtures (InMemoryTransport)
    4. Collaborator fakes (auth provider)
"""

from __future__ import annotations

import pytest

from switchboard.core.config import ClientConfig, SwitchboardConfig
from switchboard.core.messages import SenderContext
from switchboard.routing.broadcast import Broadcaster
from switchboard.routing.client import Client
from switchboard.routing.router import Router
from switchboard.transport.in_memory import InMemoryTransport


# =============================================================================
# Collaborator Fakes
# =============================================================================
class FakeAuthProvider:
    """AuthProvider whose answer tests can flip."""

    def __init__(self, authenticated: bool = False) -> None:
        self.authenticated = authenticated
        self.checks: list[str] = []

    async def is_authenticated(self, sender: SenderContext) -> bool:
        self.checks.append(sender.endpoint_id)
        return self.authenticated


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """Switchboard configuration with a short request timeout."""
    return SwitchboardConfig(client=ClientConfig(request_timeout_seconds=2.0))


# =============================================================================
# Routing
# =============================================================================

@pytest.fixture
def router(config):
    """Fresh Router acting as the background endpoint."""
    return Router(endpoint_id="background", config=config)


@pytest.fixture
def client(transport, config):
    """Client sending from the popup through the in-memory transport."""
    return Client(transport, source="popup", config=config)


@pytest.fixture
def broadcaster(transport, config):
    """Broadcaster sending from the background endpoint."""
    return Broadcaster(transport, source="background", config=config)


# =============================================================================
# Transport
# =============================================================================

@pytest.fixture
def transport(router):
    """InMemoryTransport connected to the router fixture."""
    return InMemoryTransport(router)


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def auth_provider():
    """Auth provider that starts out signed out."""
    return FakeAuthProvider(authenticated=False)
