"""
Switchboard Test Suite
======================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for switchboard.core (config, messages, errors, logging)
    ├── test_routing/       → Tests for switchboard.routing (router, middleware, client, ...)
    ├── test_transport/     → Tests for switchboard.transport (in-memory transport, endpoints)
    ├── test_integration/   → End-to-end scenarios
    └── conftest.py         → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_routing/      # Run only routing tests
"""
