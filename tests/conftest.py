"""Shared test fixtures and configuration for the meetwatch test suite.

This module provides reusable fixtures for common test scenarios including:
- A controllable wall clock for the alert scheduler
- Calendar event factories
- Presentation gateway and MQTT mocking
- Configuration objects
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest

from meetwatch.alerts.config import MqttConfig
from meetwatch.alerts.gateway import PresentationGateway
from meetwatch.alerts.models import CalendarEvent

BASE_TIME = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Clock Fixtures
# ============================================================================


class FakeClock:
    """Wall clock that only moves when a test says so."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 09:00 UTC on a Monday."""
    return FakeClock(BASE_TIME)


# ============================================================================
# Event Fixtures
# ============================================================================


@pytest.fixture
def make_event(clock):
    """Factory fixture for calendar events relative to the fake clock.

    Usage:
        event = make_event("e1", starts_in=30, duration=60)
    """

    def _create_event(event_id: str = "e1", *, starts_in: float = 30, duration: float = 60, **overrides: Any):
        start = clock.now + timedelta(minutes=starts_in)
        defaults: dict[str, Any] = {
            "event_id": event_id,
            "title": f"Meeting {event_id}",
            "start": start,
            "end": start + timedelta(minutes=duration),
        }
        defaults.update(overrides)
        return CalendarEvent(**defaults)

    return _create_event


# ============================================================================
# Presentation Fixtures
# ============================================================================


@pytest.fixture
def gateway():
    """Presentation gateway double that records every call."""
    return Mock(spec=PresentationGateway)


# ============================================================================
# MQTT Fixtures
# ============================================================================


@pytest.fixture
def mqtt_config():
    """Create a basic MQTT configuration for testing."""
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="meetwatch/test-device",
    )


@pytest.fixture
def mqtt_config_with_auth():
    """Create MQTT configuration with username/password authentication."""
    return MqttConfig(
        host="localhost",
        port=1883,
        username="test_user",
        password="test_pass",
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="meetwatch/test-device",
    )


@pytest.fixture
def mqtt_config_with_tls():
    """Create MQTT configuration with TLS encryption enabled."""
    return MqttConfig(
        host="localhost",
        port=8883,
        username="mqtt_user",
        password="mqtt_pass",
        tls_enabled=True,
        cert="/path/to/client.crt",
        key="/path/to/client.key",
        ca_cert="/path/to/ca.crt",
        topic_base="meetwatch/test-device",
    )


@pytest.fixture
def mock_mqtt_client():
    """Create a mock paho MQTT client."""
    client = Mock(spec=mqtt.Client)
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.publish = Mock(return_value=Mock(rc=mqtt.MQTT_ERR_SUCCESS))
    client.is_connected = Mock(return_value=True)
    return client
