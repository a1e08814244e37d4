"""Tests for the meetwatch MQTT transport (meetwatch/alerts/mqtt.py).

Covers broker setup (auth, TLS, last will), the online/offline status topic,
JSON publishing under the topic base, and handler registration that survives
reconnects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from unittest.mock import MagicMock, Mock, patch

import paho.mqtt.client as mqtt
import pytest

from meetwatch.alerts.mqtt import AlertMqtt

COMMAND_TOPIC = "meetwatch/test-device/overlay/command"


@pytest.fixture
def connected(mqtt_config, mock_mqtt_client, mock_logger):
    """AlertMqtt with a fake paho client already attached."""
    transport = AlertMqtt(mqtt_config, mock_logger)
    transport._client = mock_mqtt_client
    return transport


def _message(topic: str, payload: bytes) -> Mock:
    return Mock(topic=topic, payload=payload)


# Naming


def test_init_without_logger(mqtt_config):
    transport = AlertMqtt(mqtt_config)
    assert isinstance(transport._logger, logging.Logger)
    assert transport._client is None


def test_client_id_derived_from_topic_base(mqtt_config):
    assert AlertMqtt(mqtt_config).client_id == "meetwatch-meetwatch-test-device"


def test_topic_joins_base(mqtt_config):
    transport = AlertMqtt(mqtt_config)
    assert transport.topic("overlay/alert") == "meetwatch/test-device/overlay/alert"
    assert transport.topic("/alerts/state/") == "meetwatch/test-device/alerts/state"


# Connection


@patch("paho.mqtt.client.Client")
def test_connect_builds_client_with_last_will(mock_client_class, mqtt_config, mock_logger):
    paho_client = MagicMock()
    mock_client_class.return_value = paho_client

    transport = AlertMqtt(mqtt_config, mock_logger)
    assert transport.connect() is True

    kwargs = mock_client_class.call_args[1]
    assert kwargs["client_id"] == "meetwatch-meetwatch-test-device"
    assert kwargs["callback_api_version"] == mqtt.CallbackAPIVersion.VERSION2
    paho_client.will_set.assert_called_once_with("meetwatch/test-device/status", "offline", retain=True)
    paho_client.connect.assert_called_once_with("localhost", 1883, keepalive=30)
    paho_client.loop_start.assert_called_once()
    paho_client.username_pw_set.assert_not_called()
    paho_client.tls_set.assert_not_called()


@patch("paho.mqtt.client.Client")
def test_connect_with_auth(mock_client_class, mqtt_config_with_auth, mock_logger):
    paho_client = MagicMock()
    mock_client_class.return_value = paho_client

    AlertMqtt(mqtt_config_with_auth, mock_logger).connect()

    paho_client.username_pw_set.assert_called_once_with("test_user", "test_pass")


@patch("paho.mqtt.client.Client")
def test_connect_with_tls(mock_client_class, mqtt_config_with_tls, mock_logger):
    paho_client = MagicMock()
    mock_client_class.return_value = paho_client

    AlertMqtt(mqtt_config_with_tls, mock_logger).connect()

    tls_kwargs = paho_client.tls_set.call_args[1]
    assert tls_kwargs["ca_certs"] == "/path/to/ca.crt"
    assert tls_kwargs["certfile"] == "/path/to/client.crt"
    assert tls_kwargs["keyfile"] == "/path/to/client.key"
    paho_client.connect.assert_called_once_with("localhost", 8883, keepalive=30)


@patch("paho.mqtt.client.Client")
def test_connect_without_host_is_skipped(mock_client_class, mqtt_config, mock_logger):
    transport = AlertMqtt(replace(mqtt_config, host=None), mock_logger)

    assert transport.connect() is False
    mock_client_class.assert_not_called()
    mock_logger.warning.assert_called_once()


@patch("paho.mqtt.client.Client")
def test_connect_refused_by_socket(mock_client_class, mqtt_config, mock_logger):
    paho_client = MagicMock()
    paho_client.connect.side_effect = ConnectionRefusedError("Connection refused")
    mock_client_class.return_value = paho_client

    transport = AlertMqtt(mqtt_config, mock_logger)

    assert transport.connect() is False
    assert "Failed to connect" in str(mock_logger.warning.call_args)
    assert transport.is_connected() is False
    paho_client.loop_start.assert_not_called()


@patch("paho.mqtt.client.Client")
def test_connect_twice_reuses_client(mock_client_class, mqtt_config, mock_logger):
    mock_client_class.return_value = MagicMock()
    transport = AlertMqtt(mqtt_config, mock_logger)

    transport.connect()
    assert transport.connect() is True

    mock_client_class.assert_called_once()


def test_on_connect_announces_online_and_resubscribes(mqtt_config, mock_mqtt_client, mock_logger):
    transport = AlertMqtt(mqtt_config, mock_logger)
    transport.subscribe_json("overlay/command", Mock())
    transport.subscribe_json("preferences/set", Mock())

    transport._on_connect(mock_mqtt_client, None, None, Mock(is_failure=False), None)

    mock_mqtt_client.publish.assert_called_once_with("meetwatch/test-device/status", "online", retain=True)
    subscribed = [call.args[0] for call in mock_mqtt_client.subscribe.call_args_list]
    assert subscribed == [COMMAND_TOPIC, "meetwatch/test-device/preferences/set"]
    mock_logger.info.assert_called_once()


def test_on_connect_refused_reason_code(mqtt_config, mock_mqtt_client, mock_logger):
    transport = AlertMqtt(mqtt_config, mock_logger)
    transport.subscribe_json("overlay/command", Mock())

    transport._on_connect(mock_mqtt_client, None, None, Mock(is_failure=True), None)

    mock_logger.warning.assert_called_once()
    mock_mqtt_client.publish.assert_not_called()
    mock_mqtt_client.subscribe.assert_not_called()


@patch("paho.mqtt.client.Client")
def test_disconnect_announces_offline(mock_client_class, mqtt_config, mock_logger):
    paho_client = MagicMock()
    mock_client_class.return_value = paho_client
    transport = AlertMqtt(mqtt_config, mock_logger)
    transport.connect()

    transport.disconnect()

    paho_client.publish.assert_called_once_with("meetwatch/test-device/status", "offline", retain=True)
    paho_client.disconnect.assert_called_once()
    paho_client.loop_stop.assert_called_once()
    assert transport._client is None


def test_disconnect_when_not_connected(mqtt_config, mock_logger):
    AlertMqtt(mqtt_config, mock_logger).disconnect()
    mock_logger.warning.assert_not_called()


def test_is_connected_handles_exception(connected, mock_mqtt_client):
    mock_mqtt_client.is_connected.side_effect = RuntimeError("socket gone")
    assert connected.is_connected() is False


# Publishing


def test_publish_json_encodes_under_topic_base(connected, mock_mqtt_client):
    assert connected.publish_json("overlay/alert", {"state": "show", "from_snooze": False}, retain=True) is True

    mock_mqtt_client.publish.assert_called_once()
    args, kwargs = mock_mqtt_client.publish.call_args
    assert args[0] == "meetwatch/test-device/overlay/alert"
    assert json.loads(kwargs["payload"]) == {"state": "show", "from_snooze": False}
    assert kwargs["retain"] is True
    assert kwargs["qos"] == 0


def test_publish_json_when_not_connected_is_dropped(mqtt_config, mock_logger):
    transport = AlertMqtt(mqtt_config, mock_logger)

    assert transport.publish_json("overlay/sound", {"event": {}}) is False
    mock_logger.debug.assert_called_once()


def test_publish_json_not_queued_logs_warning(connected, mock_mqtt_client, mock_logger):
    mock_mqtt_client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_NO_CONN)

    assert connected.publish_json("alerts/state", {"alerts": []}) is False
    assert "not queued" in str(mock_logger.warning.call_args)


def test_publish_json_client_error_logs_warning(connected, mock_mqtt_client, mock_logger):
    mock_mqtt_client.publish.side_effect = OSError("broken pipe")

    assert connected.publish_json("alerts/state", {"alerts": []}) is False
    mock_logger.warning.assert_called_once()


# Subscriptions


def test_subscribe_json_before_connect_is_deferred(mqtt_config, mock_mqtt_client):
    transport = AlertMqtt(mqtt_config)
    transport.subscribe_json("overlay/command", Mock())

    mock_mqtt_client.subscribe.assert_not_called()
    assert COMMAND_TOPIC in transport._handlers


def test_subscribe_json_when_connected_subscribes_now(connected, mock_mqtt_client):
    connected.subscribe_json("overlay/command", Mock())
    mock_mqtt_client.subscribe.assert_called_once_with(COMMAND_TOPIC)


def test_subscribe_failure_rc_logs_warning(connected, mock_mqtt_client, mock_logger):
    mock_mqtt_client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

    connected.subscribe_json("overlay/command", Mock())

    mock_logger.warning.assert_called_once()


def test_message_is_decoded_and_dispatched(connected):
    handler = Mock()
    connected.subscribe_json("overlay/command", handler)

    connected._on_message(None, None, _message(COMMAND_TOPIC, b'{"action": "snooze", "event_id": "e1"}'))

    handler.assert_called_once_with({"action": "snooze", "event_id": "e1"})


def test_message_for_unregistered_topic_is_ignored(connected):
    handler = Mock()
    connected.subscribe_json("overlay/command", handler)

    connected._on_message(None, None, _message("meetwatch/other/overlay/command", b"{}"))

    handler.assert_not_called()


@pytest.mark.parametrize("payload", [b"{not json", b"\xff\xfe", b"[1, 2]", b'"dismiss"'])
def test_non_object_payloads_are_dropped(connected, mock_logger, payload):
    handler = Mock()
    connected.subscribe_json("overlay/command", handler)

    connected._on_message(None, None, _message(COMMAND_TOPIC, payload))

    handler.assert_not_called()
    mock_logger.debug.assert_called_once()


def test_handler_errors_are_logged(connected, mock_logger):
    connected.subscribe_json("overlay/command", Mock(side_effect=ValueError("bad handler")))

    connected._on_message(None, None, _message(COMMAND_TOPIC, b"{}"))

    mock_logger.exception.assert_called_once()
