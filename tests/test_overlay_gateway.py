"""Tests for the MQTT overlay gateway (meetwatch/alerts/overlay_gateway.py)."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from meetwatch.alerts.gateway import PresentationGateway
from meetwatch.alerts.mqtt import AlertMqtt
from meetwatch.alerts.overlay_gateway import MqttOverlayGateway, bind_json_command


@pytest.fixture
def mqtt_client():
    return Mock(spec=AlertMqtt)


@pytest.fixture
def overlay(mqtt_client, mock_logger):
    return MqttOverlayGateway(mqtt_client, logger=mock_logger)


def _published(mqtt_client, index: int = -1) -> tuple[str, dict, bool]:
    args, kwargs = mqtt_client.publish_json.call_args_list[index]
    return args[0], args[1], kwargs.get("retain", False)


def test_satisfies_presentation_protocol(overlay):
    assert isinstance(overlay, PresentationGateway)


def test_show_alert_publishes_retained_state(overlay, mqtt_client, make_event):
    event = make_event(links=("https://zoom.us/j/42",))
    overlay.show_alert(event)

    suffix, payload, retain = _published(mqtt_client)
    assert suffix == "overlay/alert"
    assert payload["state"] == "show"
    assert payload["from_snooze"] is False
    assert payload["event"]["id"] == "e1"
    assert payload["event"]["join_url"] == "https://zoom.us/j/42"
    assert retain is True
    assert overlay.visible_event == event


def test_show_alert_is_idempotent_for_same_event(overlay, mqtt_client, make_event):
    event = make_event()
    overlay.show_alert(event)
    overlay.show_alert(event, from_snooze=True)

    assert mqtt_client.publish_json.call_count == 1


def test_show_alert_replaces_other_event(overlay, mqtt_client, make_event, mock_logger):
    overlay.show_alert(make_event("e1"))
    overlay.show_alert(make_event("e2"), from_snooze=True)

    _, payload, _ = _published(mqtt_client)
    assert payload["event"]["id"] == "e2"
    assert payload["from_snooze"] is True
    assert overlay.visible_event.event_id == "e2"
    mock_logger.info.assert_called_once()


def test_hide_alert(overlay, mqtt_client, make_event):
    overlay.show_alert(make_event())
    overlay.hide_alert()

    suffix, payload, retain = _published(mqtt_client)
    assert suffix == "overlay/alert"
    assert payload["state"] == "hidden"
    assert payload["event"]["id"] == "e1"
    assert retain is True
    assert overlay.visible_event is None


def test_hide_alert_when_nothing_visible(overlay, mqtt_client):
    overlay.hide_alert()
    mqtt_client.publish_json.assert_not_called()


def test_play_sound(overlay, mqtt_client, make_event):
    overlay.play_sound(make_event())

    suffix, payload, retain = _published(mqtt_client)
    assert suffix == "overlay/sound"
    assert payload["event"]["id"] == "e1"
    assert retain is False


def test_open_meeting_link_hides_matching_overlay(overlay, mqtt_client, make_event):
    event = make_event(links=("https://meet.google.com/abc-defg-hij",))
    overlay.show_alert(event)
    overlay.open_meeting_link(event, "https://meet.google.com/abc-defg-hij")

    suffix, payload, _ = _published(mqtt_client, -2)
    assert suffix == "overlay/join"
    assert payload["url"] == "https://meet.google.com/abc-defg-hij"
    _, hidden, _ = _published(mqtt_client)
    assert hidden["state"] == "hidden"


def test_open_meeting_link_keeps_other_overlay(overlay, mqtt_client, make_event):
    overlay.show_alert(make_event("e1"))
    overlay.open_meeting_link(make_event("e2"), "https://zoom.us/j/7")

    suffix, _, _ = _published(mqtt_client)
    assert suffix == "overlay/join"
    assert overlay.visible_event.event_id == "e1"


def test_publish_queue(overlay, mqtt_client):
    overlay.publish_queue([{"id": "a1", "event_id": "e1"}])

    suffix, payload, retain = _published(mqtt_client)
    assert suffix == "alerts/state"
    assert payload == {"alerts": [{"id": "a1", "event_id": "e1"}]}
    assert retain is True


def test_overlay_state_tracks_even_when_broker_is_down(overlay, mqtt_client, make_event):
    mqtt_client.publish_json.return_value = False
    overlay.show_alert(make_event())

    assert overlay.visible_event is not None


# Command binding


def test_listen_binds_overlay_command_topic(overlay, mqtt_client):
    overlay.listen(Mock(), Mock())

    suffix, _ = mqtt_client.subscribe_json.call_args[0]
    assert suffix == "overlay/command"


def test_bind_json_command_hops_to_loop(mqtt_client):
    loop = Mock()
    handler = Mock()
    bind_json_command(mqtt_client, "preferences/set", handler, loop)

    suffix, forward = mqtt_client.subscribe_json.call_args[0]
    assert suffix == "preferences/set"
    forward({"sound_enabled": True})

    loop.call_soon_threadsafe.assert_called_once_with(handler, {"sound_enabled": True})
    handler.assert_not_called()
