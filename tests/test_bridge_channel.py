"""Tests for the bridge channel and its HTTP routes."""

import threading

import pytest
import requests

from bridge.channel import TOKEN_HEADER, BridgeChannel, MessageBuffer
from utils.errors import BridgeAuthError, BridgeStoppedError


@pytest.fixture
def client(channel):
    return channel.app.test_client()


@pytest.fixture
def auth(channel):
    return {TOKEN_HEADER: channel.token}


def test_buffer_keeps_most_recent():
    buffer = MessageBuffer(capacity=128)
    for i in range(1, 201):
        buffer.append(f"m{i}")
    assert len(buffer) == 128
    assert buffer.next_after(0).version == 73
    assert buffer.latest_version == 200


def test_buffer_rejects_zero_capacity():
    with pytest.raises(ValueError):
        MessageBuffer(capacity=0)


def test_publish_then_poll_in_order(channel):
    channel.publish("first")
    channel.publish("second")
    one = channel.poll(0, channel.token)
    two = channel.poll(one.version, channel.token)
    assert (one.version, one.message) == (1, "first")
    assert (two.version, two.message) == (2, "second")
    assert channel.poll(two.version, channel.token) is None


def test_poll_requires_token(channel):
    with pytest.raises(BridgeAuthError) as wrong:
        channel.poll(0, "nope")
    with pytest.raises(BridgeAuthError) as missing:
        channel.poll(0, None)
    assert str(wrong.value) == str(missing.value) == "unauthorized"


def test_submit_reaches_listeners_in_order(channel):
    received = []
    channel.add_listener(lambda payload: received.append(("a", payload)))
    channel.add_listener(lambda payload: received.append(("b", payload)))
    channel.submit("{}", channel.token)
    assert received == [("a", "{}"), ("b", "{}")]


def test_failing_listener_does_not_stop_others(channel, caplog):
    received = []

    def broken(payload):
        raise RuntimeError("boom")

    channel.add_listener(broken)
    channel.add_listener(received.append)
    channel.submit("event", channel.token)
    assert received == ["event"]
    assert "listener error" in caplog.text


def test_removed_listener_is_not_called(channel):
    received = []
    channel.add_listener(received.append)
    channel.remove_listener(received.append)
    channel.submit("event", channel.token)
    assert received == []


def test_submit_with_wrong_token_reaches_nobody(channel):
    received = []
    channel.add_listener(received.append)
    with pytest.raises(BridgeAuthError):
        channel.submit("event", "nope")
    assert received == []


def test_use_after_stop_is_rejected(channel):
    channel.stop()
    channel.stop()
    with pytest.raises(BridgeStoppedError):
        channel.publish("late")
    with pytest.raises(BridgeStoppedError):
        channel.poll(0, channel.token)
    with pytest.raises(BridgeStoppedError):
        channel.start()


def test_tokens_are_unique():
    assert BridgeChannel().token != BridgeChannel().token


# HTTP routes

def test_http_poll_empty(client, auth):
    response = client.get("/poll?after=0", headers=auth)
    assert response.status_code == 204


def test_http_poll_returns_envelope(channel, client, auth):
    channel.publish('{"type":"loadGCode"}')
    response = client.get("/poll?after=0", headers=auth)
    assert response.status_code == 200
    assert response.get_json() == {"version": 1, "message": '{"type":"loadGCode"}'}
    assert client.get("/poll?after=1", headers=auth).status_code == 204


def test_http_bad_after_is_zero(channel, client, auth):
    channel.publish("x")
    response = client.get("/poll?after=abc", headers=auth)
    assert response.get_json()["version"] == 1


def test_http_alternate_token_header(channel, client):
    response = client.get("/health", headers={"Token": channel.token})
    assert response.status_code == 200


def test_http_wrong_and_missing_token_look_the_same(client):
    wrong = client.get("/poll", headers={TOKEN_HEADER: "nope"})
    missing = client.get("/poll")
    assert wrong.status_code == missing.status_code == 401
    assert wrong.get_data() == missing.get_data() == b"unauthorized"


def test_http_event(channel, client, auth):
    received = []
    channel.add_listener(received.append)
    response = client.post("/event", data='{"type":"webviewReady"}', headers=auth)
    assert response.status_code == 202
    assert received == ['{"type":"webviewReady"}']


def test_http_wrong_method(client, auth):
    assert client.get("/event", headers=auth).status_code == 405
    assert client.post("/poll", headers=auth).status_code == 405


def test_http_preflight_needs_no_token(client):
    response = client.open("/poll", method="OPTIONS")
    assert response.status_code == 204
    assert response.headers["Access-Control-Max-Age"] == "600"
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "X-Ncviewer-Token" in response.headers["Access-Control-Allow-Headers"]


def test_http_cors_on_every_response(client, auth):
    assert client.get("/health", headers=auth).headers["Access-Control-Allow-Origin"] == "*"
    assert client.get("/health").headers["Access-Control-Allow-Origin"] == "*"


def test_http_health(client, auth):
    response = client.get("/health", headers=auth)
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "ok"


def test_http_after_stop(channel, client, auth):
    channel.stop()
    assert client.get("/health", headers=auth).status_code == 503


# Served on a real port

def test_start_serves_on_loopback(started_channel):
    endpoint = started_channel.endpoint
    assert endpoint.startswith("http://127.0.0.1:")
    assert started_channel.start() == endpoint
    assert started_channel.connection_info() == {"endpoint": endpoint, "token": started_channel.token}
    response = requests.get(f"{endpoint}/health", headers={TOKEN_HEADER: started_channel.token}, timeout=5)
    assert response.status_code == 200


def test_stop_releases_port(started_channel):
    endpoint = started_channel.endpoint
    started_channel.stop()
    assert not started_channel.is_running
    with pytest.raises(requests.ConnectionError):
        requests.get(f"{endpoint}/health", timeout=2)


def test_concurrent_publishers_get_unique_versions(channel):
    def publish_many():
        for _ in range(50):
            channel.publish("m")

    threads = [threading.Thread(target=publish_many) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert channel.buffer.latest_version == 200
    versions, version = [], 0
    while True:
        envelope = channel.buffer.next_after(version)
        if envelope is None:
            break
        versions.append(envelope.version)
        version = envelope.version
    assert versions == list(range(73, 201))


def test_stop_while_requests_are_in_flight(started_channel):
    endpoint = started_channel.endpoint
    headers = {TOKEN_HEADER: started_channel.token}
    started_channel.publish("m")
    outcomes = []
    outcomes_lock = threading.Lock()
    running = threading.Event()

    def hammer(method, path):
        with requests.Session() as session:
            for _ in range(200):
                try:
                    response = session.request(method, f"{endpoint}{path}", data="{}",
                                                headers=headers, timeout=5)
                    outcome = response.status_code
                except requests.ConnectionError:
                    outcome = "closed"
                running.set()
                with outcomes_lock:
                    outcomes.append(outcome)
                if outcome == "closed":
                    return

    threads = [threading.Thread(target=hammer, args=("GET", "/poll?after=0")) for _ in range(2)]
    threads += [threading.Thread(target=hammer, args=("POST", "/event")) for _ in range(2)]
    for thread in threads:
        thread.start()
    assert running.wait(5)

    stopper = threading.Thread(target=started_channel.stop)
    stopper.start()
    stopper.join(10)
    assert not stopper.is_alive()
    assert not started_channel.is_running

    for thread in threads:
        thread.join(10)
        assert not thread.is_alive()
    assert outcomes
    assert set(outcomes) <= {200, 202, 204, 503, "closed"}
