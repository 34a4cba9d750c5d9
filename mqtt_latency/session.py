"""
MQTT sessions and the publisher/subscriber pair bound to one target.

The rest of the package only talks to the Session protocol below;
PahoSession is the paho-mqtt implementation used against real brokers.
"""

import logging
import threading
from typing import Callable, Optional, Protocol, Tuple

import paho.mqtt.client as mqtt
from paho.mqtt.client import CallbackAPIVersion

from .config import BENCH, Target
from .errors import (
    BrokerConnectionError,
    CloseError,
    PublishError,
    SessionStateError,
    SubscriptionError,
)

log = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]


class Session(Protocol):
    """An open broker connection able to publish and subscribe."""

    def publish(self, topic: str, qos: int, payload: bytes) -> None:
        ...

    def subscribe(self, topic: str, qos: int, on_message: MessageHandler) -> None:
        """Deliver every message on *topic* to on_message(topic, payload).

        on_message runs on the client's network thread, not the caller's.
        """
        ...

    def close(self) -> None:
        ...


class SessionFactory(Protocol):
    def __call__(self, endpoint: Tuple[str, int], identity: str,
                 keepalive: int, clean_start: bool) -> Session:
        ...


# --------------------------------------------------------------------------- #
# paho-mqtt implementation
# --------------------------------------------------------------------------- #
class PahoSession:
    """Wraps a paho MQTT v5 client running its own network loop thread."""

    def __init__(self, identity: str, timeout: Optional[float] = None):
        self.identity = identity
        self.timeout  = BENCH["connect_timeout"] if timeout is None else timeout

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=identity,
            protocol=mqtt.MQTTv5,
        )
        self._connack   = threading.Event()
        self._subscribed = threading.Event()
        self._connect_rc = None
        self._suback_rcs: list = []

        self.client.on_connect    = self._on_connect
        self.client.on_subscribe  = self._on_subscribe
        self.client.on_disconnect = self._on_disconnect

    # -- callbacks ---
    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._connect_rc = reason_code
        self._connack.set()

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        self._suback_rcs = list(reason_code_list)
        self._subscribed.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code is not None and reason_code.is_failure:
            log.warning("%s disconnected: %s", self.identity, reason_code)

    # -- operations ---
    def connect(self, host: str, port: int, keepalive: int,
                clean_start: bool) -> None:
        try:
            self.client.connect(host, port, keepalive=keepalive,
                                clean_start=clean_start)
        except OSError as e:
            raise BrokerConnectionError(
                f"{self.identity}: cannot reach {host}:{port}: {e}") from e

        self.client.loop_start()
        if not self._connack.wait(self.timeout):
            self._abandon()
            raise BrokerConnectionError(
                f"{self.identity}: no CONNACK from {host}:{port} "
                f"within {self.timeout:g}s")
        if self._connect_rc.is_failure:
            self._abandon()
            raise BrokerConnectionError(
                f"{self.identity}: connection refused by {host}:{port}: "
                f"{self._connect_rc}")
        log.debug("%s connected to %s:%d", self.identity, host, port)

    def publish(self, topic: str, qos: int, payload: bytes) -> None:
        info = self.client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"{self.identity}: publish to {topic!r} failed: "
                f"{mqtt.error_string(info.rc)}")
        if qos > 0:
            try:
                info.wait_for_publish(timeout=self.timeout)
            except (ValueError, RuntimeError) as e:
                raise PublishError(f"{self.identity}: {e}") from e
            if not info.is_published():
                raise PublishError(
                    f"{self.identity}: no PUBACK for {topic!r} "
                    f"within {self.timeout:g}s")

    def subscribe(self, topic: str, qos: int, on_message: MessageHandler) -> None:
        def _deliver(client, userdata, msg):
            on_message(msg.topic, msg.payload)

        self.client.message_callback_add(topic, _deliver)
        self._subscribed.clear()
        rc, _mid = self.client.subscribe(topic, qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise SubscriptionError(
                f"{self.identity}: subscribe to {topic!r} failed: "
                f"{mqtt.error_string(rc)}")
        if not self._subscribed.wait(self.timeout):
            raise SubscriptionError(
                f"{self.identity}: no SUBACK for {topic!r} "
                f"within {self.timeout:g}s")
        failed = [rc for rc in self._suback_rcs if rc.is_failure]
        if failed:
            raise SubscriptionError(
                f"{self.identity}: subscribe to {topic!r} rejected: {failed[0]}")

    def _abandon(self):
        # failed handshake: drop the socket as well as the loop thread
        rc = self.client.disconnect()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            log.debug("%s disconnect after failed connect: %s",
                      self.identity, mqtt.error_string(rc))
        self.client.loop_stop()

    def close(self) -> None:
        rc = self.client.disconnect()
        self.client.loop_stop()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise CloseError(
                f"{self.identity}: disconnect failed: {mqtt.error_string(rc)}")


def open_paho_session(endpoint: Tuple[str, int], identity: str,
                      keepalive: int, clean_start: bool) -> PahoSession:
    """Default SessionFactory: a connected PahoSession."""
    session = PahoSession(identity)
    session.connect(endpoint[0], endpoint[1], keepalive, clean_start)
    return session


# --------------------------------------------------------------------------- #
# Session pair
# --------------------------------------------------------------------------- #
class SessionPair:
    """
    Publisher and subscriber sessions owned by one target.

    Both sessions are open or both are closed.  A pair left half-open by a
    failed open() must be close()d before it can be opened again.
    """

    def __init__(self, target: Target, factory: SessionFactory = open_paho_session):
        self.target  = target
        self.factory = factory
        self.publisher:  Optional[Session] = None
        self.subscriber: Optional[Session] = None

    @property
    def is_open(self) -> bool:
        return self.publisher is not None and self.subscriber is not None

    def open(self) -> None:
        if self.is_open:
            return
        if self.publisher is not None or self.subscriber is not None:
            raise SessionStateError(
                f"{self.target.name}: session pair is half-open, close it first")

        self.publisher = self._open_one(self.target.pub_endpoint, "pub")
        self.subscriber = self._open_one(self.target.sub_endpoint, "sub")

    def _open_one(self, endpoint: Tuple[str, int], role: str) -> Session:
        identity = f"{self.target.name}-{role}"
        try:
            return self.factory(endpoint, identity, BENCH["keepalive"],
                                BENCH["clean_start"])
        except BrokerConnectionError:
            raise
        except OSError as e:
            raise BrokerConnectionError(f"{identity}: {e}") from e

    def close(self) -> None:
        """Close publisher then subscriber; raise the first failure after both."""
        first: Optional[BaseException] = None
        for role in ("publisher", "subscriber"):
            session = getattr(self, role)
            if session is None:
                continue
            setattr(self, role, None)
            try:
                session.close()
            except Exception as e:
                log.debug("%s %s close failed: %s", self.target.name, role, e)
                if first is None:
                    first = e

        if first is not None:
            if isinstance(first, CloseError):
                raise first
            raise CloseError(f"{self.target.name}: {first}") from first
