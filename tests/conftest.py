import pytest

from mqtt_latency.config import BENCH, Target
from mqtt_latency.errors import BrokerConnectionError, CloseError
from mqtt_latency.loopback import LoopbackBroker


class ScriptedSession:
    """Session double recording every call; errors are injected per instance."""

    def __init__(self, identity, endpoint=None):
        self.identity = identity
        self.endpoint = endpoint
        self.published = []
        self.handlers = {}
        self.closed = False
        self.publish_error = None
        self.subscribe_error = None
        self.close_error = None

    def publish(self, topic, qos, payload):
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, qos, payload))

    def subscribe(self, topic, qos, on_message):
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.handlers[topic] = on_message

    def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class ScriptedFactory:
    """SessionFactory handing out ScriptedSessions; refuses identities in fail_on."""

    def __init__(self, fail_on=(), close_error=False):
        self.fail_on = set(fail_on)
        self.close_error = close_error
        self.opened = []

    def __call__(self, endpoint, identity, keepalive, clean_start):
        if identity in self.fail_on:
            raise BrokerConnectionError(f"{identity}: refused")
        session = ScriptedSession(identity, endpoint)
        if self.close_error:
            session.close_error = CloseError(f"{identity}: boom")
        self.opened.append(session)
        return session

    def session(self, identity):
        return next(s for s in self.opened if s.identity == identity)


@pytest.fixture(autouse=True)
def restore_bench():
    saved = dict(BENCH)
    yield
    BENCH.clear()
    BENCH.update(saved)


@pytest.fixture
def target():
    return Target(name="local", pub_addr="localhost:1883", sub_addr="localhost:1884")


@pytest.fixture
def scripted():
    return ScriptedFactory()


@pytest.fixture
def loopback():
    broker = LoopbackBroker()
    yield broker
    broker.stop()
