"""
Shared fixtures: generated key pairs, an in-memory bus and a polling helper.
"""

import threading
import time
from queue import Queue

import pytest

from common import keystore
from common.errors import BusError
from common.topics import matches
from node.overlay import OverlayNode

PASSPHRASE = "correct horse battery staple"


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is truthy; fail the test on timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(interval)
    pytest.fail("condition not met within %.1fs" % timeout)


class MemoryHub:
    """A single-process bus with the same wildcard and retain rules as the broker."""

    def __init__(self):
        self.lock = threading.Lock()
        self.clients = []
        self.retained = {}
        self.published = []   # (client_id, topic, payload) in publish order

    def publish(self, sender, topic, payload, retain=False):
        with self.lock:
            self.published.append((sender, topic, payload))
            if retain:
                self.retained[topic] = payload
            targets = [c for c in self.clients if any(matches(p, topic) for p in c.patterns)]
        for c in targets:
            c.inbound.put((topic, payload))


class MemoryTransport:
    def __init__(self, hub, client_id):
        self.hub = hub
        self.client_id = client_id
        self.patterns = set()
        self.inbound = Queue()
        self.connected = False
        self.fail_publish = False

    def connect(self):
        with self.hub.lock:
            self.hub.clients.append(self)
        self.connected = True

    def subscribe(self, pattern):
        with self.hub.lock:
            self.patterns.add(pattern)
            retained = [(t, p) for t, p in self.hub.retained.items() if matches(pattern, t)]
        for event in retained:
            self.inbound.put(event)

    def publish(self, topic, payload, retain=False):
        if not self.connected or self.fail_publish:
            raise BusError("not connected")
        self.hub.publish(self.client_id, topic, payload, retain)

    def events(self):
        while True:
            event = self.inbound.get()
            if event is None:
                return
            yield event

    def close(self):
        with self.hub.lock:
            if self in self.hub.clients:
                self.hub.clients.remove(self)
        self.connected = False
        self.inbound.put(None)


@pytest.fixture(scope="session")
def keypairs(tmp_path_factory):
    """Three 4096-bit key pairs, generated once per test run."""
    return {
        name: keystore.load_or_generate(tmp_path_factory.mktemp(name), PASSPHRASE)
        for name in ("alice", "bob", "carol")
    }


@pytest.fixture
def hub():
    return MemoryHub()


@pytest.fixture
def make_node(hub, keypairs):
    """Factory for started nodes on the shared in-memory hub; stops them afterwards."""
    nodes = []

    def factory(name, namespace="overlay", start=True):
        node = OverlayNode(name, keypairs[name], MemoryTransport(hub, name), namespace=namespace)
        if start:
            node.start()
        nodes.append(node)
        return node

    yield factory
    for node in nodes:
        node.stop()
