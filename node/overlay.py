"""
Overlay node: one participant of the encrypted messaging overlay.

Lifecycle: DISCONNECTED -> CONNECTING -> ANNOUNCING -> READY.
On start the node subscribes to its own inbox ({ns}/message/{name}/#) and to
every announce ({ns}/announce/#), then publishes its public key. Inbound
events are consumed by a single event-loop thread; send_to() may run
concurrently from any thread.
"""
import enum
import threading
import time
from typing import List, Optional

from loguru import logger

from common import crypto, keystore, topics
from common.errors import DecryptError, EncryptError, KeyLoadError, BusError
from common.keystore import KeyPair
from common.messages import InboundMessage, SendOutcome
from node.net import Transport
from node.state import PeerDirectory, MessageInbox


class NodeState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ANNOUNCING = "announcing"
    READY = "ready"


class OverlayNode:
    def __init__(self, name: str, keys: KeyPair, transport: Transport, namespace: str = "overlay"):
        if not topics.valid_segment(name):
            raise ValueError(f"invalid node name {name!r}")
        if not topics.valid_segment(namespace):
            raise ValueError(f"invalid namespace {namespace!r}")
        self.name = name
        self.namespace = namespace
        self.keys = keys
        self.transport = transport
        self.peers = PeerDirectory()
        self.inbox = MessageInbox()
        self.state = NodeState.DISCONNECTED
        self.loop_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config, transport: Transport) -> "OverlayNode":
        ''' Resolve the key pair first; key errors abort before any network activity '''
        keys = keystore.load_or_generate(config.key_dir, config.passphrase.get_secret_value())
        return cls(config.name, keys, transport, namespace=config.namespace)

    @property
    def ready(self) -> bool:
        return self.state is NodeState.READY

    def start(self):
        self._enter(NodeState.CONNECTING)
        self.transport.connect()

        self._enter(NodeState.ANNOUNCING)
        self.transport.subscribe(topics.inbox_pattern(self.namespace, self.name))
        self.transport.subscribe(topics.announce_pattern(self.namespace))
        # retained, so nodes that join later still learn our key
        self.transport.publish(topics.announce_topic(self.namespace, self.name),
                               self.keys.public_pem, retain=True)

        self._enter(NodeState.READY)
        self.loop_thread = threading.Thread(target=self._event_loop, name=f"overlay-{self.name}", daemon=True)
        self.loop_thread.start()

    def stop(self, timeout: float = 5.0):
        ''' Stop listening. No leave notice is sent; peers keep our announce. '''
        self.transport.close()
        if self.loop_thread is not None:
            self.loop_thread.join(timeout)
        self._enter(NodeState.DISCONNECTED)

    def _enter(self, state: NodeState):
        logger.info("[{}] {} -> {}", self.name, self.state.value, state.value)
        self.state = state

    def _event_loop(self):
        for topic, payload in self.transport.events():
            try:
                self.handle_event(topic, payload)
            except Exception:
                # one bad event must not take the node down
                logger.exception("[{}] Unexpected error handling event on {}", self.name, topic)
        logger.info("[{}] Event stream closed", self.name)

    def handle_event(self, topic: str, payload: str):
        '''
        Route one bus event. Foreign or malformed traffic is dropped quietly,
        undecryptable messages are dropped with a warning.
        '''
        t = topics.parse(topic, self.namespace)
        if t is None:
            logger.debug("[{}] Ignoring foreign topic {!r}", self.name, topic)
            return

        if t.kind == topics.ANNOUNCE:
            if t.target != self.name:
                self._on_announce(t.target, payload)
        elif t.kind == topics.MESSAGE and t.target == self.name:
            self._on_message(t.sender, payload)

    def _on_announce(self, peer: str, public_key):
        if not public_key:
            # a cleared retained announce carries an empty payload
            return
        try:
            key = crypto.load_public(public_key)
        except (KeyLoadError, AttributeError) as err:
            logger.warning("[{}] Rejected announce from {}: {}", self.name, peer, err)
            return
        if key.key_size < crypto.MIN_KEY_BITS:
            logger.warning("[{}] Rejected announce from {}: {}-bit key is below {}",
                           self.name, peer, key.key_size, crypto.MIN_KEY_BITS)
            return
        if self.peers.record(peer, public_key):
            logger.info("[{}] Learned key for peer {}", self.name, peer)

    def _on_message(self, sender: str, payload):
        try:
            if not isinstance(payload, str):
                raise DecryptError("payload is not text")
            raw = crypto.decrypt(payload, self.keys.private_pem, self.keys.passphrase)
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as err:
                raise DecryptError("plaintext is not valid UTF-8") from err
        except DecryptError as err:
            logger.warning("[{}] Dropped message from {}: {}", self.name, sender, err)
            return
        self.inbox.append(InboundMessage(sender=sender, plaintext=text, received_at=time.monotonic()))
        logger.debug("[{}] Message from {} queued", self.name, sender)

    def send_to(self, target: Optional[str], plaintext: str) -> List[SendOutcome]:
        '''
        Encrypt `plaintext` separately for each resolved peer and publish it.
        Input:
            - target: peer name, or None to broadcast to every known peer
            - plaintext: message text (UTF-8 encoded it must fit one RSA block)
        Output: one SendOutcome per resolved peer; empty when nobody matches.
        A failure for one peer never stops the others.
        '''
        peers = [p for p in self.peers.snapshot() if target is None or p.name == target]
        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError as err:
            logger.warning("[{}] Message is not encodable as UTF-8: {}", self.name, err)
            return [SendOutcome(peer=p.name, ok=False, error=f"plaintext is not valid UTF-8: {err}") for p in peers]
        outcomes = []
        for peer in peers:
            try:
                ciphertext = crypto.encrypt(data, peer.public_key)
                self.transport.publish(topics.message_topic(self.namespace, peer.name, self.name), ciphertext)
            except (EncryptError, BusError) as err:
                logger.warning("[{}] Could not send to {}: {}", self.name, peer.name, err)
                outcomes.append(SendOutcome(peer=peer.name, ok=False, error=str(err)))
            else:
                outcomes.append(SendOutcome(peer=peer.name, ok=True))
        return outcomes
