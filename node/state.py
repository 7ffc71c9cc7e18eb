from typing import Dict, List, Optional
from threading import Lock

from common.messages import PeerRecord, InboundMessage


class PeerDirectory:
    '''
    Known peers and their announced public keys, keyed by name.
    A later announce from the same name overwrites the key (last writer wins)
    and entries are never removed.
    '''
    def __init__(self):
        self.lock = Lock()
        self.peers: Dict[str, PeerRecord] = {}

    def record(self, name: str, public_key: str) -> bool:
        ''' Insert or replace a peer's key. Returns True when the stored key changed. '''
        rec = PeerRecord(name=name, public_key=public_key)
        with self.lock:
            changed = self.peers.get(name) != rec
            self.peers[name] = rec
            return changed

    def lookup(self, name: str) -> Optional[PeerRecord]:
        with self.lock:
            return self.peers.get(name)

    def snapshot(self) -> List[PeerRecord]:
        ''' Point-in-time copy, safe to iterate while announces keep arriving '''
        with self.lock:
            return list(self.peers.values())

    def names(self) -> List[str]:
        with self.lock:
            return sorted(self.peers)

    def __len__(self):
        with self.lock:
            return len(self.peers)


class MessageInbox:
    '''
    Decrypted inbound messages in arrival order, waiting to be drained.
    Unbounded: nothing is evicted if nobody drains it.
    '''
    def __init__(self):
        self.lock = Lock()
        self.messages: List[InboundMessage] = []

    def append(self, message: InboundMessage) -> None:
        with self.lock:
            self.messages.append(message)

    def drain_all(self) -> List[InboundMessage]:
        ''' Return everything received so far and empty the inbox in one step '''
        with self.lock:
            drained, self.messages = self.messages, []
        return drained

    def __len__(self):
        with self.lock:
            return len(self.messages)
