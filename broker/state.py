from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple
import socket
from threading import Lock

from common.topics import matches


@dataclass(eq=False)   # sessions compare by identity
class Session:   # one connected bus client
    client_id: str
    sock: socket.socket
    patterns: Set[str] = field(default_factory=set)
    send_lock: Lock = field(default_factory=Lock)   # deliveries come from many publisher threads


class BrokerState:
    # Connected sessions, their subscriptions and retained messages
    def __init__(self):
        self.lock = Lock()
        self.sessions: Dict[str, Session] = {}
        self.retained: Dict[str, str] = {}   # topic -> last retained payload

    def add_session(self, s: Session) -> bool:
        ''' Register a new client; False if the client id is already connected '''
        with self.lock:
            if s.client_id in self.sessions:
                return False
            self.sessions[s.client_id] = s
            return True

    def remove(self, s: Session):
        with self.lock:
            if self.sessions.get(s.client_id) is s:
                del self.sessions[s.client_id]

    def subscribe(self, s: Session, pattern: str) -> List[Tuple[str, str]]:
        ''' Add a pattern and return the retained (topic, payload) pairs it matches '''
        with self.lock:
            s.patterns.add(pattern)
            return [(t, p) for t, p in self.retained.items() if matches(pattern, t)]

    def publish(self, topic: str, payload: str, retain: bool) -> List[Session]:
        ''' Update retained state and return the sessions subscribed to `topic` '''
        with self.lock:
            if retain:
                if payload:
                    self.retained[topic] = payload
                else:
                    self.retained.pop(topic, None)
            return [s for s in self.sessions.values()
                    if any(matches(p, topic) for p in s.patterns)]

    def client_ids(self) -> List[str]:
        with self.lock:
            return list(self.sessions.keys())
