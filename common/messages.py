import datetime
from dataclasses import dataclass, field
from typing import Optional


def iso_now() -> str:
    '''Return current UTC time in ISO format'''
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class PeerRecord:
    name: str         # peer identity, unique within a namespace
    public_key: str   # PEM as announced; opaque to the directory


# Ordering between messages is arrival order only.
@dataclass(frozen=True)
class InboundMessage:
    sender: str
    plaintext: str
    received_at: float                            # time.monotonic() at arrival
    ts: str = field(default_factory=iso_now)      # wall clock, for display


@dataclass(frozen=True)
class SendOutcome:
    peer: str
    ok: bool
    error: Optional[str] = None
