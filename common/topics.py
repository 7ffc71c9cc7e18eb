from dataclasses import dataclass
from typing import Optional

SEP = "/"
ANNOUNCE = "announce"
MESSAGE = "message"
SINGLE = "+"    # matches exactly one level
MULTI = "#"     # matches the remaining levels, must be last


@dataclass(frozen=True)
class Topic:
    ''' A parsed overlay address: {namespace}/{kind}/{target}[/{sender}] '''
    namespace: str
    kind: str
    target: str
    sender: Optional[str] = None

    def __str__(self):
        parts = [self.namespace, self.kind, self.target]
        if self.sender is not None:
            parts.append(self.sender)
        return SEP.join(parts)


def valid_segment(name: str) -> bool:
    ''' A name usable as one topic level: non-empty, no separator and no wildcard '''
    return bool(name) and not any(c in name for c in (SEP, SINGLE, MULTI))

def announce_topic(namespace: str, name: str) -> str:
    return str(Topic(namespace, ANNOUNCE, name))

def message_topic(namespace: str, recipient: str, sender: str) -> str:
    return str(Topic(namespace, MESSAGE, recipient, sender))

def announce_pattern(namespace: str) -> str:
    return SEP.join((namespace, ANNOUNCE, MULTI))

def inbox_pattern(namespace: str, name: str) -> str:
    return SEP.join((namespace, MESSAGE, name, MULTI))

def parse(topic: str, namespace: str) -> Optional[Topic]:
    '''
    This function parses an overlay topic belonging to `namespace`.
    Anything else sharing the bus (other namespaces, unknown kinds, wrong
    number of levels, empty levels) is foreign traffic and yields None.
    '''
    if not isinstance(topic, str):
        return None
    prefix = namespace + SEP
    if not topic.startswith(prefix):
        return None
    parts = topic[len(prefix):].split(SEP)
    if not all(parts):
        return None
    kind = parts[0]
    if kind == ANNOUNCE and len(parts) == 2:
        return Topic(namespace, kind, parts[1])
    if kind == MESSAGE and len(parts) == 3:
        return Topic(namespace, kind, parts[1], parts[2])
    return None

def is_wildcard(topic: str) -> bool:
    return SINGLE in topic or MULTI in topic

def valid_pattern(pattern: str) -> bool:
    ''' MQTT rules: "#" only as the whole last level, "+" only as a whole level '''
    if not pattern:
        return False
    levels = pattern.split(SEP)
    for i, level in enumerate(levels):
        if MULTI in level and (level != MULTI or i != len(levels) - 1):
            return False
        if SINGLE in level and level != SINGLE:
            return False
    return True

def matches(pattern: str, topic: str) -> bool:
    '''
    This function tests a concrete topic against a subscription pattern.
    "a/#" also matches "a" itself, as in MQTT.
    '''
    pat = pattern.split(SEP)
    top = topic.split(SEP)
    for i, level in enumerate(pat):
        if level == MULTI:
            return True
        if i >= len(top):
            return False
        if level != SINGLE and level != top[i]:
            return False
    return len(pat) == len(top)
