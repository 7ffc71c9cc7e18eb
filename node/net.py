import socket, threading
from queue import Queue
from typing import Iterator, Optional, Protocol, Tuple

from loguru import logger

from common.errors import BusError
from common.protocol import send_json, recv_json, forget

Event = Tuple[str, str]   # (topic, payload)


class Transport(Protocol):
    ''' What the overlay needs from a pub/sub bus '''
    def connect(self) -> None: ...
    def subscribe(self, pattern: str) -> None: ...
    def publish(self, topic: str, payload: str, retain: bool = False) -> None: ...
    def events(self) -> Iterator[Event]: ...
    def close(self) -> None: ...


class BusClient:
    ''' TCP client for the overlay broker (see broker/main.py) '''
    def __init__(self, host: str, port: int, client_id: str, timeout: float = 10.0):
        self.host, self.port, self.client_id = host, port, client_id
        self.timeout = timeout
        self.sock: Optional[socket.socket] = None
        self.send_lock = threading.Lock()   # publish() is called from API threads too
        self.inbound: "Queue[Optional[Event]]" = Queue()   # None marks the end of the stream
        self.recv_thread: Optional[threading.Thread] = None
        self.running = False

    def connect(self):
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
            self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            send_json(self.sock, {"op": "connect", "client_id": self.client_id})
            env = recv_json(self.sock)
        except (OSError, ValueError) as err:
            self._drop_socket()
            raise BusError(f"cannot connect to broker at {self.host}:{self.port}: {err}") from err

        if env.get("op") != "connack":
            self._drop_socket()
            raise BusError(f"broker refused connection: {env.get('code', env.get('op'))}")

        # deliveries arrive at any time from now on, so no read timeout
        self.sock.settimeout(None)
        self.running = True
        self.recv_thread = threading.Thread(target=self._recv_loop, name=f"bus-{self.client_id}", daemon=True)
        self.recv_thread.start()
        logger.info("Connected to broker {}:{} as {}", self.host, self.port, self.client_id)

    def subscribe(self, pattern: str):
        self._send({"op": "subscribe", "pattern": pattern})

    def publish(self, topic: str, payload: str, retain: bool = False):
        self._send({"op": "publish", "topic": topic, "payload": payload, "retain": retain})

    def events(self) -> Iterator[Event]:
        ''' Blocking iterator over deliveries; ends when the connection goes away '''
        while True:
            event = self.inbound.get()
            if event is None:
                return
            yield event

    def close(self):
        if not self.running:
            return
        try:
            self._send({"op": "disconnect"})
        except BusError:
            pass
        self.running = False
        self._drop_socket()
        self.inbound.put(None)

    def _send(self, obj: dict):
        with self.send_lock:
            if not self.running or self.sock is None:
                raise BusError("not connected")
            try:
                send_json(self.sock, obj)
            except OSError as err:
                raise BusError(f"send failed: {err}") from err

    def _drop_socket(self):
        sock, self.sock = self.sock, None
        if sock is None:
            return
        forget(sock)
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def _recv_loop(self):
        ''' Thread function: push deliveries to the inbound queue '''
        sock = self.sock
        try:
            while self.running:
                env = recv_json(sock)
                op = env.get("op")
                if op == "deliver":
                    self.inbound.put((env.get("topic"), env.get("payload")))
                elif op == "error":
                    logger.warning("Broker reported error: {}", env.get("code"))
                else:
                    logger.debug("Ignoring broker frame {}", op)
        except (OSError, ValueError) as err:
            if self.running:
                logger.warning("Lost connection to broker: {}", err)
        finally:
            if self.running:
                self.running = False
                self._drop_socket()
                self.inbound.put(None)
