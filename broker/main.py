"""
Pub/sub broker for the overlay.

Clients speak newline-delimited JSON (common/protocol.py):
connect -> connack, then any number of subscribe / publish frames.
Every publish is delivered to each client holding a matching pattern
("+" one level, "#" the rest); retained publishes are replayed to later
subscribers.
"""
import argparse
import socket, threading
from typing import Optional

from loguru import logger

from common.protocol import send_json, recv_json, forget
from common.topics import is_wildcard, valid_pattern
from broker.state import BrokerState, Session

HOST = "127.0.0.1"
PORT = 1884


def error(code: str) -> dict:
    return {"op": "error", "code": code}

def deliver(s: Session, topic: str, payload: str) -> bool:
    ''' Send one delivery to a session; False if its socket is gone '''
    try:
        with s.send_lock:
            send_json(s.sock, {"op": "deliver", "topic": topic, "payload": payload})
        return True
    except OSError as err:
        logger.debug("Delivery to {} failed: {}", s.client_id, err)
        return False

def reply(s: Session, obj: dict):
    with s.send_lock:
        send_json(s.sock, obj)

def route(state: BrokerState, topic: str, payload: str, retain: bool) -> int:
    ''' Deliver a publish to every matching subscriber; returns the delivery count '''
    delivered = 0
    for s in state.publish(topic, payload, retain):
        if deliver(s, topic, payload):
            delivered += 1
    return delivered

def handle_client(state: BrokerState, conn: socket.socket, addr):
    '''
    This function serves one connected client until it disconnects.
    Inputs:
        - state: shared broker state
        - conn: socket of the client connection
        - addr: address of the client
    '''
    session: Optional[Session] = None
    try:
        env = recv_json(conn)
        client_id = env.get("client_id")
        if env.get("op") != "connect" or not isinstance(client_id, str) or not client_id:
            send_json(conn, error("EXPECT_CONNECT"))
            return

        candidate = Session(client_id=client_id, sock=conn)
        if not state.add_session(candidate):
            send_json(conn, error("DUPLICATE_CLIENT_ID"))
            return
        session = candidate
        reply(session, {"op": "connack"})
        logger.info("Client {} connected from {}", client_id, addr)

        while True:
            env = recv_json(conn)
            op = env.get("op")
            if op == "publish":
                topic, payload = env.get("topic"), env.get("payload")
                if not isinstance(topic, str) or not topic or is_wildcard(topic) or not isinstance(payload, str):
                    reply(session, error("INVALID_TOPIC"))
                    continue
                n = route(state, topic, payload, bool(env.get("retain")))
                logger.debug("{} published {} ({} deliveries)", client_id, topic, n)
            elif op == "subscribe":
                pattern = env.get("pattern")
                if not isinstance(pattern, str) or not valid_pattern(pattern):
                    reply(session, error("INVALID_PATTERN"))
                    continue
                # live deliveries for the new pattern queue on send_lock behind the replay
                with session.send_lock:
                    retained = state.subscribe(session, pattern)
                    send_json(conn, {"op": "suback", "pattern": pattern})
                    for topic, payload in retained:
                        send_json(conn, {"op": "deliver", "topic": topic, "payload": payload})
                logger.debug("{} subscribed to {}", client_id, pattern)
            elif op == "disconnect":
                break
            else:
                reply(session, error("UNKNOWN_OP"))

    except ConnectionError:
        logger.debug("Client {} closed the connection", addr)
    except (OSError, ValueError) as err:
        logger.warning("Dropping client {}: {}", addr, err)
    finally:
        if session is not None:
            state.remove(session)
            logger.info("Client {} disconnected", session.client_id)
        forget(conn)
        try:
            conn.close()
        except OSError:
            pass

def serve(srv: socket.socket, state: BrokerState):
    ''' Accept loop; one daemon thread per client. Returns when srv is closed. '''
    while True:
        try:
            conn, addr = srv.accept()
        except OSError:
            return
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        threading.Thread(target=handle_client, args=(state, conn, addr), daemon=True).start()

def main(argv=None):
    ap = argparse.ArgumentParser(description="Overlay pub/sub broker")
    ap.add_argument("--host", default=HOST, help="Listen address")
    ap.add_argument("--port", type=int, default=PORT, help="Listen port")
    args = ap.parse_args(argv)

    logger.info("Broker listening on {}:{}", args.host, args.port)
    with socket.create_server((args.host, args.port)) as srv:
        try:
            serve(srv, BrokerState())
        except KeyboardInterrupt:
            logger.info("Broker stopped")

if __name__ == "__main__":
    main()
