import json
import socket
import threading

ENC = "utf-8"   # encoding for JSON text
DELIM = b"\n"    # delimiter between frames
MAX_LINE = 1024 * 1024   # refuse frames larger than this (a peer that never sends "\n")

# Residual bytes per socket (key: socket ID), so recv_json returns exactly one
# frame per call even when several frames arrive in one recv().
_buffers: dict[int, bytearray] = {}
_buffers_lock = threading.Lock()

def send_json(sock: socket.socket, obj: dict) -> None:
    '''
    The function sends one JSON frame over a socket, terminated by "\n".
    Callers sharing a socket between threads must serialize calls themselves.
    Inputs:
        - sock: the socket to send the data through
        - obj: a JSON-serializable dict
    '''
    data = (json.dumps(obj, ensure_ascii=False) + "\n").encode(ENC)
    sock.sendall(data)

def recv_json(sock: socket.socket) -> dict:
    '''
    The function receives one JSON frame from a socket. Only one thread may
    read a given socket.
    Input:
        - sock: the socket to receive data from
    Output:
        - the decoded JSON object
    Raises ConnectionError when the peer closes, ValueError on a bad frame.
    '''
    fd = sock.fileno()
    with _buffers_lock:
        buf = _buffers.setdefault(fd, bytearray())

    while True:
        nl = buf.find(DELIM)
        if nl != -1:
            line_bytes = buf[:nl]
            del buf[:nl+1]
            obj = json.loads(line_bytes.decode(ENC))
            if not isinstance(obj, dict):
                raise ValueError("frame is not a JSON object")
            return obj

        if len(buf) > MAX_LINE:
            raise ValueError("frame too large")
        chunk = sock.recv(4096)
        if not chunk:
            raise ConnectionError("socket closed")
        buf.extend(chunk)

def forget(sock: socket.socket) -> None:
    ''' Drop the residual buffer of a socket; call before closing it (fds get reused) '''
    try:
        fd = sock.fileno()
    except OSError:
        return
    with _buffers_lock:
        _buffers.pop(fd, None)
