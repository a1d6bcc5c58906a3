"""Provisioning against a local socket that speaks the device side of the handshake."""

import base64
import hashlib
import json
import re
import socket
import struct
import threading

import pytest

from fire_monitor.provisioning import ProvisioningCredentials, ProvisioningSession, SessionState

WS_GUID = b"258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
CLOSE_NORMAL = b"\x88\x02\x03\xe8"


def recv_exact(conn, size):
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            raise ConnectionError("peer closed")
        data += chunk
    return data


def read_frame(conn):
    """Read one client frame and return (opcode, unmasked payload)"""
    b0, b1 = recv_exact(conn, 2)
    length = b1 & 0x7F
    if length == 126:
        length = struct.unpack(">H", recv_exact(conn, 2))[0]
    elif length == 127:
        length = struct.unpack(">Q", recv_exact(conn, 8))[0]
    mask = recv_exact(conn, 4) if b1 & 0x80 else b""
    data = recv_exact(conn, length)
    if mask:
        data = bytes(b ^ mask[i % 4] for i, b in enumerate(data))
    return b0 & 0x0F, data


class FakeDevice(threading.Thread):
    """Accepts one WebSocket client, reads the credentials, then closes"""

    def __init__(self, send_close_frame: bool):
        super().__init__(daemon=True)
        self.send_close_frame = send_close_frame
        self.received = None
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.listener.settimeout(5)
        self.port = self.listener.getsockname()[1]

    def run(self):
        try:
            conn, _ = self.listener.accept()
            with conn:
                conn.settimeout(5)
                self._handshake(conn)
                _, self.received = read_frame(conn)
                if self.send_close_frame:
                    conn.sendall(CLOSE_NORMAL)
                    try:
                        read_frame(conn)
                    except (ConnectionError, OSError):
                        pass
        finally:
            self.listener.close()

    def _handshake(self, conn):
        request = b""
        while b"\r\n\r\n" not in request:
            chunk = conn.recv(1024)
            if not chunk:
                raise ConnectionError("client went away during handshake")
            request += chunk
        key = re.search(rb"Sec-WebSocket-Key:\s*(\S+)", request, re.IGNORECASE).group(1)
        accept = base64.b64encode(hashlib.sha1(key + WS_GUID).digest())
        conn.sendall(
            b"HTTP/1.1 101 Switching Protocols\r\n"
            b"Upgrade: websocket\r\n"
            b"Connection: Upgrade\r\n"
            b"Sec-WebSocket-Accept: " + accept + b"\r\n\r\n"
        )


def run_session(port):
    done = threading.Event()

    def on_state_change(session, state):
        if state.is_terminal:
            done.set()

    session = ProvisioningSession(
        ProvisioningCredentials("127.0.0.1", "HomeNet", "hunter22", "45"),
        port=port,
        timeout_seconds=5,
        on_state_change=on_state_change,
    )
    session.start()
    assert done.wait(10)
    return session


@pytest.mark.parametrize("send_close_frame", [True, False], ids=["close-1000", "tcp-drop"])
def test_device_close_completes_provisioning(send_close_frame):
    device = FakeDevice(send_close_frame)
    device.start()

    session = run_session(device.port)
    device.join(5)

    assert session.state is SessionState.CLOSED_SUCCESS
    assert session.payload_sent is True
    assert json.loads(device.received) == {"ssid": "HomeNet", "password": "hunter22", "tempThre": "45"}


def test_refused_connection_fails():
    unused = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    unused.bind(("127.0.0.1", 0))
    port = unused.getsockname()[1]
    unused.close()

    session = run_session(port)

    assert session.state is SessionState.CLOSED_ERROR
    assert session.payload_sent is False
