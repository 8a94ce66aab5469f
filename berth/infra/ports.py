"""
Utilities for checking availability of host ports before publishing them.
"""
import errno
import socket

PROTOCOL_SOCKET_TYPES = {
    "tcp": socket.SOCK_STREAM,
    "udp": socket.SOCK_DGRAM,
}


def is_port_free(port: int, host: str = "0.0.0.0", protocol: str = "tcp") -> bool:
    """
    Checks if a port can be bound on this host.

    Only "address in use" counts as taken. Ports this process may not
    bind (privileged ports for non-root users) and protocols without a
    socket check (sctp) are assumed free; Docker reports the conflict itself
    if they are not.
    """
    sock_type = PROTOCOL_SOCKET_TYPES.get(protocol)
    if sock_type is None:
        return True
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, sock_type) as s:
        try:
            s.bind((host, port))
        except OSError as e:
            return e.errno != errno.EADDRINUSE
        return True
