"""
Tests for host port probing.
"""

import errno
import socket
from unittest.mock import patch

from berth.infra.ports import is_port_free


class TestIsPortFree:
    """Tests for is_port_free."""

    def test_listening_port_is_taken(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            s.listen()
            port = s.getsockname()[1]
            assert not is_port_free(port, "127.0.0.1")

    def test_unused_port_is_free(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        assert is_port_free(port, "127.0.0.1")

    def test_bound_udp_port_is_taken(self):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
            assert not is_port_free(port, "127.0.0.1", "udp")

    def test_sctp_not_checked(self):
        assert is_port_free(1, protocol="sctp")

    def test_privileged_port_without_permission_is_free(self):
        """Test that a bind refused for lack of privilege is not a conflict."""
        with patch.object(socket.socket, "bind", side_effect=PermissionError(errno.EACCES, "Permission denied")):
            assert is_port_free(80)
