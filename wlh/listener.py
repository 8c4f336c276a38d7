from __future__ import annotations

import socket

from .settings import settings


def set_keepalive(conn: socket.socket, period_s: float) -> None:
    """Enable TCP keep-alive with `period_s` as probe idle time and interval."""
    conn.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    secs = max(1, int(round(period_s)))
    if hasattr(socket, "TCP_KEEPIDLE"):
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, secs)
    elif hasattr(socket, "TCP_KEEPALIVE"):  # macOS
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, secs)
    if hasattr(socket, "TCP_KEEPINTVL"):
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, secs)


class KeepAliveListener(socket.socket):
    """Listening TCP socket whose accepted connections have keep-alive on.

    Dead peers (laptops closed mid-request, vanished load balancers) are
    eventually noticed and their connections reaped.
    """

    def __init__(
        self,
        family: int = socket.AF_INET,
        type: int = socket.SOCK_STREAM,
        proto: int = 0,
        fileno: int | None = None,
        period_s: float = settings.keepalive_period_s,
    ) -> None:
        super().__init__(family, type, proto, fileno)
        self.keepalive_period_s = period_s

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        period_s: float = settings.keepalive_period_s,
        backlog: int = socket.SOMAXCONN,
    ) -> "KeepAliveListener":
        """Bind and listen on `host:port`.

        An empty host means every interface, IPv6 and IPv4 both where the
        platform supports a dual-stack socket.
        """
        dualstack = not host and socket.has_dualstack_ipv6()
        if dualstack:
            family, type_, proto, sockaddr = socket.AF_INET6, socket.SOCK_STREAM, 0, ("::", port)
        else:
            family, type_, proto, _, sockaddr = socket.getaddrinfo(
                host or "0.0.0.0", port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
            )[0]
        sock = cls(family, type_, proto, period_s=period_s)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if dualstack:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            sock.bind(sockaddr)
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        return sock

    def accept(self) -> tuple[socket.socket, object]:
        conn, addr = super().accept()
        try:
            set_keepalive(conn, self.keepalive_period_s)
        except OSError:
            conn.close()
            raise
        return conn, addr
