"""A plugin that copies everything clients send to a writer."""

from __future__ import annotations

from typing import Any


class TeeConn:
    """Wraps a connection and copies received bytes to a writer."""

    def __init__(self, conn: Any, writer: Any) -> None:
        self._conn = conn
        self._writer = writer

    def recv(self, size: int) -> bytes:
        data = self._conn.recv(size)
        if data and self._writer is not None:
            try:
                self._writer.write(data)
            except (OSError, ValueError):
                pass  # copying is best effort and never breaks the connection
        return data

    def __getattr__(self, name: str) -> Any:
        if name == "_conn":
            raise AttributeError(name)
        return getattr(self._conn, name)


class TeeConnPlugin:
    """Wraps accepted connections so their incoming data is copied to ``writer``.

    With no writer, connections are still wrapped but nothing is copied.
    """

    def __init__(self, writer: Any = None) -> None:
        self._writer = writer

    def update(self, writer: Any) -> None:
        """Set the writer used for connections accepted from now on."""
        self._writer = writer

    def handle_conn_accept(self, conn: Any) -> tuple[TeeConn, bool]:
        return TeeConn(conn, self._writer), True