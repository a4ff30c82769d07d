import socket
from typing import BinaryIO, Callable, Dict, Optional


def copy_stream(src: BinaryIO, dst: BinaryIO, chunk_size: int, limit: Optional[int] = None) -> int:
    """Copy src into dst through a fixed-size buffer until EOF or `limit` bytes."""
    total = 0
    while limit is None or total < limit:
        size = chunk_size if limit is None else min(chunk_size, limit - total)
        data = src.read(size)
        if not data:
            break
        dst.write(data)
        total += len(data)
    return total


class BodyReader:
    """
    Read-only stream over a request body.
    Bytes received together with the request head are served first, then the socket.
    Framing is Content-Length, chunked transfer coding, or nothing (empty body).
    """

    max_line_bytes = 8192

    def __init__(
        self,
        conn: socket.socket,
        buffered: bytes,
        headers: Dict[str, str],
        chunk_size: int,
        on_first_read: Optional[Callable[[], None]] = None,
    ) -> None:
        self._conn = conn
        self._buf = bytearray(buffered)
        self._chunk_size = chunk_size
        self._on_first_read = on_first_read

        self._chunked = "chunked" in headers.get("transfer-encoding", "").lower()
        self._remaining = 0
        self._need_crlf = False
        self._done = False

        if not self._chunked:
            length = headers.get("content-length")
            if length is not None:
                if not length.strip().isdigit():
                    raise ValueError(f"bad content-length: {length!r}")
                self._remaining = int(length)
            self._done = self._remaining == 0

    @property
    def started(self) -> bool:
        return self._on_first_read is None

    def read(self, size: int = -1) -> bytes:
        if self._on_first_read is not None:
            callback, self._on_first_read = self._on_first_read, None
            callback()

        if size is None or size < 0:
            size = self._chunk_size
        if size == 0:
            return b""

        if self._chunked:
            return self._read_chunked(size)

        if self._done:
            return b""
        data = self._recv(min(size, self._remaining))
        self._remaining -= len(data)
        self._done = self._remaining == 0
        return data

    def discard(self) -> None:
        # A client waiting on 100-continue never sent its body.
        if not self.started:
            return
        while self.read(self._chunk_size):
            pass

    def _read_chunked(self, size: int) -> bytes:
        while not self._done and self._remaining == 0:
            if self._need_crlf:
                if self._readline() != b"":
                    raise ValueError("missing CRLF after chunk data")
                self._need_crlf = False

            line = self._readline()
            token = line.split(b";", 1)[0].strip()
            try:
                chunk_len = int(token, 16)
            except ValueError:
                raise ValueError(f"bad chunk size: {token!r}")
            if chunk_len < 0:
                raise ValueError(f"bad chunk size: {token!r}")

            if chunk_len == 0:
                # Skip trailer fields up to the terminating empty line.
                while self._readline():
                    pass
                self._done = True
            else:
                self._remaining = chunk_len

        if self._done:
            return b""

        data = self._recv(min(size, self._remaining))
        self._remaining -= len(data)
        if self._remaining == 0:
            self._need_crlf = True
        return data

    def _readline(self) -> bytes:
        while b"\r\n" not in self._buf:
            if len(self._buf) > self.max_line_bytes:
                raise ValueError("chunk line too long")
            data = self._conn.recv(self._chunk_size)
            if not data:
                raise ConnectionError("connection closed inside chunked body")
            self._buf.extend(data)
        line, _, rest = bytes(self._buf).partition(b"\r\n")
        self._buf = bytearray(rest)
        return line

    def _recv(self, size: int) -> bytes:
        if self._buf:
            data = bytes(self._buf[:size])
            del self._buf[:size]
            return data
        data = self._conn.recv(size)
        if not data:
            raise ConnectionError("connection closed before end of body")
        return data
