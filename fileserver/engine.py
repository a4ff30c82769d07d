import logging
import socket
import time
from datetime import datetime, timezone
from urllib.parse import unquote, urlsplit

from .models import Method, Request, ResponseSpec
from .streams import BodyReader, copy_stream

logger = logging.getLogger(__name__)


class Engine:
    # Upper bound on draining a client after the response went out.
    linger_timeout = 1.0

    def handle_connection(self, conn: socket.socket) -> None:
        try:
            self.process(conn)
        finally:
            self._lingering_close(conn)

    def process(self, conn: socket.socket) -> None:
        raise NotImplementedError

    def _lingering_close(self, conn: socket.socket) -> None:
        # Unread input at close() turns into an RST that can drop the response.
        try:
            conn.shutdown(socket.SHUT_WR)
            deadline = time.monotonic() + self.linger_timeout
            while True:
                left = deadline - time.monotonic()
                if left <= 0:
                    break
                conn.settimeout(left)
                if not conn.recv(65536):
                    break
        except OSError:
            pass
        finally:
            try:
                conn.close()
            except OSError:
                pass


class HTTPEngine(Engine):
    """One request per connection; every response closes the connection."""

    def __init__(self, config, request_handler, server_name=None) -> None:
        self.config = config
        self.request_handler = request_handler
        if server_name is None:
            server_name = f"python/{socket.gethostname()}"
        self.server_name = server_name

    def process(self, conn: socket.socket) -> None:
        head_sent = False
        try:
            raw = self._read_headers(conn)
            if raw is None:
                return

            head, _, buffered = raw.partition(b"\r\n\r\n")
            req = self._parse_request(conn, head, buffered)
            resp = self.request_handler.handle(req)
            req.body.discard()

            body = self._open_body(resp)
            head_sent = True
            try:
                self._send(conn, resp, body)
            finally:
                if body is not None:
                    body.close()

        except (socket.timeout, TimeoutError):
            return
        except ConnectionError as e:
            logger.debug("Connection dropped: %s", e)
            return
        except ValueError as e:
            logger.debug("Bad request: %s", e)
            if not head_sent:
                self._send(conn, self._simple_response(400, "Bad Request"))
            return
        except Exception:
            logger.exception("Request failed")
            if not head_sent:
                self._send(conn, self._simple_response(500, "Internal Server Error"))
            return

    def _read_headers(self, conn: socket.socket) -> bytes | None:
        buf = bytearray()
        while True:
            if b"\r\n\r\n" in buf:
                return bytes(buf)
            if len(buf) > self.config.max_header_bytes:
                raise ValueError("request head too large")
            chunk = conn.recv(self.config.chunk_size)
            if chunk == b"":
                return None
            buf.extend(chunk)

    def _parse_request(self, conn: socket.socket, head: bytes, buffered: bytes) -> Request:
        lines = head.split(b"\r\n")
        if not lines:
            raise ValueError("empty request")

        request_line = lines[0].decode("iso-8859-1")
        parts = request_line.split()
        if len(parts) != 3:
            raise ValueError("bad request line")

        method, target, version = parts
        if not version.startswith("HTTP/"):
            raise ValueError("bad http version")

        headers = {}
        for bline in lines[1:]:
            if not bline:
                continue
            line = bline.decode("iso-8859-1", errors="ignore")
            if ":" not in line:
                continue
            k, v = line.split(":", 1)
            headers[k.strip().lower()] = v.strip()

        # Absolute-form targets carry a scheme and authority before the path.
        path = urlsplit(target).path if "://" in target else target.split("?", 1)[0]
        path = unquote(path)

        on_first_read = None
        if headers.get("expect", "").lower() == "100-continue" and version == "HTTP/1.1":
            on_first_read = lambda: conn.sendall(b"HTTP/1.1 100 Continue\r\n\r\n")
        body = BodyReader(conn, buffered, headers, self.config.chunk_size, on_first_read)

        return Request(
            method=Method.parse(method),
            method_name=method,
            target=target,
            path=path,
            version=version,
            headers=headers,
            body=body,
        )

    def _open_body(self, resp: ResponseSpec):
        if resp.status == 200 and resp.body_path:
            return open(resp.body_path, "rb")
        return None

    def _send(self, conn: socket.socket, resp: ResponseSpec, body=None) -> None:
        headers = dict(resp.headers)
        headers.setdefault("Date", self._http_date())
        headers.setdefault("Server", self.server_name)
        headers.setdefault("Connection", "close")
        if resp.body_size is not None:
            headers.setdefault("Content-Length", str(resp.body_size))

        status_line = f"HTTP/1.1 {resp.status} {resp.reason}\r\n"
        header_block = status_line + "".join(f"{k}: {v}\r\n" for k, v in headers.items()) + "\r\n"
        conn.sendall(header_block.encode("iso-8859-1"))

        if body is not None:
            self._send_file(conn, body, resp.body_size)

    def _send_file(self, conn: socket.socket, body, size: int | None) -> None:
        with conn.makefile("wb") as out:
            copy_stream(body, out, self.config.chunk_size, limit=size)

    def _simple_response(self, status: int, reason: str) -> ResponseSpec:
        return ResponseSpec(status=status, reason=reason, body_size=0)

    @staticmethod
    def _http_date() -> str:
        dt = datetime.now(timezone.utc)
        return dt.strftime("%a, %d %b %Y %H:%M:%S GMT")
