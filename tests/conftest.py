import http.client
import threading

import pytest

from fileserver.config import Config
from fileserver.server import FileHTTPServer


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "root"
    path.mkdir()
    return path


@pytest.fixture
def make_server(root):
    started = []

    def _make(**overrides):
        options = dict(
            host="127.0.0.1",
            port=0,
            root=str(root),
            concurrency=4,
            accept_timeout=0.1,
            recv_timeout=5.0,
        )
        options.update(overrides)
        server = FileHTTPServer(Config(**options))
        server.bind()
        thread = threading.Thread(target=server.serve, daemon=True)
        thread.start()
        started.append((server, thread))
        return server

    yield _make

    for server, thread in started:
        server.stop()
        thread.join(timeout=5)


@pytest.fixture
def server(make_server):
    return make_server()


def fetch(server, method, path, body=None, headers=None):
    host, port = server.address
    conn = http.client.HTTPConnection(host, port, timeout=5)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        resp = conn.getresponse()
        return resp.status, {k.lower(): v for k, v in resp.getheaders()}, resp.read()
    finally:
        conn.close()


@pytest.fixture
def request_file(server):
    def _request(method, path, body=None, headers=None):
        return fetch(server, method, path, body=body, headers=headers)

    return _request
