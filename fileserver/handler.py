import logging
import os
import stat

from .models import Method, PathRejected, Request, Resolution, Resolved, ResponseSpec
from .streams import copy_stream

logger = logging.getLogger(__name__)

APPLICATION_OCTET_STREAM = "application/octet-stream"


class ContentHandler:
    """
    GET and PUT files below a root directory.
    There is no authorization, listing or content-type detection.
    """

    def __init__(self, root: str, context: str = "/", chunk_size: int = 10_000, confine_symlinks: bool = False) -> None:
        self.root = root
        self.root_real = os.path.realpath(root)
        self.context = "/" + context.strip("/")
        self.chunk_size = chunk_size
        self.confine_symlinks = confine_symlinks

    def handle(self, req: Request) -> ResponseSpec:
        if req.method is Method.GET:
            return self.get(req)
        if req.method is Method.PUT:
            return self.put(req)
        logger.info("%s %s unsupported", req.method_name, req.path)
        return self._empty(400, "Bad Request")

    def get(self, req: Request) -> ResponseSpec:
        resolved = self.resolve(req.path)
        if isinstance(resolved, PathRejected):
            logger.info("GET %s rejected: %s", req.path, resolved.reason)
            return self._rejected(resolved)

        path = resolved.path
        logger.info("GET %s", path)
        try:
            st = os.stat(path)
        except OSError:
            return self._empty(404, "Not Found")

        if not stat.S_ISREG(st.st_mode):
            return self._empty(400, "Bad Request")

        return ResponseSpec(
            200,
            "OK",
            headers={"Content-Type": APPLICATION_OCTET_STREAM},
            body_path=path,
            body_size=st.st_size,
        )

    def put(self, req: Request) -> ResponseSpec:
        resolved = self.resolve(req.path)
        if isinstance(resolved, PathRejected):
            logger.info("PUT %s rejected: %s", req.path, resolved.reason)
            return self._rejected(resolved)

        path = resolved.path
        logger.info("PUT %s", path)
        parent = os.path.dirname(path)
        if not os.path.isdir(parent):
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError as e:
                logger.warning("Cannot create %s: %s", parent, e)

        if not os.path.isdir(parent):
            return self._empty(500, "Internal Server Error")

        # No cleanup: a failed transfer leaves a partial file behind.
        with open(path, "wb") as f:
            written = copy_stream(req.body, f, self.chunk_size)
        logger.debug("Wrote %d bytes to %s", written, path)

        return ResponseSpec(204, "No Content", body_size=None)

    def resolve(self, url_path: str) -> Resolution:
        relative = self._relative(url_path)
        if relative is None:
            return PathRejected("outside context", status=404)

        if ".." in relative:
            return PathRejected("relative paths are unsupported")

        # Concatenate rather than os.path.join so a leading "/" stays under root.
        real = os.path.realpath(self.root + os.sep + relative)

        if self.confine_symlinks and not self._within_root(real):
            return PathRejected("escape root")
        return Resolved(real)

    def _relative(self, url_path: str) -> str | None:
        if self.context == "/":
            if not url_path.startswith("/"):
                return None
            return url_path[1:]

        if url_path == self.context:
            return ""
        if url_path.startswith(self.context + "/"):
            return url_path[len(self.context) + 1:]
        return None

    def _within_root(self, real: str) -> bool:
        try:
            return os.path.commonpath([self.root_real, real]) == self.root_real
        except ValueError:
            return False

    def _rejected(self, rejected: PathRejected) -> ResponseSpec:
        if rejected.status == 404:
            return self._empty(404, "Not Found")
        return self._empty(rejected.status, "Bad Request")

    @staticmethod
    def _empty(status: int, reason: str) -> ResponseSpec:
        return ResponseSpec(status, reason, body_size=0)
