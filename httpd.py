import argparse
import logging
import sys

from fileserver.config import Config
from fileserver.server import FileHTTPServer as Server

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve a directory over HTTP GET and PUT")
    parser.add_argument("port", type=int, help="port to listen on")
    parser.add_argument("root", type=str, help="directory to serve")
    parser.add_argument("concurrency", type=int, help="number of worker threads")
    parser.add_argument("--host", "-H", type=str, default="0.0.0.0", help="host to listen on")
    parser.add_argument("--context", "-c", type=str, default="/", help="base path the files are served under")
    parser.add_argument("--confine-symlinks", action="store_true", help="reject paths whose target lies outside root")
    parser.add_argument("--debug", "-D", action="store_true", help="enable debug mode")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format=LOG_FORMAT)

    config = Config(
        host=args.host,
        port=args.port,
        root=args.root,
        concurrency=args.concurrency,
        context=args.context,
        confine_symlinks=args.confine_symlinks,
    )
    server = Server(config)
    try:
        server.run()
    except OSError as e:
        logging.getLogger(__name__).error("Cannot start server on port %d: %s", config.port, e)
        return 1
    except KeyboardInterrupt:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
