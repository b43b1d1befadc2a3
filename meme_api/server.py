"""Listener lifecycle for the meme upload API.

``MemeServer`` owns one uvicorn listener built from an explicit ``Settings``
value. ``start()`` returns once the socket is bound and ``stop()`` waits for
in-flight requests to finish before returning.
"""

import logging
import threading
import time

import uvicorn

from meme_api.config import Settings
from meme_api.converter import ImageConverter
from meme_api.main import create_app
from meme_api.observability import configure_logging

logger = logging.getLogger("meme.server")


class MemeServer:
    def __init__(self, settings: Settings | None = None, converter: ImageConverter | None = None):
        self.settings = settings or Settings()
        self.app = create_app(self.settings, converter)
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._bound_port: int | None = None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        return self._bound_port or self.settings.port

    @property
    def base_url(self) -> str:
        host = "127.0.0.1" if self.settings.host == "0.0.0.0" else self.settings.host
        return f"http://{host}:{self.port}"

    def _config(self) -> uvicorn.Config:
        return uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=None,
            log_level=self.settings.log_level.lower(),
        )

    def start(self, timeout_s: float = 10.0) -> None:
        if self._thread is not None:
            raise RuntimeError("server already started")
        self._server = uvicorn.Server(self._config())
        self._thread = threading.Thread(target=self._server.run, name="meme-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout_s
        while not self._server.started:
            if not self._thread.is_alive():
                self._thread = None
                raise RuntimeError(f"server failed to bind {self.settings.host}:{self.settings.port}")
            if time.monotonic() > deadline:
                self.stop()
                raise TimeoutError(f"server did not start within {timeout_s}s")
            time.sleep(0.01)
        self._bound_port = self._server.servers[0].sockets[0].getsockname()[1]
        logger.info("server_started on %s", self.base_url)

    def stop(self, timeout_s: float = 10.0) -> None:
        if self._server is None or self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout_s)
        if self._thread.is_alive():
            logger.warning("server did not stop within %ss", timeout_s)
            return
        self._thread = None
        logger.info("server_stopped")

    def serve_forever(self) -> None:
        self._server = uvicorn.Server(self._config())
        self._server.run()

    def __enter__(self) -> "MemeServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def main() -> None:
    """Run the server in the foreground with settings from the environment."""
    settings = Settings()
    configure_logging(settings)
    logger.info("Starting meme upload server on %s:%s", settings.host, settings.port)
    MemeServer(settings).serve_forever()


if __name__ == "__main__":
    main()
