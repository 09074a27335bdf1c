"""System Version: 1.0.0
File Version: 1.0.0"""
from __future__ import annotations

import os

from chaindb import create_app
from chaindb.config import load_config
from chaindb.utils import log_info

config = load_config()
app = create_app(config)


def run() -> None:
    """ローカル開発用エントリポイント."""
    import signal
    import uvicorn

    uv_config = uvicorn.Config(
        "app:app",
        host="0.0.0.0",
        port=config.port,
        reload=False,
    )
    server = uvicorn.Server(uv_config)
    server.install_signal_handlers = lambda: None
    interrupt_count = {"count": 0}

    def handle_interrupt(signum, frame):
        interrupt_count["count"] += 1
        if interrupt_count["count"] == 1:
            log_info("Ctrl+C detected. Press Ctrl+C again to force quit.")
            server.should_exit = True
            return
        log_info("Ctrl+C detected again. Forcing exit.")
        os._exit(1)

    signal.signal(signal.SIGINT, handle_interrupt)
    try:
        signal.signal(signal.SIGTERM, handle_interrupt)
    except Exception:
        pass

    server.run()


if __name__ == "__main__":
    run()
