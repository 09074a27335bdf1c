from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import AppConfig, load_config
from .context import AppContext
from .routes import router
from .utils import colorize_url, log_info

SYSTEM_VERSION = "1.0.0"


def create_app(config: AppConfig | None = None, **manager_kwargs) -> FastAPI:
    """Build the web app. The search bootstrap runs in the lifespan.

    ``manager_kwargs`` go to ``ConnectionManager`` (``transport``, ``retry``,
    ``sleep``) so tests can point the app at an in-process service.
    """
    config = config or load_config()
    ctx = AppContext.create(config, **manager_kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()
        # Blocks startup until the service answers and the index exists.
        await loop.run_in_executor(None, ctx.bootstrap)
        base = f"http://{config.site_root}{config.site_path}/"
        log_info(f"Serving {config.store_dir} at {colorize_url(base)}")
        try:
            yield
        finally:
            ctx.close()

    app = FastAPI(title="ChainDB", version=SYSTEM_VERSION, lifespan=lifespan)
    app.state.ctx = ctx
    app.state.static_dir = config.static_dir
    app.include_router(router, prefix=config.site_path)
    return app
