import logging

from fastapi import FastAPI

from layer2048.api.routes import router
from layer2048.config import settings_from_env

__version__ = "0.1.0"

_settings = settings_from_env()

# Configure logging
logging.basicConfig(level=_settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="layer2048", version=__version__)
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, object]:
    return {"name": "layer2048", "version": __version__, "settle_delay_ms": _settings.settle_delay_ms}
