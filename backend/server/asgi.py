"""
ASGI entry point for the pairing service.

    uvicorn server.asgi:app

Environment comes from .env when present; real environment variables win.
"""

from dotenv import load_dotenv

load_dotenv(override=False)

# pylint: disable=wrong-import-position
from config import AppConfig
from observability.logger import log_event
from server.app import create_app

config = AppConfig.load_from_env()
log_event({
    "event_type": "ASGI_APP_CREATED",
    "env": config.env,
    "pairing_api_url": config.pairing_api_url,
})

app = create_app(config)
