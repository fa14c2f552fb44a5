"""Run the transfer API: ``python -m custody_send.api``."""

import logging

import uvicorn

from custody_send.config import get_settings

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    uvicorn.run("custody_send.api.app:app", host=settings.host, port=settings.port)
