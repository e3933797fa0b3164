# main.py
"""
Application entrypoint. Run with:
    uvicorn main:app --reload
"""
import logging

import uvicorn

from qurbani.config.settings import settings
from qurbani.main import create_app

logging.basicConfig(level=settings.LOG_LEVEL)

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=5000)
