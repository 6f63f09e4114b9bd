"""
Root entrypoint for the authorization backend.

    uvicorn main:app
    python main.py            # binds HOST:PORT from settings, reloads when DEBUG
"""

from app.core.config import settings
from app.main import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
