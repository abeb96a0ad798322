"""
ASGI entry point:  uvicorn run:app --reload
"""

import uvicorn

from retailhub.app import app
from retailhub.config import settings


if __name__ == "__main__":
    uvicorn.run("run:app", host="0.0.0.0", port=8000, reload=settings.debug)
