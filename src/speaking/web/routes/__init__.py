"""Route handlers for the Web API."""

from speaking.web.routes.health import router as health_router
from speaking.web.routes.tests import router as tests_router
from speaking.web.routes.transcribe import router as transcribe_router
from speaking.web.routes.scoring import router as scoring_router
from speaking.web.routes.recordings import router as recordings_router

__all__ = [
    "health_router",
    "tests_router",
    "transcribe_router",
    "scoring_router",
    "recordings_router",
]
