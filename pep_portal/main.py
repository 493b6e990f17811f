from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pep_portal.api.directory import router as directory_router
from pep_portal.api.documents import router as documents_router
from pep_portal.api.evaluations import router as evaluations_router
from pep_portal.api.health import router as health_router
from pep_portal.api.root import router as root_router
from pep_portal.core.config import settings
from pep_portal.core.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="PEP Portal")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(root_router)
app.include_router(health_router)
app.include_router(evaluations_router)
app.include_router(directory_router)
app.include_router(documents_router)
