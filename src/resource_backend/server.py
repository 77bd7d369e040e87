import logging
from fastapi import FastAPI
from resource_backend.api.resources import resources_router
from resource_backend.settings import settings

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(title="Resource Backend")

app.include_router(
    resources_router,
    prefix="/apps/{app_id}/resources",
    tags=["resources"]
)
