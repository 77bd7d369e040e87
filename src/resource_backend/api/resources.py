from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.orm import Session
from resource_backend.api.auth import (
    get_app_context,
    get_current_principal,
    get_current_teams,
    get_remapper,
    get_request_time,
)
from resource_backend.api.exceptions import BadRequestException
from resource_backend.database import get_db
from resource_backend.interface.resources import AppContext
from resource_backend.permissions.principal import Principal, TeamMembership
from resource_backend.services.resource_payload import (
    ResourcePayload,
    UploadedAsset,
    normalize_csv,
    normalize_json,
    normalize_multipart,
)
from resource_backend.services.resource_service import ResourceService
from resource_backend.services.resource_views import Remapper
from resource_backend.settings import settings

resources_router = APIRouter()


def get_resource_service(
    app: AppContext = Depends(get_app_context),
    principal: Principal = Depends(get_current_principal),
    teams: List[TeamMembership] = Depends(get_current_teams),
    now: datetime = Depends(get_request_time),
    remapper: Optional[Remapper] = Depends(get_remapper),
    db: Session = Depends(get_db),
) -> ResourceService:
    return ResourceService(db, app, principal, teams, now, remapper=remapper, max_top=settings.RESOURCES_QUERY_MAX_TOP)


async def get_resource_payload(resource_type: str, request: Request,
                               service: ResourceService = Depends(get_resource_service)) -> ResourcePayload:
    resource = service.resolve(resource_type)
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        assets = []
        for upload in form.getlist("assets"):
            if isinstance(upload, str):
                continue
            assets.append(UploadedAsset(data=await upload.read(), mime=upload.content_type, filename=upload.filename))
        resource_field = form.get("resource")
        if resource_field is not None and not isinstance(resource_field, str):
            resource_field = (await resource_field.read()).decode("utf-8")
        return normalize_multipart(resource_field, assets, resource.properties, resource.id_field)

    if content_type.startswith("text/csv"):
        body = await request.body()
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            raise BadRequestException("CSV payload must be UTF-8 encoded")
        return normalize_csv(text, resource.properties, resource.id_field)

    try:
        body = await request.json()
    except ValueError:
        raise BadRequestException("Request body is not valid JSON")
    return normalize_json(body)


@resources_router.get("/{resource_type}")
def query_resources(resource_type: str, request: Request,
                    service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.query_resources(resource_type, dict(request.query_params))


@resources_router.get("/{resource_type}/$count")
def count_resources(resource_type: str, request: Request,
                    service: ResourceService = Depends(get_resource_service)) -> int:
    return service.count_resources(resource_type, dict(request.query_params))


@resources_router.get("/{resource_type}/{resource_id}")
def get_resource(resource_type: str, resource_id: int, view: Optional[str] = None,
                 service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.get_resource(resource_type, resource_id, view)


@resources_router.post("/{resource_type}", status_code=status.HTTP_201_CREATED)
def create_resources(resource_type: str,
                     payload: ResourcePayload = Depends(get_resource_payload),
                     service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.create_resources(resource_type, payload)


@resources_router.put("/{resource_type}")
def update_resources(resource_type: str,
                     payload: ResourcePayload = Depends(get_resource_payload),
                     service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.update_resources(resource_type, payload)


@resources_router.put("/{resource_type}/{resource_id}")
def update_resource(resource_type: str, resource_id: int,
                    payload: ResourcePayload = Depends(get_resource_payload),
                    service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.update_resource(resource_type, resource_id, payload)


@resources_router.patch("/{resource_type}/{resource_id}")
def patch_resource(resource_type: str, resource_id: int,
                   payload: ResourcePayload = Depends(get_resource_payload),
                   service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.update_resource(resource_type, resource_id, payload, partial=True)


@resources_router.delete("/{resource_type}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resources(resource_type: str, resource_ids: List[Any] = Body(...),
                     service: ResourceService = Depends(get_resource_service)):
    service.delete_resources(resource_type, resource_ids)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@resources_router.delete("/{resource_type}/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resource(resource_type: str, resource_id: int,
                    service: ResourceService = Depends(get_resource_service)):
    service.delete_resource(resource_type, resource_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@resources_router.get("/{resource_type}/{resource_id}/subscriptions")
def get_resource_subscriptions(resource_type: str, resource_id: int, endpoint: Optional[str] = None,
                               service: ResourceService = Depends(get_resource_service)) -> Any:
    return service.get_subscription_status(resource_type, resource_id, endpoint)
