"""
Request orchestration for app resources.

``ResourceService`` is created per request with the caller, the caller's
teams and the request's ``now``. Each operation resolves the definition,
authorizes, interprets the request, runs the mutation inside one store
transaction and shapes the response.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from resource_backend.api.exceptions import (
    MISSING_ID_IN_BATCH,
    UNKNOWN_ID_IN_BATCH,
    BadRequestException,
    NotImplementedException,
    ResourceBatchException,
    ResourceNotFoundException,
)
from resource_backend.interface.filter import FilterSyntaxError
from resource_backend.interface.query import (
    QueryParameterError,
    ResourceQuery,
    apply_select,
    parse_resource_query,
    selectable_keys,
)
from resource_backend.interface.resources import AppContext, ResourceAction, ResourceView
from resource_backend.model.resource import Asset, Resource
from resource_backend.permissions.core import AccessDecision, check_resource_permissions, teammate_ids
from resource_backend.permissions.principal import Principal, TeamMembership
from resource_backend.repositories.filter_compiler import ResourceFilterCompiler
from resource_backend.repositories.resource import ResourceRepository
from resource_backend.repositories.subscription import SubscriptionRepository
from resource_backend.services.resource_definitions import EffectiveResourceDefinition, ResourceDefinitionResolver
from resource_backend.services.resource_expiration import (
    expiration_on_create,
    expiration_on_update,
    format_timestamp,
    parse_timestamp,
)
from resource_backend.services.resource_payload import DEFAULT_ASSET_MIME, ResourcePayload, UploadedAsset
from resource_backend.services.resource_validation import (
    ResourceValidator,
    binary_references,
    replace_binary_references,
)
from resource_backend.services.resource_versioning import snapshot_resource
from resource_backend.services.resource_views import Remapper, ViewTransformer

logger = logging.getLogger(__name__)


def _user_display(user_id: Optional[str], user) -> Dict[str, Any]:
    return {"id": user_id, "name": user.name if user is not None else None}


def resource_envelope(resource: EffectiveResourceDefinition, instance: Resource) -> Dict[str, Any]:
    """The default JSON representation of an instance"""
    envelope = {key: value for key, value in (instance.data or {}).items() if key != resource.id_field}
    envelope["$created"] = format_timestamp(instance.created_at)
    envelope["$updated"] = format_timestamp(instance.updated_at)
    envelope[resource.id_field] = instance.id

    if instance.author_id is not None:
        envelope["$author"] = _user_display(instance.author_id, instance.author)
    if instance.editor_id is not None:
        envelope["$editor"] = _user_display(instance.editor_id, instance.editor)
    if instance.expires is not None:
        envelope["$expires"] = format_timestamp(instance.expires)

    return envelope


def split_system_fields(resource: EffectiveResourceDefinition, item: Mapping[str, Any]) -> Tuple[Dict[str, Any], Optional[bool], Optional[datetime]]:
    """Separate ``$clonable`` and ``$expires`` from the data to persist"""
    data = dict(item)
    data.pop(resource.id_field, None)
    clonable = data.pop("$clonable", None)
    expires = parse_timestamp(data.pop("$expires", None))
    return data, clonable, expires


def _resource_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


class ResourceService:

    def __init__(
        self,
        db: Session,
        app: AppContext,
        principal: Principal,
        teams: List[TeamMembership],
        now: datetime,
        remapper: Optional[Remapper] = None,
        max_top: Optional[int] = None,
    ):
        self.app = app
        self.principal = principal
        self.teams = teams
        self.now = now
        self.remapper = remapper
        self.max_top = max_top

        self.resolver = ResourceDefinitionResolver(app)
        self.resources = ResourceRepository(db)
        self.subscriptions = SubscriptionRepository(db)

    def resolve(self, resource_type: str) -> EffectiveResourceDefinition:
        return self.resolver.resolve(resource_type)

    def _authorize(self, resource: EffectiveResourceDefinition, action: ResourceAction,
                   view: Optional[str] = None) -> AccessDecision:
        roles = resource.view_roles(view) if view else None
        return check_resource_permissions(self.principal, self.teams, resource, action, roles=roles)

    def _find(self, resource: EffectiveResourceDefinition, resource_id: int, decision: AccessDecision,
              message: Optional[str] = None) -> Resource:
        instance = self.resources.find_by_id(
            resource.app_id, resource.type, resource_id, self.now, author_ids=decision.author_ids
        )
        if instance is None:
            raise ResourceNotFoundException(message)
        return instance

    def _transformer(self) -> ViewTransformer:
        if self.remapper is None:
            raise NotImplementedException("No remapper is available for views")
        return ViewTransformer(self.remapper)

    def _view(self, resource: EffectiveResourceDefinition, name: Optional[str]) -> Optional[ResourceView]:
        if not name:
            return None
        return resource.view(name)

    def _parse_query(self, resource: EffectiveResourceDefinition, action: ResourceAction,
                     params: Mapping[str, Any]) -> ResourceQuery:
        try:
            return parse_resource_query(params, resource.query_defaults(action), self.max_top)
        except QueryParameterError as e:
            logger.warning(f"Rejected {e.parameter} for {resource.type}: {e}")
            raise BadRequestException(str(e))

    def _visible_authors(self, decision: AccessDecision, query: ResourceQuery) -> Optional[Set[str]]:
        author_ids = decision.author_ids
        if query.team is not None:
            team_authors = teammate_ids(self.teams, query.team)
            author_ids = team_authors if author_ids is None else author_ids & team_authors
        return author_ids

    def _compile(self, resource: EffectiveResourceDefinition, query: ResourceQuery):
        compiler = ResourceFilterCompiler(resource.properties)
        try:
            return compiler.compile(query.filter), compiler.order_by(query.order_by)
        except FilterSyntaxError as e:
            logger.warning(f"Rejected $filter for {resource.type}: {e}")
            raise BadRequestException(f"Unable to process $filter: {e}")

    def query_resources(self, resource_type: str, params: Mapping[str, Any]) -> List[Any]:
        resource = self.resolve(resource_type)
        query = self._parse_query(resource, ResourceAction.query, params)
        view = self._view(resource, query.view)
        decision = self._authorize(resource, ResourceAction.query, query.view)

        predicate, order_by = self._compile(resource, query)

        instances = self.resources.find_many(
            resource.app_id,
            resource.type,
            self.now,
            predicate=predicate,
            order_by=order_by,
            limit=query.top,
            offset=query.skip,
            author_ids=self._visible_authors(decision, query),
        )

        allowed = selectable_keys(resource.properties, resource.id_field)
        items = [apply_select(resource_envelope(resource, instance), query.select, allowed) for instance in instances]

        if view is not None:
            transformer = self._transformer()
            context = transformer.context(resource, query.view, self.principal.display())
            return transformer.transform_many(view, items, context)

        return items

    def count_resources(self, resource_type: str, params: Mapping[str, Any]) -> int:
        resource = self.resolve(resource_type)
        query = self._parse_query(resource, ResourceAction.count, params)
        decision = self._authorize(resource, ResourceAction.count)

        predicate, _ = self._compile(resource, query)

        return self.resources.count_where(
            resource.app_id,
            resource.type,
            self.now,
            predicate=predicate,
            author_ids=self._visible_authors(decision, query),
        )

    def get_resource(self, resource_type: str, resource_id: int, view_name: Optional[str] = None) -> Any:
        resource = self.resolve(resource_type)
        view = self._view(resource, view_name)
        decision = self._authorize(resource, ResourceAction.get, view_name)

        envelope = resource_envelope(resource, self._find(resource, resource_id, decision))

        if view is not None:
            transformer = self._transformer()
            return transformer.transform(view, envelope, transformer.context(resource, view_name, self.principal.display()))

        return envelope

    def _store_assets(self, resource: EffectiveResourceDefinition, instance: Resource, data: Dict[str, Any],
                      assets: List[UploadedAsset]) -> Dict[str, str]:
        """Create asset rows for the placeholders ``data`` references, returns placeholder -> asset id"""
        replacements: Dict[str, str] = {}

        for reference in binary_references(resource.schema, data):
            index = _resource_id(reference)
            if index is None or index >= len(assets) or reference in replacements:
                continue

            upload = assets[index]
            asset = Asset(
                id=str(uuid4()),
                app_id=resource.app_id,
                resource_id=instance.id,
                user_id=self.principal.user_id,
                data=upload.data,
                mime=upload.mime or DEFAULT_ASSET_MIME,
                filename=upload.filename,
                created_at=self.now,
                updated_at=self.now,
            )
            self.resources.add_asset(asset)
            replacements[reference] = asset.id

        return replacements

    def _validator(self, resource: EffectiveResourceDefinition) -> ResourceValidator:
        return ResourceValidator(resource.schema, self.now)

    def create_resources(self, resource_type: str, payload: ResourcePayload) -> Any:
        resource = self.resolve(resource_type)
        self._authorize(resource, ResourceAction.create)

        items = [{k: v for k, v in item.items() if k != resource.id_field} for item in payload.items]
        self._validator(resource).check(items, is_array=payload.is_array, asset_count=len(payload.assets))

        created = []
        with self.resources.transaction():
            for item in items:
                data, clonable, expires = split_system_fields(resource, item)

                instance = self.resources.insert(Resource(
                    app_id=resource.app_id,
                    type=resource.type,
                    data=data,
                    author_id=self.principal.user_id,
                    clonable=bool(clonable),
                    expires=expiration_on_create(resource.expires, expires, self.now),
                    created_at=self.now,
                    updated_at=self.now,
                ))

                replacements = self._store_assets(resource, instance, data, payload.assets)
                if replacements:
                    self.resources.update_instance(
                        instance, data=replace_binary_references(resource.schema, data, replacements)
                    )

                created.append(instance)

        envelopes = [resource_envelope(resource, instance) for instance in created]
        return envelopes if payload.is_array else envelopes[0]

    def _apply_update(self, resource: EffectiveResourceDefinition, instance: Resource, item: Dict[str, Any],
                      assets: List[UploadedAsset], existing_assets: List[Asset]) -> Resource:
        data, clonable, expires = split_system_fields(resource, item)

        version = snapshot_resource(instance, resource.history, self.principal.user_id, self.now)
        if version is not None:
            self.resources.add_version(version)

        replacements = self._store_assets(resource, instance, data, assets)
        data = replace_binary_references(resource.schema, data, replacements)

        referenced = set(binary_references(resource.schema, data))
        self.resources.delete_assets([asset for asset in existing_assets if asset.id not in referenced])

        changes: Dict[str, Any] = {
            "data": data,
            "editor_id": self.principal.user_id,
            "updated_at": self.now,
            "expires": expiration_on_update(instance.expires, expires),
        }
        if clonable is not None:
            changes["clonable"] = bool(clonable)

        return self.resources.update_instance(instance, **changes)

    def update_resource(self, resource_type: str, resource_id: int, payload: ResourcePayload,
                        partial: bool = False) -> Dict[str, Any]:
        resource = self.resolve(resource_type)
        decision = self._authorize(resource, ResourceAction.patch if partial else ResourceAction.update)

        if payload.is_array or len(payload.items) != 1:
            raise BadRequestException("Expected a single resource")

        instance = self._find(resource, resource_id, decision)

        item = {k: v for k, v in payload.items[0].items() if k != resource.id_field}
        if partial:
            item = {**(instance.data or {}), **item}

        existing_assets = self.resources.assets(instance.id)
        self._validator(resource).check(
            [item],
            asset_count=len(payload.assets),
            existing_asset_ids=[{asset.id for asset in existing_assets}],
        )

        with self.resources.transaction():
            self._apply_update(resource, instance, item, payload.assets, existing_assets)

        return resource_envelope(resource, instance)

    def update_resources(self, resource_type: str, payload: ResourcePayload) -> List[Dict[str, Any]]:
        resource = self.resolve(resource_type)
        decision = self._authorize(resource, ResourceAction.update)

        missing = [item for item in payload.items if _resource_id(item.get(resource.id_field)) is None]
        if missing:
            raise ResourceBatchException(MISSING_ID_IN_BATCH, missing)

        ids = [_resource_id(item[resource.id_field]) for item in payload.items]
        found = {
            instance.id: instance
            for instance in self.resources.find_by_ids(
                resource.app_id, resource.type, ids, self.now, author_ids=decision.author_ids
            )
        }

        unknown = [item for item, resource_id in zip(payload.items, ids) if resource_id not in found]
        if unknown:
            raise ResourceBatchException(UNKNOWN_ID_IN_BATCH, unknown)

        existing_assets = {resource_id: self.resources.assets(resource_id) for resource_id in found}
        items = [{k: v for k, v in item.items() if k != resource.id_field} for item in payload.items]

        self._validator(resource).check(
            items,
            is_array=True,
            asset_count=len(payload.assets),
            existing_asset_ids=[{asset.id for asset in existing_assets[resource_id]} for resource_id in ids],
        )

        updated = []
        with self.resources.transaction():
            for item, resource_id in zip(items, ids):
                instance = found[resource_id]
                updated.append(self._apply_update(resource, instance, item, payload.assets, existing_assets[resource_id]))

        return [resource_envelope(resource, instance) for instance in updated]

    def delete_resource(self, resource_type: str, resource_id: int) -> None:
        resource = self.resolve(resource_type)
        decision = self._authorize(resource, ResourceAction.delete)
        instance = self._find(resource, resource_id, decision)

        with self.resources.transaction():
            self.resources.delete_where(
                resource.app_id, resource.type, [instance.id], self.now, author_ids=decision.author_ids
            )

    def delete_resources(self, resource_type: str, resource_ids: List[Any]) -> None:
        resource = self.resolve(resource_type)
        decision = self._authorize(resource, ResourceAction.delete)

        ids = [resource_id for resource_id in resource_ids if isinstance(resource_id, int) and not isinstance(resource_id, bool)]

        with self.resources.transaction():
            self.resources.delete_where(
                resource.app_id, resource.type, ids, self.now, author_ids=decision.author_ids
            )

    def get_subscription_status(self, resource_type: str, resource_id: int, endpoint: Optional[str]) -> Dict[str, Any]:
        resource = self.resolve(resource_type)
        decision = self._authorize(resource, ResourceAction.get)
        instance = self._find(resource, resource_id, decision, message="Resource not found.")

        status = {"update": False, "delete": False}
        if endpoint:
            status = self.subscriptions.resource_status(resource.app_id, instance.id, endpoint)

        return {"id": instance.id, **status}
