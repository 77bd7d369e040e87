from typing import Any, Dict, List, Optional, Protocol
from resource_backend.interface.resources import ResourceView


class Remapper(Protocol):
    """Evaluates a remap expression against an input value"""

    def evaluate(self, expression: Any, data: Any, context: Dict[str, Any]) -> Any:
        ...


class ViewTransformer:
    """Projects resource envelopes through a view's remap expression"""

    def __init__(self, remapper: Remapper):
        self.remapper = remapper

    def context(self, resource, view_name: str, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "app_id": resource.app_id,
            "resource_type": resource.type,
            "view": view_name,
            "user": user,
        }

    def transform(self, view: ResourceView, item: Dict[str, Any], context: Dict[str, Any]) -> Any:
        return self.remapper.evaluate(view.remap, item, context)

    def transform_many(self, view: ResourceView, items: List[Dict[str, Any]], context: Dict[str, Any]) -> List[Any]:
        return [self.transform(view, item, context) for item in items]
