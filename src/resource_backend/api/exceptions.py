from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status

class NotFoundException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_404_NOT_FOUND
        self.detail = detail or "Not found"

class ForbiddenException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_403_FORBIDDEN
        self.detail = detail or "Forbidden"

class BadRequestException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_400_BAD_REQUEST
        self.detail = detail or "Bad request"

class UnauthorizedException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_401_UNAUTHORIZED
        self.detail = detail or "Unauthorized"

class NotImplementedException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_501_NOT_IMPLEMENTED
        self.detail = detail or "Not Implemented"


RESOURCE_NOT_FOUND = "Resource not found"
MISSING_ID_IN_BATCH = "List of resources contained a resource without an ID."
UNKNOWN_ID_IN_BATCH = "One or more resources could not be found."
VALIDATION_FAILED = "Resource validation failed"


class ResourceTypeNotFoundException(NotFoundException):
    NO_RESOURCES = "no_resources"
    UNKNOWN_TYPE = "unknown_type"

    def __init__(self, resource_type: str, reason: str):
        super().__init__(detail=f"App does not have resources called {resource_type}")
        self.resource_type = resource_type
        self.reason = reason

class ResourceNotFoundException(NotFoundException):
    def __init__(self, detail: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(detail=detail or RESOURCE_NOT_FOUND, headers=headers)

class ViewNotFoundException(NotFoundException):
    def __init__(self, view: str, resource_type: str):
        super().__init__(detail=f"View {view} does not exist for resource type {resource_type}")
        self.view = view
        self.resource_type = resource_type

class ResourceValidationException(BadRequestException):
    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(detail={"message": VALIDATION_FAILED, "data": {"errors": errors}})
        self.errors = errors

class ResourceBatchException(BadRequestException):
    def __init__(self, message: str, offending: List[Any]):
        super().__init__(detail={"message": message, "data": offending})
        self.offending = offending
