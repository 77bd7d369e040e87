from .base import Base, metadata, JSONType
from .auth import User
from .app import Organization, OrganizationMember, App, AppMember, Team, TeamMember
from .resource import Resource, ResourceVersion, Asset, AppSubscription, ResourceSubscription

# Import all models to ensure relationships are properly set up
from . import auth, app, resource

__all__ = [
    'Base',
    'metadata',
    'JSONType',
    # Auth models
    'User',
    # App models
    'Organization',
    'OrganizationMember',
    'App',
    'AppMember',
    'Team',
    'TeamMember',
    # Resource models
    'Resource',
    'ResourceVersion',
    'Asset',
    'AppSubscription',
    'ResourceSubscription',
]
