from uuid import uuid4
from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import relationship

from .base import Base


class User(Base):
    __tablename__ = 'user'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(True), nullable=False, server_default=func.now())
    name = Column(String(255))
    email = Column(String(320), unique=True)

    # Relationships
    app_memberships = relationship('AppMember', back_populates='user', uselist=True, lazy='select')
    organization_memberships = relationship('OrganizationMember', back_populates='user', uselist=True, lazy='select')
    team_memberships = relationship('TeamMember', back_populates='user', uselist=True, lazy='select')
