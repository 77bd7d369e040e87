from uuid import uuid4
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, LargeBinary, String, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base, JSONType


class Resource(Base):
    __tablename__ = 'resource'
    __table_args__ = (
        Index('resource_app_type_idx', 'app_id', 'type'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(ForeignKey('app.id', ondelete='CASCADE'), nullable=False)
    type = Column(String(255), nullable=False)
    data = Column(JSONType, nullable=False)
    author_id = Column(ForeignKey('user.id', ondelete='SET NULL'), index=True)
    editor_id = Column(ForeignKey('user.id', ondelete='SET NULL'))
    clonable = Column(Boolean, nullable=False, default=False)
    expires = Column(DateTime(True))
    created_at = Column(DateTime(True), nullable=False)
    updated_at = Column(DateTime(True), nullable=False)

    # Relationships
    app = relationship('App')
    author = relationship('User', foreign_keys=[author_id])
    editor = relationship('User', foreign_keys=[editor_id])
    versions = relationship('ResourceVersion', back_populates='resource', uselist=True, lazy='select',
                            cascade='all, delete-orphan')
    assets = relationship('Asset', back_populates='resource', uselist=True, lazy='select',
                          cascade='all, delete-orphan')
    subscriptions = relationship('ResourceSubscription', back_populates='resource', uselist=True, lazy='select',
                                 cascade='all, delete-orphan')


class ResourceVersion(Base):
    __tablename__ = 'resource_version'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    resource_id = Column(ForeignKey('resource.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(ForeignKey('user.id', ondelete='SET NULL'))
    created_at = Column(DateTime(True), nullable=False)
    data = Column(JSONType)

    # Relationships
    resource = relationship('Resource', back_populates='versions')
    user = relationship('User')


class Asset(Base):
    __tablename__ = 'asset'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    app_id = Column(ForeignKey('app.id', ondelete='CASCADE'), nullable=False, index=True)
    resource_id = Column(ForeignKey('resource.id', ondelete='CASCADE'), index=True)
    user_id = Column(ForeignKey('user.id', ondelete='SET NULL'))
    data = Column(LargeBinary, nullable=False)
    mime = Column(String(255), nullable=False, default='application/octet-stream')
    filename = Column(String(1024))
    name = Column(String(1024))
    created_at = Column(DateTime(True), nullable=False)
    updated_at = Column(DateTime(True), nullable=False)

    # Relationships
    resource = relationship('Resource', back_populates='assets')


class AppSubscription(Base):
    __tablename__ = 'app_subscription'
    __table_args__ = (
        UniqueConstraint('app_id', 'endpoint', name='app_subscription_endpoint_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(ForeignKey('app.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(ForeignKey('user.id', ondelete='SET NULL'))
    endpoint = Column(String(2048), nullable=False)

    # Relationships
    resource_subscriptions = relationship('ResourceSubscription', back_populates='app_subscription',
                                          uselist=True, lazy='select')


class ResourceSubscription(Base):
    __tablename__ = 'resource_subscription'

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_subscription_id = Column(ForeignKey('app_subscription.id', ondelete='CASCADE'), nullable=False, index=True)
    resource_id = Column(ForeignKey('resource.id', ondelete='CASCADE'), index=True)
    type = Column(String(255), nullable=False)
    action = Column(Enum('create', 'update', 'delete', name='resource_subscription_action'), nullable=False)

    # Relationships
    app_subscription = relationship('AppSubscription', back_populates='resource_subscriptions')
    resource = relationship('Resource', back_populates='subscriptions')
