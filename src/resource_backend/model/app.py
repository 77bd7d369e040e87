from sqlalchemy import (
    Column, DateTime, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, func
)
from sqlalchemy.orm import relationship

from .base import Base, JSONType


class Organization(Base):
    __tablename__ = 'organization'

    id = Column(String(255), primary_key=True)
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())
    name = Column(String(255))

    # Relationships
    members = relationship('OrganizationMember', back_populates='organization', uselist=True, lazy='select')
    apps = relationship('App', back_populates='organization', uselist=True, lazy='select')


class OrganizationMember(Base):
    __tablename__ = 'organization_member'

    organization_id = Column(ForeignKey('organization.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), primary_key=True)
    role = Column(String(255), nullable=False, server_default="Member")

    # Relationships
    organization = relationship('Organization', back_populates='members')
    user = relationship('User', back_populates='organization_memberships')


class App(Base):
    __tablename__ = 'app'

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(True), nullable=False, server_default=func.now())
    organization_id = Column(ForeignKey('organization.id', ondelete='CASCADE'), nullable=False, index=True)
    path = Column(String(255))
    definition = Column(JSONType, nullable=False)

    # Relationships
    organization = relationship('Organization', back_populates='apps')
    members = relationship('AppMember', back_populates='app', uselist=True, lazy='select')
    teams = relationship('Team', back_populates='app', uselist=True, lazy='select')


class AppMember(Base):
    __tablename__ = 'app_member'
    __table_args__ = (
        UniqueConstraint('app_id', 'user_id', name='app_member_app_user_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(ForeignKey('app.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(String(255), nullable=False)

    # Relationships
    app = relationship('App', back_populates='members')
    user = relationship('User', back_populates='app_memberships')


class Team(Base):
    __tablename__ = 'team'

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(ForeignKey('app.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Relationships
    app = relationship('App', back_populates='teams')
    members = relationship('TeamMember', back_populates='team', uselist=True, lazy='select')


class TeamMember(Base):
    __tablename__ = 'team_member'
    __table_args__ = (
        Index('team_member_user_idx', 'user_id'),
    )

    team_id = Column(ForeignKey('team.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(ForeignKey('user.id', ondelete='CASCADE'), primary_key=True)
    role = Column(Enum('member', 'manager', name='team_role'), nullable=False, server_default='member')

    # Relationships
    team = relationship('Team', back_populates='members')
    user = relationship('User', back_populates='team_memberships')
