from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, JSON, DateTime, UniqueConstraint, Table, Column, text
from typing import Optional, Dict, Any, List

from .authz import Base


# Roles authorised on an approval step
approval_step_roles = Table(
    'approval_step_roles',
    Base.metadata,
    Column('approval_step_id', ForeignKey('approval_steps.id', ondelete='CASCADE'), primary_key=True),
    Column('role_id', ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
)


class PermitTemplate(Base):
    __tablename__ = 'permit_templates'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    template_config: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class PermitType(Base):
    __tablename__ = 'permit_types'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subdistrict_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    permit_template_id: Mapped[Optional[int]] = mapped_column(ForeignKey('permit_templates.id', ondelete='SET NULL'), nullable=True, index=True)
    template_config: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    body_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    field_definitions: Mapped[List['FieldDefinition']] = relationship(
        'FieldDefinition', cascade='all', order_by='FieldDefinition.display_order'
    )
    approval_steps: Mapped[List['ApprovalStep']] = relationship(
        'ApprovalStep', cascade='all', order_by='ApprovalStep.step_order'
    )
    requirement_links: Mapped[List['PermitTypeRequirement']] = relationship(
        'PermitTypeRequirement', cascade='all'
    )
    requests: Mapped[List['PermitRequest']] = relationship('PermitRequest', cascade='all')
    register_counter = relationship('RegisterCounter', uselist=False, cascade='all')
    template = relationship('PermitTemplate')

    __table_args__ = (UniqueConstraint('slug', 'subdistrict_id', name='uq_permit_type_slug_subdistrict'),)


class FieldDefinition(Base):
    __tablename__ = 'permit_field_definitions'
    TYPE_TEXT = 'text'
    TYPE_TEXTAREA = 'textarea'
    TYPE_NUMBER = 'number'
    TYPE_EMAIL = 'email'
    TYPE_DATE = 'date'
    TYPE_DATE_RANGE = 'date_range'
    TYPE_CHECKBOX = 'checkbox'
    TYPE_SELECT = 'select'
    TYPE_FILE = 'file'
    TYPE_JSON = 'json'
    ALL_TYPES = (
        TYPE_TEXT, TYPE_TEXTAREA, TYPE_NUMBER, TYPE_EMAIL, TYPE_DATE,
        TYPE_DATE_RANGE, TYPE_CHECKBOX, TYPE_SELECT, TYPE_FILE, TYPE_JSON,
    )
    CHOICE_TYPES = (TYPE_CHECKBOX, TYPE_SELECT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_type_id: Mapped[int] = mapped_column(ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, index=True)
    field_key: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    field_label: Mapped[str] = mapped_column(String(255), nullable=False)
    field_type: Mapped[str] = mapped_column(String(32), nullable=False, default=TYPE_TEXT)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    options: Mapped[Optional[List[Any]]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    __table_args__ = (UniqueConstraint('permit_type_id', 'field_key', name='uq_field_definition_key'),)


class Requirement(Base):
    """Supporting document shared across permit types; mandatory-ness lives on the link."""
    __tablename__ = 'permit_requirements'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subdistrict_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    type_links: Mapped[List['PermitTypeRequirement']] = relationship(
        'PermitTypeRequirement', back_populates='requirement', cascade='all'
    )
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class PermitTypeRequirement(Base):
    __tablename__ = 'permit_type_requirements'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_type_id: Mapped[int] = mapped_column(ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, index=True)
    requirement_id: Mapped[int] = mapped_column(ForeignKey('permit_requirements.id', ondelete='CASCADE'), nullable=False, index=True)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requirement = relationship('Requirement', back_populates='type_links')

    __table_args__ = (UniqueConstraint('permit_type_id', 'requirement_id', name='uq_permit_type_requirement'),)


class ApprovalStep(Base):
    __tablename__ = 'approval_steps'
    MODE_SINGLE = 'single'
    MODE_ALL = 'all'
    ALL_MODES = (MODE_SINGLE, MODE_ALL)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_type_id: Mapped[int] = mapped_column(ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, index=True)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approval_mode: Mapped[str] = mapped_column(String(16), nullable=False, default=MODE_SINGLE)
    roles = relationship('Role', secondary=approval_step_roles, order_by='Role.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    __table_args__ = (UniqueConstraint('permit_type_id', 'step_order', name='uq_approval_step_order'),)

    @property
    def role_ids(self):
        return [r.id for r in self.roles]

    @property
    def requires_all(self) -> bool:
        # anything other than the unanimous mode is evaluated as single-approver
        return (self.approval_mode or '').lower() == self.MODE_ALL


__all__ = [
    'approval_step_roles', 'PermitTemplate', 'PermitType', 'FieldDefinition',
    'Requirement', 'PermitTypeRequirement', 'ApprovalStep',
]
