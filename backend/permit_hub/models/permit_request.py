from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, ForeignKey, JSON, DateTime, Table, Column, text, func
from datetime import datetime
from typing import Optional, Dict, Any, List

from .authz import Base


# Denormalised role set of the step a request currently waits on
permit_request_current_roles = Table(
    'permit_request_current_roles',
    Base.metadata,
    Column('permit_request_id', ForeignKey('permit_requests.id', ondelete='CASCADE'), primary_key=True),
    Column('role_id', ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
)


class Citizen(Base):
    __tablename__ = 'citizens'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nik: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    requests: Mapped[List['PermitRequest']] = relationship('PermitRequest', cascade='all')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class PermitRequest(Base):
    __tablename__ = 'permit_requests'
    # Lifecycle status constants
    STATUS_SUBMITTED = 'submitted'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    ALL_STATUSES = (STATUS_SUBMITTED, STATUS_IN_PROGRESS, STATUS_APPROVED, STATUS_REJECTED)
    OPEN_STATUSES = (STATUS_SUBMITTED, STATUS_IN_PROGRESS)
    TERMINAL_STATUSES = (STATUS_APPROVED, STATUS_REJECTED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    permit_type_id: Mapped[int] = mapped_column(ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, index=True)
    citizen_id: Mapped[int] = mapped_column(ForeignKey('citizens.id', ondelete='CASCADE'), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_SUBMITTED, index=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    register_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    subdistrict_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    ref_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    # bumped on every UPDATE; a flush against a stale version raises StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    permit_type = relationship('PermitType', viewonly=True)
    citizen = relationship('Citizen', viewonly=True)
    current_step_roles = relationship('Role', secondary=permit_request_current_roles, order_by='Role.id')
    dynamic_data: Mapped[Optional['DynamicData']] = relationship('DynamicData', uselist=False, cascade='all')
    documents: Mapped[List['UploadedDocument']] = relationship(
        'UploadedDocument', cascade='all', order_by='UploadedDocument.id'
    )
    approval_logs: Mapped[List['ApprovalLog']] = relationship(
        'ApprovalLog', cascade='all', order_by='ApprovalLog.id'
    )
    approval_decisions: Mapped[List['ApprovalDecision']] = relationship(
        'ApprovalDecision', cascade='all', order_by='ApprovalDecision.id'
    )
    final_documents: Mapped[List['FinalDocument']] = relationship(
        'FinalDocument', cascade='all', order_by='FinalDocument.id'
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class DynamicData(Base):
    __tablename__ = 'permit_dynamic_data'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_request_id: Mapped[int] = mapped_column(ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, unique=True, index=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UploadedDocument(Base):
    __tablename__ = 'permit_uploaded_documents'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_request_id: Mapped[int] = mapped_column(ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    uploaded_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    requirement_code: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)


class ApprovalLog(Base):
    """One row per decide call, approved or rejected."""
    __tablename__ = 'permit_approval_logs'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_request_id: Mapped[int] = mapped_column(ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, index=True)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[str] = mapped_column(String(64), nullable=False)
    step_role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    approved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ApprovalDecision(Base):
    """Quorum-bearing approval; only written for approved decisions."""
    __tablename__ = 'permit_approval_decisions'
    DECISION_APPROVED = 'approved'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_request_id: Mapped[int] = mapped_column(ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, index=True)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    decider_role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decision: Mapped[str] = mapped_column(String(16), nullable=False, default=DECISION_APPROVED)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class FinalDocument(Base):
    __tablename__ = 'permit_final_documents'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_request_id: Mapped[int] = mapped_column(ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    generated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RegisterCounter(Base):
    __tablename__ = 'permit_register_counters'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    permit_type_id: Mapped[int] = mapped_column(ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, unique=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


__all__ = [
    'permit_request_current_roles', 'Citizen', 'PermitRequest', 'DynamicData',
    'UploadedDocument', 'ApprovalLog', 'ApprovalDecision', 'FinalDocument', 'RegisterCounter',
]
