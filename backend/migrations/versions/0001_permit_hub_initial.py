"""permit hub initial schema

Revision ID: 0001_permit_hub_initial
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_permit_hub_initial'
down_revision = None
branch_labels = None
depends_on = None


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # --- authz ---
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'])
    op.create_index('ix_permissions_service', 'permissions', ['service'])

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('description', sa.String(length=255), nullable=True),
        _updated_at(),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('subdistrict_id', sa.String(length=36), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_subdistrict_id', 'users', ['subdistrict_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )

    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('actor_role_id', sa.Integer(), nullable=True),
        sa.Column('subdistrict_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity', 'entity_id'])

    # --- catalog ---
    op.create_table('permit_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('template_config', sa.JSON(), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_permit_templates_slug', 'permit_templates', ['slug'])

    op.create_table('permit_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subdistrict_id', sa.String(length=36), nullable=True),
        sa.Column('permit_template_id', sa.Integer(), sa.ForeignKey('permit_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('template_config', sa.JSON(), nullable=True),
        sa.Column('body_template', sa.Text(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint('slug', 'subdistrict_id', name='uq_permit_type_slug_subdistrict'),
    )
    op.create_index('ix_permit_types_slug', 'permit_types', ['slug'])
    op.create_index('ix_permit_types_subdistrict_id', 'permit_types', ['subdistrict_id'])
    op.create_index('ix_permit_types_permit_template_id', 'permit_types', ['permit_template_id'])

    op.create_table('permit_field_definitions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_type_id', sa.Integer(), sa.ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field_key', sa.String(length=128), nullable=False),
        sa.Column('field_label', sa.String(length=255), nullable=False),
        sa.Column('field_type', sa.String(length=32), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('options', sa.JSON(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint('permit_type_id', 'field_key', name='uq_field_definition_key'),
    )
    op.create_index('ix_permit_field_definitions_permit_type_id', 'permit_field_definitions', ['permit_type_id'])
    op.create_index('ix_permit_field_definitions_field_key', 'permit_field_definitions', ['field_key'])

    op.create_table('permit_requirements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subdistrict_id', sa.String(length=36), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_permit_requirements_code', 'permit_requirements', ['code'])
    op.create_index('ix_permit_requirements_subdistrict_id', 'permit_requirements', ['subdistrict_id'])

    op.create_table('permit_type_requirements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_type_id', sa.Integer(), sa.ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('requirement_id', sa.Integer(), sa.ForeignKey('permit_requirements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_mandatory', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.UniqueConstraint('permit_type_id', 'requirement_id', name='uq_permit_type_requirement'),
    )
    op.create_index('ix_permit_type_requirements_permit_type_id', 'permit_type_requirements', ['permit_type_id'])
    op.create_index('ix_permit_type_requirements_requirement_id', 'permit_type_requirements', ['requirement_id'])

    op.create_table('approval_steps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_type_id', sa.Integer(), sa.ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('approval_mode', sa.String(length=16), nullable=False, server_default='single'),
        _updated_at(),
        sa.UniqueConstraint('permit_type_id', 'step_order', name='uq_approval_step_order'),
    )
    op.create_index('ix_approval_steps_permit_type_id', 'approval_steps', ['permit_type_id'])

    op.create_table('approval_step_roles',
        sa.Column('approval_step_id', sa.Integer(), sa.ForeignKey('approval_steps.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )

    # --- requests ---
    op.create_table('citizens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('nik', sa.String(length=32), nullable=False, unique=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_citizens_nik', 'citizens', ['nik'])

    op.create_table('permit_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('permit_type_id', sa.Integer(), sa.ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('citizen_id', sa.Integer(), sa.ForeignKey('citizens.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='submitted'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('register_number', sa.String(length=255), nullable=True),
        sa.Column('subdistrict_id', sa.String(length=36), nullable=True),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('ref_id', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
    )
    for col in ('code', 'permit_type_id', 'citizen_id', 'status', 'submitted_at', 'register_number',
                'subdistrict_id', 'company_id', 'ref_id'):
        op.create_index(f'ix_permit_requests_{col}', 'permit_requests', [col])

    op.create_table('permit_request_current_roles',
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table('permit_dynamic_data',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table('permit_uploaded_documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('uploaded_by_id', sa.Integer(), nullable=True),
        sa.Column('requirement_code', sa.String(length=255), nullable=True),
    )
    op.create_index('ix_permit_uploaded_documents_permit_request_id', 'permit_uploaded_documents', ['permit_request_id'])

    op.create_table('permit_approval_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('step', sa.String(length=64), nullable=False),
        sa.Column('step_role_id', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
    )
    op.create_index('ix_permit_approval_logs_permit_request_id', 'permit_approval_logs', ['permit_request_id'])

    op.create_table('permit_approval_decisions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('decider_role_id', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decision', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
    )
    op.create_index('ix_permit_approval_decisions_permit_request_id', 'permit_approval_decisions', ['permit_request_id'])
    op.create_index('ix_permit_approval_decisions_step_order', 'permit_approval_decisions', ['step_order'])

    op.create_table('permit_final_documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_request_id', sa.Integer(), sa.ForeignKey('permit_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('generated_by', sa.Integer(), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_permit_final_documents_permit_request_id', 'permit_final_documents', ['permit_request_id'])

    op.create_table('permit_register_counters',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('permit_type_id', sa.Integer(), sa.ForeignKey('permit_types.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default=sa.text('0')),
    )


def downgrade():
    for table in (
        'permit_register_counters', 'permit_final_documents', 'permit_approval_decisions',
        'permit_approval_logs', 'permit_uploaded_documents', 'permit_dynamic_data',
        'permit_request_current_roles', 'permit_requests', 'citizens', 'approval_step_roles',
        'approval_steps', 'permit_type_requirements', 'permit_requirements',
        'permit_field_definitions', 'permit_types', 'permit_templates', 'audit_logs',
        'user_roles', 'role_permissions', 'users', 'roles', 'permissions',
    ):
        op.drop_table(table)
