"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all database tables for the Exam Preview Service:
- exams: Exam documents with preview state and marking rules
- audit_logs: Append-only workflow audit trail

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Exams Table ───────────────────────────────────────────
    op.create_table(
        'exams',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('questions', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('preview_state', sa.String(32), nullable=False, server_default='DRAFT'),
        sa.Column('approval_status', sa.String(32), nullable=False, server_default='DRAFT'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('preview_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('previewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('previewed_by', sa.String(64), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finalized_by', sa.String(64), nullable=True),
        sa.CheckConstraint(
            "preview_state IN ('DRAFT', 'PREVIEW_IN_PROGRESS', 'PREVIEW_COMPLETE', 'FINALIZED')",
            name='ck_exams_preview_state'
        ),
    )

    op.create_index('ix_exams_created_by', 'exams', ['created_by'])
    op.create_index('ix_exams_preview_state', 'exams', ['preview_state'])

    # ── Audit Logs Table ──────────────────────────────────────
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('actor_id', sa.String(64), nullable=False),
        sa.Column('actor_role', sa.String(32), nullable=False, server_default='unknown'),
        sa.Column('target_type', sa.String(32), nullable=False, server_default='Exam'),
        sa.Column('target_id', sa.String(36), sa.ForeignKey('exams.id'), nullable=False),
        sa.Column('changes', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='success'),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_type', 'target_id', 'created_at'])
    op.create_index('ix_audit_logs_actor', 'audit_logs', ['actor_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_audit_logs_actor', table_name='audit_logs')
    op.drop_index('ix_audit_logs_target', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_exams_preview_state', table_name='exams')
    op.drop_index('ix_exams_created_by', table_name='exams')
    op.drop_table('exams')
