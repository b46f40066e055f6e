"""Forms baseline: forms, assignments, submissions, and file linkage.

Revision ID: 0001_forms_baseline
Revises:
Create Date: 2026-10-19

Creates:
- forms
- form_assignments
- form_submissions (one row per form/user)
- form_submission_files
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_forms_baseline'
down_revision = None
branch_labels = None
depends_on = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'forms',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('schema_json', JsonType, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )

    op.create_table(
        'form_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('form_id', sa.Uuid(), sa.ForeignKey('forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('target_type', sa.String(20), nullable=False),
        sa.Column('target_id', sa.Uuid(), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('idx_form_assignments_form', 'form_assignments', ['form_id'])
    op.create_index('idx_form_assignments_target', 'form_assignments', ['target_type', 'target_id'])

    op.create_table(
        'form_submissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('form_id', sa.Uuid(), sa.ForeignKey('forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='not_started'),
        sa.Column('data_json', JsonType, nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_status', sa.String(20), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewer_id', sa.Uuid(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.UniqueConstraint('form_id', 'user_id', name='uq_form_submission_user'),
    )
    op.create_index('idx_form_submissions_form', 'form_submissions', ['form_id'])
    op.create_index('idx_form_submissions_user', 'form_submissions', ['user_id'])
    op.create_index('idx_form_submissions_review', 'form_submissions', ['status', 'review_status'])

    op.create_table(
        'form_submission_files',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('submission_id', sa.Uuid(), sa.ForeignKey('form_submissions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field_key', sa.String(100), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('storage_bucket', sa.String(100), nullable=False),
        sa.Column('storage_path', sa.String(1024), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('checksum_sha256', sa.String(64), nullable=False),
        sa.Column('uploaded_by', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('idx_form_files_submission_field', 'form_submission_files', ['submission_id', 'field_key'])


def downgrade() -> None:
    op.drop_index('idx_form_files_submission_field', table_name='form_submission_files')
    op.drop_table('form_submission_files')
    op.drop_index('idx_form_submissions_review', table_name='form_submissions')
    op.drop_index('idx_form_submissions_user', table_name='form_submissions')
    op.drop_index('idx_form_submissions_form', table_name='form_submissions')
    op.drop_table('form_submissions')
    op.drop_index('idx_form_assignments_target', table_name='form_assignments')
    op.drop_index('idx_form_assignments_form', table_name='form_assignments')
    op.drop_table('form_assignments')
    op.drop_table('forms')
