"""create review import tables

Revision ID: 5e1a7c9d2b40
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5e1a7c9d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATUSES = ('queued', 'running', 'processing', 'succeeded', 'failed', 'cancelled')
PLATFORMS = ('tripadvisor', 'google')


def upgrade() -> None:
    op.create_table(
        'review_sync_jobs',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('operator_id', sa.String(length=64), nullable=False),
        sa.Column('platform', sa.Enum(*PLATFORMS, name='platform'), nullable=False),
        sa.Column('source_business_id', sa.Text(), nullable=False),
        sa.Column('source_business_name', sa.String(length=255), nullable=True),
        sa.Column('full_history', sa.Boolean(), nullable=False),
        sa.Column('status', sa.Enum(*JOB_STATUSES, name='jobstatus'), nullable=False),
        sa.Column('cursor', sa.JSON(), nullable=True),
        sa.Column('imported_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('progress_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_review_sync_jobs_operator_id'), 'review_sync_jobs', ['operator_id'], unique=False)
    op.create_index(op.f('ix_review_sync_jobs_status'), 'review_sync_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_review_sync_jobs_started_at'), 'review_sync_jobs', ['started_at'], unique=False)

    op.create_table(
        'external_reviews',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('operator_id', sa.String(length=64), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('job_id', sa.String(length=64), nullable=True),
        sa.Column('author_name', sa.String(length=255), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('review_url', sa.Text(), nullable=True),
        sa.Column('author_photo_url', sa.Text(), nullable=True),
        sa.Column('place_name', sa.String(length=255), nullable=True),
        sa.Column('helpful_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('response_text', sa.Text(), nullable=True),
        sa.Column('response_date', sa.DateTime(), nullable=True),
        sa.Column('imported_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('operator_id', 'source', 'external_id', name='uq_external_review_natural_key'),
    )
    op.create_index(op.f('ix_external_reviews_job_id'), 'external_reviews', ['job_id'], unique=False)
    op.create_index('ix_external_reviews_operator_source', 'external_reviews', ['operator_id', 'source'], unique=False)

    op.create_table(
        'job_notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.String(length=64), nullable=False),
        sa.Column('operator_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_job_notifications_job_id'), 'job_notifications', ['job_id'], unique=False)
    op.create_index(op.f('ix_job_notifications_operator_id'), 'job_notifications', ['operator_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_job_notifications_operator_id'), table_name='job_notifications')
    op.drop_index(op.f('ix_job_notifications_job_id'), table_name='job_notifications')
    op.drop_table('job_notifications')
    op.drop_index('ix_external_reviews_operator_source', table_name='external_reviews')
    op.drop_index(op.f('ix_external_reviews_job_id'), table_name='external_reviews')
    op.drop_table('external_reviews')
    op.drop_index(op.f('ix_review_sync_jobs_started_at'), table_name='review_sync_jobs')
    op.drop_index(op.f('ix_review_sync_jobs_status'), table_name='review_sync_jobs')
    op.drop_index(op.f('ix_review_sync_jobs_operator_id'), table_name='review_sync_jobs')
    op.drop_table('review_sync_jobs')
    sa.Enum(name='jobstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='platform').drop(op.get_bind(), checkfirst=True)
