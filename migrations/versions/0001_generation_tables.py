"""Generation tables: itineraries, generation_jobs, stage_invocation_logs.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'itineraries',
        sa.Column('id',          sa.Integer(), primary_key=True),
        sa.Column('title',       sa.String(255), nullable=True),
        sa.Column('destination', sa.String(255), nullable=True),
        sa.Column('summary',     sa.Text(), nullable=True),
        sa.Column('sources',     sa.Text(), nullable=True),
        sa.Column('created_at',  sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at',  sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'generation_jobs',
        sa.Column('id',            sa.Integer(), primary_key=True),
        sa.Column('itinerary_id',  sa.Integer(), sa.ForeignKey('itineraries.id'), nullable=False),
        sa.Column('status',        sa.String(16), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at',    sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at',  sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_generation_jobs_itinerary_id', 'generation_jobs', ['itinerary_id'])
    op.create_index(
        'uq_generation_jobs_one_running', 'generation_jobs', ['itinerary_id'],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        'stage_invocation_logs',
        sa.Column('id',            sa.Integer(), primary_key=True),
        sa.Column('itinerary_id',  sa.Integer(), sa.ForeignKey('itineraries.id'), nullable=False),
        sa.Column('stage',         sa.String(64), nullable=False),
        sa.Column('status',        sa.String(16), nullable=False),
        sa.Column('prompt_json',   sa.Text(), nullable=False),
        sa.Column('response_json', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at',    sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stage_invocation_logs_itinerary_id', 'stage_invocation_logs', ['itinerary_id'])


def downgrade() -> None:
    op.drop_index('ix_stage_invocation_logs_itinerary_id', table_name='stage_invocation_logs')
    op.drop_table('stage_invocation_logs')
    op.drop_index('uq_generation_jobs_one_running', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_itinerary_id', table_name='generation_jobs')
    op.drop_table('generation_jobs')
    op.drop_table('itineraries')
