"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk(name='id'):
    return sa.Column(name, postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def upgrade() -> None:
    # pgcrypto for gen_random_uuid
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.create_table(
        'questions',
        _uuid_pk(),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_questions_category', 'questions', ['category'])

    op.create_table(
        'question_revisions',
        _uuid_pk(),
        sa.Column('question_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', postgresql.JSONB(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False, server_default=sa.text('1.0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_question_revisions_question_created', 'question_revisions', ['question_id', 'created_at'])

    op.create_table(
        'category_catalog',
        _uuid_pk(),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('template_id', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'organization_categories',
        _uuid_pk(),
        sa.Column('org_id', sa.String(), nullable=False),
        sa.Column('catalog_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('category_catalog.id'), nullable=False),
        sa.Column('weight', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('org_id', 'catalog_id', name='uq_organization_categories_org_catalog'),
    )
    op.create_index('ix_organization_categories_org_id', 'organization_categories', ['org_id'])

    op.create_table(
        'assessments',
        _uuid_pk(),
        sa.Column('org_id', sa.String(), nullable=False),
        sa.Column('language', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_assessments_org_id', 'assessments', ['org_id'])

    op.create_table(
        'responses',
        _uuid_pk(),
        sa.Column('assessment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('assessments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('revision_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('question_revisions.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('assessment_id', 'revision_id', 'version', name='uq_responses_assessment_revision_version'),
    )
    op.create_index('ix_responses_revision_id', 'responses', ['revision_id'])

    op.create_table(
        'files',
        _uuid_pk(),
        sa.Column('org_id', sa.String(), nullable=False),
        sa.Column('content', sa.LargeBinary(), nullable=False),
        sa.Column('meta_data', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_files_org_id', 'files', ['org_id'])

    op.create_table(
        'response_files',
        sa.Column('response_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('responses.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('file_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('files.id'), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_response_files_file_id', 'response_files', ['file_id'])

    op.create_table(
        'temp_submissions',
        sa.Column('assessment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('assessments.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('org_id', sa.String(), nullable=False),
        sa.Column('content', postgresql.JSONB(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('status', sa.String(), nullable=False, server_default='under_review'),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_temp_submissions_org_id', 'temp_submissions', ['org_id'])

    # No foreign key to assessments: a submission outlives its assessment
    op.create_table(
        'assessment_submissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('org_id', sa.String(), nullable=False),
        sa.Column('content', postgresql.JSONB(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('status', sa.String(), nullable=False, server_default='under_review'),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_assessment_submissions_org_id', 'assessment_submissions', ['org_id'])

    op.create_table(
        'submission_reports',
        _uuid_pk(),
        sa.Column('submission_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('assessment_submissions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('report_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='generating'),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('data', postgresql.JSONB(), nullable=True),
    )
    op.create_index('ix_submission_reports_submission_id', 'submission_reports', ['submission_id'])


def downgrade() -> None:
    op.drop_table('submission_reports')
    op.drop_table('assessment_submissions')
    op.drop_table('temp_submissions')
    op.drop_table('response_files')
    op.drop_table('files')
    op.drop_table('responses')
    op.drop_table('assessments')
    op.drop_table('organization_categories')
    op.drop_table('category_catalog')
    op.drop_table('question_revisions')
    op.drop_table('questions')
