"""create_workflow_and_ledger_tables

Revision ID: b7e41c9d2a10
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'b7e41c9d2a10'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create accounts, internships, applications, tasks, submissions and the ledger."""

    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('skill_credits', sa.Integer(), server_default='0', nullable=False),
        sa.CheckConstraint("role IN ('admin', 'company_admin', 'mentor', 'intern')", name='ck_users_valid_role'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'companies',
        *_base_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_companies'),
    )
    op.create_index('ix_companies_id', 'companies', ['id'])
    op.create_index('ix_companies_name', 'companies', ['name'])

    op.create_table(
        'internships',
        *_base_columns(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('mentor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('max_interns', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.CheckConstraint('max_interns >= 0', name='ck_internships_non_negative_capacity'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_internships_company_id_companies'),
        sa.ForeignKeyConstraint(['mentor_id'], ['users.id'], name='fk_internships_mentor_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_internships'),
    )
    op.create_index('ix_internships_id', 'internships', ['id'])
    op.create_index('ix_internships_company_id', 'internships', ['company_id'])
    op.create_index('ix_internships_mentor_id', 'internships', ['mentor_id'])

    op.create_table(
        'project_rooms',
        *_base_columns(),
        sa.Column('internship_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['internship_id'], ['internships.id'],
            name='fk_project_rooms_internship_id_internships', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_project_rooms'),
        sa.UniqueConstraint('internship_id', name='uq_project_rooms_internship_id'),
    )
    op.create_index('ix_project_rooms_id', 'project_rooms', ['id'])

    op.create_table(
        'internship_applications',
        *_base_columns(),
        sa.Column('applicant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('internship_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cover_letter', sa.String(length=2000), nullable=True),
        sa.Column('applied_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['applicant_id'], ['users.id'], name='fk_internship_applications_applicant_id_users'),
        sa.ForeignKeyConstraint(
            ['internship_id'], ['internships.id'], name='fk_internship_applications_internship_id_internships',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_internship_applications'),
        sa.UniqueConstraint('applicant_id', 'internship_id', name='uq_internship_applications_applicant_id'),
    )
    op.create_index('ix_internship_applications_id', 'internship_applications', ['id'])
    op.create_index('ix_internship_applications_applicant_id', 'internship_applications', ['applicant_id'])
    op.create_index('ix_internship_applications_internship_id', 'internship_applications', ['internship_id'])
    op.create_index('ix_internship_applications_status', 'internship_applications', ['status'])

    op.create_table(
        'tasks',
        *_base_columns(),
        sa.Column('internship_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('assigned_to', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.CheckConstraint('credits >= 0', name='ck_tasks_non_negative_credits'),
        sa.CheckConstraint("status <> 'OVERDUE'", name='ck_tasks_overdue_not_stored'),
        sa.ForeignKeyConstraint(['internship_id'], ['internships.id'], name='fk_tasks_internship_id_internships'),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], name='fk_tasks_assigned_to_users'),
        sa.PrimaryKeyConstraint('id', name='pk_tasks'),
    )
    op.create_index('ix_tasks_id', 'tasks', ['id'])
    op.create_index('ix_tasks_internship_id', 'tasks', ['internship_id'])
    op.create_index('ix_tasks_assigned_to', 'tasks', ['assigned_to'])
    op.create_index('idx_tasks_assignee_status', 'tasks', ['assigned_to', 'status'])

    op.create_table(
        'task_submissions',
        *_base_columns(),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('submitted_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('file_url', sa.String(length=500), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('credits_awarded', sa.Integer(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], name='fk_task_submissions_task_id_tasks'),
        sa.ForeignKeyConstraint(['submitted_by'], ['users.id'], name='fk_task_submissions_submitted_by_users'),
        sa.PrimaryKeyConstraint('id', name='pk_task_submissions'),
        sa.UniqueConstraint('task_id', 'attempt', name='uq_task_submissions_task_id'),
    )
    op.create_index('ix_task_submissions_id', 'task_submissions', ['id'])
    op.create_index('ix_task_submissions_submitted_by', 'task_submissions', ['submitted_by'])
    op.create_index('idx_task_submissions_task', 'task_submissions', ['task_id'])

    op.create_table(
        'ledger_entries',
        *_base_columns(),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('reference', sa.String(length=200), nullable=True),
        sa.CheckConstraint('amount <> 0', name='ck_ledger_entries_non_zero_amount'),
        sa.ForeignKeyConstraint(['account_id'], ['users.id'], name='fk_ledger_entries_account_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_ledger_entries'),
        sa.UniqueConstraint('reference', name='uq_ledger_entries_reference'),
    )
    op.create_index('ix_ledger_entries_id', 'ledger_entries', ['id'])
    op.create_index('idx_ledger_entries_account_created', 'ledger_entries', ['account_id', 'created_at'])


def downgrade() -> None:
    """Drop all workflow and ledger tables."""

    op.drop_table('ledger_entries')
    op.drop_table('task_submissions')
    op.drop_table('tasks')
    op.drop_table('internship_applications')
    op.drop_table('project_rooms')
    op.drop_table('internships')
    op.drop_table('companies')
    op.drop_table('users')
