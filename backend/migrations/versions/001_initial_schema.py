"""Create PodPlanner schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

This migration adds:
- roles and skills reference tables
- pods, resources and their resource_pods / resource_skills join tables
- projects with man-day budget columns and the project_pods join table
- project_allocations with one row per resource, project, month and year
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Reference data
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table(
        'skills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category', sa.String(50), nullable=False, server_default='Other'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table(
        'pods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Engineers
    op.create_table(
        'resources',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(120), nullable=True),
        sa.Column('role', sa.String(100), nullable=True),
        sa.Column('seniority', sa.String(20), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Case-insensitive uniqueness is enforced by the application
    op.create_index('ix_resources_name', 'resources', ['name'])
    op.create_index('ix_resources_status', 'resources', ['status'])

    op.create_table(
        'resource_pods',
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('pod_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], name='fk_resource_pods_resource_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pod_id'], ['pods.id'], name='fk_resource_pods_pod_id', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('resource_id', 'pod_id')
    )

    op.create_table(
        'resource_skills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('skill_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], name='fk_resource_skills_resource_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_id'], ['skills.id'], name='fk_resource_skills_skill_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('resource_id', 'skill_id', name='unique_resource_skill')
    )

    op.create_index('ix_resource_skills_skill_id', 'resource_skills', ['skill_id'])

    # Projects
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('owner', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('budget_man_days', sa.Float(), nullable=False, server_default='0'),
        sa.Column('consumed_man_days', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'project_pods',
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('pod_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_project_pods_project_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pod_id'], ['pods.id'], name='fk_project_pods_pod_id', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id', 'pod_id')
    )

    # Monthly allocations
    op.create_table(
        'project_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], name='fk_project_allocations_resource_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_project_allocations_project_id', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('resource_id', 'project_id', 'month', 'year', name='unique_resource_project_month'),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_project_allocations_month'),
        sa.CheckConstraint('percentage >= 0 AND percentage <= 100', name='ck_project_allocations_percentage')
    )

    # Create indexes for year filtering and grid lookups
    op.create_index('ix_project_allocations_year_month', 'project_allocations', ['year', 'month'])
    op.create_index('ix_project_allocations_project_id', 'project_allocations', ['project_id'])


def downgrade():
    op.drop_index('ix_project_allocations_project_id', table_name='project_allocations')
    op.drop_index('ix_project_allocations_year_month', table_name='project_allocations')
    op.drop_table('project_allocations')
    op.drop_table('project_pods')
    op.drop_table('projects')
    op.drop_index('ix_resource_skills_skill_id', table_name='resource_skills')
    op.drop_table('resource_skills')
    op.drop_table('resource_pods')
    op.drop_index('ix_resources_status', table_name='resources')
    op.drop_index('ix_resources_name', table_name='resources')
    op.drop_table('resources')
    op.drop_table('pods')
    op.drop_table('skills')
    op.drop_table('roles')
