"""create_users_listings_and_match_suggestions

Revision ID: 20261019_0000
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa

from app.database_types import GUID, JSON, UTCDateTime


revision = '20261019_0000'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='standard'),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('resume_text', sa.Text(), nullable=True),
        sa.Column('skills', JSON(), nullable=True),
        sa.Column('experience_years', sa.Integer(), nullable=True),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table(
        'listings',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('client_id', GUID(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.Column('experience_level', sa.String(length=32), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('skills', JSON(), nullable=True),
        sa.Column('tier', sa.String(length=32), nullable=False, server_default='base'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='draft'),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_listings_client_id'), 'listings', ['client_id'], unique=False)
    op.create_index('idx_listings_feed', 'listings', ['status', 'tier', 'created_at'], unique=False)

    op.create_table(
        'match_suggestions',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('listing_id', GUID(), nullable=False),
        sa.Column('candidate_id', GUID(), nullable=False),
        sa.Column('overall_score', sa.Integer(), nullable=False),
        sa.Column('skills_score', sa.Integer(), nullable=False),
        sa.Column('experience_score', sa.Integer(), nullable=False),
        sa.Column('education_score', sa.Integer(), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=False),
        sa.Column('key_strengths', JSON(), nullable=False),
        sa.Column('potential_concerns', JSON(), nullable=False),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['candidate_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('listing_id', 'candidate_id', name='uq_suggestion_listing_candidate'),
        sa.CheckConstraint('overall_score BETWEEN 0 AND 100', name='ck_suggestion_overall_range'),
        sa.CheckConstraint('skills_score BETWEEN 0 AND 100', name='ck_suggestion_skills_range'),
        sa.CheckConstraint('experience_score BETWEEN 0 AND 100', name='ck_suggestion_experience_range'),
        sa.CheckConstraint('education_score BETWEEN 0 AND 100', name='ck_suggestion_education_range'),
    )
    op.create_index(
        'idx_suggestions_listing_score', 'match_suggestions', ['listing_id', 'overall_score'], unique=False
    )


def downgrade() -> None:
    op.drop_index('idx_suggestions_listing_score', table_name='match_suggestions')
    op.drop_table('match_suggestions')

    op.drop_index('idx_listings_feed', table_name='listings')
    op.drop_index(op.f('ix_listings_client_id'), table_name='listings')
    op.drop_table('listings')

    op.drop_index(op.f('ix_users_role'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
