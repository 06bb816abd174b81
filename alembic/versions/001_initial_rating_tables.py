"""Create matches, tutor_profiles and ratings tables.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa

revision = '001'
down_revision = None
branch_labels = None
depends_on = None

DIMENSIONS = (
    'teaching_quality',
    'classroom_performance',
    'student_progress',
    'communication',
    'punctuality',
)


def upgrade():
    op.create_table(
        'matches',
        sa.Column('uuid', sa.String(36), primary_key=True),
        sa.Column('parent_id', sa.String(64), nullable=False),
        sa.Column('tutor_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('parent_rating', sa.Integer(), nullable=True),
        sa.Column('parent_review', sa.Text(), nullable=True),
        sa.Column('tutor_rating', sa.Integer(), nullable=True),
        sa.Column('tutor_review', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('idx_match_parent_id', 'matches', ['parent_id'])
    op.create_index('idx_match_tutor_id', 'matches', ['tutor_id'])

    op.create_table(
        'tutor_profiles',
        sa.Column('uuid', sa.String(36), primary_key=True),
        sa.Column('custom_id', sa.String(64), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('average_rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tutor_profiles_custom_id', 'tutor_profiles', ['custom_id'], unique=True)

    op.create_table(
        'ratings',
        sa.Column('uuid', sa.String(36), primary_key=True),
        sa.Column('match_id', sa.String(36), sa.ForeignKey('matches.uuid'), nullable=False),
        sa.Column('rated_by', sa.String(64), nullable=False),
        sa.Column('rater_type', sa.String(16), nullable=False),
        sa.Column('rated_user', sa.String(64), nullable=False),
        sa.Column('overall_rating', sa.Integer(), nullable=False),
        *(sa.Column(dimension, sa.Integer(), nullable=True) for dimension in DIMENSIONS),
        sa.Column('review_text', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('match_id', 'rated_by', 'rater_type', name='uq_rating_match_rater'),
        sa.CheckConstraint("rater_type IN ('parent', 'tutor')", name='ck_rating_rater_type'),
        sa.CheckConstraint('overall_rating >= 1 AND overall_rating <= 5', name='ck_rating_overall_range'),
        *(
            sa.CheckConstraint(
                f'{dimension} IS NULL OR ({dimension} >= 1 AND {dimension} <= 5)',
                name=f'ck_rating_{dimension}_range',
            )
            for dimension in DIMENSIONS
        ),
    )
    op.create_index('idx_rating_match_id', 'ratings', ['match_id'])
    op.create_index('idx_rating_rated_user', 'ratings', ['rated_user', 'rater_type', 'created_at'])


def downgrade():
    op.drop_index('idx_rating_rated_user', table_name='ratings')
    op.drop_index('idx_rating_match_id', table_name='ratings')
    op.drop_table('ratings')
    op.drop_index('ix_tutor_profiles_custom_id', table_name='tutor_profiles')
    op.drop_table('tutor_profiles')
    op.drop_index('idx_match_tutor_id', table_name='matches')
    op.drop_index('idx_match_parent_id', table_name='matches')
    op.drop_table('matches')
