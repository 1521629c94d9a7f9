"""Mission soft delete and reviews.

Revision ID: 0002_reviews_soft_delete
Revises: 0001_missions_payments
Create Date: 2026-10-19

Changes:
- missions.deleted_at (deleted missions keep their row and history)
- reviews (one per reviewer and mission, rating 1-5)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_reviews_soft_delete'
down_revision = '0001_missions_payments'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('missions', sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True))

    # ==========================================================================
    # reviews
    # ==========================================================================
    op.create_table(
        'reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewee_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('is_public', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mission_id', 'reviewer_id', name='uq_reviews_mission_reviewer'),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating'),
    )
    op.create_index('idx_reviews_reviewee', 'reviews', ['reviewee_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_reviews_reviewee', table_name='reviews')
    op.drop_table('reviews')
    op.drop_column('missions', 'deleted_at')
