"""create feed sync tables

Revision ID: 8b3e2f6a1c40
Revises:
Create Date: 2026-10-18 10:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b3e2f6a1c40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'rss_folders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_rss_folders_user_name'),
    )
    op.create_index('ix_rss_folders_user_id', 'rss_folders', ['user_id'])

    op.create_table(
        'rss_feeds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('folder_id', sa.Uuid(), nullable=True),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('site_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['folder_id'], ['rss_folders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'url', name='uq_rss_feeds_user_url'),
    )
    op.create_index('ix_rss_feeds_user_id', 'rss_feeds', ['user_id'])
    op.create_index('ix_rss_feeds_folder_id', 'rss_feeds', ['folder_id'])

    op.create_table(
        'rss_articles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('feed_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('guid', sa.String(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('title', sa.String(), server_default='', nullable=False),
        sa.Column('link', sa.String(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('pub_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('content_snippet', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['feed_id'], ['rss_feeds.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('feed_id', 'user_id', 'guid', name='uq_rss_articles_feed_user_guid'),
    )
    op.create_index('ix_rss_articles_feed_id', 'rss_articles', ['feed_id'])
    op.create_index('ix_rss_articles_user_id', 'rss_articles', ['user_id'])
    op.create_index('idx_rss_articles_user_unread', 'rss_articles', ['user_id', 'is_read'])


def downgrade() -> None:
    op.drop_index('idx_rss_articles_user_unread', table_name='rss_articles')
    op.drop_index('ix_rss_articles_user_id', table_name='rss_articles')
    op.drop_index('ix_rss_articles_feed_id', table_name='rss_articles')
    op.drop_table('rss_articles')

    op.drop_index('ix_rss_feeds_folder_id', table_name='rss_feeds')
    op.drop_index('ix_rss_feeds_user_id', table_name='rss_feeds')
    op.drop_table('rss_feeds')

    op.drop_index('ix_rss_folders_user_id', table_name='rss_folders')
    op.drop_table('rss_folders')
