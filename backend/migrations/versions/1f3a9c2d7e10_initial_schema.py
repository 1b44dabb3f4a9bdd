"""Initial schema: users, clusters, posts, keywords jobs and results, usage

Revision ID: 1f3a9c2d7e10
Revises:
Create Date: 2025-09-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '1f3a9c2d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

job_status = sa.Enum('QUEUED', 'RUNNING', 'READY', 'FAILED', name='jobstatus')
post_type = sa.Enum('PILLAR', 'SUPPORTING', name='posttype')
post_status = sa.Enum('DRAFT', 'READY', 'PUBLISHED', name='poststatus')
stage_status = sa.Enum('NONE', 'READY', name='stagestatus')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('external_id', sa.String(191), nullable=False),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_external_id'), 'users', ['external_id'], unique=True)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('plan', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('price_id', sa.String(128), nullable=True),
        sa.Column('customer_id', sa.String(128), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table(
        'clusters',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('niche', sa.String(300), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clusters_user_title', 'clusters', ['user_id', 'title'], unique=False)

    op.create_table(
        'posts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cluster_id', sa.String(36), nullable=False),
        sa.Column('slug', sa.String(300), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('type', post_type, nullable=False),
        sa.Column('parent_id', sa.String(36), nullable=True),
        sa.Column('parent_slug', sa.String(300), nullable=True),
        sa.Column('outline', sa.JSON(), nullable=True),
        sa.Column('outline_status', stage_status, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('draft_status', stage_status, nullable=False),
        sa.Column('status', post_status, nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('citations', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['cluster_id'], ['clusters.id'], ),
        sa.ForeignKeyConstraint(['parent_id'], ['posts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_posts_cluster_id'), 'posts', ['cluster_id'], unique=False)
    op.create_index(op.f('ix_posts_slug'), 'posts', ['slug'], unique=True)
    op.create_index(op.f('ix_posts_parent_slug'), 'posts', ['parent_slug'], unique=False)

    op.create_table(
        'keywords_jobs',
        sa.Column('id', sa.String(128), nullable=False),
        sa.Column('user_id', sa.String(191), nullable=False),
        sa.Column('topic', sa.String(300), nullable=False),
        sa.Column('country', sa.String(32), nullable=True),
        sa.Column('region', sa.String(32), nullable=True),
        sa.Column('location', sa.String(64), nullable=True),
        sa.Column('cluster_id', sa.String(36), nullable=True),
        sa.Column('seed_keywords', sa.JSON(), nullable=True),
        sa.Column('max_results', sa.Integer(), nullable=True),
        sa.Column('status', job_status, nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_keywords_jobs_user_created', 'keywords_jobs', ['user_id', 'created_at'], unique=False)

    op.create_table(
        'keyword_suggestions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.String(128), nullable=False),
        sa.Column('keyword', sa.String(200), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('source_url', sa.String(1024), nullable=True),
        sa.Column('news_urls', sa.JSON(), nullable=False),
        sa.Column('news_meta', sa.JSON(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['keywords_jobs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'keyword', name='uq_keyword_suggestion_job_keyword')
    )
    op.create_index(op.f('ix_keyword_suggestions_job_id'), 'keyword_suggestions', ['job_id'], unique=False)

    op.create_table(
        'research_articles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.String(128), nullable=False),
        sa.Column('article_id', sa.String(128), nullable=False),
        sa.Column('url', sa.String(1024), nullable=False),
        sa.Column('title', sa.String(300), nullable=True),
        sa.Column('source_name', sa.String(80), nullable=True),
        sa.Column('published_time', sa.DateTime(), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('snippet', sa.Text(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('word_count', sa.Integer(), nullable=True),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['keywords_jobs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'url', name='uq_research_article_job_url'),
        sa.UniqueConstraint('job_id', 'article_id', name='uq_research_article_job_article')
    )
    op.create_index(op.f('ix_research_articles_job_id'), 'research_articles', ['job_id'], unique=False)

    op.create_table(
        'research_topic_suggestions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.String(128), nullable=False),
        sa.Column('label', sa.String(160), nullable=False),
        sa.Column('tier', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['keywords_jobs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'label', 'tier', name='uq_topic_suggestion_job_label_tier')
    )
    op.create_index(
        op.f('ix_research_topic_suggestions_job_id'), 'research_topic_suggestions', ['job_id'], unique=False
    )

    op.create_table(
        'usage',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(191), nullable=False),
        sa.Column('metric', sa.String(64), nullable=False),
        sa.Column('period_key', sa.String(7), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'metric', 'period_key', name='uq_usage_user_metric_period')
    )


def downgrade() -> None:
    op.drop_table('usage')
    op.drop_index(op.f('ix_research_topic_suggestions_job_id'), table_name='research_topic_suggestions')
    op.drop_table('research_topic_suggestions')
    op.drop_index(op.f('ix_research_articles_job_id'), table_name='research_articles')
    op.drop_table('research_articles')
    op.drop_index(op.f('ix_keyword_suggestions_job_id'), table_name='keyword_suggestions')
    op.drop_table('keyword_suggestions')
    op.drop_index('ix_keywords_jobs_user_created', table_name='keywords_jobs')
    op.drop_table('keywords_jobs')
    op.drop_index(op.f('ix_posts_parent_slug'), table_name='posts')
    op.drop_index(op.f('ix_posts_slug'), table_name='posts')
    op.drop_index(op.f('ix_posts_cluster_id'), table_name='posts')
    op.drop_table('posts')
    op.drop_index('ix_clusters_user_title', table_name='clusters')
    op.drop_table('clusters')
    op.drop_table('subscriptions')
    op.drop_index(op.f('ix_users_external_id'), table_name='users')
    op.drop_table('users')
    for enum in (stage_status, post_status, post_type, job_status):
        enum.drop(op.get_bind(), checkfirst=True)
