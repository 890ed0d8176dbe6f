"""Alembic 마이그레이션: 사용자/크레딧 원장/검색 캐시/검색 기록/업체 테이블 생성"""
from alembic import op
import sqlalchemy as sa


def upgrade():
    """테이블 생성"""
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('subscription_tier', sa.String(20), nullable=False, server_default='FREE'),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_created_at', 'credit_transactions', ['created_at'])
    op.create_index('idx_credit_tx_user_created', 'credit_transactions', ['user_id', 'created_at'])

    op.create_table(
        'search_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('query_key', sa.String(), nullable=False),
        sa.Column('results_json', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_search_cache_query_key', 'search_cache', ['query_key'], unique=True)
    op.create_index('ix_search_cache_expires_at', 'search_cache', ['expires_at'])

    op.create_table(
        'search_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('keyword', sa.String(100), nullable=False),
        sa.Column('deep_search', sa.String(5), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_search_history_user_id', 'search_history', ['user_id'])
    op.create_index('ix_search_history_created_at', 'search_history', ['created_at'])

    op.create_table(
        'places',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(512), nullable=True),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('user_ratings_total', sa.Integer(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('website', sa.String(1024), nullable=True),
        sa.Column('phone', sa.String(64), nullable=True),
        sa.Column('types_json', sa.Text(), nullable=True),
        sa.Column('emails_json', sa.Text(), nullable=True),
        sa.Column('phones_json', sa.Text(), nullable=True),
        sa.Column('socials_json', sa.Text(), nullable=True),
        sa.Column('scrape_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_places_provider_id', 'places', ['provider_id'], unique=True)
    op.create_index('ix_places_scrape_status', 'places', ['scrape_status'])


def downgrade():
    """테이블 삭제"""
    op.drop_index('ix_places_scrape_status', table_name='places')
    op.drop_index('ix_places_provider_id', table_name='places')
    op.drop_table('places')
    op.drop_index('ix_search_history_created_at', table_name='search_history')
    op.drop_index('ix_search_history_user_id', table_name='search_history')
    op.drop_table('search_history')
    op.drop_index('ix_search_cache_expires_at', table_name='search_cache')
    op.drop_index('ix_search_cache_query_key', table_name='search_cache')
    op.drop_table('search_cache')
    op.drop_index('idx_credit_tx_user_created', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_created_at', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_user_id', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('users')
