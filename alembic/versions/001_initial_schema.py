"""Initial schema: profiles, gigs, demands, deals, messages

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[Sequence[str], str, None] = None
depends_on: Union[str, None] = None


def upgrade() -> None:
    # Collaborator tables (profiles/gigs/demands are written by other services)
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=255), nullable=False, comment='User ID issued by the auth platform'),
        sa.Column('full_name', sa.String(length=255), nullable=True, comment='Display name'),
        sa.Column('username', sa.String(length=100), nullable=True, comment='Unique handle'),
        sa.Column('avatar_url', sa.Text(), nullable=True, comment='Avatar URL in file storage'),
        sa.Column('company_name', sa.String(length=255), nullable=True, comment='Company name (optional)'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_profiles_username', 'profiles', ['username'], unique=True)

    op.create_table(
        'gigs',
        sa.Column('id', sa.String(length=255), nullable=False, comment='Gig ID'),
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Owner profile ID'),
        sa.Column('title', sa.String(length=255), nullable=False, comment='Gig title'),
        sa.Column('description', sa.Text(), nullable=True, comment='Gig description'),
        sa.Column('category', sa.String(length=100), nullable=True, comment='Category slug'),
        sa.Column('price', sa.Numeric(12, 2), nullable=True, comment='Asking price'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_gigs_user_id', 'gigs', ['user_id'], unique=False)
    op.create_index('ix_gigs_category', 'gigs', ['category'], unique=False)

    op.create_table(
        'demands',
        sa.Column('id', sa.String(length=255), nullable=False, comment='Demand ID'),
        sa.Column('user_id', sa.String(length=255), nullable=False, comment='Owner profile ID'),
        sa.Column('title', sa.String(length=255), nullable=False, comment='Demand title'),
        sa.Column('description', sa.Text(), nullable=True, comment='Demand description'),
        sa.Column('category', sa.String(length=100), nullable=True, comment='Category slug'),
        sa.Column('budget', sa.Numeric(12, 2), nullable=True, comment='Available budget'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_demands_user_id', 'demands', ['user_id'], unique=False)
    op.create_index('ix_demands_category', 'demands', ['category'], unique=False)

    # Deals
    op.create_table(
        'deals',
        sa.Column('pk', sa.BigInteger(), autoincrement=True, nullable=False, comment='Autoincrement primary key'),
        sa.Column('uid', sa.String(length=255), nullable=False, comment='Base58 UUID identifier (primary identifier)'),
        sa.Column('initiator_id', sa.String(length=255), nullable=False, comment='Profile ID of the user who proposed the deal'),
        sa.Column('recipient_id', sa.String(length=255), nullable=False, comment='Profile ID of the owner of the target item'),
        sa.Column('initiator_item_type', sa.String(length=20), nullable=False, comment='gig or demand'),
        sa.Column('initiator_item_id', sa.String(length=255), nullable=False, comment='Item offered by the initiator'),
        sa.Column('recipient_item_type', sa.String(length=20), nullable=False, comment='gig or demand'),
        sa.Column('recipient_item_id', sa.String(length=255), nullable=False, comment='Target item of the recipient'),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False, comment='Deal status'),
        sa.Column('message', sa.Text(), nullable=True, comment='Note attached by the initiator at creation'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Creation timestamp (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Last update timestamp (UTC)'),
        sa.PrimaryKeyConstraint('pk')
    )
    op.create_index('ix_deals_uid', 'deals', ['uid'], unique=True)
    op.create_index('ix_deals_initiator_id', 'deals', ['initiator_id'], unique=False)
    op.create_index('ix_deals_recipient_id', 'deals', ['recipient_id'], unique=False)
    op.create_index('ix_deals_status', 'deals', ['status'], unique=False)
    op.create_index('ix_deals_initiator_created', 'deals', ['initiator_id', 'created_at'], unique=False)
    op.create_index('ix_deals_recipient_created', 'deals', ['recipient_id', 'created_at'], unique=False)
    # Не больше одной открытой сделки на пару позиций
    op.create_index(
        'uq_deals_open_pair',
        'deals',
        ['initiator_id', 'recipient_id', 'initiator_item_id', 'recipient_item_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'active')"),
    )

    # Messages
    op.create_table(
        'messages',
        sa.Column('pk', sa.BigInteger(), autoincrement=True, nullable=False, comment='Autoincrement primary key'),
        sa.Column('uid', sa.String(length=64), nullable=False, comment='Public UUID4 identifier'),
        sa.Column('sender_id', sa.String(length=255), nullable=False, comment='Sender profile ID'),
        sa.Column('recipient_id', sa.String(length=255), nullable=False, comment='Recipient profile ID'),
        sa.Column('content', sa.Text(), nullable=False, comment='Message body'),
        sa.Column('is_read', sa.Boolean(), server_default=sa.text('false'), nullable=False, comment='Read by the recipient'),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True, comment='When the recipient first read the message'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='Creation timestamp (UTC)'),
        sa.PrimaryKeyConstraint('pk')
    )
    op.create_index('ix_messages_uid', 'messages', ['uid'], unique=True)
    op.create_index('ix_messages_sender_id', 'messages', ['sender_id'], unique=False)
    op.create_index('ix_messages_recipient_id', 'messages', ['recipient_id'], unique=False)
    op.create_index('ix_messages_created_at', 'messages', ['created_at'], unique=False)
    op.create_index('ix_messages_pair_created', 'messages', ['sender_id', 'recipient_id', 'created_at'], unique=False)
    op.create_index('ix_messages_recipient_unread', 'messages', ['recipient_id', 'is_read'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_messages_recipient_unread', table_name='messages')
    op.drop_index('ix_messages_pair_created', table_name='messages')
    op.drop_index('ix_messages_created_at', table_name='messages')
    op.drop_index('ix_messages_recipient_id', table_name='messages')
    op.drop_index('ix_messages_sender_id', table_name='messages')
    op.drop_index('ix_messages_uid', table_name='messages')
    op.drop_table('messages')

    op.drop_index('uq_deals_open_pair', table_name='deals')
    op.drop_index('ix_deals_recipient_created', table_name='deals')
    op.drop_index('ix_deals_initiator_created', table_name='deals')
    op.drop_index('ix_deals_status', table_name='deals')
    op.drop_index('ix_deals_recipient_id', table_name='deals')
    op.drop_index('ix_deals_initiator_id', table_name='deals')
    op.drop_index('ix_deals_uid', table_name='deals')
    op.drop_table('deals')

    op.drop_index('ix_demands_category', table_name='demands')
    op.drop_index('ix_demands_user_id', table_name='demands')
    op.drop_table('demands')

    op.drop_index('ix_gigs_category', table_name='gigs')
    op.drop_index('ix_gigs_user_id', table_name='gigs')
    op.drop_table('gigs')

    op.drop_index('ix_profiles_username', table_name='profiles')
    op.drop_table('profiles')
