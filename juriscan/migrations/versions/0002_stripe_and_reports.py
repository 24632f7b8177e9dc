"""stripe subscriptions, processed events and reports"""

from alembic import op
import sqlalchemy as sa

revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(length=128), nullable=False, unique=True),
        sa.Column('stripe_customer_id', sa.String(length=128)),
        sa.Column('plan_id', sa.String(length=32), nullable=False, server_default='free'),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_period_start', sa.DateTime()),
        sa.Column('current_period_end', sa.DateTime()),
        sa.Column('cancel_at_period_end', sa.Boolean(), server_default=sa.false()),
        sa.Column('credits_granted_for', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'])

    op.create_table(
        'stripe_events',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('processed_at', sa.DateTime()),
    )

    op.create_table(
        'reports',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('parameters', sa.JSON()),
        sa.Column('content', sa.JSON()),
        sa.Column('error', sa.Text()),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('generated_at', sa.DateTime()),
    )
    op.create_index(op.f('ix_reports_user_id'), 'reports', ['user_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_reports_user_id'), table_name='reports')
    op.drop_table('reports')
    op.drop_table('stripe_events')
    op.drop_index(op.f('ix_subscriptions_user_id'), table_name='subscriptions')
    op.drop_table('subscriptions')
