"""create credits, billing and reports tables"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('email', sa.String(length=255)),
        sa.Column('current_plan', sa.String(length=32), nullable=False, server_default='free'),
        sa.Column('stripe_customer_id', sa.String(length=64)),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'])
    op.create_index(op.f('ix_profiles_stripe_customer_id'), 'profiles', ['stripe_customer_id'])

    op.create_table(
        'credit_balances',
        sa.Column('user_id', sa.String(length=64), primary_key=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime()),
        sa.CheckConstraint('balance >= 0', name='ck_credit_balances_non_negative'),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer()),
        sa.Column('description', sa.String(length=500)),
        sa.Column('stripe_payment_id', sa.String(length=128)),
        sa.Column('stripe_subscription_id', sa.String(length=128)),
        sa.Column('reference_id', sa.String(length=128)),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index(op.f('ix_credit_transactions_user_id'), 'credit_transactions', ['user_id'])
    op.create_index(op.f('ix_credit_transactions_created_at'), 'credit_transactions', ['created_at'])
    op.create_index('ix_credit_transactions_user_created', 'credit_transactions', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_credit_transactions_user_created', table_name='credit_transactions')
    op.drop_index(op.f('ix_credit_transactions_created_at'), table_name='credit_transactions')
    op.drop_index(op.f('ix_credit_transactions_user_id'), table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('credit_balances')
    op.drop_index(op.f('ix_profiles_stripe_customer_id'), table_name='profiles')
    op.drop_index(op.f('ix_profiles_email'), table_name='profiles')
    op.drop_table('profiles')
