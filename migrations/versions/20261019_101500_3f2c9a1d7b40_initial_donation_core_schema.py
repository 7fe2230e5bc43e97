"""Initial donation core schema

Revision ID: 3f2c9a1d7b40
Revises: 
Create Date: 2026-10-19 10:15:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3f2c9a1d7b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('role',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=80), nullable=True),
    sa.Column('description', sa.String(length=255), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('user',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('username', sa.String(length=255), nullable=False),
    sa.Column('first_name', sa.String(length=100), nullable=True),
    sa.Column('last_name', sa.String(length=100), nullable=True),
    sa.Column('address_line1', sa.String(length=255), nullable=True),
    sa.Column('postal_code', sa.String(length=10), nullable=True),
    sa.Column('city', sa.String(length=100), nullable=True),
    sa.Column('password', sa.String(length=255), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=True),
    sa.Column('fs_uniquifier', sa.String(length=255), nullable=False),
    sa.Column('confirmed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email'),
    sa.UniqueConstraint('fs_uniquifier'),
    sa.UniqueConstraint('username')
    )
    op.create_table('roles_users',
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.Column('role_id', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['role_id'], ['role.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], )
    )
    op.create_table('project',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('slug', sa.String(length=250), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('goal_amount', sa.Integer(), nullable=True),
    sa.Column('collected_amount', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('project', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_project_slug'), ['slug'], unique=True)

    op.create_table('donation_recurrence',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=True),
    sa.Column('frequency', sa.String(length=20), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('gateway_subscription_id', sa.String(length=255), nullable=True),
    sa.Column('gateway_customer_id', sa.String(length=255), nullable=True),
    sa.Column('payment_count', sa.Integer(), nullable=False),
    sa.Column('last_payment_date', sa.DateTime(), nullable=True),
    sa.Column('next_payment_date', sa.DateTime(), nullable=True),
    sa.Column('canceled_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.Column('project_id', sa.Integer(), nullable=True),
    sa.Column('donor_email', sa.String(length=255), nullable=True),
    sa.Column('donor_first_name', sa.String(length=100), nullable=True),
    sa.Column('donor_last_name', sa.String(length=100), nullable=True),
    sa.Column('donor_address', sa.String(length=255), nullable=True),
    sa.Column('donor_postal_code', sa.String(length=10), nullable=True),
    sa.Column('donor_city', sa.String(length=100), nullable=True),
    sa.ForeignKeyConstraint(['project_id'], ['project.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('gateway_subscription_id')
    )
    with op.batch_alter_table('donation_recurrence', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_donation_recurrence_status'), ['status'], unique=False)

    op.create_table('donation',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=True),
    sa.Column('kind', sa.String(length=20), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('payment_method', sa.String(length=20), nullable=True),
    sa.Column('is_anonymous', sa.Boolean(), nullable=True),
    sa.Column('receipt_requested', sa.Boolean(), nullable=True),
    sa.Column('receipt_number', sa.String(length=40), nullable=True),
    sa.Column('gateway_intent_id', sa.String(length=255), nullable=True),
    sa.Column('gateway_charge_id', sa.String(length=255), nullable=True),
    sa.Column('gateway_invoice_id', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.Column('paid_at', sa.DateTime(), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.Column('project_id', sa.Integer(), nullable=True),
    sa.Column('recurrence_id', sa.Integer(), nullable=True),
    sa.Column('donor_email', sa.String(length=255), nullable=True),
    sa.Column('donor_first_name', sa.String(length=100), nullable=True),
    sa.Column('donor_last_name', sa.String(length=100), nullable=True),
    sa.Column('donor_address', sa.String(length=255), nullable=True),
    sa.Column('donor_postal_code', sa.String(length=10), nullable=True),
    sa.Column('donor_city', sa.String(length=100), nullable=True),
    sa.ForeignKeyConstraint(['project_id'], ['project.id'], ),
    sa.ForeignKeyConstraint(['recurrence_id'], ['donation_recurrence.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('gateway_intent_id'),
    sa.UniqueConstraint('gateway_invoice_id')
    )
    with op.batch_alter_table('donation', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_donation_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_donation_gateway_charge_id'), ['gateway_charge_id'], unique=False)

    op.create_table('donation_receipt',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('kind', sa.String(length=20), nullable=False),
    sa.Column('receipt_number', sa.String(length=60), nullable=False),
    sa.Column('fiscal_year', sa.Integer(), nullable=False),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('donations_count', sa.Integer(), nullable=False),
    sa.Column('artifact_ref', sa.String(length=300), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('canceled_at', sa.DateTime(), nullable=True),
    sa.Column('donation_id', sa.Integer(), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['donation_id'], ['donation.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('receipt_number')
    )
    with op.batch_alter_table('donation_receipt', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_donation_receipt_fiscal_year'), ['fiscal_year'], unique=False)
        batch_op.create_index(batch_op.f('ix_donation_receipt_donation_id'), ['donation_id'], unique=False)

    op.create_table('receipt_sequence',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('scope', sa.String(length=64), nullable=False),
    sa.Column('fiscal_year', sa.Integer(), nullable=False),
    sa.Column('last_value', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('scope', 'fiscal_year', name='unique_receipt_sequence_scope_year')
    )
    op.create_table('webhook_event',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('gateway_event_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=255), nullable=False),
    sa.Column('received_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('gateway_event_id')
    )

    # Default roles
    op.execute("""
        INSERT INTO role (name, description)
        SELECT 'admin', 'Administrator'
        WHERE NOT EXISTS (SELECT 1 FROM role WHERE name = 'admin')
    """)
    op.execute("""
        INSERT INTO role (name, description)
        SELECT 'user', 'Regular user'
        WHERE NOT EXISTS (SELECT 1 FROM role WHERE name = 'user')
    """)


def downgrade():
    op.drop_table('webhook_event')
    op.drop_table('receipt_sequence')
    with op.batch_alter_table('donation_receipt', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_donation_receipt_donation_id'))
        batch_op.drop_index(batch_op.f('ix_donation_receipt_fiscal_year'))
    op.drop_table('donation_receipt')
    with op.batch_alter_table('donation', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_donation_gateway_charge_id'))
        batch_op.drop_index(batch_op.f('ix_donation_status'))
    op.drop_table('donation')
    with op.batch_alter_table('donation_recurrence', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_donation_recurrence_status'))
    op.drop_table('donation_recurrence')
    with op.batch_alter_table('project', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_project_slug'))
    op.drop_table('project')
    op.drop_table('roles_users')
    op.drop_table('user')
    op.drop_table('role')
