"""Invoicing schema: companies, employees, payrolls, clients, schedules, invoices, items, bills, number sequences

Revision ID: a41c7e2d9b10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a41c7e2d9b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uuid', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def _base_indexes(table: str) -> None:
    op.create_index(op.f(f'ix_{table}_uuid'), table, ['uuid'], unique=True)
    op.create_index(op.f(f'ix_{table}_created_at'), table, ['created_at'])


def upgrade() -> None:
    """Create all tables for the invoicing engine."""
    # Create enums
    op.execute(
        "CREATE TYPE invoicestatus AS ENUM "
        "('DRAFT', 'SENT', 'REVIEWED', 'CONFIRMED', 'PAID', 'OVERDUE', 'CANCELLED')"
    )
    op.execute("CREATE TYPE schedulefrequency AS ENUM ('MONTHLY', 'WEEKLY', 'BIWEEKLY', 'QUARTERLY')")
    op.execute("CREATE TYPE billstatus AS ENUM ('PENDING', 'PAID', 'OVERDUE')")

    invoice_status = postgresql.ENUM(name='invoicestatus', create_type=False)
    schedule_frequency = postgresql.ENUM(name='schedulefrequency', create_type=False)
    bill_status = postgresql.ENUM(name='billstatus', create_type=False)

    # 1. Companies (no dependencies)
    op.create_table(
        'companies',
        *_base_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('notification_email', sa.String(length=255), nullable=True),
        sa.Column('address_line1', sa.String(length=255), nullable=True),
        sa.Column('address_line2', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('country', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=32), nullable=True),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('companies')

    # 2. Employees (no dependencies)
    op.create_table(
        'employees',
        *_base_columns(),
        sa.Column('first_name', sa.String(length=120), nullable=False),
        sa.Column('last_name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('country', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=32), nullable=True),
        sa.Column('wallet_address', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('employees')
    op.create_index(op.f('ix_employees_email'), 'employees', ['email'])

    # 3. Payrolls (depends on companies, employees)
    op.create_table(
        'payrolls',
        *_base_columns(),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False, server_default='Payroll'),
        sa.Column('amount', sa.String(length=64), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('payroll_cycle', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('pay_date', sa.DateTime(), nullable=True),
        sa.Column('network', postgresql.JSONB(), nullable=True),
        sa.Column('token', postgresql.JSONB(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('payrolls')
    op.create_index(op.f('ix_payrolls_company_id'), 'payrolls', ['company_id'])
    op.create_index(op.f('ix_payrolls_employee_id'), 'payrolls', ['employee_id'])

    # 4. Clients (depends on companies)
    op.create_table(
        'clients',
        *_base_columns(),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('linked_company_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.Column('contact_name', sa.String(length=255), nullable=True),
        sa.Column('cc_emails', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['linked_company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('clients')
    op.create_index(op.f('ix_clients_company_id'), 'clients', ['company_id'])
    op.create_index(op.f('ix_clients_linked_company_id'), 'clients', ['linked_company_id'])

    # 5. Invoice schedules (depends on companies, payrolls, clients)
    op.create_table(
        'invoice_schedules',
        *_base_columns(),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('payroll_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('frequency', schedule_frequency, nullable=False, server_default='MONTHLY'),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('generate_days_before', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_send', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('next_generate_date', sa.DateTime(), nullable=False),
        sa.Column('last_generated_at', sa.DateTime(), nullable=True),
        sa.Column('invoice_template', postgresql.JSONB(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.CheckConstraint(
            '(payroll_id IS NULL) <> (client_id IS NULL)',
            name='ck_invoice_schedules_single_scope'
        ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payroll_id'], ['payrolls.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('invoice_schedules')
    op.create_index(op.f('ix_invoice_schedules_company_id'), 'invoice_schedules', ['company_id'])
    op.create_index(op.f('ix_invoice_schedules_payroll_id'), 'invoice_schedules', ['payroll_id'])
    op.create_index(op.f('ix_invoice_schedules_client_id'), 'invoice_schedules', ['client_id'])
    op.create_index(op.f('ix_invoice_schedules_is_active'), 'invoice_schedules', ['is_active'])
    op.create_index(op.f('ix_invoice_schedules_next_generate_date'), 'invoice_schedules', ['next_generate_date'])

    # 6. Invoices: payroll and B2B variants share one table keyed on invoice_type
    op.create_table(
        'invoices',
        *_base_columns(),
        sa.Column('invoice_type', sa.String(length=16), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('number_scope', sa.String(length=255), nullable=False),
        sa.Column('status', invoice_status, nullable=False, server_default='DRAFT'),
        sa.Column('issue_date', sa.DateTime(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('subtotal', sa.String(length=64), nullable=False, server_default='0.00'),
        sa.Column('tax_rate', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.String(length=64), nullable=False, server_default='0.00'),
        sa.Column('discount', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('total', sa.String(length=64), nullable=False, server_default='0.00'),
        sa.Column('from_details', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('to_details', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('email_to', sa.String(length=255), nullable=True),
        sa.Column('email_cc', postgresql.JSONB(), nullable=True),
        sa.Column('email_bcc', postgresql.JSONB(), nullable=True),
        sa.Column('payment_network', postgresql.JSONB(), nullable=True),
        sa.Column('payment_token', postgresql.JSONB(), nullable=True),
        sa.Column('payment_wallet_address', sa.String(length=255), nullable=True),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('footer', sa.Text(), nullable=True),
        sa.Column('terms', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('is_auto_generated', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('schedule_id', sa.Integer(), nullable=True),
        # Payroll variant
        sa.Column('payroll_id', sa.Integer(), nullable=True),
        sa.Column('employee_id', sa.Integer(), nullable=True),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('employee_email', sa.String(length=255), nullable=True),
        # B2B variant
        sa.Column('from_company_id', sa.Integer(), nullable=True),
        sa.Column('to_company_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('to_company_name', sa.String(length=255), nullable=True),
        sa.Column('to_company_email', sa.String(length=255), nullable=True),
        sa.Column('to_company_address', sa.String(length=255), nullable=True),
        sa.Column('to_company_tax_id', sa.String(length=64), nullable=True),
        sa.Column('to_company_contact_name', sa.String(length=255), nullable=True),
        sa.Column('email_subject', sa.String(length=255), nullable=True),
        sa.Column('email_body', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['schedule_id'], ['invoice_schedules.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['payroll_id'], ['payrolls.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['from_company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['to_company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number_scope', 'invoice_number', name='uq_invoices_scope_number')
    )
    _base_indexes('invoices')
    for column in (
        'invoice_type', 'invoice_number', 'status', 'issue_date', 'due_date', 'schedule_id',
        'payroll_id', 'employee_id', 'company_id', 'employee_email',
        'from_company_id', 'to_company_id', 'client_id',
    ):
        op.create_index(op.f(f'ix_invoices_{column}'), 'invoices', [column])

    # Overdue sweep: status + due_date
    op.create_index('ix_invoices_status_due_date', 'invoices', ['status', 'due_date'])

    # 7. Invoice items (depends on invoices)
    op.create_table(
        'invoice_items',
        *_base_columns(),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('quantity', sa.String(length=64), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.String(length=64), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=True),
        sa.Column('tax_rate', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('discount', sa.String(length=64), nullable=False, server_default='0'),
        sa.Column('total', sa.String(length=64), nullable=False, server_default='0.00'),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('invoice_items')
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])

    # 8. Bills (depends on companies, invoices)
    op.create_table(
        'bills',
        *_base_columns(),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('status', bill_status, nullable=False, server_default='PENDING'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('transaction_hash', sa.String(length=255), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id')
    )
    _base_indexes('bills')
    op.create_index(op.f('ix_bills_company_id'), 'bills', ['company_id'])
    op.create_index(op.f('ix_bills_status'), 'bills', ['status'])

    # 9. Invoice number counters (no dependencies)
    op.create_table(
        'invoice_number_sequences',
        sa.Column('scope', sa.String(length=255), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('scope')
    )


def downgrade() -> None:
    """Drop all invoicing tables and enums."""
    op.drop_table('invoice_number_sequences')
    op.drop_table('bills')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('invoice_schedules')
    op.drop_table('clients')
    op.drop_table('payrolls')
    op.drop_table('employees')
    op.drop_table('companies')

    op.execute('DROP TYPE IF EXISTS billstatus')
    op.execute('DROP TYPE IF EXISTS schedulefrequency')
    op.execute('DROP TYPE IF EXISTS invoicestatus')
