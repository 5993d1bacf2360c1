"""add fee period tables

Revision ID: 7b1e40c2d9a3
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "7b1e40c2d9a3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'students',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('school_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('admission_date', sa.Date(), nullable=True),
        sa.Column('class_group_id', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'])

    op.create_table(
        'student_fee_cycles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('student_id', sa.String(length=36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('school_id', sa.String(length=36), nullable=False),
        sa.Column('fee_cycle', sa.String(length=16), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('student_id', 'fee_cycle', 'effective_from', name='uq_student_fee_cycles_student_cycle_from'),
    )
    op.create_index('ix_student_fee_cycles_student_id', 'student_fee_cycles', ['student_id'])
    op.create_index('ix_student_fee_cycles_school_id', 'student_fee_cycles', ['school_id'])

    op.create_table(
        'fee_bill_periods',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('student_id', sa.String(length=36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('school_id', sa.String(length=36), nullable=False),
        sa.Column('period_type', sa.String(length=16), nullable=False),
        sa.Column('period_year', sa.Integer(), nullable=False),
        sa.Column('period_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('period_quarter', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('expected_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('balance_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            'student_id', 'period_type', 'period_year', 'period_month', 'period_quarter',
            name='uq_fee_bill_periods_natural_key',
        ),
    )
    op.create_index('ix_fee_bill_periods_school_id', 'fee_bill_periods', ['school_id'])
    op.create_index('ix_fee_bill_periods_student_status', 'fee_bill_periods', ['student_id', 'status'])

    op.create_table(
        'fee_bills',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('period_id', sa.String(length=36), sa.ForeignKey('fee_bill_periods.id'), nullable=False, unique=True),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'fee_payments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('bill_id', sa.String(length=36), sa.ForeignKey('fee_bills.id'), nullable=False),
        sa.Column('amount_paid', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=True),
    )
    op.create_index('ix_fee_payments_bill_id', 'fee_payments', ['bill_id'])


def downgrade():
    op.drop_index('ix_fee_payments_bill_id', table_name='fee_payments')
    op.drop_table('fee_payments')
    op.drop_table('fee_bills')
    op.drop_index('ix_fee_bill_periods_student_status', table_name='fee_bill_periods')
    op.drop_index('ix_fee_bill_periods_school_id', table_name='fee_bill_periods')
    op.drop_table('fee_bill_periods')
    op.drop_index('ix_student_fee_cycles_school_id', table_name='student_fee_cycles')
    op.drop_index('ix_student_fee_cycles_student_id', table_name='student_fee_cycles')
    op.drop_table('student_fee_cycles')
    op.drop_index('ix_students_school_id', table_name='students')
    op.drop_table('students')
