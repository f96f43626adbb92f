"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

appointment_status = sa.Enum(
    'SCHEDULED', 'CHECKED_IN', 'UNDER_REVIEW', 'COMPLETED', 'CANCELLED',
    name='appointmentstatus'
)
plan_status = sa.Enum('ACTIVE', 'PAUSED', 'COMPLETED', 'DISCONTINUED', name='treatmentplanstatus')
medication_frequency = sa.Enum(
    'ONCE_DAILY', 'TWICE_DAILY', 'THREE_TIMES_DAILY', 'FOUR_TIMES_DAILY',
    'EVERY_OTHER_DAY', 'WEEKLY', 'MONTHLY',
    name='medicationfrequency'
)
medication_status = sa.Enum('ACTIVE', 'STOPPED', name='medicationstatus')
payment_method = sa.Enum('CASH', 'QR', name='paymentmethod')
transaction_status = sa.Enum('PENDING', 'SUCCESS', 'FAILED', 'CANCELLED', name='transactionstatus')
finalized_via = sa.Enum('PROVIDER', 'STAFF', 'EXPIRY', name='finalizedvia')


def upgrade() -> None:
    # Create appointments table
    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', appointment_status, nullable=False, server_default='SCHEDULED'),
        sa.Column('checked_in', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('checked_in_by', sa.Integer(), nullable=True),
        sa.Column('blood_pressure', sa.String(length=20), nullable=True),
        sa.Column('symptoms', sa.Text(), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('request_lab_sample', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_reason', sa.Text(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'], unique=False)
    op.create_index('ix_appointments_doctor_id', 'appointments', ['doctor_id'], unique=False)
    op.create_index('ix_appointments_scheduled_at', 'appointments', ['scheduled_at'], unique=False)
    op.create_index('ix_appointments_status', 'appointments', ['status'], unique=False)

    # Create treatment_plans table
    op.create_table(
        'treatment_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('status', plan_status, nullable=False, server_default='ACTIVE'),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.CheckConstraint('end_date IS NULL OR end_date >= start_date', name='check_plan_dates'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id')
    )
    op.create_index('ix_treatment_plans_patient_id', 'treatment_plans', ['patient_id'], unique=False)
    op.create_index('ix_treatment_plans_doctor_id', 'treatment_plans', ['doctor_id'], unique=False)

    # Create treatment_medications table
    op.create_table(
        'treatment_medications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('medication_id', sa.Integer(), nullable=False),
        sa.Column('dosage', sa.String(length=100), nullable=False),
        sa.Column('frequency', medication_frequency, nullable=False, server_default='ONCE_DAILY'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('prescribed_by', sa.String(length=200), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', medication_status, nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['plan_id'], ['treatment_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_treatment_medications_plan_id', 'treatment_medications', ['plan_id'], unique=False)

    # Create medication_schedules table
    op.create_table(
        'medication_schedules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('medication_id', sa.Integer(), nullable=False),
        sa.Column('time_of_day', sa.String(length=5), nullable=False),
        sa.Column('dosage_amount', sa.String(length=100), nullable=False),
        sa.Column('days_of_week', sa.String(length=27), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_custom', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['medication_id'], ['treatment_medications.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_medication_schedules_medication_id', 'medication_schedules', ['medication_id'], unique=False)

    # Create payment_transactions table
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=64), nullable=True),
        sa.Column('pay_url', sa.Text(), nullable=True),
        sa.Column('transaction_status', transaction_status, nullable=False, server_default='PENDING'),
        sa.Column('finalized_via', finalized_via, nullable=True),
        sa.Column('confirmed_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('transaction_time', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id')
    )
    op.create_index('ix_payment_transactions_appointment_id', 'payment_transactions', ['appointment_id'], unique=False)
    op.create_index('ix_payment_transactions_transaction_status', 'payment_transactions', ['transaction_status'], unique=False)
    # At most one PENDING transaction per appointment
    op.create_index(
        'uq_payment_open_per_appointment',
        'payment_transactions',
        ['appointment_id'],
        unique=True,
        postgresql_where=sa.text("transaction_status = 'PENDING'"),
        sqlite_where=sa.text("transaction_status = 'PENDING'")
    )


def downgrade() -> None:
    op.drop_index('uq_payment_open_per_appointment', table_name='payment_transactions')
    op.drop_table('payment_transactions')
    op.drop_table('medication_schedules')
    op.drop_table('treatment_medications')
    op.drop_table('treatment_plans')
    op.drop_table('appointments')

    bind = op.get_bind()
    for enum_type in (
        finalized_via, transaction_status, payment_method,
        medication_status, medication_frequency, plan_status, appointment_status
    ):
        enum_type.drop(bind, checkfirst=True)
