"""Create department queue tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create departments table
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_departments_id'), 'departments', ['id'], unique=False)

    # Create department_settings table
    op.create_table(
        'department_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('operating_start', sa.Time(), nullable=False, server_default='08:00:00'),
        sa.Column('operating_end', sa.Time(), nullable=False, server_default='17:00:00'),
        sa.Column('lunch_break_start', sa.Time(), nullable=False, server_default='12:00:00'),
        sa.Column('lunch_break_end', sa.Time(), nullable=False, server_default='13:00:00'),
        sa.Column('can_receive_appointments', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('allow_walk_ins', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('daily_appointment_limit', sa.Integer(), nullable=True, server_default='50'),
        sa.Column('allow_same_day', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('min_days_advance', sa.Integer(), nullable=True, server_default='1'),
        sa.Column('max_days_advance', sa.Integer(), nullable=True, server_default='30'),
        sa.Column('require_qr_checkin', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department_id')
    )
    op.create_index(op.f('ix_department_settings_id'), 'department_settings', ['id'], unique=False)

    # Create department_time_slots table
    op.create_table(
        'department_time_slots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('slot_start', sa.Time(), nullable=False),
        sa.Column('slot_end', sa.Time(), nullable=False),
        sa.Column('max_appointments', sa.Integer(), nullable=True, server_default='2'),
        sa.Column('day_of_week', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_department_time_slots_id'), 'department_time_slots', ['id'], unique=False)
    op.create_index(
        op.f('ix_department_time_slots_department_id'), 'department_time_slots', ['department_id'], unique=False
    )

    # Create department_closed_dates table
    op.create_table(
        'department_closed_dates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('closed_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department_id', 'closed_date', name='uq_closed_date_department')
    )
    op.create_index(op.f('ix_department_closed_dates_id'), 'department_closed_dates', ['id'], unique=False)
    op.create_index(
        op.f('ix_department_closed_dates_department_id'), 'department_closed_dates', ['department_id'], unique=False
    )

    # Create appointments table
    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('citizen_id', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('contact_number', sa.String(), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('slot_start', sa.Time(), nullable=True),
        sa.Column('slot_end', sa.Time(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('ticket_number', sa.String(), nullable=False),
        sa.Column('purpose', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('qr_code', sa.String(), nullable=True),
        sa.Column('is_walk_in', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('is_priority', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('priority_set_at', sa.DateTime(), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('serving_started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department_id', 'appointment_date', 'ticket_number', name='uq_appointment_ticket')
    )
    op.create_index(op.f('ix_appointments_id'), 'appointments', ['id'], unique=False)
    op.create_index(op.f('ix_appointments_department_id'), 'appointments', ['department_id'], unique=False)
    op.create_index(op.f('ix_appointments_citizen_id'), 'appointments', ['citizen_id'], unique=False)
    op.create_index(op.f('ix_appointments_appointment_date'), 'appointments', ['appointment_date'], unique=False)
    op.create_index(op.f('ix_appointments_status'), 'appointments', ['status'], unique=False)
    op.create_index(op.f('ix_appointments_qr_code'), 'appointments', ['qr_code'], unique=False)
    op.create_index(
        'ix_appointments_department_date_status', 'appointments',
        ['department_id', 'appointment_date', 'status'], unique=False
    )

    # Create activity_logs table
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.String(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_activity_logs_id'), 'activity_logs', ['id'], unique=False)
    op.create_index(op.f('ix_activity_logs_department_id'), 'activity_logs', ['department_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_activity_logs_department_id'), table_name='activity_logs')
    op.drop_index(op.f('ix_activity_logs_id'), table_name='activity_logs')
    op.drop_table('activity_logs')

    op.drop_index('ix_appointments_department_date_status', table_name='appointments')
    op.drop_index(op.f('ix_appointments_qr_code'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_status'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_appointment_date'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_citizen_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_department_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_id'), table_name='appointments')
    op.drop_table('appointments')

    op.drop_index(op.f('ix_department_closed_dates_department_id'), table_name='department_closed_dates')
    op.drop_index(op.f('ix_department_closed_dates_id'), table_name='department_closed_dates')
    op.drop_table('department_closed_dates')

    op.drop_index(op.f('ix_department_time_slots_department_id'), table_name='department_time_slots')
    op.drop_index(op.f('ix_department_time_slots_id'), table_name='department_time_slots')
    op.drop_table('department_time_slots')

    op.drop_index(op.f('ix_department_settings_id'), table_name='department_settings')
    op.drop_table('department_settings')

    op.drop_index(op.f('ix_departments_id'), table_name='departments')
    op.drop_table('departments')
