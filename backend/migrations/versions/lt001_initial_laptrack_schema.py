"""initial laptrack schema

Revision ID: lt001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete schema:
- client_companies, software_engineers: reference data
- shipments: variant, stage, milestone timestamps, optimistic version counter
- laptops: inventory unit with status and optimistic version counter
- shipment_laptops: laptops travelling in a shipment
- reception_reports: one warehouse inspection per laptop (gates "available")
- audit_events: append-only lifecycle audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'lt001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # Reference data
    # ============================================================================
    op.create_table(
        'client_companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'software_engineers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # shipments: stage is a stable string, never an ordinal
    # ============================================================================
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shipment_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('client_company_id', sa.Integer(), nullable=False),
        sa.Column('software_engineer_id', sa.Integer(), nullable=True),
        sa.Column('laptop_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('jira_ticket_number', sa.String(length=32), nullable=False),
        sa.Column('courier_name', sa.String(length=64), nullable=True),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('pickup_scheduled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('arrived_warehouse_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_warehouse_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('eta_to_engineer', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_company_id'], ['client_companies.id']),
        sa.ForeignKeyConstraint(['software_engineer_id'], ['software_engineers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shipments_shipment_type', 'shipments', ['shipment_type'])
    op.create_index('ix_shipments_status', 'shipments', ['status'])
    op.create_index('ix_shipments_client_company_id', 'shipments', ['client_company_id'])
    op.create_index('ix_shipments_software_engineer_id', 'shipments', ['software_engineer_id'])
    op.create_index('ix_shipments_jira_ticket_number', 'shipments', ['jira_ticket_number'])
    op.create_index('ix_shipments_type_status', 'shipments', ['shipment_type', 'status'])

    # ============================================================================
    # laptops
    # ============================================================================
    op.create_table(
        'laptops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=64), nullable=True),
        sa.Column('model', sa.String(length=128), nullable=True),
        sa.Column('cpu', sa.String(length=128), nullable=True),
        sa.Column('ram_gb', sa.String(length=16), nullable=True),
        sa.Column('ssd_gb', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('client_company_id', sa.Integer(), nullable=True),
        sa.Column('software_engineer_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_company_id'], ['client_companies.id']),
        sa.ForeignKeyConstraint(['software_engineer_id'], ['software_engineers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('serial_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_laptops_sku', 'laptops', ['sku'])
    op.create_index('ix_laptops_status', 'laptops', ['status'])
    op.create_index('ix_laptops_client_company_id', 'laptops', ['client_company_id'])
    op.create_index('ix_laptops_software_engineer_id', 'laptops', ['software_engineer_id'])
    op.create_index('ix_laptops_company_status', 'laptops', ['client_company_id', 'status'])

    op.create_table(
        'shipment_laptops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shipment_id', sa.Integer(), nullable=False),
        sa.Column('laptop_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['shipment_id'], ['shipments.id']),
        sa.ForeignKeyConstraint(['laptop_id'], ['laptops.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shipment_id', 'laptop_id', name='uq_shipment_laptops_pair'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shipment_laptops_shipment_id', 'shipment_laptops', ['shipment_id'])
    op.create_index('ix_shipment_laptops_laptop_id', 'shipment_laptops', ['laptop_id'])

    # ============================================================================
    # reception_reports: approval is the only path to laptop "available"
    # ============================================================================
    op.create_table(
        'reception_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('laptop_id', sa.Integer(), nullable=False),
        sa.Column('shipment_id', sa.Integer(), nullable=True),
        sa.Column('client_company_id', sa.Integer(), nullable=True),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('warehouse_user_id', sa.Integer(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('photo_serial_number', sa.String(length=512), nullable=False),
        sa.Column('photo_external_condition', sa.String(length=512), nullable=False),
        sa.Column('photo_working_condition', sa.String(length=512), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_approval'),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['laptop_id'], ['laptops.id']),
        sa.ForeignKeyConstraint(['shipment_id'], ['shipments.id']),
        sa.ForeignKeyConstraint(['client_company_id'], ['client_companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('laptop_id', name='uq_reception_reports_laptop'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reception_reports_shipment_id', 'reception_reports', ['shipment_id'])
    op.create_index('ix_reception_reports_client_company_id', 'reception_reports', ['client_company_id'])
    op.create_index('ix_reception_reports_status', 'reception_reports', ['status'])

    # ============================================================================
    # audit_events: append-only
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('details', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_events_action', 'audit_events', ['action'])
    op.create_index('ix_audit_events_actor_user_id', 'audit_events', ['actor_user_id'])
    op.create_index('ix_audit_events_occurred_at', 'audit_events', ['occurred_at'])
    op.create_index('ix_audit_events_entity', 'audit_events', ['entity_type', 'entity_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('audit_events')
    op.drop_table('reception_reports')
    op.drop_table('shipment_laptops')
    op.drop_table('laptops')
    op.drop_table('shipments')
    op.drop_table('software_engineers')
    op.drop_table('client_companies')
