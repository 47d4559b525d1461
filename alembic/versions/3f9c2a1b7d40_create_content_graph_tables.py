"""create content graph tables

Revision ID: 3f9c2a1b7d40
Revises:
Create Date: 2026-10-19 09:12:44.301517

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c2a1b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), 'postgresql')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workspaces_slug'), 'workspaces', ['slug'], unique=True)

    op.create_table(
        'content_types',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('api_key', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('seo_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workspace_id', 'api_key', name='uq_content_type_workspace_api_key')
    )
    op.create_index(op.f('ix_content_types_workspace_id'), 'content_types', ['workspace_id'], unique=False)

    op.create_table(
        'content_fields',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('content_type_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('api_key', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('is_unique', sa.Boolean(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('min_length', sa.Integer(), nullable=True),
        sa.Column('max_length', sa.Integer(), nullable=True),
        sa.Column('min_number', sa.Float(), nullable=True),
        sa.Column('max_number', sa.Float(), nullable=True),
        sa.Column('slug_from', sa.String(length=100), nullable=True),
        sa.Column('config', json_type, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['content_type_id'], ['content_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('content_type_id', 'api_key', name='uq_content_field_type_api_key')
    )
    op.create_index(op.f('ix_content_fields_content_type_id'), 'content_fields', ['content_type_id'], unique=False)

    op.create_table(
        'relation_configs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('field_id', sa.String(length=36), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('target_content_type_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['field_id'], ['content_fields.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_content_type_id'], ['content_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('field_id')
    )

    op.create_table(
        'content_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('content_type_id', sa.String(length=36), nullable=False),
        sa.Column('slug', sa.String(length=190), nullable=True),
        sa.Column('seo_title', sa.String(length=255), nullable=True),
        sa.Column('meta_description', sa.String(length=160), nullable=True),
        sa.Column('keywords', json_type, nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        sa.Column('updated_by_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['content_type_id'], ['content_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workspace_id', 'slug', name='uq_content_entry_workspace_slug')
    )
    op.create_index(op.f('ix_content_entries_workspace_id'), 'content_entries', ['workspace_id'], unique=False)
    op.create_index(op.f('ix_content_entries_content_type_id'), 'content_entries', ['content_type_id'], unique=False)
    op.create_index(op.f('ix_content_entries_is_published'), 'content_entries', ['is_published'], unique=False)

    op.create_table(
        'field_values',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('entry_id', sa.String(length=36), nullable=False),
        sa.Column('field_id', sa.String(length=36), nullable=False),
        sa.Column('value_string', sa.Text(), nullable=True),
        sa.Column('value_number', sa.Float(), nullable=True),
        sa.Column('value_boolean', sa.Boolean(), nullable=True),
        sa.Column('value_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('value_json', json_type, nullable=True),
        sa.ForeignKeyConstraint(['entry_id'], ['content_entries.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['field_id'], ['content_fields.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entry_id', 'field_id', name='uq_field_value_entry_field')
    )
    op.create_index(op.f('ix_field_values_entry_id'), 'field_values', ['entry_id'], unique=False)
    op.create_index(op.f('ix_field_values_field_id'), 'field_values', ['field_id'], unique=False)

    op.create_table(
        'content_relations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('field_id', sa.String(length=36), nullable=False),
        sa.Column('from_entry_id', sa.String(length=36), nullable=False),
        sa.Column('to_entry_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['field_id'], ['content_fields.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_entry_id'], ['content_entries.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['to_entry_id'], ['content_entries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_content_relations_from', 'content_relations', ['workspace_id', 'field_id', 'from_entry_id'], unique=False)
    op.create_index('ix_content_relations_to', 'content_relations', ['workspace_id', 'to_entry_id'], unique=False)

    op.create_table(
        'content_relations_m2m',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('relation_field_id', sa.String(length=36), nullable=False),
        sa.Column('from_entry_id', sa.String(length=36), nullable=False),
        sa.Column('to_entry_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['relation_field_id'], ['content_fields.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_entry_id'], ['content_entries.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['to_entry_id'], ['content_entries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('relation_field_id', 'from_entry_id', 'to_entry_id', name='uq_m2m_rel_triple')
    )
    op.create_index('ix_content_relations_m2m_to', 'content_relations_m2m', ['workspace_id', 'to_entry_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_content_relations_m2m_to', table_name='content_relations_m2m')
    op.drop_table('content_relations_m2m')
    op.drop_index('ix_content_relations_to', table_name='content_relations')
    op.drop_index('ix_content_relations_from', table_name='content_relations')
    op.drop_table('content_relations')
    op.drop_index(op.f('ix_field_values_field_id'), table_name='field_values')
    op.drop_index(op.f('ix_field_values_entry_id'), table_name='field_values')
    op.drop_table('field_values')
    op.drop_index(op.f('ix_content_entries_is_published'), table_name='content_entries')
    op.drop_index(op.f('ix_content_entries_content_type_id'), table_name='content_entries')
    op.drop_index(op.f('ix_content_entries_workspace_id'), table_name='content_entries')
    op.drop_table('content_entries')
    op.drop_table('relation_configs')
    op.drop_index(op.f('ix_content_fields_content_type_id'), table_name='content_fields')
    op.drop_table('content_fields')
    op.drop_index(op.f('ix_content_types_workspace_id'), table_name='content_types')
    op.drop_table('content_types')
    op.drop_index(op.f('ix_workspaces_slug'), table_name='workspaces')
    op.drop_table('workspaces')
