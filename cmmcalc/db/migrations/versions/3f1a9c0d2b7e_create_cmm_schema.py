"""create_cmm_schema

Revision ID: 3f1a9c0d2b7e
Revises:
Create Date: 2026-03-02 09:12:44.101532

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d2b7e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        for name in names
    ]


def upgrade() -> None:
    # Taxonomy
    op.create_table(
        'cmm_category_l1',
        sa.Column('code', sa.String(50), primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps('created_at', 'updated_at'),
    )
    op.create_table(
        'cmm_category_l2',
        sa.Column('code', sa.String(50), primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('l1_code', sa.String(50), sa.ForeignKey('cmm_category_l1.code'), nullable=False),
        sa.Column('default_unit', sa.String(20)),
        sa.Column('description', sa.Text),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps('created_at', 'updated_at'),
    )
    op.create_index('ix_cmm_category_l2_l1_code', 'cmm_category_l2', ['l1_code'])
    op.create_table(
        'cmm_category_l3',
        sa.Column('code', sa.String(50), primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('l2_code', sa.String(50), sa.ForeignKey('cmm_category_l2.code'), nullable=False),
        sa.Column('default_materials', sa.JSON),
        sa.Column('default_params', sa.JSON),
        sa.Column('description', sa.Text),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps('created_at', 'updated_at'),
    )
    op.create_index('ix_cmm_category_l3_l2_code', 'cmm_category_l3', ['l2_code'])

    # Material master
    op.create_table(
        'cmm_material_masters',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('english_name', sa.Text),
        sa.Column('category', sa.String(20), nullable=False, server_default='OTHER'),
        sa.Column('sub_category', sa.String(50)),
        sa.Column('base_unit', sa.String(20), nullable=False),
        sa.Column('specification', sa.Text),
        sa.Column('density', sa.Numeric(10, 4)),
        sa.Column('unit_weight', sa.Numeric(10, 4)),
        sa.Column('standard_length', sa.Numeric(10, 2)),
        sa.Column('standard_weight_per_length', sa.Numeric(10, 4)),
        sa.Column('usage_factor_rc', sa.Numeric(10, 4)),
        sa.Column('usage_factor_src', sa.Numeric(10, 4)),
        sa.Column('usage_factor_sc', sa.Numeric(10, 4)),
        sa.Column('reference_price', sa.Numeric(12, 2)),
        sa.Column('price_unit', sa.String(20)),
        sa.Column('price_updated_at', sa.DateTime(timezone=True)),
        sa.Column('tags', sa.JSON),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('notes', sa.Text),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('deleted_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.Text),
        sa.Column('updated_by', sa.Text),
    )
    op.create_index('ix_cmm_material_masters_category', 'cmm_material_masters', ['category'])
    op.create_index('ix_cmm_material_masters_status', 'cmm_material_masters', ['status'])
    op.create_index('idx_material_category_status', 'cmm_material_masters', ['category', 'status'])

    op.create_table(
        'cmm_unit_conversions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('material_id', sa.Uuid(as_uuid=True),
                  sa.ForeignKey('cmm_material_masters.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('from_unit', sa.String(20), nullable=False),
        sa.Column('to_unit', sa.String(20), nullable=False),
        sa.Column('conversion_factor', sa.Numeric(15, 6), nullable=False),
        sa.Column('formula', sa.Text),
        sa.Column('is_bidirectional', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text),
        *_timestamps('created_at'),
        sa.UniqueConstraint('material_id', 'from_unit', 'to_unit', name='uq_conversion_pair'),
        sa.CheckConstraint('conversion_factor > 0', name='check_conversion_factor_positive'),
    )
    op.create_index('ix_cmm_unit_conversions_material_id', 'cmm_unit_conversions', ['material_id'])

    # Rule sets
    op.create_table(
        'cmm_rule_sets',
        sa.Column('version', sa.String(20), primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('effective_to', sa.DateTime(timezone=True)),
        *_timestamps('created_at'),
        sa.Column('created_by', sa.Text),
        sa.CheckConstraint('effective_to IS NULL OR effective_to > effective_from',
                           name='check_effective_window'),
    )
    op.create_index('idx_rule_set_effective', 'cmm_rule_sets', ['effective_from'])

    op.create_table(
        'cmm_rule_set_pointers',
        sa.Column('name', sa.String(20), primary_key=True),
        sa.Column('version', sa.String(20), sa.ForeignKey('cmm_rule_sets.version'), nullable=False),
        *_timestamps('updated_at'),
        sa.Column('updated_by', sa.Text),
    )

    op.create_table(
        'cmm_conversion_rules',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('rule_set_version', sa.String(20), sa.ForeignKey('cmm_rule_sets.version'),
                  nullable=False),
        sa.Column('rule_type', sa.String(20), nullable=False),
        sa.Column('category_l1', sa.String(50)),
        sa.Column('category_l2', sa.String(50)),
        sa.Column('category_l3', sa.String(50)),
        sa.Column('source_material', sa.String(50)),
        sa.Column('target_material', sa.String(50)),
        sa.Column('formula', sa.Text, nullable=False, server_default=''),
        sa.Column('parameters', sa.JSON),
        sa.Column('output_unit', sa.String(20)),
        sa.Column('priority', sa.Integer, nullable=False, server_default='0'),
        sa.Column('description', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps('created_at'),
        sa.CheckConstraint(
            "rule_type IN ('UNIT', 'DENSITY', 'ASSEMBLY', 'WASTE', 'PACKAGING', 'SCENARIO')",
            name='check_rule_type',
        ),
    )
    op.create_index('ix_cmm_conversion_rules_rule_set_version', 'cmm_conversion_rules',
                    ['rule_set_version'])
    op.create_index('idx_rule_version_type', 'cmm_conversion_rules',
                    ['rule_set_version', 'rule_type', 'priority'])

    # Run ledger
    op.create_table(
        'cmm_calculation_runs',
        sa.Column('run_id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('project_id', sa.Text),
        sa.Column('category_l1', sa.String(50), nullable=False),
        sa.Column('rule_set_version', sa.String(20), sa.ForeignKey('cmm_rule_sets.version'),
                  nullable=False),
        sa.Column('input_snapshot', sa.JSON, nullable=False),
        sa.Column('input_hash', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('result_summary', sa.JSON),
        sa.Column('error_log', sa.JSON),
        sa.Column('duration_ms', sa.Integer),
        *_timestamps('created_at'),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.Text),
        sa.CheckConstraint(
            "status IN ('PENDING', 'RUNNING', 'SUCCESS', 'PARTIAL', 'FAILED')",
            name='check_run_status',
        ),
    )
    op.create_index('ix_cmm_calculation_runs_project_id', 'cmm_calculation_runs', ['project_id'])
    op.create_index('ix_cmm_calculation_runs_category_l1', 'cmm_calculation_runs', ['category_l1'])
    op.create_index('ix_cmm_calculation_runs_rule_set_version', 'cmm_calculation_runs',
                    ['rule_set_version'])
    op.create_index('ix_cmm_calculation_runs_input_hash', 'cmm_calculation_runs', ['input_hash'])
    op.create_index('idx_runs_project_created', 'cmm_calculation_runs', ['project_id', 'created_at'])

    op.create_table(
        'cmm_material_breakdown',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('run_id', sa.Uuid(as_uuid=True),
                  sa.ForeignKey('cmm_calculation_runs.run_id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('line_no', sa.Integer, nullable=False, server_default='0'),
        sa.Column('source_work_item_code', sa.Text, nullable=False),
        sa.Column('category_l1', sa.String(50), nullable=False),
        sa.Column('category_l2', sa.String(50), nullable=False),
        sa.Column('category_l3', sa.String(50)),
        sa.Column('material_code', sa.String(50)),
        sa.Column('material_name', sa.Text, nullable=False),
        sa.Column('spec', sa.Text),
        sa.Column('base_quantity', sa.Numeric(15, 4), nullable=False),
        sa.Column('waste_factor', sa.Numeric(6, 4), nullable=False),
        sa.Column('final_quantity', sa.Numeric(15, 2), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('packaging_unit', sa.String(20)),
        sa.Column('packaging_quantity', sa.Integer),
        sa.Column('unit_price', sa.Numeric(12, 2)),
        sa.Column('subtotal', sa.Numeric(15, 2)),
        sa.Column('trace_info', sa.JSON),
        *_timestamps('created_at'),
    )
    op.create_index('ix_cmm_material_breakdown_run_id', 'cmm_material_breakdown', ['run_id'])
    op.create_index('idx_breakdown_run_line', 'cmm_material_breakdown', ['run_id', 'line_no'])

    # Legacy floor-area estimator
    op.create_table(
        'cmm_building_profiles',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('structure_type', sa.String(10), nullable=False),
        sa.Column('building_usage', sa.String(20), nullable=False, server_default='OFFICE'),
        sa.Column('min_floors', sa.Integer, nullable=False, server_default='1'),
        sa.Column('max_floors', sa.Integer),
        sa.Column('rebar_factor', sa.Numeric(10, 4), nullable=False),
        sa.Column('rebar_unit', sa.String(20), nullable=False),
        sa.Column('concrete_factor', sa.Numeric(10, 4), nullable=False),
        sa.Column('concrete_unit', sa.String(20), nullable=False),
        sa.Column('formwork_factor', sa.Numeric(10, 4), nullable=False),
        sa.Column('formwork_unit', sa.String(20), nullable=False),
        sa.Column('steel_factor', sa.Numeric(10, 4)),
        sa.Column('steel_unit', sa.String(20)),
        sa.Column('mortar_factor', sa.Numeric(10, 4)),
        sa.Column('mortar_unit', sa.String(20)),
        sa.Column('other_factors', sa.JSON),
        sa.Column('description', sa.Text),
        sa.Column('is_system_default', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps('created_at'),
    )
    op.create_index('ix_cmm_building_profiles_structure_type', 'cmm_building_profiles',
                    ['structure_type'])
    op.create_index('idx_profile_structure_floors', 'cmm_building_profiles',
                    ['structure_type', 'min_floors'])

    op.create_table(
        'cmm_legacy_estimates',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('estimate_id', sa.Text),
        sa.Column('profile_code', sa.String(50), nullable=False),
        sa.Column('structure_type', sa.String(10), nullable=False),
        sa.Column('total_area', sa.Numeric(15, 2), nullable=False),
        sa.Column('input_snapshot', sa.JSON, nullable=False),
        sa.Column('result', sa.JSON, nullable=False),
        *_timestamps('created_at'),
    )
    op.create_index('ix_cmm_legacy_estimates_estimate_id', 'cmm_legacy_estimates', ['estimate_id'])


def downgrade() -> None:
    # Drop in reverse dependency order
    for table in (
        'cmm_legacy_estimates',
        'cmm_building_profiles',
        'cmm_material_breakdown',
        'cmm_calculation_runs',
        'cmm_conversion_rules',
        'cmm_rule_set_pointers',
        'cmm_rule_sets',
        'cmm_unit_conversions',
        'cmm_material_masters',
        'cmm_category_l3',
        'cmm_category_l2',
        'cmm_category_l1',
    ):
        op.drop_table(table)
