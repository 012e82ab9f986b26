"""add sandbox admission tables

Revision ID: 3b8d5c1f0a27
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
import sqlmodel
from alembic import op

# revision identifiers, used by Alembic.
revision = "3b8d5c1f0a27"
down_revision = None
branch_labels = None
depends_on = None

_INDEXES: tuple[tuple[str, str], ...] = (
    ("resource_tiers", "is_default"),
    ("container_addons", "category"),
    ("quota_policies", "user_id"),
    ("sandboxes", "user_id"),
    ("sandboxes", "tier_id"),
    ("sandboxes", "status"),
)


def _has_table(table_name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(table_name)


def _has_index(table_name: str, index_name: str) -> bool:
    if not _has_table(table_name):
        return False
    indexes = sa.inspect(op.get_bind()).get_indexes(table_name)
    return any(index["name"] == index_name for index in indexes)


def upgrade() -> None:
    if not _has_table("resource_tiers"):
        op.create_table(
            "resource_tiers",
            sa.Column("id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
            sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
            sa.Column("description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("cpu_cores", sa.Integer(), nullable=False),
            sa.Column("memory_gb", sa.Integer(), nullable=False),
            sa.Column("storage_gb", sa.Integer(), nullable=False),
            sa.Column(
                "price_monthly",
                sa.Numeric(precision=10, scale=2),
                nullable=False,
                server_default=sa.text("0"),
            ),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _has_table("container_addons"):
        op.create_table(
            "container_addons",
            sa.Column("id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
            sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
            sa.Column("description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("category", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
            sa.Column("image_size_mb", sa.Integer(), nullable=True),
            sa.Column("port", sa.Integer(), nullable=True),
            sa.Column("requires_gpu", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_flavor", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column(
                "price_monthly",
                sa.Numeric(precision=10, scale=2),
                nullable=False,
                server_default=sa.text("0"),
            ),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _has_table("quota_policies"):
        op.create_table(
            "quota_policies",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
            sa.Column("max_sandboxes", sa.Integer(), nullable=False, server_default=sa.text("3")),
            sa.Column(
                "max_concurrent_running",
                sa.Integer(),
                nullable=False,
                server_default=sa.text("1"),
            ),
            sa.Column("allowed_tier_ids", sa.JSON(), nullable=False),
            sa.Column(
                "max_tier_id",
                sqlmodel.sql.sqltypes.AutoString(),
                nullable=False,
                server_default=sa.text("'starter'"),
            ),
            sa.Column(
                "max_total_storage_gb",
                sa.Integer(),
                nullable=False,
                server_default=sa.text("10"),
            ),
            sa.Column(
                "max_total_cpu_cores",
                sa.Integer(),
                nullable=False,
                server_default=sa.text("2"),
            ),
            sa.Column(
                "max_total_memory_gb",
                sa.Integer(),
                nullable=False,
                server_default=sa.text("4"),
            ),
            sa.Column("allowed_addon_ids", sa.JSON(), nullable=True),
            sa.Column("notes", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", name="uq_quota_policies_user_id"),
        )

    if not _has_table("sandboxes"):
        op.create_table(
            "sandboxes",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
            sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
            sa.Column("slug", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
            sa.Column("description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("tier_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
            sa.Column(
                "flavor_id",
                sqlmodel.sql.sqltypes.AutoString(),
                nullable=False,
                server_default=sa.text("'fullstack'"),
            ),
            sa.Column("addon_ids", sa.JSON(), nullable=False),
            sa.Column(
                "status",
                sqlmodel.sql.sqltypes.AutoString(),
                nullable=False,
                server_default=sa.text("'created'"),
            ),
            sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("container_id", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("last_accessed_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["tier_id"], ["resource_tiers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "slug", name="uq_sandboxes_user_slug"),
        )

    for table_name, column in _INDEXES:
        index_name = op.f(f"ix_{table_name}_{column}")
        if not _has_index(table_name, index_name):
            op.create_index(index_name, table_name, [column], unique=False)


def downgrade() -> None:
    for table_name, column in reversed(_INDEXES):
        index_name = op.f(f"ix_{table_name}_{column}")
        if _has_index(table_name, index_name):
            op.drop_index(index_name, table_name=table_name)

    for table_name in ("sandboxes", "quota_policies", "container_addons", "resource_tiers"):
        if _has_table(table_name):
            op.drop_table(table_name)
