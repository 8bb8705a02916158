# NG-HEADER: Nombre de archivo: 20261019_initial_schema.py
# NG-HEADER: Ubicación: db/migrations/versions/20261019_initial_schema.py
# NG-HEADER: Descripción: Esquema inicial: usuarios, catálogo, facturación, stock y alertas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from alembic import op
import sqlalchemy as sa

from db.migrations.util import has_table, index_exists

# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _ts():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not has_table(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("identifier", sa.String(64), nullable=True),
            sa.Column("email", sa.String(255), nullable=True, unique=True),
            sa.Column("name", sa.String(100), nullable=True),
            sa.Column("company", sa.String(255), nullable=True),
            sa.Column("password_hash", sa.Text(), nullable=False),
            sa.Column("role", sa.String(20), nullable=False),
            *_ts(),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("role IN ('user','admin')", name="ck_users_role"),
        )
        op.create_index("ix_users_identifier", "users", ["identifier"], unique=True)

    if not has_table(bind, "sessions"):
        op.create_table(
            "sessions",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
            sa.Column("role", sa.String(20), nullable=False),
            sa.Column("csrf_token", sa.String(100), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            *_ts(),
            sa.Column("ip", sa.String(100), nullable=True),
            sa.Column("user_agent", sa.String(200), nullable=True),
            sa.CheckConstraint("role IN ('guest','user','admin')", name="ck_sessions_role"),
        )

    if not has_table(bind, "categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
        )
        op.create_index("ix_categories_user_id", "categories", ["user_id"])

    if not has_table(bind, "clients"):
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(255), nullable=True),
            sa.Column("phone", sa.String(50), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("company", sa.String(255), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
        )
        op.create_index("ix_clients_user_id", "clients", ["user_id"])

    if not has_table(bind, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price_ht", sa.Numeric(15, 2), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("alert_stock", sa.Integer(), nullable=False, server_default="10"),
            sa.Column(
                "category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
            sa.CheckConstraint("alert_stock >= 1", name="ck_products_alert_stock_positive"),
        )
        op.create_index("ix_products_user_id", "products", ["user_id"])

    if not has_table(bind, "stock_replenishments"):
        op.create_table(
            "stock_replenishments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("cost_per_unit", sa.Numeric(15, 2), nullable=True),
            sa.Column("total_cost", sa.Numeric(15, 2), nullable=True),
            sa.Column("supplier", sa.String(255), nullable=True),
            sa.Column("reference", sa.String(100), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
            sa.CheckConstraint("quantity > 0", name="ck_stock_replenishments_quantity"),
        )
        op.create_index("ix_stock_replenishments_product_id", "stock_replenishments", ["product_id"])
        op.create_index("ix_stock_replenishments_user_id", "stock_replenishments", ["user_id"])

    if not has_table(bind, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("source_type", sa.String(20), nullable=False),
            sa.Column("source_id", sa.Integer(), nullable=True),
            sa.Column("delta", sa.Integer(), nullable=False),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("meta", sa.JSON(), nullable=True),
            *_ts(),
            sa.CheckConstraint(
                "source_type IN ('replenishment','invoice')", name="ck_stock_movements_source_type"
            ),
        )
        op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])

    if not has_table(bind, "invoices"):
        op.create_table(
            "invoices",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("number", sa.String(50), nullable=False),
            sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
            sa.Column("status", sa.String(30), nullable=False),
            sa.Column("tva_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("total_ht", sa.Numeric(15, 2), nullable=False),
            sa.Column("total_tva", sa.Numeric(15, 2), nullable=False),
            sa.Column("total_ttc", sa.Numeric(15, 2), nullable=False),
            sa.Column("payment_method", sa.String(50), nullable=False),
            sa.Column("due_date", sa.DateTime(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
            sa.CheckConstraint(
                "status IN ('en_attente','payee','partiellement_reglee')", name="ck_invoices_status"
            ),
        )
        op.create_index("ix_invoices_user_id", "invoices", ["user_id"])

    if not has_table(bind, "invoice_items"):
        op.create_table(
            "invoice_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=True),
            sa.Column("product_name", sa.String(255), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("price_ht", sa.Numeric(15, 2), nullable=False),
            sa.Column("total_ht", sa.Numeric(15, 2), nullable=False),
            sa.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity"),
        )
        op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    if not has_table(bind, "sales"):
        op.create_table(
            "sales",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
            sa.Column("total", sa.Numeric(15, 2), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            *_ts(),
        )
        op.create_index("ix_sales_invoice_id", "sales", ["invoice_id"])
        op.create_index("ix_sales_user_id", "sales", ["user_id"])

    if not has_table(bind, "business_alerts"):
        op.create_table(
            "business_alerts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(50), nullable=False),
            sa.Column("severity", sa.String(20), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("entity_type", sa.String(50), nullable=True),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_ts(),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "type IN ('low_stock','critical_stock','overdue_invoice','payment_due')",
                name="ck_business_alerts_type",
            ),
            sa.CheckConstraint(
                "severity IN ('low','medium','high','critical')", name="ck_business_alerts_severity"
            ),
        )
        op.create_index("ix_business_alerts_user_id", "business_alerts", ["user_id"])

    if not index_exists(bind, "business_alerts", "ux_business_alerts_open_entity"):
        # Una sola alerta abierta por (usuario, tipo, entidad)
        op.create_index(
            "ux_business_alerts_open_entity",
            "business_alerts",
            ["user_id", "type", "entity_type", "entity_id"],
            unique=True,
            sqlite_where=sa.text("is_resolved = 0"),
            postgresql_where=sa.text("is_resolved = false"),
        )


def downgrade() -> None:
    op.drop_index("ux_business_alerts_open_entity", table_name="business_alerts")
    for table in (
        "business_alerts",
        "sales",
        "invoice_items",
        "invoices",
        "stock_movements",
        "stock_replenishments",
        "products",
        "clients",
        "categories",
        "sessions",
        "users",
    ):
        op.drop_table(table)
