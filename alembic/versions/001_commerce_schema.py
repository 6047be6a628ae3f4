"""Commerce schema: catalog tables, tenant RLS, stored primitives and the execution log.

Every tenant table carries tenant_id and one policy:
rows are visible when app.tenant_id matches, or when it is empty (system_conn).

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

TENANT_TABLES = [
    "discounts",
    "discount_usages",
    "orders",
    "carts",
    "products",
    "product_variants",
    "subscribers",
    "notifications",
    "media",
    "primitive_executions",
]


def upgrade():
    # Discounts
    op.execute("""
        CREATE TABLE discounts (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            code TEXT NOT NULL,
            description TEXT,
            type TEXT NOT NULL CHECK (type IN ('PERCENTAGE', 'FIXED')),
            value INTEGER NOT NULL CHECK (value > 0),
            apply_to TEXT NOT NULL DEFAULT 'ALL' CHECK (apply_to IN ('ALL', 'PRODUCT', 'CATEGORY')),
            product_ids JSONB NOT NULL DEFAULT '[]',
            category_ids JSONB NOT NULL DEFAULT '[]',
            min_order_value INTEGER,
            max_discount INTEGER,
            usage_limit INTEGER,
            usage_count INTEGER NOT NULL DEFAULT 0,
            per_customer INTEGER,
            first_order_only BOOLEAN NOT NULL DEFAULT false,
            enabled BOOLEAN NOT NULL DEFAULT true,
            starts_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            expires_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (tenant_id, code)
        );
    """)

    op.execute("""
        CREATE TABLE discount_usages (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            discount_id TEXT NOT NULL REFERENCES discounts(id) ON DELETE CASCADE,
            order_id TEXT,
            user_id TEXT,
            email TEXT,
            discount_amount INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX idx_discount_usages_discount ON discount_usages(discount_id);")

    # Orders and carts
    op.execute("""
        CREATE TABLE orders (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            order_number TEXT,
            customer_id TEXT,
            email TEXT,
            status TEXT NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'CANCELLED', 'REFUNDED')),
            subtotal INTEGER NOT NULL DEFAULT 0,
            shipping_total INTEGER NOT NULL DEFAULT 0,
            tax_total INTEGER NOT NULL DEFAULT 0,
            discount_total INTEGER NOT NULL DEFAULT 0,
            total INTEGER NOT NULL DEFAULT 0,
            discount_code_id TEXT REFERENCES discounts(id) ON DELETE SET NULL,
            discount_code TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX idx_orders_customer ON orders(tenant_id, customer_id);")
    op.execute("CREATE INDEX idx_orders_email ON orders(tenant_id, email);")

    op.execute("""
        CREATE TABLE carts (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            customer_id TEXT,
            subtotal INTEGER NOT NULL DEFAULT 0,
            shipping_total INTEGER NOT NULL DEFAULT 0,
            tax_total INTEGER NOT NULL DEFAULT 0,
            discount_total INTEGER NOT NULL DEFAULT 0,
            total INTEGER NOT NULL DEFAULT 0,
            discount_code_id TEXT REFERENCES discounts(id) ON DELETE SET NULL,
            discount_code TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # Products
    op.execute("""
        CREATE TABLE products (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL,
            slug TEXT NOT NULL,
            description TEXT,
            short_description TEXT,
            base_price INTEGER NOT NULL DEFAULT 0,
            compare_at_price INTEGER,
            status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('ACTIVE', 'DRAFT', 'ARCHIVED')),
            featured BOOLEAN NOT NULL DEFAULT false,
            category_id TEXT,
            image_url TEXT,
            deleted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (tenant_id, slug)
        );
    """)

    op.execute("""
        CREATE TABLE product_variants (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            product_id TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            sku TEXT,
            price INTEGER NOT NULL DEFAULT 0,
            compare_at_price INTEGER,
            stock INTEGER NOT NULL DEFAULT 0,
            low_stock_threshold INTEGER,
            options JSONB NOT NULL DEFAULT '{}',
            position INTEGER NOT NULL DEFAULT 0,
            deleted_at TIMESTAMPTZ
        );
    """)
    op.execute("CREATE INDEX idx_product_variants_product ON product_variants(product_id);")

    # Email subscribers
    op.execute("""
        CREATE TABLE subscribers (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            email TEXT NOT NULL,
            first_name TEXT,
            last_name TEXT,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING', 'SUBSCRIBED', 'UNSUBSCRIBED')),
            lists JSONB NOT NULL DEFAULT '[]',
            preferences JSONB NOT NULL DEFAULT '{}',
            source TEXT NOT NULL DEFAULT 'api',
            confirmation_token TEXT UNIQUE,
            subscribed_at TIMESTAMPTZ,
            unsubscribed_at TIMESTAMPTZ,
            unsubscribe_reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (tenant_id, email)
        );
    """)

    # Notifications and media
    op.execute("""
        CREATE TABLE notifications (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}',
            action_url TEXT,
            image_url TEXT,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX idx_notifications_user ON notifications(tenant_id, user_id, created_at DESC);")

    op.execute("""
        CREATE TABLE media (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL,
            url TEXT NOT NULL,
            thumbnail_url TEXT,
            mime_type TEXT NOT NULL,
            size BIGINT NOT NULL DEFAULT 0,
            width INTEGER,
            height INTEGER,
            alt TEXT,
            caption TEXT,
            folder_id TEXT,
            metadata JSONB NOT NULL DEFAULT '{}',
            deleted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # User-defined primitives. Not tenant scoped: the registry is process-wide.
    op.execute("""
        CREATE TABLE primitives (
            name TEXT PRIMARY KEY,
            category TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            input_schema JSONB NOT NULL,
            handler TEXT NOT NULL,
            timeout_ms INTEGER CHECK (timeout_ms BETWEEN 1 AND 300000),
            tags JSONB NOT NULL DEFAULT '[]',
            icon TEXT,
            enabled BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # Execution audit trail
    op.execute("""
        CREATE TABLE primitive_executions (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            primitive_name TEXT NOT NULL,
            user_id TEXT,
            agent_id TEXT,
            input JSONB NOT NULL DEFAULT '{}',
            success BOOLEAN NOT NULL,
            error_kind TEXT,
            message TEXT,
            duration_ms INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX idx_primitive_executions_name ON primitive_executions(tenant_id, primitive_name, created_at DESC);"
    )

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY;")
        op.execute(f"""
            CREATE POLICY {table}_tenant
            ON {table}
            FOR ALL
            USING (
                NULLIF(current_setting('app.tenant_id', true), '') IS NULL
                OR tenant_id = current_setting('app.tenant_id', true)
            )
            WITH CHECK (
                NULLIF(current_setting('app.tenant_id', true), '') IS NULL
                OR tenant_id = current_setting('app.tenant_id', true)
            );
        """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS primitive_executions CASCADE")
    op.execute("DROP TABLE IF EXISTS primitives CASCADE")
    for table in reversed(TENANT_TABLES[:-1]):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
