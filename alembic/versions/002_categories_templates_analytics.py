"""Order items and notes, product categories, email templates, notification
preferences, media folders and analytics events.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

NEW_TENANT_TABLES = [
    "product_categories",
    "email_templates",
    "notification_preferences",
    "media_folders",
    "analytics_events",
]


def upgrade():
    op.execute("ALTER TABLE orders ADD COLUMN items JSONB NOT NULL DEFAULT '[]';")
    op.execute("ALTER TABLE orders ADD COLUMN internal_notes TEXT;")
    op.execute("CREATE INDEX idx_orders_created ON orders(tenant_id, created_at DESC);")

    op.execute("""
        CREATE TABLE product_categories (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL,
            slug TEXT NOT NULL,
            description TEXT,
            image TEXT,
            parent_id TEXT REFERENCES product_categories(id) ON DELETE SET NULL,
            position INTEGER NOT NULL DEFAULT 0,
            UNIQUE (tenant_id, slug)
        );
    """)

    op.execute("""
        CREATE TABLE email_templates (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL,
            subject TEXT NOT NULL,
            html_content TEXT,
            text_content TEXT,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE TABLE notification_preferences (
            tenant_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            preferences JSONB NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (tenant_id, user_id)
        );
    """)

    # NULLS NOT DISTINCT so two root folders cannot share a name (Postgres 15+)
    op.execute("""
        CREATE TABLE media_folders (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL,
            path TEXT NOT NULL,
            parent_id TEXT REFERENCES media_folders(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE NULLS NOT DISTINCT (tenant_id, parent_id, name)
        );
    """)

    op.execute("""
        CREATE TABLE analytics_events (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            event TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'custom',
            properties JSONB NOT NULL DEFAULT '{}',
            url TEXT,
            referrer TEXT,
            user_agent TEXT,
            user_id TEXT,
            session_id TEXT,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX idx_analytics_events_time ON analytics_events(tenant_id, timestamp DESC);")
    op.execute("CREATE INDEX idx_analytics_events_event ON analytics_events(tenant_id, event, timestamp DESC);")

    for table in NEW_TENANT_TABLES:
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
    for table in reversed(NEW_TENANT_TABLES):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
    op.execute("DROP INDEX IF EXISTS idx_orders_created")
    op.execute("ALTER TABLE orders DROP COLUMN IF EXISTS internal_notes")
    op.execute("ALTER TABLE orders DROP COLUMN IF EXISTS items")
