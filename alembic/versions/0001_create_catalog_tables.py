from alembic import op
import sqlalchemy as sa


revision = "0001_create_catalog_tables"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "sliders",
        *_audit_columns(),
        sa.Column("title1", sa.String(length=20), nullable=False),
        sa.Column("title2", sa.String(length=20), nullable=False),
        sa.Column("description", sa.String(length=150), nullable=False),
        sa.Column("redirect_url", sa.String(length=2048), nullable=True),
        sa.Column("redirect_url_text", sa.String(length=40), nullable=False),
        sa.Column("image_url", sa.String(length=100), nullable=True),
    )
    op.create_table(
        "genres",
        *_audit_columns(),
        sa.Column("name", sa.String(length=50), nullable=False),
    )
    op.create_table(
        "authors",
        *_audit_columns(),
        sa.Column("full_name", sa.String(length=50), nullable=True),
    )
    op.create_table(
        "books",
        *_audit_columns(),
        sa.Column("genre_id", sa.Integer(), sa.ForeignKey("genres.id"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("authors.id"), nullable=False),
        sa.Column("title", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=350), nullable=True),
        sa.Column("book_code", sa.String(length=50), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False),
        sa.Column("sale_price", sa.Float(), nullable=False),
        sa.Column("discount_percent", sa.Float(), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_new", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_best_seller", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stock_count", sa.Integer(), nullable=False),
    )
    op.create_index("ix_books_book_code", "books", ["book_code"], unique=False)
    op.create_table(
        "book_images",
        *_audit_columns(),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("image_url", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False, server_default="detail"),
    )
    for table in ("sliders", "genres", "authors", "books", "book_images"):
        op.create_index(f"ix_{table}_id", table, ["id"], unique=False)


def downgrade() -> None:
    for table in ("book_images", "books", "authors", "genres", "sliders"):
        op.drop_index(f"ix_{table}_id", table_name=table)
    op.drop_index("ix_books_book_code", table_name="books")
    op.drop_table("book_images")
    op.drop_table("books")
    op.drop_table("authors")
    op.drop_table("genres")
    op.drop_table("sliders")
