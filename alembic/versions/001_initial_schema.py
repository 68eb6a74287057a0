"""001 – Initial schema: labels, documents, doc-number counters, leave
ledgers, ledger entries, leave requests, audit trail; seed labels.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+09:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# Tables in creation order; dropped in reverse
TABLES: list[str] = [
    "document_labels",
    "documents",
    "document_number_counters",
    "annual_leave_balances",
    "comp_leave_balances",
    "ledger_entries",
    "leave_requests",
    "audit_trail",
]

# (code, name, color); code 4 is the attendance label
SEED_LABELS: list[tuple[int, str, str]] = [
    (1, "지출결의", "#2f6fde"),
    (2, "품의", "#7a5af8"),
    (3, "협조", "#12b76a"),
    (4, "근태", "#f79009"),
]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── 1. document_labels ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE document_labels (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code        INTEGER NOT NULL UNIQUE,
            name        VARCHAR(100) NOT NULL,
            color       VARCHAR(20),
            created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    # ── 2. documents ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE documents (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            doc_number            VARCHAR(20) NOT NULL UNIQUE,
            kind                  VARCHAR(20) NOT NULL,
            label_id              UUID NOT NULL REFERENCES document_labels(id),
            drafter_id            VARCHAR(64) NOT NULL,
            status                VARCHAR(20) NOT NULL DEFAULT 'pending',
            title                 VARCHAR(200) NOT NULL,
            content               TEXT,
            execution_date        DATE,
            payment_method        VARCHAR(50),
            attachments           JSONB NOT NULL DEFAULT '[]'::jsonb,
            expense_items         JSONB NOT NULL DEFAULT '[]'::jsonb,
            attendance_type       VARCHAR(20) NOT NULL DEFAULT 'none',
            leave_type            VARCHAR(20),
            leave_start_date      DATE,
            leave_end_date        DATE,
            leave_days            NUMERIC(6,3),
            extra_work_hours      NUMERIC(6,2) NOT NULL DEFAULT 0
                                  CHECK (extra_work_hours >= 0),
            is_private            BOOLEAN NOT NULL DEFAULT false,
            rejected_reason       TEXT,
            approver_id           VARCHAR(64),
            chairman_approver_id  VARCHAR(64),
            chairman_approved_at  TIMESTAMPTZ,
            created_at            TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at            TIMESTAMPTZ NOT NULL DEFAULT now(),
            approved_at           TIMESTAMPTZ,
            version               INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_documents_leave_range
                CHECK (leave_end_date IS NULL OR leave_end_date >= leave_start_date)
        )
    """)
    op.execute("CREATE INDEX ix_documents_drafter_id ON documents(drafter_id)")
    op.execute("CREATE INDEX ix_documents_status ON documents(status)")
    op.execute("CREATE INDEX ix_documents_created_at ON documents(created_at)")

    # ── 3. document_number_counters ───────────────────────────────────────
    op.execute("""
        CREATE TABLE document_number_counters (
            day         DATE PRIMARY KEY,
            last_value  INTEGER NOT NULL DEFAULT 0
        )
    """)

    # ── 4. annual_leave_balances ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE annual_leave_balances (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id     VARCHAR(64) NOT NULL,
            year        INTEGER NOT NULL,
            total_days  NUMERIC(6,3) NOT NULL DEFAULT 0 CHECK (total_days >= 0),
            used_days   NUMERIC(6,3) NOT NULL DEFAULT 0 CHECK (used_days >= 0),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_annual_leave_user_year UNIQUE (user_id, year)
        )
    """)

    # ── 5. comp_leave_balances ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE comp_leave_balances (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id      VARCHAR(64) NOT NULL,
            year         INTEGER NOT NULL,
            document_id  UUID,
            total_hours  NUMERIC(8,3) NOT NULL DEFAULT 0 CHECK (total_hours >= 0),
            used_hours   NUMERIC(8,3) NOT NULL DEFAULT 0 CHECK (used_hours >= 0),
            description  VARCHAR(255),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_comp_leave_user_year UNIQUE (user_id, year)
        )
    """)

    # ── 6. ledger_entries ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE ledger_entries (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            source_type  VARCHAR(20) NOT NULL,
            source_id    UUID NOT NULL,
            entry_kind   VARCHAR(20) NOT NULL,
            user_id      VARCHAR(64) NOT NULL,
            year         INTEGER NOT NULL,
            amount       NUMERIC(8,3) NOT NULL,
            description  VARCHAR(255),
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_ledger_entry_source UNIQUE (source_type, source_id)
        )
    """)
    op.execute("CREATE INDEX ix_ledger_entries_user_year ON ledger_entries(user_id, year)")

    # ── 7. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id          VARCHAR(64) NOT NULL,
            leave_type       VARCHAR(20) NOT NULL,
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            days             NUMERIC(6,3) NOT NULL,
            reason           TEXT,
            status           VARCHAR(20) NOT NULL DEFAULT 'pending',
            approved_by      VARCHAR(64),
            approved_at      TIMESTAMPTZ,
            rejected_reason  TEXT,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
            version          INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_leave_requests_range CHECK (end_date >= start_date)
        )
    """)
    op.execute("CREATE INDEX ix_leave_requests_user_id ON leave_requests(user_id)")
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     VARCHAR(64),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail(action)")

    # ── Seed data ─────────────────────────────────────────────────────────
    for code, name, color in SEED_LABELS:
        op.execute(
            f"INSERT INTO document_labels (code, name, color) "
            f"VALUES ({code}, '{name}', '{color}')"
        )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for t in reversed(TABLES):
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
