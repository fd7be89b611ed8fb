"""Initial schema — risk register, intelligence, treatment log, period snapshots.

Revision ID: riskintel_001
Revises:
Create Date: 2026-10-19
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "riskintel_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ──────────────────────────────────────────────────────────────────────
    # 1.1 Tenant
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS organizations (
        id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name            VARCHAR(255) NOT NULL,
        slug            VARCHAR(100) UNIQUE NOT NULL,
        matrix_size     INTEGER NOT NULL DEFAULT 5,
        created_at      TIMESTAMP DEFAULT (NOW() AT TIME ZONE 'utc')
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS active_periods (
        organization_id         UUID PRIMARY KEY REFERENCES organizations(id),
        current_period_year     INTEGER NOT NULL,
        current_period_quarter  INTEGER NOT NULL,
        previous_period_year    INTEGER,
        previous_period_quarter INTEGER,
        period_started_at       TIMESTAMP,
        updated_at              TIMESTAMP
    )
    """)

    # ──────────────────────────────────────────────────────────────────────
    # 1.2 Risk Register
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS risks (
        id                          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id             UUID NOT NULL REFERENCES organizations(id),
        risk_code                   VARCHAR(50) NOT NULL,
        risk_title                  VARCHAR(255) NOT NULL,
        risk_description            TEXT,
        category                    VARCHAR(100),
        division                    VARCHAR(100),
        department                  VARCHAR(100),
        owner                       VARCHAR(255),
        status                      VARCHAR(30) NOT NULL DEFAULT 'OPEN',
        is_priority                 BOOLEAN NOT NULL DEFAULT FALSE,
        likelihood_inherent         INTEGER NOT NULL CONSTRAINT ck_risks_likelihood_min CHECK (likelihood_inherent >= 1),
        impact_inherent             INTEGER NOT NULL CONSTRAINT ck_risks_impact_min CHECK (impact_inherent >= 1),
        residual_likelihood         INTEGER,
        residual_impact             INTEGER,
        residual_score              INTEGER,
        residual_formula            VARCHAR(50),
        last_residual_calc          TIMESTAMP,
        intel_baseline_likelihood   INTEGER,
        intel_baseline_impact       INTEGER,
        last_intelligence_check     TIMESTAMP,
        version                     INTEGER NOT NULL DEFAULT 1,
        created_at                  TIMESTAMP,
        updated_at                  TIMESTAMP,
        CONSTRAINT uq_risks_org_code UNIQUE (organization_id, risk_code)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_risks_org_status ON risks(organization_id, status)")

    op.execute("""
    CREATE TABLE IF NOT EXISTS controls (
        id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id         UUID NOT NULL REFERENCES organizations(id),
        risk_id                 UUID NOT NULL REFERENCES risks(id),
        control_code            VARCHAR(50),
        name                    VARCHAR(255) NOT NULL,
        description             TEXT,
        target                  VARCHAR(20) NOT NULL
                                CONSTRAINT ck_controls_target CHECK (target IN ('Likelihood', 'Impact')),
        design_score            INTEGER NOT NULL DEFAULT 0
                                CONSTRAINT ck_controls_design CHECK (design_score BETWEEN 0 AND 3),
        implementation_score    INTEGER NOT NULL DEFAULT 0
                                CONSTRAINT ck_controls_implementation CHECK (implementation_score BETWEEN 0 AND 3),
        monitoring_score        INTEGER NOT NULL DEFAULT 0
                                CONSTRAINT ck_controls_monitoring CHECK (monitoring_score BETWEEN 0 AND 3),
        evaluation_score        INTEGER NOT NULL DEFAULT 0
                                CONSTRAINT ck_controls_evaluation CHECK (evaluation_score BETWEEN 0 AND 3),
        created_at              TIMESTAMP,
        updated_at              TIMESTAMP
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_controls_risk ON controls(risk_id)")

    # ──────────────────────────────────────────────────────────────────────
    # 1.3 Intelligence
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS external_events (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES organizations(id),
        source              VARCHAR(255) NOT NULL,
        event_type          VARCHAR(100) NOT NULL,
        title               VARCHAR(500) NOT NULL,
        summary             TEXT,
        url                 VARCHAR(1000),
        published_date      TIMESTAMP NOT NULL,
        fetched_at          TIMESTAMP,
        relevance_checked   BOOLEAN NOT NULL DEFAULT FALSE,
        created_at          TIMESTAMP
    )
    """)
    op.execute("""
    CREATE INDEX IF NOT EXISTS ix_external_events_org_checked
        ON external_events(organization_id, relevance_checked)
    """)
    op.execute("""
    CREATE INDEX IF NOT EXISTS ix_external_events_org_source_title
        ON external_events(organization_id, source, title)
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS risk_intelligence_alerts (
        id                          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id             UUID NOT NULL REFERENCES organizations(id),
        event_id                    UUID NOT NULL REFERENCES external_events(id),
        risk_id                     UUID NOT NULL REFERENCES risks(id),
        risk_code                   VARCHAR(50) NOT NULL,
        is_relevant                 BOOLEAN NOT NULL DEFAULT TRUE,
        confidence_score            INTEGER NOT NULL
                                    CONSTRAINT ck_alerts_confidence CHECK (confidence_score BETWEEN 0 AND 100),
        suggested_likelihood_change INTEGER,
        impact_change               INTEGER,
        reasoning                   TEXT,
        suggested_controls          JSONB NOT NULL DEFAULT '[]',
        impact_assessment           TEXT,
        status                      VARCHAR(20) NOT NULL DEFAULT 'pending'
                                    CONSTRAINT ck_alerts_status
                                    CHECK (status IN ('pending', 'accepted', 'rejected', 'applied')),
        user_notes                  TEXT,
        reviewed_by                 VARCHAR(255),
        reviewed_at                 TIMESTAMP,
        applied_at                  TIMESTAMP,
        created_at                  TIMESTAMP,
        CONSTRAINT uq_alerts_event_risk UNIQUE (event_id, risk_id)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_org_status ON risk_intelligence_alerts(organization_id, status)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_risk_status ON risk_intelligence_alerts(risk_id, status)")

    # ──────────────────────────────────────────────────────────────────────
    # 1.4 Audit: append-only, only the archive columns may change
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS treatment_log (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES organizations(id),
        sequence            INTEGER NOT NULL,
        alert_id            UUID NOT NULL,
        risk_code           VARCHAR(50) NOT NULL,
        action_taken        VARCHAR(20) NOT NULL,
        previous_likelihood INTEGER,
        new_likelihood      INTEGER,
        previous_impact     INTEGER,
        new_impact          INTEGER,
        notes               TEXT,
        applied_by          VARCHAR(255),
        applied_at          TIMESTAMP NOT NULL,
        deleted_at          TIMESTAMP,
        deleted_by          VARCHAR(255),
        previous_hash       VARCHAR(64),
        entry_hash          VARCHAR(64) NOT NULL,
        CONSTRAINT uq_treatment_log_org_seq UNIQUE (organization_id, sequence)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_treatment_log_org_risk ON treatment_log(organization_id, risk_code)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_treatment_log_alert ON treatment_log(alert_id)")

    op.execute("""
    CREATE OR REPLACE FUNCTION treatment_log_guard() RETURNS trigger AS $$
    BEGIN
        IF TG_OP = 'DELETE' THEN
            RAISE EXCEPTION 'treatment_log is append-only';
        END IF;
        IF (NEW.id, NEW.organization_id, NEW.sequence, NEW.alert_id, NEW.risk_code,
            NEW.action_taken, NEW.previous_likelihood, NEW.new_likelihood,
            NEW.previous_impact, NEW.new_impact, NEW.notes, NEW.applied_by,
            NEW.applied_at, NEW.previous_hash, NEW.entry_hash)
           IS DISTINCT FROM
           (OLD.id, OLD.organization_id, OLD.sequence, OLD.alert_id, OLD.risk_code,
            OLD.action_taken, OLD.previous_likelihood, OLD.new_likelihood,
            OLD.previous_impact, OLD.new_impact, OLD.notes, OLD.applied_by,
            OLD.applied_at, OLD.previous_hash, OLD.entry_hash) THEN
            RAISE EXCEPTION 'treatment_log entries are immutable except archive fields';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """)
    op.execute("""
    CREATE TRIGGER trg_treatment_log_guard
        BEFORE UPDATE OR DELETE ON treatment_log
        FOR EACH ROW EXECUTE FUNCTION treatment_log_guard()
    """)

    # ──────────────────────────────────────────────────────────────────────
    # 1.5 Period Snapshots: immutable once written
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS period_commits (
        id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id     UUID NOT NULL REFERENCES organizations(id),
        period_year         INTEGER NOT NULL,
        period_quarter      INTEGER NOT NULL
                            CONSTRAINT ck_period_commits_quarter CHECK (period_quarter BETWEEN 1 AND 4),
        committed_at        TIMESTAMP NOT NULL,
        committed_by        VARCHAR(255),
        risks_count         INTEGER NOT NULL DEFAULT 0,
        active_risks_count  INTEGER NOT NULL DEFAULT 0,
        closed_risks_count  INTEGER NOT NULL DEFAULT 0,
        controls_count      INTEGER NOT NULL DEFAULT 0,
        residual_formula    VARCHAR(50) NOT NULL,
        notes               TEXT,
        CONSTRAINT uq_period_commits_org_period UNIQUE (organization_id, period_year, period_quarter)
    )
    """)

    op.execute("""
    CREATE TABLE IF NOT EXISTS risk_history (
        id                      UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        organization_id         UUID NOT NULL REFERENCES organizations(id),
        commit_id               UUID NOT NULL REFERENCES period_commits(id),
        risk_id                 UUID NOT NULL,
        period_year             INTEGER NOT NULL,
        period_quarter          INTEGER NOT NULL,
        committed_at            TIMESTAMP NOT NULL,
        risk_code               VARCHAR(50) NOT NULL,
        risk_title              VARCHAR(255) NOT NULL,
        risk_description        TEXT,
        category                VARCHAR(100),
        division                VARCHAR(100),
        department              VARCHAR(100),
        owner                   VARCHAR(255),
        status                  VARCHAR(30) NOT NULL,
        is_priority             BOOLEAN NOT NULL DEFAULT FALSE,
        likelihood_inherent     INTEGER NOT NULL,
        impact_inherent         INTEGER NOT NULL,
        score_inherent          INTEGER NOT NULL,
        residual_likelihood     INTEGER NOT NULL,
        residual_impact         INTEGER NOT NULL,
        residual_score          INTEGER NOT NULL,
        residual_formula        VARCHAR(50) NOT NULL,
        controls_count          INTEGER NOT NULL DEFAULT 0,
        snapshot_data           JSONB NOT NULL DEFAULT '{}',
        CONSTRAINT uq_risk_history_commit_code UNIQUE (commit_id, risk_code)
    )
    """)
    op.execute("""
    CREATE INDEX IF NOT EXISTS ix_risk_history_org_period
        ON risk_history(organization_id, period_year, period_quarter)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_risk_history_org_code ON risk_history(organization_id, risk_code)")

    op.execute("""
    CREATE OR REPLACE FUNCTION reject_snapshot_write() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION '% rows are immutable', TG_TABLE_NAME;
    END;
    $$ LANGUAGE plpgsql
    """)
    for table in ("period_commits", "risk_history"):
        op.execute(f"""
        CREATE TRIGGER trg_{table}_immutable
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION reject_snapshot_write()
        """)


def downgrade() -> None:
    for table in ("period_commits", "risk_history"):
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_immutable ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_snapshot_write()")
    op.execute("DROP TRIGGER IF EXISTS trg_treatment_log_guard ON treatment_log")
    op.execute("DROP FUNCTION IF EXISTS treatment_log_guard()")
    for table in (
        "risk_history",
        "period_commits",
        "treatment_log",
        "risk_intelligence_alerts",
        "external_events",
        "controls",
        "risks",
        "active_periods",
        "organizations",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
