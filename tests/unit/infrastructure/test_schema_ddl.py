"""Row-level security DDL for tenant tables."""

from billing_pipeline.infrastructure.database.schema import TENANT_TABLES, row_level_security_ddl


def test_rls_policy_uses_transaction_setting():
    statements = row_level_security_ddl("invoices")
    assert statements[0] == "ALTER TABLE invoices ENABLE ROW LEVEL SECURITY"
    assert "FORCE ROW LEVEL SECURITY" in statements[1]
    create = statements[-1]
    assert "current_setting('app.tenant_id', true)" in create
    assert "USING" in create and "WITH CHECK" in create


def test_idempotency_ledger_has_no_rls():
    assert "processed_events" not in TENANT_TABLES
    assert set(TENANT_TABLES) == {"invoices", "audit_logs"}
