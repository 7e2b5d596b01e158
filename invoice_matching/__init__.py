"""Invoice to bank transaction reconciliation engine."""
