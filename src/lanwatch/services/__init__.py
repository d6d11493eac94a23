"""Discovery, reconciliation, query and retention services."""
