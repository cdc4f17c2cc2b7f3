"""Reader state - progress store, reconciliation and the viewer session."""
