"""PyShell — an embeddable, rank-gated command dispatch shell."""
