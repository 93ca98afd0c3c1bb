"""LSP feature implementations for PL/SQL."""
