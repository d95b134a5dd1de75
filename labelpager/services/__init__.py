"""Service layer helpers for labelpager."""
