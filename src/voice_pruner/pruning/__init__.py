"""Prune engine, event reconciliation and the request facade."""
