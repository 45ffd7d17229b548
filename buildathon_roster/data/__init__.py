"""Repository, consistency engine, CSV import and backup layers."""
