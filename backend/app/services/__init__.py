"""Application services: SQL-backed stores and realtime wiring."""
