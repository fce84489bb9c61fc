"""Data models for attribute definitions, records, queries and results."""
