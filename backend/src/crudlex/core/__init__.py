"""Core types: field types, entity records and exceptions."""
