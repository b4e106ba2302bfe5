"""
Database Models

This package defines the database models for Snippetbox using SQLAlchemy ORM.

Key Models:
- base.py: Base SQLAlchemy model with common type definitions and time helpers
- snippets.py: Snippet records and the SnippetModel data access class
- sessions.py: Server-side session records and the session store

Timestamps are stored as naive UTC datetimes so that the same schema works against MySQL
DATETIME columns and SQLite. Expired rows are filtered in SQL rather than in Python.
"""
