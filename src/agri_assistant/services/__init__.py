"""Concrete adapters: model completion, web search and SQLite persistence."""
