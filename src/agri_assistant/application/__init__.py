"""Application layer: classification, context building, search and prompt assembly."""
