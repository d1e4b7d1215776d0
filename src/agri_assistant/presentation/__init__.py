"""HTTP surface: FastAPI routes, request/response schemas and authentication."""
