"""
Schemas module - Request/Response schemas for API endpoints, listing view
models and notification payloads. Everything lives in schemas.py.
"""
