# Middleware package init
"""
MathMentor Scheduling Backend — Middleware Package
====================================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit FIRST: reject abusive clients before touching the database
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: one access line with status, duration and actor
    4. GZip / CORS: FastAPI built-ins
"""
