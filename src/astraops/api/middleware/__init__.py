"""API middleware package.

Manifesto:
    Cross-cutting concerns (auth, request context, errors) belong in
    middleware so routers stay focused on jobs.

Tags:
    astraops, api, middleware

Doc-Types:
    api-reference
"""
