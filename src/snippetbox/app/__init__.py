"""
Snippetbox Application Layer

This package implements the web application layer for Snippetbox, handling HTTP requests
and responses using the aiohttp framework.

Key Components:
- cli.py: Entry point that parses flags, configures logging and runs the server
- server.py: Application assembly, middleware chain and server bootstrap
- config.py: Configuration management using Pydantic settings and the AppKeys that make up
  the application context
- sessions.py: Cookie-based session manager backed by the database session store
- templates.py: Template cache built once at startup
- tls.py: TLS context construction from a certificate/key pair
- tasks.py: Background tasks (expired session cleanup)
- handlers/: Request handlers for the page and internal endpoints
- util/: Operational utilities (development TLS certificates, database checks)

It provides the following endpoints:
- GET / - Home page listing the latest snippets
- GET /snippet/view?id=N - A single snippet
- POST /snippet/create - Create a snippet
- GET /ping - Health check
- GET /static/* - Static assets
"""
