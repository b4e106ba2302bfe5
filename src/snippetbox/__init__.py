"""
Snippetbox - a small web application for sharing text snippets

This package implements a server-rendered web application that lets users view and create
short text snippets stored in a relational database. Sessions are tracked with a cookie and
stored server-side in the same database, and the server terminates TLS itself.

Key Components:
- app: Web application layer with request handlers, session management, templates and
  server bootstrap
- model: Database models and data access for snippets and sessions

Request Flow:
1. The server accepts a connection and dispatches the request through the middleware chain
   (request logging, panic recovery, write timeout, sessions)
2. The router selects a handler, which validates its input before touching the database
3. Pages are rendered from the template cache built once at startup
4. Changed sessions are saved to the database by aiohttp-session and the cookie is written on
   the way out
"""
