"""Infrastructure layer - SQLite storage behind SQLAlchemy Core.

This layer contains the connection, DDL generation, the document
repository, full text index management and the result cache.
"""
