"""
Services Package for WA Order Bot
=================================

Service modules that wrap the database and the knowledge-base model.

Available Services:
-------------------
- **cart_store**: per-customer cart persistence with locking and version checks
- **catalog**: read access to a tenant's active products
- **knowledge**: document search and AI reply generation

Services receive their dependencies (database session, settings, API
clients) in their constructors rather than creating them, so tests can
pass fakes.
"""
