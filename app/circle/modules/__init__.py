"""
Feature modules live under this package.

Each module owns its models, services and blueprints, and reuses the platform
primitives (auth, RBAC, audit, storage, mailer, DB session).
"""
