"""Personal bookkeeping package."""

__all__ = [
    "config",
    "crud",
    "database",
    "exceptions",
    "models",
    "schemas",
    "seeding",
    "services",
]
