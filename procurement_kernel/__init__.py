"""
procurement_kernel -- shared foundation for the procurement comparison engine.

Responsibility:
    Structured logging, the typed exception hierarchy, the injectable clock,
    Decimal/unit/identifier normalization, the immutable document DTOs, and
    the SQLAlchemy declarative base.  Every other package builds on these.

Architecture position:
    Kernel -- the lowest layer.  MUST NOT import from procurement_engines,
    procurement_modules, procurement_services or procurement_config.
"""
