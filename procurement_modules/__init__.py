"""
procurement_modules -- persistence-backed procurement modules.

Architecture position:
    Modules layer -- ORM models and services that own transactions.  May
    import procurement_kernel, procurement_engines and procurement_config.
"""
