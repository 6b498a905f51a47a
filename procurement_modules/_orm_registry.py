"""Import every module ORM model so ``Base.metadata`` knows all tables."""


def import_all_orm_models() -> None:
    import procurement_modules.quotations.orm  # noqa: F401
