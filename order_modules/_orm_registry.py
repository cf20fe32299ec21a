"""
Module ORM Registry (``order_modules._orm_registry``).

Imports every kernel and module ORM model so ``Base.metadata`` holds the
complete schema before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    """Import kernel models, the sequence counter and every ``order_modules.*.orm``."""
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    import order_modules.purchasing.orm  # noqa: F401
    import order_modules.sales.orm  # noqa: F401
    import order_modules.returns.orm  # noqa: F401
