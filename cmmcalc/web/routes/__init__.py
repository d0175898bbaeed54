"""CMM Calc route modules.

Each module exports a ``router`` (APIRouter) that ``cmmcalc.web.app``
includes. Handlers take a request-scoped session from
``cmmcalc.db.connection.get_db`` and let domain errors propagate to the
app's exception handlers.

Usage:
    from cmmcalc.web.routes import runs
    app.include_router(runs.router)
"""

from cmmcalc.web.routes import (
    health,
    legacy,
    materials,
    rulesets,
    runs,
    seed,
    taxonomy,
)

__all__ = [
    "health",
    "legacy",
    "materials",
    "rulesets",
    "runs",
    "seed",
    "taxonomy",
]
