"""Central model registry; import all models so Alembic autodiscover works."""

from reqflow.database import Base  # noqa: F401

from reqflow.models.requisition import (  # noqa: F401
    RequisitionRow,
    RequisitionItemRow,
    DeliveryRecordRow,
    DocumentRow,
)
