"""Design Service models package."""

from services.design_service.models.catalog import ProductDesignSettings
from services.design_service.models.commerce import (
    CartLineBinding,
    OrderLineRecord,
    OrderNote,
)
from services.design_service.models.enums import (
    EditorLinkMode,
    FinalizeTrigger,
    LockMode,
)
from services.design_service.models.state import (
    AccountDesignState,
    PendingEdit,
    TemplateMarker,
    VisitorDesignState,
)

__all__ = [
    "AccountDesignState",
    "CartLineBinding",
    "EditorLinkMode",
    "FinalizeTrigger",
    "LockMode",
    "OrderLineRecord",
    "OrderNote",
    "PendingEdit",
    "ProductDesignSettings",
    "TemplateMarker",
    "VisitorDesignState",
]
