from .schema import (
    EntityKind,
    EntitySchema,
    SCHEMAS,
    SERVICE_ORDER_STATUSES,
    VOUCHER_STATUSES,
    get_schema,
    validate_entity,
    is_new,
)

__all__ = [
    "EntityKind",
    "EntitySchema",
    "SCHEMAS",
    "SERVICE_ORDER_STATUSES",
    "VOUCHER_STATUSES",
    "get_schema",
    "validate_entity",
    "is_new",
]
