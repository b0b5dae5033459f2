# =============================================================================
# shop_core/entities/schema.py
# Entity kinds and their payload schemas
# =============================================================================
"""
The dashboard manages three kinds of records. Each record is a plain dict
(the same shape as a Supabase row); the schema for its kind is checked
whenever a payload crosses into the local store.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from shop_core.errors import ValidationError


class EntityKind(str, Enum):
    """Entity kinds. The value is the remote table name."""
    MECHANIC = "mecanicos"
    SERVICE_ORDER = "servicos"
    VOUCHER = "vales"

    @classmethod
    def parse(cls, value: Any) -> EntityKind:
        """Accept an EntityKind, its value or its name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValidationError(
                f"Unknown entity kind: {value!r}",
                expected=", ".join(k.value for k in cls),
                actual=str(value),
            ) from None


def _today() -> str:
    return date.today().isoformat()


@dataclass(frozen=True)
class EntitySchema:
    """Field rules for one entity kind."""
    kind: EntityKind
    label: str
    required: Tuple[str, ...]
    optional: Mapping[str, Any] = field(default_factory=dict)
    enums: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    numeric: Tuple[str, ...] = ()

    def default_for(self, name: str) -> Any:
        value = self.optional[name]
        return value() if callable(value) else value

    def validate(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalise a payload.

        Returns a new dict with defaults filled in and numeric fields
        coerced to float. Unknown fields are kept as-is.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError(
                f"{self.label} payload must be a mapping",
                entity=self.kind.value,
                expected="mapping",
                actual=type(payload).__name__,
            )

        data = dict(payload)

        for name in self.required:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(
                    f"{self.label}: field '{name}' is required",
                    entity=self.kind.value,
                    field=name,
                )

        for name in self.optional:
            if name not in data:
                data[name] = self.default_for(name)

        for name, allowed in self.enums.items():
            value = data.get(name)
            if value is not None and value not in allowed:
                raise ValidationError(
                    f"{self.label}: invalid value for '{name}'",
                    entity=self.kind.value,
                    field=name,
                    expected=" | ".join(sorted(allowed)),
                    actual=str(value),
                )

        for name in self.numeric:
            value = data.get(name)
            if value is None or value == "":
                data[name] = 0.0
                continue
            try:
                data[name] = float(value)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"{self.label}: field '{name}' must be numeric",
                    entity=self.kind.value,
                    field=name,
                    expected="number",
                    actual=str(value),
                ) from None

        if not data.get("id"):
            data["id"] = None

        return data


SERVICE_ORDER_STATUSES = frozenset({"em_andamento", "concluido", "cancelado"})
VOUCHER_STATUSES = frozenset({"pendente", "pago", "cancelado"})

SCHEMAS: Dict[EntityKind, EntitySchema] = {
    EntityKind.MECHANIC: EntitySchema(
        kind=EntityKind.MECHANIC,
        label="Mechanic",
        required=("nome",),
        optional={
            "email": None,
            "telefone": None,
            "especialidade": None,
            "observacoes": None,
        },
    ),
    EntityKind.SERVICE_ORDER: EntitySchema(
        kind=EntityKind.SERVICE_ORDER,
        label="Service order",
        required=("cliente", "veiculo", "descricao", "mecanico_nome", "status"),
        optional={
            "telefone": None,
            "mecanico_id": None,
            "cliente_agradecido": False,
            "valor": 0.0,
            "data": _today,
        },
        enums={"status": SERVICE_ORDER_STATUSES},
        numeric=("valor",),
    ),
    EntityKind.VOUCHER: EntitySchema(
        kind=EntityKind.VOUCHER,
        label="Voucher",
        required=("mecanico_nome", "status"),
        optional={
            "descricao": None,
            "mecanico_id": None,
            "valor": 0.0,
            "data": _today,
        },
        enums={"status": VOUCHER_STATUSES},
        numeric=("valor",),
    ),
}


def get_schema(kind: Any) -> EntitySchema:
    return SCHEMAS[EntityKind.parse(kind)]


def validate_entity(kind: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate ``payload`` against the schema of ``kind``."""
    return get_schema(kind).validate(payload)


def is_new(entity: Optional[Mapping[str, Any]]) -> bool:
    """An entity without an id has not been persisted yet."""
    return not (entity or {}).get("id")
