from __future__ import annotations

from typing import Any


class ProduccionError(Exception):
    """Base de los rechazos del núcleo de producción.

    Cada error nombra el recurso que lo causó (rollo, etapa, producto, lote)
    para que el operador pueda elegir otro sin adivinar.
    """

    code = "error"

    def __init__(self, detail: str, *, recurso: str = "", recurso_id: Any = None, extra: dict[str, Any] | None = None):
        super().__init__(detail)
        self.detail = detail
        self.recurso = recurso
        self.recurso_id = recurso_id
        self.extra = extra or {}

    def as_dict(self) -> dict[str, Any]:
        payload = {
            "code": self.code,
            "detail": self.detail,
            "recurso": self.recurso,
            "recurso_id": None if self.recurso_id is None else str(self.recurso_id),
        }
        payload.update(self.extra)
        return payload


class ValidationError(ProduccionError):
    code = "validation_error"


class UnknownStage(ProduccionError):
    code = "unknown_stage"

    def __init__(self, etapa: str, disponibles: list[str] | None = None):
        super().__init__(
            f"La etapa '{etapa}' no existe en el proceso del lote.",
            recurso="etapa",
            recurso_id=etapa,
            extra={"etapas_disponibles": list(disponibles or [])},
        )


class InsufficientMaterial(ProduccionError):
    code = "insufficient_material"

    def __init__(self, rollo_id: Any, disponible: Any, solicitado: Any, codigo: str = "", unidad: str = "kg"):
        label = codigo or str(rollo_id)
        super().__init__(
            f"El rollo {label} no tiene material suficiente: disponible {disponible} {unidad}, solicitado {solicitado} {unidad}.",
            recurso="rollo",
            recurso_id=rollo_id,
            extra={"disponible": str(disponible), "solicitado": str(solicitado), "unidad": unidad},
        )


class ConcurrentModification(ProduccionError):
    code = "concurrent_modification"

    def __init__(self, lote_id: Any, version_esperada: Any = None):
        super().__init__(
            "El lote fue modificado por otra operación. Recarga y vuelve a intentar.",
            recurso="lote",
            recurso_id=lote_id,
            extra={"version_esperada": version_esperada},
        )


class AlreadyFinalized(ProduccionError):
    code = "already_finalized"

    def __init__(self, lote_id: Any, codigo: str = ""):
        label = codigo or str(lote_id)
        super().__init__(
            f"El lote {label} ya fue finalizado.",
            recurso="lote",
            recurso_id=lote_id,
        )
