from __future__ import annotations

import logging
from typing import Any, Iterable

from django.db import IntegrityError, transaction

from core.audit import log_event
from core.errors import ValidationError
from core.normalizacion import normalizar_nombre
from procesos.models import PasoProceso, ProcesoTemplate

log = logging.getLogger(__name__)

NOMBRE_PROCESO_DEFAULT = "Estándar"

# Flujo usado cuando el producto no declara proceso.
PASOS_DEFAULT: tuple[dict[str, Any], ...] = (
    {"nombre": "planificado", "orden": 0, "requiere_input": False},
    {"nombre": "corte", "orden": 1, "requiere_input": False},
    {"nombre": "taller", "orden": 2, "requiere_input": False},
    {"nombre": "terminado", "orden": 3, "requiere_input": True},
)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "si", "sí", "yes", "on"}
    return bool(value)


def normalizar_pasos(pasos: Iterable[Any] | None) -> list[dict[str, Any]]:
    """Valida la lista de etapas y reasigna el orden 0..n-1.

    El orden recibido no se respeta: manda la posición en la lista.
    Acepta dicts (`nombre`, `requiere_input`) o nombres sueltos.
    """
    if pasos is None or isinstance(pasos, (str, bytes, dict)):
        raise ValidationError("La lista de etapas es inválida.", recurso="pasos")
    rows = list(pasos)
    if not rows:
        raise ValidationError("El proceso debe tener al menos una etapa.", recurso="pasos")

    result: list[dict[str, Any]] = []
    vistos: set[str] = set()
    for idx, raw in enumerate(rows):
        if isinstance(raw, str):
            raw = {"nombre": raw}
        if not isinstance(raw, dict):
            raise ValidationError(f"La etapa #{idx + 1} es inválida.", recurso="etapa", recurso_id=idx)
        nombre = " ".join(str(raw.get("nombre") or "").split())
        if not nombre:
            raise ValidationError(f"La etapa #{idx + 1} no tiene nombre.", recurso="etapa", recurso_id=idx)
        key = normalizar_nombre(nombre)
        if key in vistos:
            raise ValidationError(f"La etapa '{nombre}' está repetida.", recurso="etapa", recurso_id=nombre)
        vistos.add(key)
        result.append(
            {
                "nombre": nombre,
                "orden": idx,
                "requiere_input": _as_bool(raw.get("requiere_input", False)),
            }
        )
    return result


def _insert_pasos(proceso: ProcesoTemplate, pasos: list[dict[str, Any]]) -> None:
    PasoProceso.objects.bulk_create(
        [
            PasoProceso(
                proceso=proceso,
                nombre=p["nombre"],
                orden=p["orden"],
                requiere_input=p["requiere_input"],
            )
            for p in pasos
        ]
    )


def crear_proceso(nombre: str, pasos: Iterable[Any], *, descripcion: str = "", user=None) -> ProcesoTemplate:
    nombre = " ".join((nombre or "").split())
    if not nombre:
        raise ValidationError("El proceso debe tener nombre.", recurso="proceso")
    normalizados = normalizar_pasos(pasos)
    if ProcesoTemplate.objects.filter(nombre__iexact=nombre).exists():
        raise ValidationError(f"Ya existe un proceso llamado '{nombre}'.", recurso="proceso", recurso_id=nombre)

    try:
        with transaction.atomic():
            proceso = ProcesoTemplate.objects.create(nombre=nombre, descripcion=descripcion or "")
            _insert_pasos(proceso, normalizados)
    except IntegrityError as exc:
        raise ValidationError(f"Ya existe un proceso llamado '{nombre}'.", recurso="proceso", recurso_id=nombre) from exc

    log_event(
        user,
        "CREATE",
        "procesos.ProcesoTemplate",
        str(proceso.id),
        {"nombre": proceso.nombre, "pasos": [p["nombre"] for p in normalizados]},
    )
    log.info("Proceso creado id=%s nombre=%s pasos=%s", proceso.id, proceso.nombre, len(normalizados))
    return proceso


def listar_procesos():
    return ProcesoTemplate.objects.prefetch_related("pasos").order_by("nombre", "id")


def obtener_proceso(proceso_id: int) -> ProcesoTemplate:
    proceso = ProcesoTemplate.objects.prefetch_related("pasos").filter(pk=proceso_id).first()
    if proceso is None:
        raise ValidationError(f"El proceso {proceso_id} no existe.", recurso="proceso", recurso_id=proceso_id)
    return proceso


def reemplazar_pasos(proceso_id: int, pasos: Iterable[Any], *, user=None) -> ProcesoTemplate:
    """Reemplazo completo (borrar e insertar), sin diff.

    Dos ediciones simultáneas del mismo proceso: gana la última. Los lotes en
    curso no se ven afectados porque guardan su propia copia de las etapas.
    """
    normalizados = normalizar_pasos(pasos)
    with transaction.atomic():
        proceso = ProcesoTemplate.objects.select_for_update().filter(pk=proceso_id).first()
        if proceso is None:
            raise ValidationError(f"El proceso {proceso_id} no existe.", recurso="proceso", recurso_id=proceso_id)
        anteriores = list(proceso.pasos.order_by("orden").values_list("nombre", flat=True))
        proceso.pasos.all().delete()
        _insert_pasos(proceso, normalizados)
        proceso.save(update_fields=["actualizado_en"])

    log_event(
        user,
        "UPDATE",
        "procesos.ProcesoTemplate",
        str(proceso.id),
        {"from": anteriores, "to": [p["nombre"] for p in normalizados]},
    )
    log.info("Etapas reemplazadas proceso=%s total=%s", proceso.id, len(normalizados))
    return proceso


def eliminar_proceso(proceso_id: int, *, user=None) -> None:
    with transaction.atomic():
        proceso = ProcesoTemplate.objects.select_for_update().filter(pk=proceso_id).first()
        if proceso is None:
            raise ValidationError(f"El proceso {proceso_id} no existe.", recurso="proceso", recurso_id=proceso_id)
        abiertos = list(
            proceso.lotes.filter(finalizado_en__isnull=True, cancelado_en__isnull=True)
            .order_by("id")
            .values_list("codigo", flat=True)
        )
        if abiertos:
            log.warning("Proceso %s en uso por lotes abiertos: %s", proceso.id, abiertos)
            raise ValidationError(
                f"El proceso '{proceso.nombre}' está en uso por lotes abiertos: {', '.join(abiertos)}.",
                recurso="proceso",
                recurso_id=proceso.id,
                extra={"lotes": abiertos},
            )
        nombre = proceso.nombre
        proceso.delete()

    log_event(user, "DELETE", "procesos.ProcesoTemplate", str(proceso_id), {"nombre": nombre})
    log.info("Proceso eliminado id=%s nombre=%s", proceso_id, nombre)


def snapshot_pasos(proceso: ProcesoTemplate | None) -> list[dict[str, Any]]:
    """Copia por valor de las etapas; `None` devuelve el flujo por defecto."""
    if proceso is None:
        return [dict(p) for p in PASOS_DEFAULT]
    pasos = [p.as_snapshot() for p in proceso.pasos.order_by("orden", "id")]
    if not pasos:
        return [dict(p) for p in PASOS_DEFAULT]
    # El orden se recalcula por posición por si la tabla quedó con huecos.
    for idx, paso in enumerate(pasos):
        paso["orden"] = idx
    return pasos


def asegurar_proceso_default() -> tuple[ProcesoTemplate, bool]:
    existing = ProcesoTemplate.objects.filter(nombre=NOMBRE_PROCESO_DEFAULT).first()
    if existing:
        return existing, False
    proceso = crear_proceso(
        NOMBRE_PROCESO_DEFAULT,
        [dict(p) for p in PASOS_DEFAULT],
        descripcion="Planificado → Corte → Taller → Terminado",
    )
    return proceso, True
