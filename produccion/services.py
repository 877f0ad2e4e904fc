from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from catalogo.models import Producto
from core.audit import log_event, username_of
from core.errors import AlreadyFinalized, ConcurrentModification, UnknownStage, ValidationError
from core.models import UserProfile
from core.normalizacion import normalizar_nombre
from inventario.services import consumir_rollos, normalizar_entradas, revertir_consumo
from procesos.models import ProcesoTemplate
from procesos.services import snapshot_pasos
from produccion.models import LoteProduccion, LoteProducto

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvanceEtapa:
    lote: LoteProduccion
    etapa: str
    # True cuando la etapa pide cantidades reales: hay que pasar por finalizar_lote.
    diferido: bool = False


def calcular_progreso(indice: int, total: int) -> int:
    if total <= 1:
        return 0
    indice = max(0, min(int(indice), total - 1))
    valor = Decimal(indice) * Decimal(100) / Decimal(total - 1)
    return int(valor.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def etapa_requiere_finalizar(snapshot: list[dict[str, Any]], indice: int) -> bool:
    """La última etapa siempre se alcanza finalizando, marque o no `requiere_input`."""
    if indice == len(snapshot) - 1:
        return True
    return bool(snapshot[indice].get("requiere_input"))


def buscar_etapa(snapshot: list[dict[str, Any]], etapa: str) -> int:
    objetivo = normalizar_nombre(etapa)
    for idx, paso in enumerate(snapshot):
        if objetivo and normalizar_nombre(paso.get("nombre")) == objetivo:
            return idx
    raise UnknownStage(str(etapa), [str(p.get("nombre")) for p in snapshot])


def obtener_lote(lote_id: int) -> LoteProduccion:
    lote = LoteProduccion.objects.filter(pk=lote_id).first()
    if lote is None:
        raise ValidationError(f"El lote {lote_id} no existe.", recurso="lote", recurso_id=lote_id)
    return lote


def listar_lotes(*, abiertos: bool | None = None, estado: str | None = None):
    qs = LoteProduccion.objects.select_related("proceso", "creado_por").prefetch_related("productos__producto")
    if abiertos is True:
        qs = qs.filter(finalizado_en__isnull=True, cancelado_en__isnull=True)
    elif abiertos is False:
        qs = qs.exclude(finalizado_en__isnull=True, cancelado_en__isnull=True)
    if estado:
        qs = qs.filter(estado__iexact=estado.strip())
    return qs.order_by("-creado_en", "-id")


def _parse_productos(productos: Iterable[Any] | None) -> list[tuple[int, int]]:
    """Devuelve `[(producto_id, cantidad_producto)]` preservando el orden."""
    if productos is None or isinstance(productos, (str, bytes, dict)):
        raise ValidationError("Debes seleccionar al menos un producto.", recurso="producto")
    rows = list(productos)
    maximo = int(getattr(settings, "PRODUCCION_MAX_PRODUCTOS_POR_LOTE", 3))
    if not rows:
        raise ValidationError("Debes seleccionar al menos un producto.", recurso="producto")
    if len(rows) > maximo:
        raise ValidationError(f"Un lote admite como máximo {maximo} productos.", recurso="producto")

    parsed: list[tuple[int, int]] = []
    vistos: set[int] = set()
    for raw in rows:
        cantidad = 0
        if isinstance(raw, dict):
            cantidad = raw.get("cantidad_producto") or 0
            raw = raw.get("producto_id")
        try:
            producto_id = int(raw)
            cantidad = int(cantidad)
        except (TypeError, ValueError):
            raise ValidationError(f"Producto inválido: {raw}.", recurso="producto", recurso_id=raw)
        if cantidad < 0:
            raise ValidationError("La cantidad no puede ser negativa.", recurso="producto", recurso_id=producto_id)
        if producto_id in vistos:
            raise ValidationError(f"El producto {producto_id} está repetido.", recurso="producto", recurso_id=producto_id)
        vistos.add(producto_id)
        parsed.append((producto_id, cantidad))
    return parsed


def _resolver_proceso(proceso: ProcesoTemplate | int | None, primer_producto: Producto) -> ProcesoTemplate | None:
    if isinstance(proceso, ProcesoTemplate):
        return proceso
    if proceso not in (None, ""):
        found = ProcesoTemplate.objects.filter(pk=proceso).first()
        if found is None:
            raise ValidationError(f"El proceso {proceso} no existe.", recurso="proceso", recurso_id=proceso)
        return found
    return primer_producto.proceso_default


def _taller_de(user) -> str:
    """Etiqueta de propietario por defecto del perfil del usuario."""
    if not getattr(user, "is_authenticated", False):
        return ""
    profile = UserProfile.objects.filter(user=user).first()
    return (profile.taller or "").strip() if profile else ""


def crear_lote(
    codigo: str,
    productos: Iterable[Any],
    detalle_rollos: Iterable[Any] | None = None,
    *,
    proceso: ProcesoTemplate | int | None = None,
    user=None,
    modelo_corte: str = "",
    propietario: str = "",
    fecha_inicio: date | None = None,
    notas: str = "",
) -> LoteProduccion:
    """Crea el lote, congela sus etapas y descuenta la tela en una sola transacción."""
    codigo = " ".join((codigo or "").split())
    if not codigo:
        raise ValidationError("El lote debe tener código.", recurso="lote")
    parsed = _parse_productos(productos)
    ids = [pid for pid, _ in parsed]
    encontrados = {p.id: p for p in Producto.objects.select_related("proceso_default").filter(pk__in=ids)}
    for pid in ids:
        if pid not in encontrados:
            raise ValidationError(f"El producto {pid} no existe.", recurso="producto", recurso_id=pid)
    if LoteProduccion.objects.filter(codigo=codigo).exists():
        raise ValidationError(f"Ya existe un lote con código {codigo}.", recurso="lote", recurso_id=codigo)
    plan = normalizar_entradas(detalle_rollos)

    template = _resolver_proceso(proceso, encontrados[ids[0]])
    snapshot = snapshot_pasos(template)
    propietario = (propietario or "").strip() or _taller_de(user)

    try:
        with transaction.atomic():
            lote = LoteProduccion.objects.create(
                codigo=codigo,
                proceso=template,
                proceso_snapshot=snapshot,
                detalle_rollos=[e.as_dict() for e in plan],
                etapa_actual=0,
                estado=snapshot[0]["nombre"],
                progreso_porcentaje=0,
                modelo_corte=(modelo_corte or "").strip(),
                propietario=propietario,
                fecha_inicio=fecha_inicio or timezone.localdate(),
                notas=notas or "",
                creado_por=user if getattr(user, "is_authenticated", False) else None,
            )
            LoteProducto.objects.bulk_create(
                [
                    LoteProducto(lote=lote, producto_id=pid, orden=idx, cantidad_producto=cantidad)
                    for idx, (pid, cantidad) in enumerate(parsed)
                ]
            )
            consumir_rollos(lote, plan, referencia=codigo)
    except IntegrityError as exc:
        raise ValidationError(f"Ya existe un lote con código {codigo}.", recurso="lote", recurso_id=codigo) from exc

    log_event(
        user,
        "CREATE",
        "produccion.LoteProduccion",
        str(lote.id),
        {
            "codigo": lote.codigo,
            "proceso": template.nombre if template else None,
            "etapas": [p["nombre"] for p in snapshot],
            "productos": ids,
            "rollos": [e.rollo_id for e in plan if e.rollo_id is not None],
        },
    )
    log.info("Lote creado codigo=%s productos=%s etapas=%s rollos=%s", lote.codigo, ids, len(snapshot), len(plan))
    return lote


def guardar_con_version(lote: LoteProduccion, version: int | None, **cambios: Any) -> None:
    """Escribe el lote solo si nadie lo modificó desde `version`."""
    esperada = lote.version if version is None else int(version)
    updated = LoteProduccion.objects.filter(pk=lote.id, version=esperada).update(
        version=F("version") + 1,
        actualizado_en=timezone.now(),
        **cambios,
    )
    if updated == 0:
        log.warning("Modificación concurrente lote=%s version_esperada=%s", lote.codigo, esperada)
        raise ConcurrentModification(lote.id, esperada)
    lote.refresh_from_db()


def avanzar_etapa(lote_id: int, etapa: str, *, version: int | None = None, user=None) -> AvanceEtapa:
    lote = obtener_lote(lote_id)
    if lote.finalizado:
        log.warning("Avance rechazado: lote %s ya finalizado", lote.codigo)
        raise AlreadyFinalized(lote.id, lote.codigo)
    if lote.cancelado:
        raise ValidationError(f"El lote {lote.codigo} está cancelado.", recurso="lote", recurso_id=lote.id)

    snapshot = list(lote.proceso_snapshot or [])
    destino = buscar_etapa(snapshot, etapa)
    nombre = snapshot[destino]["nombre"]
    if etapa_requiere_finalizar(snapshot, destino):
        return AvanceEtapa(lote=lote, etapa=nombre, diferido=True)

    desde = lote.estado
    with transaction.atomic():
        guardar_con_version(
            lote,
            version,
            etapa_actual=destino,
            estado=nombre,
            progreso_porcentaje=calcular_progreso(destino, len(snapshot)),
        )
        log_event(
            user,
            "TRANSITION",
            "produccion.LoteProduccion",
            str(lote.id),
            {"from": desde, "to": nombre, "user": username_of(user)},
        )
    log.info("Lote %s: %s -> %s (%s%%)", lote.codigo, desde, nombre, lote.progreso_porcentaje)
    return AvanceEtapa(lote=lote, etapa=nombre, diferido=False)


def cancelar_lote(lote_id: int, *, version: int | None = None, user=None) -> LoteProduccion:
    """Cancela un lote abierto y devuelve la tela consumida con asientos de reverso."""
    lote = obtener_lote(lote_id)
    if lote.finalizado:
        raise AlreadyFinalized(lote.id, lote.codigo)
    if lote.cancelado:
        raise ValidationError(f"El lote {lote.codigo} ya está cancelado.", recurso="lote", recurso_id=lote.id)

    with transaction.atomic():
        guardar_con_version(lote, version, cancelado_en=timezone.now())
        reversos = revertir_consumo(lote)
        log_event(
            user,
            "CANCEL",
            "produccion.LoteProduccion",
            str(lote.id),
            {"estado": lote.estado, "reversos": [m.id for m in reversos], "user": username_of(user)},
        )
    log.info("Lote cancelado codigo=%s reversos=%s", lote.codigo, len(reversos))
    return lote
