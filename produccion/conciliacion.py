"""Cierre del lote: cantidades reales, paso a la etapa final y alta de stock."""
from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalogo.services import agregar_colores, incrementar_stock
from core.audit import log_event, username_of
from core.errors import AlreadyFinalized, ValidationError
from produccion.colores import resolver_hex_color
from produccion.distribucion import normalizar_matriz, total_producto, validar_tallas
from produccion.models import LoteProduccion, LoteProducto
from produccion.services import guardar_con_version, obtener_lote

log = logging.getLogger(__name__)


def guarda_finalizacion_activa() -> bool:
    return bool(getattr(settings, "PRODUCCION_GUARDA_FINALIZACION", True))


def _parse_cantidades(cantidades: dict[Any, Any] | None, productos: list[LoteProducto]) -> dict[int, int]:
    if cantidades in (None, ""):
        return {}
    if not isinstance(cantidades, dict):
        raise ValidationError("Las cantidades deben ser un objeto producto_de_lote → unidades.", recurso="cantidades")
    validos = {lp.id for lp in productos}
    result: dict[int, int] = {}
    for raw_id, raw_qty in cantidades.items():
        try:
            lp_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Producto de lote inválido: {raw_id}.", recurso="lote_producto", recurso_id=raw_id)
        if lp_id not in validos:
            raise ValidationError(
                f"El producto de lote {lp_id} no pertenece a este lote.",
                recurso="lote_producto",
                recurso_id=lp_id,
            )
        if raw_qty in (None, ""):
            continue
        if isinstance(raw_qty, bool):
            raise ValidationError(f"Cantidad inválida: {raw_qty}.", recurso="lote_producto", recurso_id=lp_id)
        try:
            qty = int(raw_qty)
        except (TypeError, ValueError):
            raise ValidationError(f"Cantidad inválida: {raw_qty}.", recurso="lote_producto", recurso_id=lp_id)
        if qty < 0 or (isinstance(raw_qty, float) and not raw_qty.is_integer()):
            raise ValidationError(f"Cantidad inválida: {raw_qty}.", recurso="lote_producto", recurso_id=lp_id)
        result[lp_id] = qty
    return result


def finalizar_lote(
    lote_id: int,
    cantidades: dict[Any, Any] | None = None,
    *,
    version: int | None = None,
    user=None,
) -> LoteProduccion:
    """Lleva el lote a su última etapa y concilia el stock de cada producto.

    Con matriz cargada, cada celda color/talla suma stock a esa talla; sin
    matriz, la cantidad real se suma plana al producto. Los colores nuevos se
    agregan al producto con su muestra si el nombre la resuelve.
    """
    lote = obtener_lote(lote_id)
    if lote.cancelado:
        raise ValidationError(f"El lote {lote.codigo} está cancelado.", recurso="lote", recurso_id=lote.id)
    if lote.finalizado:
        if guarda_finalizacion_activa():
            log.warning("Finalización repetida rechazada lote=%s", lote.codigo)
            raise AlreadyFinalized(lote.id, lote.codigo)
        log.warning("Finalización repetida sin guarda lote=%s: el stock se vuelve a sumar", lote.codigo)

    productos = list(lote.productos.select_related("producto").order_by("orden", "id"))
    reales = _parse_cantidades(cantidades, productos)

    # Todo se valida antes de escribir.
    plan: list[tuple[LoteProducto, dict[str, dict[str, int]], int]] = []
    for lp in productos:
        matriz = normalizar_matriz(lp.tallas_distribucion)
        validar_tallas(lp.producto_id, matriz)
        if lp.id in reales:
            cantidad = reales[lp.id]
        elif matriz:
            cantidad = total_producto(matriz)
        else:
            cantidad = int(lp.cantidad_producto or 0)
        if matriz and cantidad != total_producto(matriz):
            log.warning(
                "Lote %s producto %s: cantidad real %s distinta a la matriz (%s); el stock sigue la matriz",
                lote.codigo,
                lp.producto_id,
                cantidad,
                total_producto(matriz),
            )
        plan.append((lp, matriz, cantidad))

    snapshot = list(lote.proceso_snapshot or [])
    ultima = max(len(snapshot) - 1, 0)
    desde = lote.estado
    ahora = timezone.now()
    with transaction.atomic():
        guardar_con_version(
            lote,
            version,
            etapa_actual=ultima,
            estado=snapshot[ultima]["nombre"] if snapshot else lote.estado,
            progreso_porcentaje=100,
            fecha_fin=timezone.localdate(),
            finalizado_en=ahora,
        )
        for lp, matriz, cantidad in plan:
            if matriz:
                for color, fila in matriz.items():
                    for talla_id, count in fila.items():
                        if count > 0:
                            incrementar_stock(lp.producto_id, talla_id, count)
                agregar_colores(
                    lp.producto_id,
                    [{"nombre": color, "hex": resolver_hex_color(color)} for color in matriz],
                )
            elif cantidad > 0:
                incrementar_stock(lp.producto_id, None, cantidad)
            lp.cantidad_real = cantidad
            lp.stock_conciliado_en = ahora
            lp.save(update_fields=["cantidad_real", "stock_conciliado_en", "actualizado_en"])

        log_event(
            user,
            "FINALIZE",
            "produccion.LoteProduccion",
            str(lote.id),
            {
                "from": desde,
                "to": lote.estado,
                "user": username_of(user),
                "cantidades": {str(lp.id): cantidad for lp, _, cantidad in plan},
            },
        )

    log.info(
        "Lote finalizado codigo=%s productos=%s unidades=%s",
        lote.codigo,
        len(plan),
        sum(c for _, _, c in plan),
    )
    return lote
