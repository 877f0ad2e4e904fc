"""Matriz de corte color × talla por producto del lote.

Forma: `{"Negro": {"<talla_id>": 12, "<talla_id>": 8}, "Rojo": {...}}`. Las
claves de talla se guardan como texto porque la matriz vive en JSON.
"""
from __future__ import annotations

import logging
from typing import Any

from django.db import transaction

from catalogo.services import tallas_de_producto
from core.audit import log_event
from core.errors import ValidationError
from core.normalizacion import normalizar_nombre
from produccion.models import LoteProducto

log = logging.getLogger(__name__)


def _to_count(value: Any, *, color: str, talla: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Cantidad inválida en {color}/{talla}.", recurso="talla", recurso_id=talla)
    if isinstance(value, int):
        count = value
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        count = int(value.strip())
    elif value in (None, ""):
        count = 0
    else:
        raise ValidationError(f"Cantidad inválida en {color}/{talla}.", recurso="talla", recurso_id=talla)
    if count < 0:
        raise ValidationError(f"Cantidad negativa en {color}/{talla}.", recurso="talla", recurso_id=talla)
    return count


def normalizar_matriz(matriz: Any) -> dict[str, dict[str, int]]:
    if matriz in (None, ""):
        return {}
    if not isinstance(matriz, dict):
        raise ValidationError("La distribución debe ser un objeto color → talla → unidades.", recurso="distribucion")

    result: dict[str, dict[str, int]] = {}
    vistos: dict[str, str] = {}
    for raw_color, fila in matriz.items():
        color = " ".join(str(raw_color or "").split())
        if not color:
            raise ValidationError("Hay un color sin nombre en la distribución.", recurso="color", recurso_id="")
        key = normalizar_nombre(color)
        if key in vistos:
            raise ValidationError(f"El color '{color}' está repetido.", recurso="color", recurso_id=color)
        vistos[key] = color
        if fila in (None, ""):
            continue
        if not isinstance(fila, dict):
            raise ValidationError(f"La fila del color '{color}' es inválida.", recurso="color", recurso_id=color)
        celdas: dict[str, int] = {}
        for raw_talla, raw_count in fila.items():
            talla = str(raw_talla).strip()
            if not talla:
                raise ValidationError(f"Talla vacía en el color '{color}'.", recurso="talla", recurso_id="")
            count = _to_count(raw_count, color=color, talla=talla)
            if count:
                celdas[talla] = celdas.get(talla, 0) + count
        if celdas:
            result[color] = celdas
    return result


def total_fila(matriz: dict[str, dict[str, int]], color: str) -> int:
    return sum(int(v) for v in (matriz or {}).get(color, {}).values())


def total_producto(matriz: dict[str, dict[str, int]]) -> int:
    return sum(total_fila(matriz, color) for color in (matriz or {}))


def validar_tallas(producto_id: int, matriz: dict[str, dict[str, int]]) -> None:
    tallas = tallas_de_producto(producto_id)
    for color, fila in matriz.items():
        for talla_id in fila:
            if talla_id not in tallas:
                raise ValidationError(
                    f"La talla {talla_id} (color {color}) no pertenece al producto.",
                    recurso="talla",
                    recurso_id=talla_id,
                    extra={"color": color},
                )


def editar_distribucion(lote_producto_id: int, matriz: Any, *, user=None, guardar_total: bool = True) -> LoteProducto:
    """Guarda la matriz de un producto del lote.

    Se permite antes o después de finalizar; el stock ya conciliado no se
    vuelve a tocar.
    """
    normalizada = normalizar_matriz(matriz)
    with transaction.atomic():
        lote_producto = (
            LoteProducto.objects.select_for_update().select_related("lote", "producto").filter(pk=lote_producto_id).first()
        )
        if lote_producto is None:
            raise ValidationError(
                f"El producto de lote {lote_producto_id} no existe.",
                recurso="lote_producto",
                recurso_id=lote_producto_id,
            )
        validar_tallas(lote_producto.producto_id, normalizada)
        anterior = lote_producto.tallas_distribucion or {}
        lote_producto.tallas_distribucion = normalizada
        update_fields = ["tallas_distribucion", "actualizado_en"]
        if guardar_total:
            lote_producto.cantidad_producto = total_producto(normalizada)
            update_fields.append("cantidad_producto")
        lote_producto.save(update_fields=update_fields)

    if lote_producto.stock_conciliado_en:
        log.info(
            "Distribución editada después de conciliar lote=%s producto=%s; el stock no se ajusta",
            lote_producto.lote.codigo,
            lote_producto.producto_id,
        )
    log_event(
        user,
        "UPDATE",
        "produccion.LoteProducto",
        str(lote_producto.id),
        {"campo": "tallas_distribucion", "from": anterior, "to": normalizada},
    )
    return lote_producto
