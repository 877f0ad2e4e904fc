"""Contrato angosto del catálogo hacia el núcleo de producción.

El núcleo solo lee productos/tallas y escribe incrementos de stock y colores
nuevos; la edición del catálogo vive fuera de este módulo.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from django.db import transaction
from django.db.models import F

from catalogo.models import Producto, ProductoTalla
from core.errors import ValidationError
from core.normalizacion import normalizar_nombre

log = logging.getLogger(__name__)


def obtener_producto(producto_id: int) -> Producto:
    producto = (
        Producto.objects.select_related("proceso_default")
        .prefetch_related("tallas")
        .filter(pk=producto_id)
        .first()
    )
    if producto is None:
        raise ValidationError(f"El producto {producto_id} no existe.", recurso="producto", recurso_id=producto_id)
    return producto


def tallas_de_producto(producto_id: int) -> dict[str, ProductoTalla]:
    return {str(t.id): t for t in ProductoTalla.objects.filter(producto_id=producto_id).order_by("orden", "id")}


def incrementar_stock(producto_id: int, talla_id: int | str | None, cantidad: int) -> None:
    """Suma `cantidad` al stock con `F()`; nunca leer-modificar-escribir en Python.

    Con talla, se incrementa la talla y el total del producto; sin talla, solo
    el total plano del producto.
    """
    cantidad = int(cantidad)
    if cantidad == 0:
        return
    with transaction.atomic():
        if talla_id is not None:
            updated = ProductoTalla.objects.filter(pk=int(talla_id), producto_id=producto_id).update(
                stock=F("stock") + cantidad
            )
            if updated == 0:
                raise ValidationError(
                    f"La talla {talla_id} no pertenece al producto {producto_id}.",
                    recurso="talla",
                    recurso_id=talla_id,
                )
        updated = Producto.objects.filter(pk=producto_id).update(stock_total=F("stock_total") + cantidad)
        if updated == 0:
            raise ValidationError(f"El producto {producto_id} no existe.", recurso="producto", recurso_id=producto_id)
    log.info("Stock incrementado producto=%s talla=%s cantidad=%s", producto_id, talla_id, cantidad)


def agregar_colores(producto_id: int, colores: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Agrega a `Producto.colores` los nombres que aún no declara.

    Devuelve solo los colores efectivamente agregados.
    """
    with transaction.atomic():
        producto = Producto.objects.select_for_update().filter(pk=producto_id).first()
        if producto is None:
            raise ValidationError(f"El producto {producto_id} no existe.", recurso="producto", recurso_id=producto_id)
        actuales = list(producto.colores or [])
        conocidos = producto.nombres_colores
        agregados: list[dict[str, Any]] = []
        for color in colores:
            nombre = " ".join(str(color.get("nombre") or "").split())
            key = normalizar_nombre(nombre)
            if not key or key in conocidos:
                continue
            conocidos.add(key)
            entry = {"nombre": nombre, "hex": color.get("hex")}
            actuales.append(entry)
            agregados.append(entry)
        if agregados:
            producto.colores = actuales
            producto.save(update_fields=["colores", "actualizado_en"])
    if agregados:
        log.info("Colores agregados producto=%s colores=%s", producto_id, [c["nombre"] for c in agregados])
    return agregados
