"""Libro de material: rollos de tela y su consumo por lote.

El consumo se registra una sola vez, al crear el lote, para que el inventario
refleje la reserva de inmediato. `ajustar_consumo` solo corrige el registro
del lote y NO vuelve a tocar los saldos de los rollos: una vez posteado el
consumo inicial, el plan guardado y el saldo del rollo quedan desacoplados.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from django.db import transaction
from django.db.models import DecimalField, F, Value
from django.db.models.functions import Greatest, Least

from core.audit import log_event
from core.errors import ConcurrentModification, InsufficientMaterial, ValidationError
from core.normalizacion import normalizar_nombre
from inventario.models import MovimientoRollo, RolloTela
from produccion.models import LoteProduccion

log = logging.getLogger(__name__)

Q3 = Decimal("0.001")
Q2 = Decimal("0.01")
ZERO = Decimal("0")
TOLERANCIA_METROS = Decimal("5")


@dataclass(frozen=True)
class EntradaConsumo:
    rollo_id: int | None
    color: str
    kg_consumido: Decimal
    metros: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "rollo_id": self.rollo_id,
            "color": self.color,
            "kg_consumido": str(self.kg_consumido),
            "metros": str(self.metros),
        }


def _to_decimal(value: Any, *, campo: str, idx: int) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = Decimal(str(value))
        else:
            parsed = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Valor inválido en {campo} (renglón #{idx + 1}).", recurso=campo, recurso_id=idx)
    if not parsed.is_finite():
        raise ValidationError(f"Valor inválido en {campo} (renglón #{idx + 1}).", recurso=campo, recurso_id=idx)
    if parsed < 0:
        raise ValidationError(f"{campo} no puede ser negativo (renglón #{idx + 1}).", recurso=campo, recurso_id=idx)
    return parsed


def normalizar_entradas(entradas: Iterable[Any] | None) -> list[EntradaConsumo]:
    """Valida la forma del plan de consumo y resuelve el color desde el rollo."""
    if entradas is None:
        return []
    if isinstance(entradas, (str, bytes, dict)):
        raise ValidationError("El detalle de rollos es inválido.", recurso="detalle_rollos")

    rows = list(entradas)
    parsed: list[tuple[int | None, str, Decimal, Decimal]] = []
    for idx, raw in enumerate(rows):
        if not isinstance(raw, dict):
            raise ValidationError(f"Renglón de rollo #{idx + 1} inválido.", recurso="detalle_rollos", recurso_id=idx)
        rollo_raw = raw.get("rollo_id")
        rollo_id = None
        if rollo_raw not in (None, ""):
            try:
                rollo_id = int(rollo_raw)
            except (TypeError, ValueError):
                raise ValidationError(f"Rollo inválido: {rollo_raw}.", recurso="rollo", recurso_id=rollo_raw)
        kg = _to_decimal(raw.get("kg_consumido"), campo="kg_consumido", idx=idx).quantize(Q3, rounding=ROUND_HALF_UP)
        metros = _to_decimal(raw.get("metros"), campo="metros", idx=idx).quantize(Q2, rounding=ROUND_HALF_UP)
        color = " ".join(str(raw.get("color") or "").split())
        parsed.append((rollo_id, color, kg, metros))

    ids = {row[0] for row in parsed if row[0] is not None}
    rollos = {r.id: r for r in RolloTela.objects.filter(pk__in=ids)}
    missing = sorted(ids - set(rollos))
    if missing:
        raise ValidationError(f"El rollo {missing[0]} no existe.", recurso="rollo", recurso_id=missing[0])

    result = []
    for rollo_id, color, kg, metros in parsed:
        if not color:
            color = (rollos[rollo_id].color if rollo_id is not None else "") or "Sin color"
        result.append(EntradaConsumo(rollo_id=rollo_id, color=color, kg_consumido=kg, metros=metros))
    return result


def _agrupar_por_rollo(entradas: list[EntradaConsumo]) -> dict[int, tuple[Decimal, Decimal]]:
    totales: dict[int, tuple[Decimal, Decimal]] = {}
    for e in entradas:
        if e.rollo_id is None:
            continue
        if e.kg_consumido <= 0 and e.metros <= 0:
            continue
        kg, metros = totales.get(e.rollo_id, (ZERO, ZERO))
        totales[e.rollo_id] = (kg + e.kg_consumido, metros + e.metros)
    return totales


def listar_rollos_disponibles(
    *,
    tipo_tela: str | None = None,
    metros_minimos: Decimal | float | str | None = None,
    propietario: str | None = None,
):
    qs = RolloTela.objects.seleccionables()
    tipo = normalizar_nombre(tipo_tela or "")
    if tipo:
        qs = qs.filter(tipo_tela_normalizado=tipo)
    if metros_minimos not in (None, ""):
        minimo = _to_decimal(metros_minimos, campo="metros_minimos", idx=0)
        if minimo > 0:
            # Se aceptan rollos hasta TOLERANCIA_METROS por debajo del mínimo pedido;
            # los rollos sin largo quedan fuera.
            qs = qs.filter(metros_restantes__gt=max(minimo - TOLERANCIA_METROS, ZERO))
    if propietario:
        qs = qs.filter(propietario=propietario)
    return qs.order_by("tipo_tela", "color", "codigo")


def tipos_tela_disponibles() -> list[str]:
    tipos = RolloTela.objects.seleccionables().values_list("tipo_tela", flat=True)
    vistos: dict[str, str] = {}
    for tipo in tipos:
        vistos.setdefault(normalizar_nombre(tipo), tipo)
    return sorted(vistos.values())


def consumir_rollos(lote: LoteProduccion | None, entradas: Iterable[Any], *, referencia: str = "") -> list[MovimientoRollo]:
    """Descuenta peso (y metros) de cada rollo; todo o nada.

    Las filas se bloquean en orden de id y cada descuento es un UPDATE
    condicionado a que el saldo alcance, así dos consumos concurrentes del
    mismo rollo no pueden dejarlo negativo.
    """
    plan = list(entradas or [])
    if not all(isinstance(e, EntradaConsumo) for e in plan):
        plan = normalizar_entradas(plan)
    totales = _agrupar_por_rollo(plan)
    if not totales:
        return []

    ref = (referencia or (lote.codigo if lote else ""))[:120]
    movimientos: list[MovimientoRollo] = []
    with transaction.atomic():
        rollos = {
            r.id: r
            for r in RolloTela.objects.select_for_update().filter(pk__in=list(totales)).order_by("id")
        }
        for rollo_id in sorted(totales):
            rollo = rollos.get(rollo_id)
            if rollo is None:
                raise ValidationError(f"El rollo {rollo_id} no existe.", recurso="rollo", recurso_id=rollo_id)
            kg, metros = totales[rollo_id]
            if not rollo.seleccionable or rollo.peso_restante < kg:
                log.warning(
                    "Material insuficiente rollo=%s disponible=%s solicitado=%s lote=%s",
                    rollo.codigo,
                    rollo.peso_restante,
                    kg,
                    ref,
                )
                raise InsufficientMaterial(rollo.id, rollo.peso_restante, kg, codigo=rollo.codigo)
            # Rollo controlado solo por metros: los metros mandan y no se recortan.
            if not rollo.controla_peso and rollo.metros_restantes < metros:
                log.warning("Metros insuficientes rollo=%s disponible=%s solicitado=%s", rollo.codigo, rollo.metros_restantes, metros)
                raise InsufficientMaterial(rollo.id, rollo.metros_restantes, metros, codigo=rollo.codigo, unidad="m")

        for rollo_id in sorted(totales):
            kg, metros = totales[rollo_id]
            updated = RolloTela.objects.filter(pk=rollo_id, peso_restante__gte=kg).update(
                peso_restante=F("peso_restante") - kg,
                metros_restantes=Greatest(
                    F("metros_restantes") - metros,
                    Value(ZERO),
                    output_field=DecimalField(max_digits=12, decimal_places=2),
                ),
            )
            rollo = rollos[rollo_id]
            metros_antes = rollo.metros_restantes
            if updated == 0:
                rollo.refresh_from_db(fields=["peso_restante"])
                log.warning("Saldo cambiado bajo bloqueo rollo=%s disponible=%s solicitado=%s", rollo.codigo, rollo.peso_restante, kg)
                raise InsufficientMaterial(rollo.id, rollo.peso_restante, kg, codigo=rollo.codigo)
            rollo.refresh_from_db(fields=["peso_restante", "metros_restantes"])
            # El asiento guarda lo realmente descontado: los metros se recortan en 0.
            movimientos.append(
                MovimientoRollo.objects.create(
                    rollo=rollo,
                    lote=lote,
                    tipo=MovimientoRollo.TIPO_CONSUMO,
                    peso=kg,
                    metros=max(metros_antes - rollo.metros_restantes, ZERO),
                    peso_resultante=rollo.peso_restante,
                    metros_resultantes=rollo.metros_restantes,
                    referencia=ref,
                )
            )

    for mov in movimientos:
        log.info(
            "Consumo rollo=%s kg=%s metros=%s restante=%s lote=%s",
            mov.rollo.codigo,
            mov.peso,
            mov.metros,
            mov.peso_resultante,
            ref,
        )
    return movimientos


def revertir_consumo(lote: LoteProduccion, *, referencia: str = "") -> list[MovimientoRollo]:
    """Asiento compensatorio: devuelve al rollo lo consumido por el lote."""
    ref = (referencia or f"REVERSO {lote.codigo}")[:120]
    reversos: list[MovimientoRollo] = []
    with transaction.atomic():
        consumos = list(
            MovimientoRollo.objects.select_for_update()
            .filter(lote=lote, tipo=MovimientoRollo.TIPO_CONSUMO, revertido=False)
            .order_by("rollo_id", "id")
        )
        rollo_ids = sorted({c.rollo_id for c in consumos})
        rollos = {r.id: r for r in RolloTela.objects.select_for_update().filter(pk__in=rollo_ids).order_by("id")}
        for consumo in consumos:
            RolloTela.objects.filter(pk=consumo.rollo_id).update(
                peso_restante=Least(
                    F("peso_restante") + consumo.peso,
                    F("peso_inicial"),
                    output_field=DecimalField(max_digits=12, decimal_places=3),
                ),
                metros_restantes=Least(
                    F("metros_restantes") + consumo.metros,
                    F("metros_iniciales"),
                    output_field=DecimalField(max_digits=12, decimal_places=2),
                ),
            )
            rollo = rollos[consumo.rollo_id]
            rollo.refresh_from_db(fields=["peso_restante", "metros_restantes"])
            consumo.revertido = True
            consumo.save(update_fields=["revertido"])
            reversos.append(
                MovimientoRollo.objects.create(
                    rollo=rollo,
                    lote=lote,
                    tipo=MovimientoRollo.TIPO_REVERSO,
                    peso=consumo.peso,
                    metros=consumo.metros,
                    peso_resultante=rollo.peso_restante,
                    metros_resultantes=rollo.metros_restantes,
                    referencia=ref,
                )
            )
    if reversos:
        log.info("Consumo revertido lote=%s movimientos=%s", lote.codigo, len(reversos))
    return reversos


def ajustar_consumo(lote_id: int, entradas: Iterable[Any], *, version: int | None = None, user=None) -> LoteProduccion:
    """Sobrescribe el plan de consumo guardado en el lote.

    Es una corrección de registro: los saldos de los rollos no cambian.
    """
    plan = normalizar_entradas(entradas)
    with transaction.atomic():
        lote = LoteProduccion.objects.select_for_update().filter(pk=lote_id).first()
        if lote is None:
            raise ValidationError(f"El lote {lote_id} no existe.", recurso="lote", recurso_id=lote_id)
        if version is not None and int(version) != lote.version:
            raise ConcurrentModification(lote.id, version)
        anterior = list(lote.detalle_rollos or [])
        updated = LoteProduccion.objects.filter(pk=lote.id, version=lote.version).update(
            detalle_rollos=[e.as_dict() for e in plan],
            version=F("version") + 1,
        )
        if updated == 0:
            raise ConcurrentModification(lote.id, lote.version)
        lote.refresh_from_db()

    log_event(
        user,
        "UPDATE",
        "produccion.LoteProduccion",
        str(lote.id),
        {"campo": "detalle_rollos", "from": anterior, "to": lote.detalle_rollos},
    )
    log.info("Plan de consumo ajustado lote=%s renglones=%s", lote.codigo, len(plan))
    return lote
