from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd
from rapidfuzz import fuzz, process
from django.db import transaction

from core.normalizacion import normalizar_nombre
from inventario.models import RolloTela

log = logging.getLogger(__name__)

COLUMNAS_REQUERIDAS = ("codigo", "tipo_tela")
ALIAS_COLUMNAS = {
    "codigo": "codigo",
    "cod": "codigo",
    "rollo": "codigo",
    "tipo tela": "tipo_tela",
    "tipo de tela": "tipo_tela",
    "tela": "tipo_tela",
    "color": "color",
    "metros": "metros",
    "mts": "metros",
    "peso": "peso",
    "kg": "peso",
    "peso kg": "peso",
    "propietario": "propietario",
    "dueno": "propietario",
}


@dataclass
class RolloRow:
    row_index: int
    codigo: str
    tipo_tela: str
    color: str
    metros: Decimal
    peso: Decimal
    propietario: str


@dataclass
class ImportRollosSummary:
    filas_leidas: int = 0
    creados: int = 0
    omitidos_existentes: int = 0
    tipos_unificados: int = 0
    errores: list[str] = field(default_factory=list)


def _to_decimal(value: Any, default: str = "0") -> Decimal:
    try:
        if value is None:
            return Decimal(default)
        if isinstance(value, (int, float)):
            if pd.isna(value):
                return Decimal(default)
            return Decimal(str(value))
        raw = str(value).strip().replace(",", ".")
        if raw == "" or raw.lower() == "nan":
            return Decimal(default)
        d = Decimal(raw)
        return d if d.is_finite() else Decimal(default)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(default)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    text = " ".join(str(value).split())
    return "" if text.lower() == "nan" else text


def _read_frame(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in {".xlsx", ".xlsm"}:
        df = pd.read_excel(path, engine="openpyxl", dtype=object)
    else:
        df = pd.read_csv(path, dtype=object, keep_default_na=False)
    renamed = {}
    for col in df.columns:
        key = ALIAS_COLUMNAS.get(normalizar_nombre(str(col).replace("_", " ")))
        if key:
            renamed[col] = key
    return df.rename(columns=renamed)


def leer_rollos(filepath: str) -> tuple[list[RolloRow], list[str]]:
    path = Path(filepath).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Archivo no encontrado: {path}")

    df = _read_frame(path)
    faltantes = [c for c in COLUMNAS_REQUERIDAS if c not in df.columns]
    if faltantes:
        return [], [f"Faltan columnas: {', '.join(faltantes)}"]

    rows: list[RolloRow] = []
    errores: list[str] = []
    for idx, raw in enumerate(df.to_dict(orient="records"), start=2):
        codigo = _as_text(raw.get("codigo")).upper()
        tipo = _as_text(raw.get("tipo_tela"))
        if not codigo and not tipo:
            continue
        if not codigo or not tipo:
            errores.append(f"Fila {idx}: codigo y tipo_tela son obligatorios.")
            continue
        metros = _to_decimal(raw.get("metros"))
        peso = _to_decimal(raw.get("peso"))
        if metros < 0 or peso < 0:
            errores.append(f"Fila {idx} ({codigo}): metros/peso no pueden ser negativos.")
            continue
        if metros <= 0 and peso <= 0:
            errores.append(f"Fila {idx} ({codigo}): el rollo no tiene metros ni peso.")
            continue
        rows.append(
            RolloRow(
                row_index=idx,
                codigo=codigo,
                tipo_tela=tipo,
                color=_as_text(raw.get("color")),
                metros=metros.quantize(Decimal("0.01")),
                peso=peso.quantize(Decimal("0.001")),
                propietario=_as_text(raw.get("propietario")),
            )
        )
    return rows, errores


class TipoTelaMatcher:
    """Unifica variantes de escritura contra los tipos de tela ya cargados."""

    def __init__(self):
        self.by_norm: dict[str, str] = {}
        for tipo in RolloTela.objects.order_by("id").values_list("tipo_tela", flat=True):
            self.by_norm.setdefault(normalizar_nombre(tipo), tipo)

    def resolve(self, raw: str, fuzzy_threshold: int = 90) -> str:
        norm = normalizar_nombre(raw)
        exact = self.by_norm.get(norm)
        if exact:
            return exact
        if self.by_norm:
            best = process.extractOne(norm, list(self.by_norm), scorer=fuzz.WRatio)
            if best and best[1] >= fuzzy_threshold:
                return self.by_norm[best[0]]
        self.by_norm[norm] = raw
        return raw


def importar_rollos(filepath: str, *, fuzzy_threshold: int = 90, dry_run: bool = False) -> ImportRollosSummary:
    summary = ImportRollosSummary()
    rows, errores = leer_rollos(filepath)
    summary.filas_leidas = len(rows) + len(errores)
    summary.errores.extend(errores)

    matcher = TipoTelaMatcher()
    existentes = set(
        RolloTela.objects.filter(codigo__in=[r.codigo for r in rows]).values_list("codigo", flat=True)
    )
    vistos: set[str] = set()
    with transaction.atomic():
        for row in rows:
            if row.codigo in existentes or row.codigo in vistos:
                summary.omitidos_existentes += 1
                continue
            vistos.add(row.codigo)
            tipo = matcher.resolve(row.tipo_tela, fuzzy_threshold=fuzzy_threshold)
            if tipo != row.tipo_tela:
                summary.tipos_unificados += 1
            if dry_run:
                summary.creados += 1
                continue
            RolloTela.objects.create(
                codigo=row.codigo,
                tipo_tela=tipo,
                color=row.color,
                metros_iniciales=row.metros,
                metros_restantes=row.metros,
                peso_inicial=row.peso,
                peso_restante=row.peso,
                propietario=row.propietario,
            )
            summary.creados += 1

    log.info(
        "Importación de rollos archivo=%s creados=%s omitidos=%s errores=%s dry_run=%s",
        filepath,
        summary.creados,
        summary.omitidos_existentes,
        len(summary.errores),
        dry_run,
    )
    return summary
