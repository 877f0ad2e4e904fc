import tempfile
import threading
from decimal import Decimal
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from openpyxl import Workbook

from core.errors import ConcurrentModification, InsufficientMaterial, ValidationError
from inventario.models import MovimientoRollo, RolloTela
from inventario.services import (
    ajustar_consumo,
    consumir_rollos,
    listar_rollos_disponibles,
    normalizar_entradas,
    revertir_consumo,
    tipos_tela_disponibles,
)
from inventario.utils.rollos_import import importar_rollos
from procesos.services import snapshot_pasos
from produccion.models import LoteProduccion


def _rollo(codigo, *, peso="10", metros="0", tipo="Jersey", color="Negro", **extra):
    return RolloTela.objects.create(
        codigo=codigo,
        tipo_tela=tipo,
        color=color,
        peso_inicial=Decimal(peso),
        peso_restante=Decimal(extra.pop("peso_restante", peso)),
        metros_iniciales=Decimal(metros),
        metros_restantes=Decimal(extra.pop("metros_restantes", metros)),
        **extra,
    )


class RolloEstadoTests(TestCase):
    def test_weight_tracked_roll_uses_weight_priority(self):
        rollo = _rollo("R-1", peso="20", metros="50", peso_restante="0.005", metros_restantes="30")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_AGOTADO)
        # Sigue listándose porque le quedan metros (regla OR).
        self.assertTrue(rollo.seleccionable)

    def test_length_only_roll(self):
        rollo = _rollo("R-2", peso="0", metros="40", metros_restantes="39")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_DISPONIBLE)
        rollo.metros_restantes = Decimal("20")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_USADO)
        rollo.metros_restantes = Decimal("0.4")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_AGOTADO)
        self.assertFalse(rollo.seleccionable)

    def test_disponible_threshold(self):
        rollo = _rollo("R-3", peso="20", peso_restante="19")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_DISPONIBLE)
        rollo.peso_restante = Decimal("18.9")
        self.assertEqual(rollo.estado, RolloTela.ESTADO_USADO)

    def test_tipo_tela_normalizado_on_save(self):
        rollo = _rollo("R-4", tipo="  Algodón   Peinado ")
        self.assertEqual(rollo.tipo_tela_normalizado, "algodon peinado")


class ListarRollosTests(TestCase):
    def setUp(self):
        self.jersey = _rollo("J-1", tipo="Jersey", peso="15", metros="60")
        self.frisa = _rollo("F-1", tipo="Frisa", peso="12", metros="0")
        self.agotado = _rollo("J-2", tipo="Jersey", peso="10", metros="40", peso_restante="0", metros_restantes="0.3")
        self.solo_metros = _rollo("J-3", tipo="jersey", peso="10", metros="40", peso_restante="0", metros_restantes="25")

    def test_inclusive_or_rule(self):
        codigos = set(listar_rollos_disponibles().values_list("codigo", flat=True))
        self.assertEqual(codigos, {"J-1", "F-1", "J-3"})

    def test_tipo_tela_normalized_filter(self):
        codigos = set(listar_rollos_disponibles(tipo_tela="JERSEY").values_list("codigo", flat=True))
        self.assertEqual(codigos, {"J-1", "J-3"})

    def test_metros_minimos_excludes_weight_only(self):
        codigos = set(listar_rollos_disponibles(metros_minimos="30").values_list("codigo", flat=True))
        self.assertEqual(codigos, {"J-1"})

    def test_metros_minimos_tolerates_five_meters_below(self):
        codigos = set(listar_rollos_disponibles(metros_minimos="28").values_list("codigo", flat=True))
        self.assertEqual(codigos, {"J-1", "J-3"})
        codigos = set(listar_rollos_disponibles(metros_minimos="30").values_list("codigo", flat=True))
        self.assertNotIn("J-3", codigos)

    def test_tipos_disponibles_deduplicated(self):
        self.assertEqual(len(tipos_tela_disponibles()), 2)


class ConsumirRollosTests(TestCase):
    def test_consume_then_reject_overdraw(self):
        rollo = _rollo("R-10", peso="10")
        consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": 7}])
        rollo.refresh_from_db()
        self.assertEqual(rollo.peso_restante, Decimal("3"))

        with self.assertRaises(InsufficientMaterial) as ctx:
            consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": 5}])
        self.assertEqual(ctx.exception.recurso_id, rollo.id)
        rollo.refresh_from_db()
        self.assertEqual(rollo.peso_restante, Decimal("3"))
        self.assertEqual(MovimientoRollo.objects.filter(rollo=rollo).count(), 1)

    def test_all_or_nothing(self):
        ok = _rollo("R-11", peso="10")
        corto = _rollo("R-12", peso="2")
        with self.assertRaises(InsufficientMaterial):
            consumir_rollos(
                None,
                [{"rollo_id": ok.id, "kg_consumido": 4}, {"rollo_id": corto.id, "kg_consumido": 3}],
            )
        ok.refresh_from_db()
        self.assertEqual(ok.peso_restante, Decimal("10"))
        self.assertFalse(MovimientoRollo.objects.exists())

    def test_repeated_entries_are_summed(self):
        rollo = _rollo("R-13", peso="10")
        with self.assertRaises(InsufficientMaterial):
            consumir_rollos(
                None,
                [{"rollo_id": rollo.id, "kg_consumido": 6}, {"rollo_id": rollo.id, "kg_consumido": 6}],
            )
        movimientos = consumir_rollos(
            None,
            [{"rollo_id": rollo.id, "kg_consumido": "2,5"}, {"rollo_id": rollo.id, "kg_consumido": 2.5}],
        )
        self.assertEqual(len(movimientos), 1)
        self.assertEqual(movimientos[0].peso, Decimal("5"))
        self.assertEqual(movimientos[0].peso_resultante, Decimal("5"))

    def test_meters_clamped_at_zero_on_weight_roll(self):
        rollo = _rollo("R-14", peso="10", metros="8")
        consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": 1, "metros": 12}])
        rollo.refresh_from_db()
        self.assertEqual(rollo.metros_restantes, Decimal("0"))
        self.assertEqual(rollo.peso_restante, Decimal("9"))

    def test_length_only_roll_checks_meters(self):
        rollo = _rollo("R-15", peso="0", metros="30")
        with self.assertRaises(InsufficientMaterial):
            consumir_rollos(None, [{"rollo_id": rollo.id, "metros": 31}])
        consumir_rollos(None, [{"rollo_id": rollo.id, "metros": 30}])
        rollo.refresh_from_db()
        self.assertEqual(rollo.metros_restantes, Decimal("0"))

    def test_negative_and_unknown_entries(self):
        rollo = _rollo("R-16", peso="10")
        with self.assertRaises(ValidationError):
            consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": -1}])
        with self.assertRaises(ValidationError) as ctx:
            consumir_rollos(None, [{"rollo_id": 9999, "kg_consumido": 1}])
        self.assertEqual(ctx.exception.recurso_id, 9999)

    def test_color_defaults_to_roll_color(self):
        rollo = _rollo("R-17", peso="10", color="Azul Marino")
        plan = normalizar_entradas([{"rollo_id": rollo.id, "kg_consumido": 1}, {"color": "Rojo", "metros": 3}])
        self.assertEqual(plan[0].color, "Azul Marino")
        self.assertIsNone(plan[1].rollo_id)
        self.assertEqual(consumir_rollos(None, plan[1:]), [])

    def test_exhausted_roll_is_not_consumable(self):
        rollo = _rollo("R-18", peso="10", peso_restante="0", metros="5", metros_restantes="0")
        with self.assertRaises(InsufficientMaterial):
            consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": "0.001"}])

    def test_length_only_shortage_reports_meters(self):
        rollo = _rollo("R-19", peso="0", metros="12")
        with self.assertRaises(InsufficientMaterial) as ctx:
            consumir_rollos(None, [{"rollo_id": rollo.id, "metros": 20}])
        self.assertEqual(ctx.exception.extra["unidad"], "m")
        self.assertIn("12.00 m", ctx.exception.detail)
        self.assertNotIn("kg", ctx.exception.detail)

    def test_balance_changed_under_lock_is_rejected(self):
        rollo = _rollo("R-22", peso="10", metros="20")
        # Copia leída antes de que otro consumo baje el saldo en la base.
        desactualizado = RolloTela.objects.get(pk=rollo.id)
        RolloTela.objects.filter(pk=rollo.id).update(peso_restante=Decimal("1"))
        bloqueo = MagicMock()
        bloqueo.filter.return_value.order_by.return_value = [desactualizado]

        with patch.object(RolloTela.objects, "select_for_update", return_value=bloqueo):
            with self.assertRaises(InsufficientMaterial) as ctx:
                consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": 5, "metros": 4}])

        self.assertEqual(ctx.exception.recurso_id, rollo.id)
        rollo.refresh_from_db()
        self.assertEqual(rollo.peso_restante, Decimal("1"))
        self.assertEqual(rollo.metros_restantes, Decimal("20"))
        self.assertFalse(MovimientoRollo.objects.filter(rollo=rollo).exists())


class AjusteYReversoTests(TestCase):
    def setUp(self):
        self.rollo = _rollo("R-20", peso="10", metros="40")
        self.lote = LoteProduccion.objects.create(codigo="L-20", proceso_snapshot=snapshot_pasos(None))

    def test_adjust_consumption_never_touches_balance(self):
        consumir_rollos(self.lote, [{"rollo_id": self.rollo.id, "kg_consumido": 4, "metros": 10}])
        lote = ajustar_consumo(
            self.lote.id,
            [{"rollo_id": self.rollo.id, "kg_consumido": 9, "metros": 35}],
        )
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("6"))
        self.assertEqual(self.rollo.metros_restantes, Decimal("30"))
        self.assertEqual(lote.detalle_rollos[0]["kg_consumido"], "9.000")
        self.assertEqual(lote.version, 1)

    def test_adjust_with_stale_version(self):
        with self.assertRaises(ConcurrentModification):
            ajustar_consumo(self.lote.id, [], version=5)

    def test_adjust_validates_shape(self):
        with self.assertRaises(ValidationError):
            ajustar_consumo(self.lote.id, [{"rollo_id": self.rollo.id, "kg_consumido": "abc"}])

    def test_reverse_restores_balance_once(self):
        consumir_rollos(self.lote, [{"rollo_id": self.rollo.id, "kg_consumido": 4, "metros": 10}])
        reversos = revertir_consumo(self.lote)
        self.assertEqual(len(reversos), 1)
        self.assertEqual(reversos[0].tipo, MovimientoRollo.TIPO_REVERSO)
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("10"))
        self.assertEqual(self.rollo.metros_restantes, Decimal("40"))

        self.assertEqual(revertir_consumo(self.lote), [])
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("10"))

    def test_reverse_returns_only_meters_actually_taken(self):
        rollo = _rollo("R-21", peso="10", metros="100", peso_restante="5", metros_restantes="3")
        movimientos = consumir_rollos(self.lote, [{"rollo_id": rollo.id, "kg_consumido": 2, "metros": 10}])
        self.assertEqual(movimientos[0].metros, Decimal("3"))
        rollo.refresh_from_db()
        self.assertEqual(rollo.metros_restantes, Decimal("0"))

        reversos = revertir_consumo(self.lote)
        rollo.refresh_from_db()
        self.assertEqual(rollo.peso_restante, Decimal("5"))
        self.assertEqual(rollo.metros_restantes, Decimal("3"))
        self.assertEqual(reversos[0].metros, Decimal("3"))


class ImportarRollosTests(TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        _rollo("EX-1", tipo="Jersey Peinado")

    def test_import_csv(self):
        path = Path(self.tmp.name) / "rollos.csv"
        path.write_text(
            "codigo,tipo_tela,color,metros,peso,propietario\n"
            "n-1,Jersey peinado,Negro,60,\"15,5\",Taller Sur\n"
            "EX-1,Jersey,Gris,10,5,\n"
            "N-2,,Rojo,10,5,\n"
            "N-3,Frisa,Gris,0,0,\n",
            encoding="utf-8",
        )
        summary = importar_rollos(str(path))

        self.assertEqual(summary.creados, 1)
        self.assertEqual(summary.omitidos_existentes, 1)
        self.assertEqual(len(summary.errores), 2)
        rollo = RolloTela.objects.get(codigo="N-1")
        self.assertEqual(rollo.tipo_tela, "Jersey Peinado")
        self.assertEqual(rollo.peso_restante, Decimal("15.5"))
        self.assertEqual(rollo.metros_restantes, Decimal("60"))
        self.assertEqual(rollo.propietario, "Taller Sur")

    def test_import_xlsx_command(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["Código", "Tipo de tela", "Color", "Mts", "Kg"])
        ws.append(["X-1", "Rib", "Blanco", 25, 6.25])
        path = Path(self.tmp.name) / "rollos.xlsx"
        wb.save(str(path))

        out = StringIO()
        call_command("importar_rollos", str(path), stdout=out)
        self.assertIn("rollos creados: 1", out.getvalue())
        rollo = RolloTela.objects.get(codigo="X-1")
        self.assertEqual(rollo.peso_inicial, Decimal("6.25"))

    def test_dry_run_creates_nothing(self):
        path = Path(self.tmp.name) / "rollos.csv"
        path.write_text("codigo,tipo_tela,peso\nD-1,Frisa,3\n", encoding="utf-8")
        summary = importar_rollos(str(path), dry_run=True)
        self.assertEqual(summary.creados, 1)
        self.assertFalse(RolloTela.objects.filter(codigo="D-1").exists())


@skipUnlessDBFeature("has_select_for_update")
class ConsumoConcurrenteTests(TransactionTestCase):
    def test_two_consumers_cannot_overdraw(self):
        rollo = _rollo("C-1", peso="10")
        barrier = threading.Barrier(2)
        resultados = []

        def consumir():
            try:
                barrier.wait()
                consumir_rollos(None, [{"rollo_id": rollo.id, "kg_consumido": 7}])
                resultados.append("ok")
            except InsufficientMaterial:
                resultados.append("rechazado")
            finally:
                connection.close()

        hilos = [threading.Thread(target=consumir) for _ in range(2)]
        for hilo in hilos:
            hilo.start()
        for hilo in hilos:
            hilo.join()

        self.assertEqual(sorted(resultados), ["ok", "rechazado"])
        rollo.refresh_from_db()
        self.assertEqual(rollo.peso_restante, Decimal("3"))
