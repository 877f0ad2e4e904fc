from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from catalogo.models import Producto
from core.errors import ValidationError
from core.models import AuditLog
from procesos.models import ProcesoTemplate
from procesos.services import (
    NOMBRE_PROCESO_DEFAULT,
    PASOS_DEFAULT,
    asegurar_proceso_default,
    crear_proceso,
    eliminar_proceso,
    listar_procesos,
    reemplazar_pasos,
    snapshot_pasos,
)
from produccion.models import LoteProduccion


class ProcesoTemplateServiceTests(TestCase):
    def test_create_reassigns_contiguous_order(self):
        proceso = crear_proceso(
            "Remeras",
            [
                {"nombre": "corte", "orden": 7},
                {"nombre": "estampado", "orden": 3},
                {"nombre": "terminado", "requiere_input": True},
            ],
        )
        pasos = list(proceso.pasos.order_by("orden").values_list("nombre", "orden", "requiere_input"))
        self.assertEqual(
            pasos,
            [("corte", 0, False), ("estampado", 1, False), ("terminado", 2, True)],
        )
        self.assertEqual(proceso.total_pasos, 3)
        self.assertTrue(AuditLog.objects.filter(action="CREATE", model="procesos.ProcesoTemplate").exists())

    def test_create_accepts_plain_names(self):
        proceso = crear_proceso("Buzos", ["corte", "taller"])
        self.assertEqual(list(proceso.pasos.order_by("orden").values_list("nombre", flat=True)), ["corte", "taller"])

    def test_rejects_empty_stage_list(self):
        with self.assertRaises(ValidationError):
            crear_proceso("Vacío", [])
        self.assertFalse(ProcesoTemplate.objects.exists())

    def test_rejects_blank_stage_name(self):
        with self.assertRaises(ValidationError) as ctx:
            crear_proceso("Jeans", [{"nombre": "corte"}, {"nombre": "   "}])
        self.assertEqual(ctx.exception.recurso, "etapa")

    def test_rejects_duplicate_stage_names_normalized(self):
        with self.assertRaises(ValidationError) as ctx:
            crear_proceso("Camisas", ["Confección", "confeccion "])
        self.assertEqual(ctx.exception.recurso_id, "confeccion")
        self.assertFalse(ProcesoTemplate.objects.exists())

    def test_rejects_duplicate_template_name(self):
        crear_proceso("Remeras", ["corte"])
        with self.assertRaises(ValidationError):
            crear_proceso("remeras", ["corte"])

    def test_replace_stages_is_full_rewrite(self):
        proceso = crear_proceso("Remeras", ["corte", "taller", "terminado"])
        reemplazar_pasos(proceso.id, [{"nombre": "corte"}, {"nombre": "bordado"}])
        self.assertEqual(
            list(proceso.pasos.order_by("orden").values_list("nombre", "orden")),
            [("corte", 0), ("bordado", 1)],
        )

    def test_replace_with_invalid_list_keeps_previous_stages(self):
        proceso = crear_proceso("Remeras", ["corte", "taller"])
        with self.assertRaises(ValidationError):
            reemplazar_pasos(proceso.id, [])
        self.assertEqual(proceso.pasos.count(), 2)

    def test_list_orders_by_name(self):
        crear_proceso("Zeta", ["a"])
        crear_proceso("Alfa", ["a"])
        self.assertEqual([p.nombre for p in listar_procesos()], ["Alfa", "Zeta"])


class ProcesoSnapshotTests(TestCase):
    def test_snapshot_is_a_value_copy(self):
        proceso = crear_proceso("Remeras", ["corte", "taller", "terminado"])
        snapshot = snapshot_pasos(proceso)
        reemplazar_pasos(proceso.id, ["otro"])
        self.assertEqual([p["nombre"] for p in snapshot], ["corte", "taller", "terminado"])

    def test_snapshot_without_template_uses_default_flow(self):
        snapshot = snapshot_pasos(None)
        self.assertEqual([p["nombre"] for p in snapshot], ["planificado", "corte", "taller", "terminado"])
        self.assertTrue(snapshot[-1]["requiere_input"])
        snapshot[0]["nombre"] = "mutado"
        self.assertEqual(PASOS_DEFAULT[0]["nombre"], "planificado")


class ProcesoDeleteTests(TestCase):
    def test_delete_blocked_by_open_batch(self):
        proceso = crear_proceso("Remeras", ["corte", "terminado"])
        LoteProduccion.objects.create(codigo="L-001", proceso=proceso, proceso_snapshot=snapshot_pasos(proceso))

        with self.assertRaises(ValidationError) as ctx:
            eliminar_proceso(proceso.id)
        self.assertIn("L-001", ctx.exception.detail)
        self.assertTrue(ProcesoTemplate.objects.filter(pk=proceso.id).exists())

    def test_delete_clears_product_default_and_keeps_closed_batches(self):
        proceso = crear_proceso("Remeras", ["corte", "terminado"])
        producto = Producto.objects.create(codigo="REM-01", nombre="Remera básica", proceso_default=proceso)
        lote = LoteProduccion.objects.create(
            codigo="L-002",
            proceso=proceso,
            proceso_snapshot=snapshot_pasos(proceso),
            cancelado_en=timezone.now(),
        )

        eliminar_proceso(proceso.id)

        producto.refresh_from_db()
        lote.refresh_from_db()
        self.assertIsNone(producto.proceso_default)
        self.assertIsNone(lote.proceso)
        self.assertEqual(lote.proceso_snapshot[0]["nombre"], "corte")


class ProcesoDefaultCommandTests(TestCase):
    def test_command_is_idempotent(self):
        out = StringIO()
        call_command("crear_proceso_default", stdout=out)
        call_command("crear_proceso_default", stdout=out)
        self.assertEqual(ProcesoTemplate.objects.filter(nombre=NOMBRE_PROCESO_DEFAULT).count(), 1)

        proceso, created = asegurar_proceso_default()
        self.assertFalse(created)
        self.assertEqual(proceso.total_pasos, len(PASOS_DEFAULT))
