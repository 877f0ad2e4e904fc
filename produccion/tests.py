from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings

from catalogo.models import Producto, ProductoTalla
from core.errors import AlreadyFinalized, ConcurrentModification, InsufficientMaterial, UnknownStage, ValidationError
from core.models import AuditLog, UserProfile
from inventario.models import MovimientoRollo, RolloTela
from procesos.services import crear_proceso, reemplazar_pasos
from produccion.colores import resolver_hex_color
from produccion.conciliacion import finalizar_lote
from produccion.distribucion import editar_distribucion, normalizar_matriz, total_fila, total_producto
from produccion.models import LoteProduccion, LoteProducto
from produccion.services import avanzar_etapa, calcular_progreso, cancelar_lote, crear_lote


class _ProduccionBase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="jefa_taller", password="test12345")
        self.proceso = crear_proceso(
            "Tres etapas",
            [
                {"nombre": "planificado"},
                {"nombre": "corte"},
                {"nombre": "terminado", "requiere_input": True},
            ],
        )
        self.producto_a = Producto.objects.create(codigo="A-01", nombre="Remera A", proceso_default=self.proceso)
        self.talla_s = ProductoTalla.objects.create(producto=self.producto_a, talla_codigo="S", orden=0)
        self.talla_m = ProductoTalla.objects.create(producto=self.producto_a, talla_codigo="M", orden=1)
        self.producto_b = Producto.objects.create(codigo="B-01", nombre="Buzo B")
        self.producto_c = Producto.objects.create(codigo="C-01", nombre="Short C")
        self.producto_d = Producto.objects.create(codigo="D-01", nombre="Musculosa D")
        self.rollo = RolloTela.objects.create(
            codigo="R-100",
            tipo_tela="Jersey",
            color="Rojo",
            peso_inicial=Decimal("10"),
            peso_restante=Decimal("10"),
        )

    def _lote(self, codigo="L-100", productos=None, rollos=None, **kwargs):
        return crear_lote(
            codigo,
            productos if productos is not None else [self.producto_a.id],
            rollos if rollos is not None else [],
            user=self.user,
            **kwargs,
        )


class CrearLoteTests(_ProduccionBase):
    def test_creates_batch_at_first_stage_and_consumes(self):
        lote = self._lote(rollos=[{"rollo_id": self.rollo.id, "kg_consumido": 7}])

        self.assertEqual(lote.etapa_actual, 0)
        self.assertEqual(lote.estado, "planificado")
        self.assertEqual(lote.progreso_porcentaje, 0)
        self.assertEqual(lote.proceso, self.proceso)
        self.assertEqual([p["nombre"] for p in lote.proceso_snapshot], ["planificado", "corte", "terminado"])
        self.assertEqual(lote.detalle_rollos[0]["color"], "Rojo")
        self.assertEqual(lote.creado_por, self.user)
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("3"))
        self.assertEqual(MovimientoRollo.objects.get().lote, lote)
        self.assertTrue(AuditLog.objects.filter(action="CREATE", object_id=str(lote.id)).exists())

    def test_insufficient_material_leaves_no_batch(self):
        self._lote(rollos=[{"rollo_id": self.rollo.id, "kg_consumido": 7}])
        with self.assertRaises(InsufficientMaterial):
            self._lote("L-101", rollos=[{"rollo_id": self.rollo.id, "kg_consumido": 5}])

        self.assertFalse(LoteProduccion.objects.filter(codigo="L-101").exists())
        self.assertFalse(LoteProducto.objects.filter(lote__codigo="L-101").exists())
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("3"))

    def test_product_rules(self):
        with self.assertRaises(ValidationError):
            self._lote(productos=[])
        with self.assertRaises(ValidationError):
            self._lote(productos=[self.producto_a.id, self.producto_a.id])
        with self.assertRaises(ValidationError):
            self._lote(
                productos=[self.producto_a.id, self.producto_b.id, self.producto_c.id, self.producto_d.id]
            )
        with self.assertRaises(ValidationError) as ctx:
            self._lote(productos=[999])
        self.assertEqual(ctx.exception.recurso_id, 999)
        self.assertFalse(LoteProduccion.objects.exists())

    def test_three_products_keep_order(self):
        lote = self._lote(productos=[self.producto_c.id, self.producto_a.id, self.producto_b.id])
        self.assertEqual(
            list(lote.productos.order_by("orden").values_list("producto_id", flat=True)),
            [self.producto_c.id, self.producto_a.id, self.producto_b.id],
        )

    def test_duplicate_or_blank_code(self):
        self._lote()
        with self.assertRaises(ValidationError):
            self._lote()
        with self.assertRaises(ValidationError):
            self._lote("   ")

    def test_template_resolution(self):
        sin_proceso = self._lote("L-1", productos=[self.producto_b.id])
        self.assertIsNone(sin_proceso.proceso)
        self.assertEqual(
            [p["nombre"] for p in sin_proceso.proceso_snapshot],
            ["planificado", "corte", "taller", "terminado"],
        )

        otro = crear_proceso("Dos etapas", ["cortar", "entregar"])
        override = self._lote("L-2", proceso=otro.id)
        self.assertEqual(override.estado, "cortar")

        with self.assertRaises(ValidationError):
            self._lote("L-3", proceso=9999)

    def test_owner_defaults_to_user_workshop(self):
        UserProfile.objects.create(user=self.user, taller="Taller Sur")
        self.assertEqual(self._lote("L-10").propietario, "Taller Sur")
        self.assertEqual(self._lote("L-11", propietario=" Taller Norte ").propietario, "Taller Norte")
        self.assertEqual(crear_lote("L-12", [self.producto_a.id]).propietario, "")

    def test_template_edits_do_not_affect_open_batch(self):
        lote = self._lote()
        reemplazar_pasos(self.proceso.id, ["otra cosa"])
        avance = avanzar_etapa(lote.id, "corte")
        self.assertEqual(avance.lote.etapa_actual, 1)


class AvanzarEtapaTests(_ProduccionBase):
    def test_three_stage_scenario(self):
        lote = self._lote()

        avance = avanzar_etapa(lote.id, "corte", user=self.user)
        self.assertFalse(avance.diferido)
        self.assertEqual(avance.lote.etapa_actual, 1)
        self.assertEqual(avance.lote.progreso_porcentaje, 50)
        self.assertEqual(avance.lote.estado, "corte")

        diferido = avanzar_etapa(lote.id, "terminado", user=self.user)
        self.assertTrue(diferido.diferido)
        lote.refresh_from_db()
        self.assertEqual(lote.etapa_actual, 1)

        finalizado = finalizar_lote(lote.id, user=self.user)
        self.assertEqual(finalizado.etapa_actual, 2)
        self.assertEqual(finalizado.progreso_porcentaje, 100)
        self.assertEqual(finalizado.estado, "terminado")
        self.assertIsNotNone(finalizado.finalizado_en)
        self.assertIsNotNone(finalizado.fecha_fin)

    def test_unknown_stage_is_an_error(self):
        lote = self._lote()
        with self.assertRaises(UnknownStage) as ctx:
            avanzar_etapa(lote.id, "bordado")
        self.assertIn("corte", ctx.exception.extra["etapas_disponibles"])
        lote.refresh_from_db()
        self.assertEqual(lote.version, 0)

    def test_stage_lookup_is_normalized(self):
        lote = self._lote()
        self.assertEqual(avanzar_etapa(lote.id, "  CORTE ").etapa, "corte")

    def test_jumps_backward_allowed(self):
        lote = self._lote("L-200", productos=[self.producto_b.id])
        avanzar_etapa(lote.id, "taller")
        avance = avanzar_etapa(lote.id, "planificado")
        self.assertEqual(avance.lote.etapa_actual, 0)
        self.assertEqual(avance.lote.progreso_porcentaje, 0)

    def test_stale_version_rejected(self):
        lote = self._lote()
        avanzar_etapa(lote.id, "corte", version=0)
        with self.assertRaises(ConcurrentModification):
            avanzar_etapa(lote.id, "planificado", version=0)
        lote.refresh_from_db()
        self.assertEqual(lote.estado, "corte")
        self.assertEqual(lote.version, 1)

    def test_transition_is_audited(self):
        lote = self._lote()
        avanzar_etapa(lote.id, "corte", user=self.user)
        row = AuditLog.objects.get(action="TRANSITION", object_id=str(lote.id))
        self.assertEqual(row.payload, {"from": "planificado", "to": "corte", "user": "jefa_taller"})
        self.assertEqual(row.user, self.user)

    def test_finalized_batch_rejects_transitions(self):
        lote = self._lote()
        finalizar_lote(lote.id)
        with self.assertRaises(AlreadyFinalized):
            avanzar_etapa(lote.id, "corte")

    def test_progress_formula(self):
        self.assertEqual(calcular_progreso(0, 1), 0)
        self.assertEqual(calcular_progreso(1, 3), 50)
        self.assertEqual(calcular_progreso(1, 4), 33)
        self.assertEqual(calcular_progreso(2, 4), 67)
        self.assertEqual(calcular_progreso(1, 9), 13)
        self.assertEqual(calcular_progreso(3, 4), 100)

    def test_single_stage_template(self):
        unico = crear_proceso("Único", ["listo"])
        lote = self._lote("L-300", proceso=unico)
        self.assertEqual(lote.progreso_porcentaje, 0)
        self.assertTrue(avanzar_etapa(lote.id, "listo").diferido)
        self.assertEqual(finalizar_lote(lote.id).progreso_porcentaje, 100)


class CancelarLoteTests(_ProduccionBase):
    def test_cancel_returns_material(self):
        lote = self._lote(rollos=[{"rollo_id": self.rollo.id, "kg_consumido": 7}])
        cancelado = cancelar_lote(lote.id, user=self.user)

        self.assertIsNotNone(cancelado.cancelado_en)
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("10"))
        self.assertEqual(
            list(MovimientoRollo.objects.filter(lote=lote).order_by("id").values_list("tipo", flat=True)),
            [MovimientoRollo.TIPO_CONSUMO, MovimientoRollo.TIPO_REVERSO],
        )
        with self.assertRaises(ValidationError):
            avanzar_etapa(lote.id, "corte")
        with self.assertRaises(ValidationError):
            cancelar_lote(lote.id)

    def test_cannot_cancel_finalized(self):
        lote = self._lote()
        finalizar_lote(lote.id)
        with self.assertRaises(AlreadyFinalized):
            cancelar_lote(lote.id)


class DistribucionTests(_ProduccionBase):
    def test_normalizar_matriz(self):
        matriz = normalizar_matriz({" Rojo ": {1: 5, "2": "3", "3": 0}, "Azul": {}, "Verde": {"4": 0}})
        self.assertEqual(matriz, {"Rojo": {"1": 5, "2": 3}})
        self.assertEqual(total_fila(matriz, "Rojo"), 8)
        self.assertEqual(total_producto(matriz), 8)
        self.assertEqual(normalizar_matriz(None), {})

    def test_normalizar_matriz_rejects_bad_values(self):
        for invalida in ({"": {"1": 2}}, {"Rojo": {"1": -1}}, {"Rojo": {"1": 1.5}}, {"Rojo": {"1": True}}, ["Rojo"]):
            with self.assertRaises(ValidationError):
                normalizar_matriz(invalida)
        with self.assertRaises(ValidationError):
            normalizar_matriz({"Rojo": {"1": 1}, "rojo": {"2": 1}})

    def test_edit_distribution_caches_total(self):
        lote = self._lote()
        lp = lote.productos.get()
        editar_distribucion(lp.id, {"Rojo": {str(self.talla_s.id): 5, str(self.talla_m.id): 3}})
        lp.refresh_from_db()
        self.assertEqual(lp.cantidad_producto, 8)

        editar_distribucion(lp.id, {"Rojo": {str(self.talla_s.id): 1}}, guardar_total=False)
        lp.refresh_from_db()
        self.assertEqual(lp.cantidad_producto, 8)
        self.assertEqual(lp.tallas_distribucion, {"Rojo": {str(self.talla_s.id): 1}})

    def test_size_must_belong_to_product(self):
        otra = ProductoTalla.objects.create(producto=self.producto_b, talla_codigo="XL")
        lote = self._lote()
        lp = lote.productos.get()
        with self.assertRaises(ValidationError) as ctx:
            editar_distribucion(lp.id, {"Negro": {str(otra.id): 2}})
        self.assertEqual(ctx.exception.recurso_id, str(otra.id))

    def test_edit_after_finalize_does_not_touch_stock(self):
        lote = self._lote()
        lp = lote.productos.get()
        editar_distribucion(lp.id, {"Rojo": {str(self.talla_s.id): 4}})
        finalizar_lote(lote.id)
        editar_distribucion(lp.id, {"Rojo": {str(self.talla_s.id): 40}})
        self.talla_s.refresh_from_db()
        self.assertEqual(self.talla_s.stock, 4)


class ConciliacionTests(_ProduccionBase):
    def test_two_product_scenario(self):
        lote = self._lote(productos=[self.producto_a.id, self.producto_b.id])
        lp_a = lote.productos.get(producto=self.producto_a)
        lp_b = lote.productos.get(producto=self.producto_b)
        editar_distribucion(lp_a.id, {"Rojo": {str(self.talla_s.id): 5, str(self.talla_m.id): 3}})

        finalizar_lote(lote.id, {lp_b.id: 20}, user=self.user)

        self.talla_s.refresh_from_db()
        self.talla_m.refresh_from_db()
        self.producto_b.refresh_from_db()
        self.assertEqual(self.talla_s.stock, 5)
        self.assertEqual(self.talla_m.stock, 3)
        self.assertEqual(self.producto_b.stock_total, 20)
        lp_a.refresh_from_db()
        lp_b.refresh_from_db()
        self.assertEqual(lp_a.cantidad_real, 8)
        self.assertEqual(lp_b.cantidad_real, 20)
        self.assertIsNotNone(lp_b.stock_conciliado_en)

    def test_new_colors_registered_with_swatch(self):
        self.producto_a.colores = [{"nombre": "Rojo", "hex": "#FF0000"}]
        self.producto_a.save()
        lote = self._lote()
        lp = lote.productos.get()
        editar_distribucion(
            lp.id,
            {
                "rojo": {str(self.talla_s.id): 1},
                "Gris Melange": {str(self.talla_s.id): 1},
                "Tornasolado": {str(self.talla_m.id): 1},
            },
        )
        finalizar_lote(lote.id)

        self.producto_a.refresh_from_db()
        self.assertEqual(self.producto_a.colores[0], {"nombre": "Rojo", "hex": "#FF0000"})
        self.assertCountEqual(
            self.producto_a.colores,
            [
                {"nombre": "Rojo", "hex": "#FF0000"},
                {"nombre": "Gris Melange", "hex": "#B5B5B5"},
                {"nombre": "Tornasolado", "hex": None},
            ],
        )

    def test_empty_matrix_uses_cached_quantity(self):
        lote = self._lote(productos=[{"producto_id": self.producto_b.id, "cantidad_producto": 12}])
        finalizar_lote(lote.id)
        self.producto_b.refresh_from_db()
        self.assertEqual(self.producto_b.stock_total, 12)

    def test_invalid_quantities_write_nothing(self):
        lote = self._lote(productos=[self.producto_b.id])
        lp = lote.productos.get()
        with self.assertRaises(ValidationError):
            finalizar_lote(lote.id, {lp.id: -3})
        with self.assertRaises(ValidationError):
            finalizar_lote(lote.id, {9999: 3})
        lote.refresh_from_db()
        self.assertIsNone(lote.finalizado_en)
        self.assertEqual(lote.version, 0)

    def test_stale_version_rejected(self):
        lote = self._lote(productos=[self.producto_b.id])
        lp = lote.productos.get()
        avanzar_etapa(lote.id, "corte")
        with self.assertRaises(ConcurrentModification):
            finalizar_lote(lote.id, {lp.id: 5}, version=0)
        self.producto_b.refresh_from_db()
        self.assertEqual(self.producto_b.stock_total, 0)

    def test_double_finalize_is_rejected(self):
        lote = self._lote(productos=[self.producto_b.id])
        lp = lote.productos.get()
        finalizar_lote(lote.id, {lp.id: 20})
        with self.assertRaises(AlreadyFinalized):
            finalizar_lote(lote.id, {lp.id: 20})
        self.producto_b.refresh_from_db()
        self.assertEqual(self.producto_b.stock_total, 20)

    @override_settings(PRODUCCION_GUARDA_FINALIZACION=False)
    def test_double_finalize_without_guard_reapplies_stock(self):
        lote = self._lote(productos=[self.producto_b.id])
        lp = lote.productos.get()
        finalizar_lote(lote.id, {lp.id: 20})
        finalizar_lote(lote.id, {lp.id: 20})
        self.producto_b.refresh_from_db()
        self.assertEqual(self.producto_b.stock_total, 40)

    def test_cancelled_batch_cannot_finalize(self):
        lote = self._lote()
        cancelar_lote(lote.id)
        with self.assertRaises(ValidationError):
            finalizar_lote(lote.id)


class ColoresTests(TestCase):
    def test_keyword_resolution(self):
        self.assertEqual(resolver_hex_color("Negro"), "#000000")
        self.assertEqual(resolver_hex_color("Azul Marino"), "#000080")
        self.assertEqual(resolver_hex_color("gris melange"), "#B5B5B5")
        self.assertEqual(resolver_hex_color("VISÓN"), "#9C8B7A")
        self.assertIsNone(resolver_hex_color("Tornasolado"))
        self.assertIsNone(resolver_hex_color(""))
