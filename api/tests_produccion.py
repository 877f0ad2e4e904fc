from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase, override_settings
from django.urls import reverse

from catalogo.models import Producto, ProductoTalla
from core.access import ROLE_CORTADOR, ROLE_LECTURA, ROLE_PRODUCCION
from core.models import AuditLog
from inventario.models import MovimientoRollo, RolloTela
from procesos.services import crear_proceso
from produccion.models import LoteProduccion


class ProduccionApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_user(
            username="jefe_produccion",
            email="jefe_produccion@example.com",
            password="test12345",
        )
        self.user.groups.add(Group.objects.get_or_create(name=ROLE_PRODUCCION)[0])
        self.client.force_login(self.user)

        self.proceso = crear_proceso(
            "Remeras",
            [{"nombre": "planificado"}, {"nombre": "corte"}, {"nombre": "terminado", "requiere_input": True}],
        )
        self.producto = Producto.objects.create(codigo="REM-01", nombre="Remera", proceso_default=self.proceso)
        self.talla_s = ProductoTalla.objects.create(producto=self.producto, talla_codigo="S", orden=0)
        self.talla_m = ProductoTalla.objects.create(producto=self.producto, talla_codigo="M", orden=1)
        self.buzo = Producto.objects.create(codigo="BUZ-01", nombre="Buzo")
        self.rollo = RolloTela.objects.create(
            codigo="R-500",
            tipo_tela="Jersey",
            color="Rojo",
            metros_iniciales=Decimal("60"),
            metros_restantes=Decimal("60"),
            peso_inicial=Decimal("10"),
            peso_restante=Decimal("10"),
        )

    def _crear(self, codigo="L-500", productos=None, rollos=None):
        return self.client.post(
            reverse("api_produccion_lotes"),
            {
                "codigo": codigo,
                "productos": productos if productos is not None else [self.producto.id, self.buzo.id],
                "detalle_rollos": rollos if rollos is not None else [
                    {"rollo_id": self.rollo.id, "kg_consumido": "7", "metros": "30"}
                ],
                "modelo_corte": "MC-12",
            },
            content_type="application/json",
        )

    def test_full_lifecycle(self):
        resp = self._crear()
        self.assertEqual(resp.status_code, 201)
        lote = resp.json()
        self.assertEqual(lote["estado"], "planificado")
        self.assertEqual(lote["progreso_porcentaje"], 0)
        self.assertEqual(lote["version"], 0)
        self.assertEqual(lote["creado_por"], "jefe_produccion")
        self.assertEqual([p["producto"] for p in lote["productos"]], [self.producto.id, self.buzo.id])
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("3"))
        self.assertEqual(self.rollo.metros_restantes, Decimal("30"))

        resp = self.client.post(
            reverse("api_produccion_lote_avanzar", args=[lote["id"]]),
            {"etapa": "corte", "version": 0},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["diferido"])
        self.assertEqual(resp.json()["lote"]["progreso_porcentaje"], 50)

        resp = self.client.post(
            reverse("api_produccion_lote_avanzar", args=[lote["id"]]),
            {"etapa": "terminado", "version": 1},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 202)
        self.assertTrue(resp.json()["diferido"])
        self.assertEqual(resp.json()["lote"]["estado"], "corte")

        lp_remera, lp_buzo = lote["productos"]
        resp = self.client.put(
            reverse("api_produccion_lote_producto_distribucion", args=[lp_remera["id"]]),
            {"tallas_distribucion": {"Rojo": {str(self.talla_s.id): 5, str(self.talla_m.id): 3}}},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["cantidad_producto"], 8)

        resp = self.client.post(
            reverse("api_produccion_lote_finalizar", args=[lote["id"]]),
            {"cantidades": {str(lp_buzo["id"]): 20}, "version": 1},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["estado"], "terminado")
        self.assertEqual(resp.json()["progreso_porcentaje"], 100)
        self.assertIsNotNone(resp.json()["finalizado_en"])

        self.talla_s.refresh_from_db()
        self.talla_m.refresh_from_db()
        self.buzo.refresh_from_db()
        self.assertEqual((self.talla_s.stock, self.talla_m.stock), (5, 3))
        self.assertEqual(self.buzo.stock_total, 20)

        resp = self.client.post(
            reverse("api_produccion_lote_finalizar", args=[lote["id"]]),
            {},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "already_finalized")

        resp = self.client.get(reverse("api_produccion_lote_detail", args=[lote["id"]]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([m["tipo"] for m in resp.json()["movimientos_rollo"]], ["CONSUMO"])
        self.assertEqual(
            list(AuditLog.objects.filter(object_id=str(lote["id"]), model="produccion.LoteProduccion")
                 .order_by("id").values_list("action", flat=True)),
            ["CREATE", "TRANSITION", "FINALIZE"],
        )

    def test_insufficient_material_reports_roll(self):
        resp = self._crear(rollos=[{"rollo_id": self.rollo.id, "kg_consumido": "12"}])
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertEqual(body["code"], "insufficient_material")
        self.assertEqual(body["recurso"], "rollo")
        self.assertEqual(body["recurso_id"], str(self.rollo.id))
        self.assertFalse(LoteProduccion.objects.exists())

    def test_create_validation_errors(self):
        self.assertEqual(self._crear(productos=[]).status_code, 400)
        self.assertEqual(self._crear(productos=[self.producto.id, self.producto.id]).status_code, 400)
        extra = [Producto.objects.create(codigo=f"X-{i}", nombre=f"X {i}").id for i in range(3)]
        self.assertEqual(self._crear(productos=[self.producto.id] + extra).status_code, 400)
        resp = self._crear(productos=[999])
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["recurso"], "producto")
        self.assertFalse(LoteProduccion.objects.exists())

    def test_unknown_stage_and_stale_version(self):
        lote_id = self._crear(rollos=[]).json()["id"]
        url = reverse("api_produccion_lote_avanzar", args=[lote_id])

        resp = self.client.post(url, {"etapa": "bordado"}, content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "unknown_stage")
        self.assertIn("corte", resp.json()["etapas_disponibles"])

        self.assertEqual(self.client.post(url, {"etapa": "corte", "version": 0}, content_type="application/json").status_code, 200)
        resp = self.client.post(url, {"etapa": "planificado", "version": 0}, content_type="application/json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "concurrent_modification")

    def test_missing_batch_is_404(self):
        resp = self.client.post(
            reverse("api_produccion_lote_avanzar", args=[999]),
            {"etapa": "corte"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(self.client.get(reverse("api_produccion_lote_detail", args=[999])).status_code, 404)

    def test_cancel_restores_rolls(self):
        lote_id = self._crear().json()["id"]
        resp = self.client.post(reverse("api_produccion_lote_cancelar", args=[lote_id]), {}, content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNotNone(resp.json()["cancelado_en"])
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("10"))
        self.assertEqual(self.rollo.metros_restantes, Decimal("60"))
        self.assertEqual(MovimientoRollo.objects.filter(tipo="REVERSO").count(), 1)

    def test_consumption_adjustment_keeps_balances(self):
        lote_id = self._crear().json()["id"]
        resp = self.client.put(
            reverse("api_produccion_lote_consumo", args=[lote_id]),
            {"detalle_rollos": [{"rollo_id": self.rollo.id, "kg_consumido": "6.5"}], "version": 0},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["detalle_rollos"][0]["kg_consumido"], "6.500")
        self.assertEqual(resp.json()["version"], 1)
        self.rollo.refresh_from_db()
        self.assertEqual(self.rollo.peso_restante, Decimal("3"))

    def test_list_filters_open_batches(self):
        abierto = self._crear("L-1", rollos=[]).json()["id"]
        cerrado = self._crear("L-2", rollos=[]).json()["id"]
        self.client.post(reverse("api_produccion_lote_finalizar", args=[cerrado]), {}, content_type="application/json")

        resp = self.client.get(reverse("api_produccion_lotes"), {"abiertos": "1"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([row["id"] for row in resp.json()["results"]], [abierto])
        resp = self.client.get(reverse("api_produccion_lotes"), {"limit": "1"})
        self.assertEqual(resp.json()["count"], 2)
        self.assertEqual(len(resp.json()["results"]), 1)

    def test_distribution_rejects_foreign_size(self):
        lote = self._crear(rollos=[]).json()
        ajena = ProductoTalla.objects.create(producto=self.buzo, talla_codigo="XL")
        resp = self.client.put(
            reverse("api_produccion_lote_producto_distribucion", args=[lote["productos"][0]["id"]]),
            {"tallas_distribucion": {"Negro": {str(ajena.id): 2}}},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["recurso"], "talla")
        self.assertEqual(resp.json()["recurso_id"], str(ajena.id))

    @override_settings(PRODUCCION_GUARDA_FINALIZACION=False)
    def test_double_finalize_without_guard(self):
        lote = self._crear(productos=[self.buzo.id], rollos=[]).json()
        url = reverse("api_produccion_lote_finalizar", args=[lote["id"]])
        cantidades = {"cantidades": {str(lote["productos"][0]["id"]): 4}}
        self.assertEqual(self.client.post(url, cantidades, content_type="application/json").status_code, 200)
        self.assertEqual(self.client.post(url, cantidades, content_type="application/json").status_code, 200)
        self.buzo.refresh_from_db()
        self.assertEqual(self.buzo.stock_total, 8)


class ProduccionApiPermissionTests(TestCase):
    def setUp(self):
        self.producto = Producto.objects.create(codigo="REM-01", nombre="Remera")
        self.talla = ProductoTalla.objects.create(producto=self.producto, talla_codigo="U")
        admin = get_user_model().objects.create_superuser(
            username="admin_permisos",
            email="admin_permisos@example.com",
            password="test12345",
        )
        self.client.force_login(admin)
        self.lote = self.client.post(
            reverse("api_produccion_lotes"),
            {"codigo": "L-PERM", "productos": [self.producto.id]},
            content_type="application/json",
        ).json()

    def _login_as(self, username, role):
        user = get_user_model().objects.create_user(username=username, password="test12345")
        user.groups.add(Group.objects.get_or_create(name=role)[0])
        self.client.force_login(user)

    def test_read_only_role(self):
        self._login_as("lectura_prod", ROLE_LECTURA)
        self.assertEqual(self.client.get(reverse("api_produccion_lotes")).status_code, 200)
        resp = self.client.post(
            reverse("api_produccion_lote_avanzar", args=[self.lote["id"]]),
            {"etapa": "corte"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)

    def test_cutter_captures_distribution_only(self):
        self._login_as("cortador_prod", ROLE_CORTADOR)
        resp = self.client.put(
            reverse("api_produccion_lote_producto_distribucion", args=[self.lote["productos"][0]["id"]]),
            {"tallas_distribucion": {"Negro": {str(self.talla.id): 10}}},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.post(
            reverse("api_produccion_lote_finalizar", args=[self.lote["id"]]),
            {},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)
