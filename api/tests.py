from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.urls import reverse
from rest_framework.authtoken.models import Token

from core.access import ROLE_ALMACEN, ROLE_CORTADOR, ROLE_LECTURA, ROLE_PRODUCCION
from core.models import AuditLog, UserProfile
from inventario.models import RolloTela
from procesos.models import ProcesoTemplate
from procesos.services import crear_proceso, snapshot_pasos
from produccion.models import LoteProduccion


def _user_with_role(username: str, role: str | None = None):
    user = get_user_model().objects.create_user(username=username, email=f"{username}@example.com", password="test12345")
    if role:
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)
    return user


class ProcesosApiTests(TestCase):
    def setUp(self):
        self.admin = get_user_model().objects.create_superuser(
            username="admin_procesos",
            email="admin_procesos@example.com",
            password="test12345",
        )
        self.client.force_login(self.admin)
        self.url = reverse("api_procesos")

    def test_create_and_list(self):
        resp = self.client.post(
            self.url,
            {
                "nombre": "Remeras",
                "pasos": [
                    {"nombre": "corte"},
                    {"nombre": "estampado"},
                    {"nombre": "terminado", "requiere_input": True},
                ],
            },
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        payload = resp.json()
        self.assertEqual([p["orden"] for p in payload["pasos"]], [0, 1, 2])
        self.assertTrue(payload["pasos"][2]["requiere_input"])

        resp = self.client.get(self.url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["count"], 1)
        self.assertEqual(resp.json()["results"][0]["nombre"], "Remeras")

    def test_create_rejects_duplicate_stage(self):
        resp = self.client.post(
            self.url,
            {"nombre": "Camisas", "pasos": [{"nombre": "Corte"}, {"nombre": "corte"}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["recurso"], "etapa")
        self.assertEqual(resp.json()["code"], "validation_error")
        self.assertFalse(ProcesoTemplate.objects.exists())

    def test_create_rejects_empty_stage_list(self):
        resp = self.client.post(self.url, {"nombre": "Vacío", "pasos": []}, content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_replace_stages(self):
        proceso = crear_proceso("Buzos", ["corte", "taller"])
        resp = self.client.put(
            reverse("api_proceso_pasos", args=[proceso.id]),
            {"pasos": [{"nombre": "corte"}, {"nombre": "bordado"}, {"nombre": "terminado"}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([p["nombre"] for p in resp.json()["pasos"]], ["corte", "bordado", "terminado"])

    def test_missing_process_is_404(self):
        self.assertEqual(self.client.get(reverse("api_proceso_detail", args=[999])).status_code, 404)
        resp = self.client.put(
            reverse("api_proceso_pasos", args=[999]),
            {"pasos": [{"nombre": "corte"}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 404)

    def test_delete_blocked_by_open_batch(self):
        proceso = crear_proceso("Jeans", ["corte", "terminado"])
        LoteProduccion.objects.create(codigo="L-9", proceso=proceso, proceso_snapshot=snapshot_pasos(proceso))

        resp = self.client.delete(reverse("api_proceso_detail", args=[proceso.id]))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["recurso"], "proceso")

        libre = crear_proceso("Shorts", ["corte"])
        resp = self.client.delete(reverse("api_proceso_detail", args=[libre.id]))
        self.assertEqual(resp.status_code, 204)
        self.assertFalse(ProcesoTemplate.objects.filter(pk=libre.id).exists())

    def test_permissions(self):
        lectura = _user_with_role("lectura_api", ROLE_LECTURA)
        self.client.force_login(lectura)
        self.assertEqual(self.client.get(self.url).status_code, 200)
        resp = self.client.post(self.url, {"nombre": "X", "pasos": [{"nombre": "a"}]}, content_type="application/json")
        self.assertEqual(resp.status_code, 403)

        cortador = _user_with_role("cortador_api", ROLE_CORTADOR)
        self.client.force_login(cortador)
        self.assertEqual(self.client.get(self.url).status_code, 403)

        produccion = _user_with_role("produccion_api", ROLE_PRODUCCION)
        UserProfile.objects.create(user=produccion, lock_procesos=True)
        self.client.force_login(produccion)
        self.assertEqual(self.client.get(self.url).status_code, 403)

    def test_anonymous_rejected(self):
        self.client.logout()
        resp = self.client.get(self.url)
        self.assertIn(resp.status_code, {401, 403})


class RollosApiTests(TestCase):
    def setUp(self):
        self.user = _user_with_role("almacen_api", ROLE_ALMACEN)
        self.token = Token.objects.create(user=self.user)
        self.url = reverse("api_inventario_rollos")
        RolloTela.objects.create(
            codigo="R-1",
            tipo_tela="Jersey",
            color="Negro",
            metros_iniciales=Decimal("50"),
            metros_restantes=Decimal("40"),
            peso_inicial=Decimal("10"),
            peso_restante=Decimal("8"),
            propietario="Taller Norte",
        )
        RolloTela.objects.create(
            codigo="R-2",
            tipo_tela="Frisa",
            color="Gris",
            peso_inicial=Decimal("10"),
            peso_restante=Decimal("0"),
        )
        RolloTela.objects.create(
            codigo="R-3",
            tipo_tela="Jersey",
            color="Blanco",
            metros_iniciales=Decimal("30"),
            metros_restantes=Decimal("5"),
            peso_inicial=Decimal("6"),
            peso_restante=Decimal("6"),
        )

    def _get(self, params=None):
        return self.client.get(self.url, params or {}, HTTP_AUTHORIZATION=f"Token {self.token.key}")

    def test_lists_only_selectable_rolls(self):
        resp = self._get()
        self.assertEqual(resp.status_code, 200)
        codigos = {row["codigo"] for row in resp.json()["results"]}
        self.assertEqual(codigos, {"R-1", "R-3"})
        self.assertIn("Jersey", resp.json()["tipos_tela"])

    def test_filters(self):
        resp = self._get({"tipo_tela": "jersey", "metros_min": "10"})
        self.assertEqual([row["codigo"] for row in resp.json()["results"]], ["R-1"])
        resp = self._get({"propietario": "Taller Norte"})
        self.assertEqual([row["codigo"] for row in resp.json()["results"]], ["R-1"])

    def test_invalid_meters_filter(self):
        resp = self._get({"metros_min": "abc"})
        self.assertEqual(resp.status_code, 400)

    def test_cutter_cannot_list_rolls(self):
        cortador = _user_with_role("cortador_rollos", ROLE_CORTADOR)
        token = Token.objects.create(user=cortador)
        resp = self.client.get(self.url, HTTP_AUTHORIZATION=f"Token {token.key}")
        self.assertEqual(resp.status_code, 403)


class AuditoriaApiTests(TestCase):
    def test_admin_reads_filtered_log(self):
        admin = get_user_model().objects.create_superuser(
            username="admin_audit",
            email="admin_audit@example.com",
            password="test12345",
        )
        proceso = crear_proceso("Remeras", ["corte"], user=admin)
        AuditLog.objects.create(user=admin, action="UPDATE", model="otro.Modelo", object_id="1", payload={})
        self.client.force_login(admin)

        resp = self.client.get(reverse("api_auditoria"), {"model": "procesos.ProcesoTemplate", "action": "create"})
        self.assertEqual(resp.status_code, 200)
        items = resp.json()["items"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["object_id"], str(proceso.id))
        self.assertEqual(items[0]["user"], "admin_audit")

    def test_non_admin_forbidden(self):
        self.client.force_login(_user_with_role("produccion_audit", ROLE_PRODUCCION))
        self.assertEqual(self.client.get(reverse("api_auditoria")).status_code, 403)
