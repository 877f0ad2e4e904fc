from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser, Group
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework.authtoken.models import Token

from core.access import (
    ROLE_ALMACEN,
    ROLE_CORTADOR,
    ROLE_LECTURA,
    ROLE_PRODUCCION,
    can_capture_distribucion,
    can_manage_inventario,
    can_manage_produccion,
    can_view_audit,
    can_view_produccion,
    primary_role,
)
from core.audit import log_event, username_of
from core.errors import AlreadyFinalized, InsufficientMaterial, UnknownStage
from core.models import AuditLog, UserProfile


class AccessRolesTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()

    def _user_with_role(self, username: str, role: str):
        user = self.user_model.objects.create_user(username=username, password="test12345")
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)
        return user

    def test_produccion_manages_batches_but_not_inventory(self):
        user = self._user_with_role("prod", ROLE_PRODUCCION)
        self.assertTrue(can_manage_produccion(user))
        self.assertTrue(can_view_produccion(user))
        self.assertFalse(can_manage_inventario(user))
        self.assertEqual(primary_role(user), ROLE_PRODUCCION)

    def test_cortador_captures_distribution_only(self):
        user = self._user_with_role("cortador", ROLE_CORTADOR)
        self.assertTrue(can_capture_distribucion(user))
        self.assertFalse(can_manage_produccion(user))

    def test_lectura_is_read_only(self):
        user = self._user_with_role("lectura", ROLE_LECTURA)
        self.assertTrue(can_view_produccion(user))
        self.assertFalse(can_manage_produccion(user))
        self.assertFalse(can_capture_distribucion(user))

    def test_lock_blocks_module_for_non_superuser(self):
        user = self._user_with_role("almacen", ROLE_ALMACEN)
        self.assertTrue(can_manage_inventario(user))
        UserProfile.objects.create(user=user, lock_inventario=True)
        user = self.user_model.objects.get(pk=user.pk)
        self.assertFalse(can_manage_inventario(user))

    def test_superuser_ignores_locks(self):
        admin = self.user_model.objects.create_superuser(username="root", email="root@example.com", password="x")
        UserProfile.objects.create(user=admin, lock_produccion=True, lock_auditoria=True)
        admin = self.user_model.objects.get(pk=admin.pk)
        self.assertTrue(can_manage_produccion(admin))
        self.assertTrue(can_view_audit(admin))

    def test_anonymous_has_no_access(self):
        self.assertFalse(can_view_produccion(AnonymousUser()))
        self.assertEqual(primary_role(AnonymousUser()), "")


class AuditLogTests(TestCase):
    def test_log_event_stores_authenticated_user(self):
        user = get_user_model().objects.create_user(username="auditor", password="test12345")
        log_event(user, "TRANSITION", "produccion.LoteProduccion", 7, {"from": "corte", "to": "taller"})

        row = AuditLog.objects.get()
        self.assertEqual(row.user, user)
        self.assertEqual(row.object_id, "7")
        self.assertEqual(row.payload["to"], "taller")
        self.assertEqual(username_of(user), "auditor")

    def test_log_event_without_user(self):
        log_event(AnonymousUser(), "CREATE", "procesos.ProcesoTemplate", "1")
        row = AuditLog.objects.get()
        self.assertIsNone(row.user)
        self.assertEqual(row.payload, {})
        self.assertEqual(username_of(None), "")


class ErrorPayloadTests(TestCase):
    def test_errors_name_offending_resource(self):
        payload = InsufficientMaterial(5, "3.000", "5.000", codigo="R-5").as_dict()
        self.assertEqual(payload["code"], "insufficient_material")
        self.assertEqual(payload["recurso"], "rollo")
        self.assertEqual(payload["recurso_id"], "5")
        self.assertEqual(payload["disponible"], "3.000")

        payload = UnknownStage("bordado", ["corte", "taller"]).as_dict()
        self.assertEqual(payload["recurso_id"], "bordado")
        self.assertEqual(payload["etapas_disponibles"], ["corte", "taller"])

        self.assertIn("L-1", AlreadyFinalized(1, "L-1").detail)


class HealthAndCommandsTests(TestCase):
    def test_health_check(self):
        resp = self.client.get(reverse("health"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_bootstrap_roles_creates_groups(self):
        out = StringIO()
        call_command("bootstrap_roles", stdout=out)
        self.assertTrue(Group.objects.filter(name=ROLE_CORTADOR).exists())
        self.assertTrue(
            Group.objects.get(name=ROLE_PRODUCCION).permissions.filter(codename="change_loteproduccion").exists()
        )
        self.assertIn("Roles listos", out.getvalue())

    def test_generar_token_api_rotates(self):
        user = get_user_model().objects.create_user(username="operador", password="test12345")
        call_command("generar_token_api", "--username", "operador", stdout=StringIO())
        first = Token.objects.get(user=user).key
        call_command("generar_token_api", "--username", "operador", "--rotate", stdout=StringIO())
        self.assertNotEqual(Token.objects.get(user=user).key, first)
