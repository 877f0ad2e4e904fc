from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

from core.access import ROLE_ORDER

_LOTES = ["produccion.view_loteproduccion", "produccion.view_loteproducto"]
_ROLLOS = ["inventario.view_rollotela", "inventario.view_movimientorollo"]
_PROCESOS = ["procesos.view_procesotemplate", "procesos.view_pasoproceso"]
_CATALOGO = ["catalogo.view_producto", "catalogo.view_productotalla"]

ROLE_PERMS = {
    "ADMIN": [
        "core.view_auditlog",
        *_LOTES,
        "produccion.add_loteproduccion",
        "produccion.change_loteproduccion",
        "produccion.change_loteproducto",
        *_ROLLOS,
        "inventario.add_rollotela",
        "inventario.change_rollotela",
        *_PROCESOS,
        "procesos.add_procesotemplate",
        "procesos.change_procesotemplate",
        "procesos.delete_procesotemplate",
        *_CATALOGO,
    ],
    "PRODUCCION": [
        *_LOTES,
        "produccion.add_loteproduccion",
        "produccion.change_loteproduccion",
        "produccion.change_loteproducto",
        *_ROLLOS,
        *_PROCESOS,
        "procesos.add_procesotemplate",
        "procesos.change_procesotemplate",
        *_CATALOGO,
    ],
    "ALMACEN": [
        *_LOTES,
        *_ROLLOS,
        "inventario.add_rollotela",
        "inventario.change_rollotela",
        *_CATALOGO,
    ],
    "CORTADOR": [
        *_LOTES,
        "produccion.change_loteproducto",
        *_CATALOGO,
    ],
    "LECTURA": [*_LOTES, *_ROLLOS, *_PROCESOS, *_CATALOGO],
}


class Command(BaseCommand):
    help = "Crea los grupos de roles del taller y les asigna permisos de modelo."

    def handle(self, *args, **options):
        created = 0
        for role in ROLE_ORDER:
            group, was_created = Group.objects.get_or_create(name=role)
            if was_created:
                created += 1
            perms = []
            for code in ROLE_PERMS.get(role, []):
                app_label, codename = code.split(".", 1)
                perm = Permission.objects.filter(content_type__app_label=app_label, codename=codename).first()
                if perm is None:
                    self.stdout.write(self.style.WARNING(f"Permiso no encontrado: {code}"))
                    continue
                perms.append(perm)
            group.permissions.set(perms)
        self.stdout.write(self.style.SUCCESS(f"Roles listos. Nuevos grupos creados: {created}"))
