from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from rest_framework.authtoken.models import Token

from core.access import primary_role


class Command(BaseCommand):
    help = "Genera (o rota) el token API de un operador del taller."

    def add_arguments(self, parser):
        parser.add_argument("--username", required=True, help="Usuario del operador")
        parser.add_argument("--rotate", action="store_true", help="Invalida el token anterior y emite uno nuevo.")

    def handle(self, *args, **options):
        username = (options.get("username") or "").strip()
        if not username:
            raise CommandError("Debes enviar --username.")

        user = get_user_model().objects.filter(username=username).first()
        if user is None:
            raise CommandError(f"Usuario no encontrado: {username}")

        rol = "SUPERUSER" if user.is_superuser else primary_role(user)
        if not rol:
            self.stdout.write(self.style.WARNING(f"{username} no tiene rol asignado: la API le responderá 403."))

        if options.get("rotate"):
            Token.objects.filter(user=user).delete()
            token = Token.objects.create(user=user)
            accion = "rotado"
        else:
            token, created = Token.objects.get_or_create(user=user)
            accion = "creado" if created else "existente"

        self.stdout.write(self.style.SUCCESS(f"TOKEN {accion} usuario={user.username} rol={rol or '-'} token={token.key}"))
