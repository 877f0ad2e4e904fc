from django.core.management.base import BaseCommand

from procesos.services import PASOS_DEFAULT, asegurar_proceso_default


class Command(BaseCommand):
    help = "Crea el proceso de producción estándar (planificado → corte → taller → terminado)."

    def handle(self, *args, **options):
        proceso, created = asegurar_proceso_default()
        if created:
            etapas = " → ".join(p["nombre"] for p in PASOS_DEFAULT)
            self.stdout.write(self.style.SUCCESS(f"Proceso creado: {proceso.nombre} ({etapas})"))
        else:
            self.stdout.write(self.style.WARNING(f"El proceso {proceso.nombre} ya existe (id={proceso.id})."))
