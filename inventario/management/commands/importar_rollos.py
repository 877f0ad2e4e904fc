from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from inventario.utils.rollos_import import importar_rollos


class Command(BaseCommand):
    help = "Da de alta rollos de tela desde un CSV/XLSX (codigo, tipo_tela, color, metros, peso, propietario)."

    def add_arguments(self, parser):
        parser.add_argument("filepath", type=str, help="Ruta del archivo CSV o XLSX")
        parser.add_argument(
            "--fuzzy-threshold",
            type=int,
            default=90,
            help="Score mínimo para unificar el tipo de tela con uno existente (default: 90)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Simula la importación sin guardar.")

    def handle(self, *args, **options):
        path = Path(options["filepath"]).expanduser()
        if not path.exists() or not path.is_file():
            raise CommandError(f"Archivo inválido: {path}")

        summary = importar_rollos(
            str(path),
            fuzzy_threshold=int(options["fuzzy_threshold"]),
            dry_run=bool(options["dry_run"]),
        )

        mode = "DRY-RUN" if options["dry_run"] else "APLICADO"
        self.stdout.write(self.style.SUCCESS(f"Importación de rollos completada ({mode})"))
        self.stdout.write(f"  - filas leídas: {summary.filas_leidas}")
        self.stdout.write(f"  - rollos creados: {summary.creados}")
        self.stdout.write(f"  - omitidos (código existente): {summary.omitidos_existentes}")
        self.stdout.write(f"  - tipos de tela unificados: {summary.tipos_unificados}")
        self.stdout.write(f"  - errores: {len(summary.errores)}")
        for err in summary.errores[:20]:
            self.stdout.write(self.style.WARNING(f"    {err}"))
