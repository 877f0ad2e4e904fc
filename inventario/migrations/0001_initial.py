# Generated manually for rollos de tela y su libro de movimientos

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("produccion", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="RolloTela",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("codigo", models.CharField(max_length=40, unique=True)),
                ("tipo_tela", models.CharField(max_length=120)),
                ("tipo_tela_normalizado", models.CharField(blank=True, db_index=True, default="", max_length=130)),
                ("color", models.CharField(blank=True, default="", max_length=80)),
                ("metros_iniciales", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("metros_restantes", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("peso_inicial", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("peso_restante", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("propietario", models.CharField(blank=True, default="", max_length=80)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Rollo de tela",
                "verbose_name_plural": "Rollos de tela",
                "ordering": ["-creado_en", "-id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("metros_restantes__gte", 0), ("metros_restantes__lte", models.F("metros_iniciales"))),
                        name="rollo_metros_restantes_en_rango",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("peso_restante__gte", 0), ("peso_restante__lte", models.F("peso_inicial"))),
                        name="rollo_peso_restante_en_rango",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MovimientoRollo",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "tipo",
                    models.CharField(choices=[("CONSUMO", "Consumo"), ("REVERSO", "Reverso")], max_length=20),
                ),
                ("peso", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("metros", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("peso_resultante", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("metros_resultantes", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("referencia", models.CharField(blank=True, default="", max_length=120)),
                ("revertido", models.BooleanField(default=False)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "lote",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="movimientos_rollo",
                        to="produccion.loteproduccion",
                    ),
                ),
                (
                    "rollo",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos",
                        to="inventario.rollotela",
                    ),
                ),
            ],
            options={
                "verbose_name": "Movimiento de rollo",
                "verbose_name_plural": "Movimientos de rollos",
                "ordering": ["-creado_en", "-id"],
            },
        ),
    ]
