# Generated manually for lotes de producción

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("catalogo", "0001_initial"),
        ("procesos", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="LoteProduccion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("codigo", models.CharField(max_length=40, unique=True)),
                ("proceso_snapshot", models.JSONField(blank=True, default=list)),
                ("detalle_rollos", models.JSONField(blank=True, default=list)),
                ("etapa_actual", models.PositiveIntegerField(default=0)),
                ("estado", models.CharField(db_index=True, default="", max_length=80)),
                ("progreso_porcentaje", models.PositiveSmallIntegerField(default=0)),
                ("version", models.PositiveIntegerField(default=0)),
                ("modelo_corte", models.CharField(blank=True, default="", max_length=120)),
                ("notas", models.TextField(blank=True, default="")),
                ("propietario", models.CharField(blank=True, default="", max_length=80)),
                ("fecha_inicio", models.DateField(default=django.utils.timezone.localdate)),
                ("fecha_fin", models.DateField(blank=True, null=True)),
                ("finalizado_en", models.DateTimeField(blank=True, null=True)),
                ("cancelado_en", models.DateTimeField(blank=True, null=True)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "creado_por",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lotes_produccion_creados",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "proceso",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lotes",
                        to="procesos.procesotemplate",
                    ),
                ),
            ],
            options={
                "verbose_name": "Lote de producción",
                "verbose_name_plural": "Lotes de producción",
                "db_table": "lotes_produccion",
                "ordering": ["-creado_en", "-id"],
            },
        ),
        migrations.CreateModel(
            name="LoteProducto",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("orden", models.PositiveSmallIntegerField(default=0)),
                ("tallas_distribucion", models.JSONField(blank=True, default=dict)),
                ("cantidad_producto", models.PositiveIntegerField(default=0)),
                ("cantidad_real", models.PositiveIntegerField(blank=True, null=True)),
                ("stock_conciliado_en", models.DateTimeField(blank=True, null=True)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "lote",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="productos",
                        to="produccion.loteproduccion",
                    ),
                ),
                (
                    "producto",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="lotes",
                        to="catalogo.producto",
                    ),
                ),
            ],
            options={
                "verbose_name": "Producto del lote",
                "verbose_name_plural": "Productos del lote",
                "db_table": "lote_productos",
                "ordering": ["lote", "orden", "id"],
                "unique_together": {("lote", "orden"), ("lote", "producto")},
            },
        ),
    ]
