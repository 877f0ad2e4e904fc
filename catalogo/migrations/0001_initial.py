from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("procesos", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Producto",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("codigo", models.CharField(max_length=40, unique=True)),
                ("nombre", models.CharField(max_length=200)),
                ("stock_total", models.IntegerField(default=0)),
                ("colores", models.JSONField(blank=True, default=list)),
                ("activo", models.BooleanField(default=True)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "proceso_default",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="productos_default",
                        to="procesos.procesotemplate",
                    ),
                ),
            ],
            options={"verbose_name": "Producto", "verbose_name_plural": "Productos", "ordering": ["nombre"]},
        ),
        migrations.CreateModel(
            name="ProductoTalla",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("talla_codigo", models.CharField(max_length=10)),
                ("talla_nombre", models.CharField(blank=True, default="", max_length=40)),
                ("orden", models.PositiveIntegerField(default=0)),
                ("incluido_curva", models.BooleanField(default=True)),
                ("stock", models.IntegerField(default=0)),
                ("stock_minimo", models.IntegerField(default=0)),
                (
                    "producto",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tallas",
                        to="catalogo.producto",
                    ),
                ),
            ],
            options={
                "verbose_name": "Talla de producto",
                "verbose_name_plural": "Tallas de producto",
                "ordering": ["producto", "orden", "id"],
                "unique_together": {("producto", "talla_codigo")},
            },
        ),
    ]
