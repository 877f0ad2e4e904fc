from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ProcesoTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("nombre", models.CharField(max_length=120, unique=True)),
                ("descripcion", models.TextField(blank=True, default="")),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "procesos_templates",
                "verbose_name": "Proceso de producción",
                "verbose_name_plural": "Procesos de producción",
                "ordering": ["nombre"],
            },
        ),
        migrations.CreateModel(
            name="PasoProceso",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("nombre", models.CharField(max_length=80)),
                ("orden", models.PositiveIntegerField()),
                ("requiere_input", models.BooleanField(default=False)),
                (
                    "proceso",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pasos",
                        to="procesos.procesotemplate",
                    ),
                ),
            ],
            options={
                "db_table": "pasos_proceso",
                "verbose_name": "Etapa de proceso",
                "verbose_name_plural": "Etapas de proceso",
                "ordering": ["proceso", "orden"],
                "unique_together": {("proceso", "orden")},
            },
        ),
    ]
