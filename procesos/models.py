from django.db import models
from django.utils import timezone

from core.normalizacion import normalizar_nombre


class ProcesoTemplate(models.Model):
    nombre = models.CharField(max_length=120, unique=True)
    descripcion = models.TextField(blank=True, default="")
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "procesos_templates"
        verbose_name = "Proceso de producción"
        verbose_name_plural = "Procesos de producción"
        ordering = ["nombre"]

    @property
    def total_pasos(self) -> int:
        return self.pasos.count()

    def __str__(self) -> str:
        return self.nombre


class PasoProceso(models.Model):
    proceso = models.ForeignKey(ProcesoTemplate, related_name="pasos", on_delete=models.CASCADE)
    nombre = models.CharField(max_length=80)
    orden = models.PositiveIntegerField()
    requiere_input = models.BooleanField(default=False)

    class Meta:
        db_table = "pasos_proceso"
        verbose_name = "Etapa de proceso"
        verbose_name_plural = "Etapas de proceso"
        ordering = ["proceso", "orden"]
        unique_together = [("proceso", "orden")]

    @property
    def nombre_normalizado(self) -> str:
        return normalizar_nombre(self.nombre)

    def as_snapshot(self) -> dict:
        return {"nombre": self.nombre, "orden": self.orden, "requiere_input": bool(self.requiere_input)}

    def __str__(self) -> str:
        flag = " *" if self.requiere_input else ""
        return f"{self.proceso.nombre} · {self.orden}. {self.nombre}{flag}"
