from django.conf import settings
from django.db import models
from django.utils import timezone


class LoteProduccion(models.Model):
    codigo = models.CharField(max_length=40, unique=True)
    proceso = models.ForeignKey(
        "procesos.ProcesoTemplate",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="lotes",
    )
    # Copia congelada de las etapas al crear el lote: [{"nombre", "orden", "requiere_input"}]
    proceso_snapshot = models.JSONField(default=list, blank=True)
    # [{"rollo_id", "color", "kg_consumido", "metros"}]
    detalle_rollos = models.JSONField(default=list, blank=True)
    etapa_actual = models.PositiveIntegerField(default=0)
    estado = models.CharField(max_length=80, default="", db_index=True)
    progreso_porcentaje = models.PositiveSmallIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    modelo_corte = models.CharField(max_length=120, blank=True, default="")
    notas = models.TextField(blank=True, default="")
    propietario = models.CharField(max_length=80, blank=True, default="")
    fecha_inicio = models.DateField(default=timezone.localdate)
    fecha_fin = models.DateField(null=True, blank=True)
    finalizado_en = models.DateTimeField(null=True, blank=True)
    cancelado_en = models.DateTimeField(null=True, blank=True)
    creado_por = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="lotes_produccion_creados",
    )
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "lotes_produccion"
        verbose_name = "Lote de producción"
        verbose_name_plural = "Lotes de producción"
        ordering = ["-creado_en", "-id"]

    @property
    def total_etapas(self) -> int:
        return len(self.proceso_snapshot or [])

    @property
    def nombres_etapas(self) -> list[str]:
        return [str(p.get("nombre") or "") for p in (self.proceso_snapshot or [])]

    @property
    def etapa_actual_nombre(self) -> str:
        nombres = self.nombres_etapas
        if 0 <= self.etapa_actual < len(nombres):
            return nombres[self.etapa_actual]
        return ""

    @property
    def finalizado(self) -> bool:
        return self.finalizado_en is not None

    @property
    def cancelado(self) -> bool:
        return self.cancelado_en is not None

    @property
    def abierto(self) -> bool:
        return not self.finalizado and not self.cancelado

    def __str__(self) -> str:
        return f"{self.codigo} ({self.estado})"


class LoteProducto(models.Model):
    lote = models.ForeignKey(LoteProduccion, related_name="productos", on_delete=models.CASCADE)
    producto = models.ForeignKey("catalogo.Producto", related_name="lotes", on_delete=models.PROTECT)
    orden = models.PositiveSmallIntegerField(default=0)
    # {"Negro": {"<talla_id>": 12, ...}, ...}
    tallas_distribucion = models.JSONField(default=dict, blank=True)
    cantidad_producto = models.PositiveIntegerField(default=0)
    cantidad_real = models.PositiveIntegerField(null=True, blank=True)
    stock_conciliado_en = models.DateTimeField(null=True, blank=True)
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "lote_productos"
        verbose_name = "Producto del lote"
        verbose_name_plural = "Productos del lote"
        ordering = ["lote", "orden", "id"]
        unique_together = [("lote", "producto"), ("lote", "orden")]

    def __str__(self) -> str:
        return f"{self.lote.codigo} · {self.producto.nombre}"
