from django.db import models
from django.utils import timezone

from core.normalizacion import normalizar_nombre


class Producto(models.Model):
    codigo = models.CharField(max_length=40, unique=True)
    nombre = models.CharField(max_length=200)
    proceso_default = models.ForeignKey(
        "procesos.ProcesoTemplate",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="productos_default",
    )
    stock_total = models.IntegerField(default=0)
    # [{"nombre": "Negro", "hex": "#000000"}, ...]
    colores = models.JSONField(default=list, blank=True)
    activo = models.BooleanField(default=True)
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Producto"
        verbose_name_plural = "Productos"
        ordering = ["nombre"]

    @property
    def nombres_colores(self) -> set[str]:
        return {normalizar_nombre(c.get("nombre")) for c in (self.colores or []) if isinstance(c, dict)}

    def __str__(self) -> str:
        return f"{self.codigo} - {self.nombre}"


class ProductoTalla(models.Model):
    producto = models.ForeignKey(Producto, related_name="tallas", on_delete=models.CASCADE)
    talla_codigo = models.CharField(max_length=10)  # S, M, L, XL, 38, 40...
    talla_nombre = models.CharField(max_length=40, blank=True, default="")
    orden = models.PositiveIntegerField(default=0)
    incluido_curva = models.BooleanField(default=True)
    stock = models.IntegerField(default=0)
    stock_minimo = models.IntegerField(default=0)

    class Meta:
        verbose_name = "Talla de producto"
        verbose_name_plural = "Tallas de producto"
        ordering = ["producto", "orden", "id"]
        unique_together = [("producto", "talla_codigo")]

    def __str__(self) -> str:
        return f"{self.producto.codigo} · {self.talla_codigo}"
