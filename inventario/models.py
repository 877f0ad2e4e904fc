from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from core.normalizacion import normalizar_nombre

# Umbrales de "agotado": por debajo se considera que el rollo no tiene material útil.
EPSILON_PESO = Decimal(str(getattr(settings, "INVENTARIO_EPSILON_PESO", "0.01")))
EPSILON_METROS = Decimal(str(getattr(settings, "INVENTARIO_EPSILON_METROS", "0.5")))
UMBRAL_DISPONIBLE = Decimal("0.95")


class RolloTelaQuerySet(models.QuerySet):
    def seleccionables(self):
        # OR inclusivo: hay rollos que solo se controlan por peso.
        return self.filter(Q(metros_restantes__gt=EPSILON_METROS) | Q(peso_restante__gt=EPSILON_PESO))


class RolloTela(models.Model):
    ESTADO_DISPONIBLE = "disponible"
    ESTADO_USADO = "usado"
    ESTADO_AGOTADO = "agotado"

    codigo = models.CharField(max_length=40, unique=True)
    tipo_tela = models.CharField(max_length=120)
    tipo_tela_normalizado = models.CharField(max_length=130, db_index=True, blank=True, default="")
    color = models.CharField(max_length=80, blank=True, default="")
    metros_iniciales = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    metros_restantes = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    peso_inicial = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    peso_restante = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    propietario = models.CharField(max_length=80, blank=True, default="")
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    objects = RolloTelaQuerySet.as_manager()

    class Meta:
        verbose_name = "Rollo de tela"
        verbose_name_plural = "Rollos de tela"
        ordering = ["-creado_en", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(metros_restantes__gte=0) & Q(metros_restantes__lte=F("metros_iniciales")),
                name="rollo_metros_restantes_en_rango",
            ),
            models.CheckConstraint(
                condition=Q(peso_restante__gte=0) & Q(peso_restante__lte=F("peso_inicial")),
                name="rollo_peso_restante_en_rango",
            ),
        ]

    def save(self, *args, **kwargs):
        self.tipo_tela_normalizado = normalizar_nombre(self.tipo_tela)
        super().save(*args, **kwargs)

    @property
    def controla_peso(self) -> bool:
        return Decimal(str(self.peso_inicial or 0)) > 0

    @property
    def seleccionable(self) -> bool:
        return (
            Decimal(str(self.metros_restantes or 0)) > EPSILON_METROS
            or Decimal(str(self.peso_restante or 0)) > EPSILON_PESO
        )

    @property
    def agotado(self) -> bool:
        peso = Decimal(str(self.peso_restante or 0))
        metros = Decimal(str(self.metros_restantes or 0))
        # Cuando el rollo se controla por peso, el peso manda.
        if self.controla_peso:
            return peso <= EPSILON_PESO
        return peso <= EPSILON_PESO and metros <= EPSILON_METROS

    @property
    def fraccion_restante(self) -> Decimal:
        if self.controla_peso:
            return Decimal(str(self.peso_restante or 0)) / Decimal(str(self.peso_inicial))
        inicial = Decimal(str(self.metros_iniciales or 0))
        if inicial <= 0:
            return Decimal("0")
        return Decimal(str(self.metros_restantes or 0)) / inicial

    @property
    def estado(self) -> str:
        if self.agotado:
            return self.ESTADO_AGOTADO
        if self.fraccion_restante >= UMBRAL_DISPONIBLE:
            return self.ESTADO_DISPONIBLE
        return self.ESTADO_USADO

    def __str__(self) -> str:
        color = self.color or "S/C"
        return f"[{self.codigo}] {self.tipo_tela} - {color} ({self.peso_restante} kg / {self.metros_restantes} m)"


class MovimientoRollo(models.Model):
    TIPO_CONSUMO = "CONSUMO"
    TIPO_REVERSO = "REVERSO"
    TIPO_CHOICES = [
        (TIPO_CONSUMO, "Consumo"),
        (TIPO_REVERSO, "Reverso"),
    ]

    rollo = models.ForeignKey(RolloTela, related_name="movimientos", on_delete=models.PROTECT)
    lote = models.ForeignKey(
        "produccion.LoteProduccion",
        null=True,
        blank=True,
        related_name="movimientos_rollo",
        on_delete=models.SET_NULL,
    )
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES)
    peso = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    metros = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    peso_resultante = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    metros_resultantes = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    referencia = models.CharField(max_length=120, blank=True, default="")
    revertido = models.BooleanField(default=False)
    creado_en = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Movimiento de rollo"
        verbose_name_plural = "Movimientos de rollos"
        ordering = ["-creado_en", "-id"]

    def __str__(self) -> str:
        return f"{self.tipo} {self.rollo.codigo} {self.peso} kg"
