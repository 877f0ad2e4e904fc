from django.contrib import admin

from .models import LoteProduccion, LoteProducto


class LoteProductoInline(admin.TabularInline):
    model = LoteProducto
    extra = 0
    fields = ("orden", "producto", "cantidad_producto", "cantidad_real", "stock_conciliado_en")
    readonly_fields = ("cantidad_real", "stock_conciliado_en")


@admin.register(LoteProduccion)
class LoteProduccionAdmin(admin.ModelAdmin):
    list_display = (
        "codigo",
        "estado",
        "progreso_porcentaje",
        "proceso",
        "fecha_inicio",
        "finalizado_en",
        "cancelado_en",
    )
    search_fields = ("codigo", "modelo_corte", "notas")
    list_filter = ("estado", "proceso")
    # El estado solo cambia por los servicios (CAS de versión).
    readonly_fields = (
        "proceso_snapshot",
        "detalle_rollos",
        "etapa_actual",
        "estado",
        "progreso_porcentaje",
        "version",
        "finalizado_en",
        "cancelado_en",
    )
    inlines = [LoteProductoInline]


@admin.register(LoteProducto)
class LoteProductoAdmin(admin.ModelAdmin):
    list_display = ("lote", "producto", "orden", "cantidad_producto", "cantidad_real", "stock_conciliado_en")
    search_fields = ("lote__codigo", "producto__codigo", "producto__nombre")
