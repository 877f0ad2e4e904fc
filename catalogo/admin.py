from django.contrib import admin

from .models import Producto, ProductoTalla


class ProductoTallaInline(admin.TabularInline):
    model = ProductoTalla
    extra = 0
    fields = ("orden", "talla_codigo", "talla_nombre", "incluido_curva", "stock", "stock_minimo")
    readonly_fields = ("stock",)


@admin.register(Producto)
class ProductoAdmin(admin.ModelAdmin):
    list_display = ("codigo", "nombre", "proceso_default", "stock_total", "activo")
    search_fields = ("codigo", "nombre")
    list_filter = ("activo", "proceso_default")
    readonly_fields = ("stock_total",)
    inlines = [ProductoTallaInline]
