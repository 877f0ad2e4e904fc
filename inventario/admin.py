from django.contrib import admin

from .models import MovimientoRollo, RolloTela


class MovimientoRolloInline(admin.TabularInline):
    model = MovimientoRollo
    extra = 0
    can_delete = False
    fields = ("creado_en", "tipo", "peso", "metros", "peso_resultante", "metros_resultantes", "lote", "referencia")
    readonly_fields = fields


@admin.register(RolloTela)
class RolloTelaAdmin(admin.ModelAdmin):
    list_display = (
        "codigo",
        "tipo_tela",
        "color",
        "peso_restante",
        "peso_inicial",
        "metros_restantes",
        "metros_iniciales",
        "estado",
        "propietario",
    )
    search_fields = ("codigo", "tipo_tela", "color")
    list_filter = ("tipo_tela", "propietario")
    readonly_fields = ("tipo_tela_normalizado",)
    inlines = [MovimientoRolloInline]


@admin.register(MovimientoRollo)
class MovimientoRolloAdmin(admin.ModelAdmin):
    list_display = ("creado_en", "tipo", "rollo", "lote", "peso", "metros", "revertido", "referencia")
    list_filter = ("tipo", "revertido")
    search_fields = ("rollo__codigo", "lote__codigo", "referencia")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
