from django.contrib import admin

from .models import PasoProceso, ProcesoTemplate


class PasoProcesoInline(admin.TabularInline):
    model = PasoProceso
    extra = 0
    fields = ("orden", "nombre", "requiere_input")
    ordering = ("orden",)


@admin.register(ProcesoTemplate)
class ProcesoTemplateAdmin(admin.ModelAdmin):
    list_display = ("nombre", "total_pasos", "actualizado_en")
    search_fields = ("nombre", "descripcion")
    inlines = [PasoProcesoInline]
