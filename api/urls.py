from django.urls import path

from .produccion_views import (
    LoteAvanzarView,
    LoteCancelarView,
    LoteConsumoView,
    LoteDetailView,
    LoteFinalizarView,
    LoteProductoDistribucionView,
    LotesView,
)
from .views import AuditoriaView, ProcesoDetailView, ProcesoPasosView, ProcesosView, RollosDisponiblesView

urlpatterns = [
    path("procesos/", ProcesosView.as_view(), name="api_procesos"),
    path("procesos/<int:proceso_id>/", ProcesoDetailView.as_view(), name="api_proceso_detail"),
    path("procesos/<int:proceso_id>/pasos/", ProcesoPasosView.as_view(), name="api_proceso_pasos"),
    path("inventario/rollos/", RollosDisponiblesView.as_view(), name="api_inventario_rollos"),
    path("produccion/lotes/", LotesView.as_view(), name="api_produccion_lotes"),
    path("produccion/lotes/<int:lote_id>/", LoteDetailView.as_view(), name="api_produccion_lote_detail"),
    path("produccion/lotes/<int:lote_id>/avanzar/", LoteAvanzarView.as_view(), name="api_produccion_lote_avanzar"),
    path("produccion/lotes/<int:lote_id>/finalizar/", LoteFinalizarView.as_view(), name="api_produccion_lote_finalizar"),
    path("produccion/lotes/<int:lote_id>/cancelar/", LoteCancelarView.as_view(), name="api_produccion_lote_cancelar"),
    path("produccion/lotes/<int:lote_id>/consumo/", LoteConsumoView.as_view(), name="api_produccion_lote_consumo"),
    path(
        "produccion/lote-productos/<int:lote_producto_id>/distribucion/",
        LoteProductoDistribucionView.as_view(),
        name="api_produccion_lote_producto_distribucion",
    ),
    path("auditoria/", AuditoriaView.as_view(), name="api_auditoria"),
]
