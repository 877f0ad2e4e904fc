from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response

from core.access import can_capture_distribucion, can_manage_produccion, can_view_produccion
from core.errors import ProduccionError
from inventario.services import ajustar_consumo
from produccion.conciliacion import finalizar_lote
from produccion.distribucion import editar_distribucion
from produccion.models import LoteProduccion, LoteProducto
from produccion.services import avanzar_etapa, cancelar_lote, crear_lote, listar_lotes

from .serializers import (
    DistribucionSerializer,
    LoteAvanzarSerializer,
    LoteConsumoSerializer,
    LoteCreateSerializer,
    LoteFinalizarSerializer,
    LoteProduccionSerializer,
    LoteProductoSerializer,
    LoteVersionSerializer,
    MovimientoRolloSerializer,
)
from .views import _TallerBaseView, error_response, forbidden


def _lote_payload(lote_id: int) -> dict:
    lote = (
        LoteProduccion.objects.select_related("proceso", "creado_por")
        .prefetch_related("productos__producto")
        .get(pk=lote_id)
    )
    return LoteProduccionSerializer(lote).data


class LotesView(_TallerBaseView):
    def get(self, request):
        if not can_view_produccion(request.user):
            return forbidden("No tienes permisos para consultar producción.")
        abiertos_raw = (request.query_params.get("abiertos") or "").strip().lower()
        abiertos = None
        if abiertos_raw in {"1", "true", "yes", "si"}:
            abiertos = True
        elif abiertos_raw in {"0", "false", "no"}:
            abiertos = False
        limit = self._bounded_int(request.query_params.get("limit"), default=50, min_value=1, max_value=500)
        offset = self._bounded_int(request.query_params.get("offset"), default=0, min_value=0, max_value=100000)
        qs = listar_lotes(abiertos=abiertos, estado=(request.query_params.get("estado") or "").strip() or None)
        total = qs.count()
        rows = list(qs[offset : offset + limit])
        return Response(
            {
                "count": total,
                "limit": limit,
                "offset": offset,
                "results": LoteProduccionSerializer(rows, many=True).data,
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        if not can_manage_produccion(request.user):
            return forbidden("No tienes permisos para crear lotes.")
        ser = LoteCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            lote = crear_lote(
                data["codigo"],
                data["productos"],
                data.get("detalle_rollos") or [],
                proceso=data.get("proceso_id"),
                user=request.user,
                modelo_corte=data.get("modelo_corte") or "",
                propietario=data.get("propietario") or "",
                fecha_inicio=data.get("fecha_inicio"),
                notas=data.get("notas") or "",
            )
        except ProduccionError as exc:
            return error_response(exc)
        return Response(_lote_payload(lote.id), status=status.HTTP_201_CREATED)


class LoteDetailView(_TallerBaseView):
    def get(self, request, lote_id: int):
        if not can_view_produccion(request.user):
            return forbidden("No tienes permisos para consultar producción.")
        lote = get_object_or_404(LoteProduccion, pk=lote_id)
        payload = _lote_payload(lote.id)
        payload["movimientos_rollo"] = MovimientoRolloSerializer(
            lote.movimientos_rollo.select_related("rollo").order_by("id"), many=True
        ).data
        return Response(payload, status=status.HTTP_200_OK)


class LoteAvanzarView(_TallerBaseView):
    def post(self, request, lote_id: int):
        if not can_manage_produccion(request.user):
            return forbidden("No tienes permisos para mover etapas.")
        get_object_or_404(LoteProduccion, pk=lote_id)
        ser = LoteAvanzarSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            avance = avanzar_etapa(
                lote_id,
                ser.validated_data["etapa"],
                version=ser.validated_data.get("version"),
                user=request.user,
            )
        except ProduccionError as exc:
            return error_response(exc)
        payload = _lote_payload(lote_id)
        if avance.diferido:
            # La etapa pide cantidades reales: el cliente debe llamar a finalizar.
            return Response(
                {
                    "diferido": True,
                    "etapa": avance.etapa,
                    "detail": f"La etapa '{avance.etapa}' requiere capturar cantidades reales para finalizar.",
                    "lote": payload,
                },
                status=status.HTTP_202_ACCEPTED,
            )
        return Response({"diferido": False, "etapa": avance.etapa, "lote": payload}, status=status.HTTP_200_OK)


class LoteFinalizarView(_TallerBaseView):
    def post(self, request, lote_id: int):
        if not can_manage_produccion(request.user):
            return forbidden("No tienes permisos para finalizar lotes.")
        get_object_or_404(LoteProduccion, pk=lote_id)
        ser = LoteFinalizarSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            finalizar_lote(
                lote_id,
                ser.validated_data.get("cantidades") or {},
                version=ser.validated_data.get("version"),
                user=request.user,
            )
        except ProduccionError as exc:
            return error_response(exc)
        return Response(_lote_payload(lote_id), status=status.HTTP_200_OK)


class LoteCancelarView(_TallerBaseView):
    def post(self, request, lote_id: int):
        if not can_manage_produccion(request.user):
            return forbidden("No tienes permisos para cancelar lotes.")
        get_object_or_404(LoteProduccion, pk=lote_id)
        ser = LoteVersionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            cancelar_lote(lote_id, version=ser.validated_data.get("version"), user=request.user)
        except ProduccionError as exc:
            return error_response(exc)
        return Response(_lote_payload(lote_id), status=status.HTTP_200_OK)


class LoteConsumoView(_TallerBaseView):
    def put(self, request, lote_id: int):
        if not can_manage_produccion(request.user):
            return forbidden("No tienes permisos para ajustar el consumo de tela.")
        get_object_or_404(LoteProduccion, pk=lote_id)
        ser = LoteConsumoSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            ajustar_consumo(
                lote_id,
                ser.validated_data["detalle_rollos"],
                version=ser.validated_data.get("version"),
                user=request.user,
            )
        except ProduccionError as exc:
            return error_response(exc)
        return Response(_lote_payload(lote_id), status=status.HTTP_200_OK)


class LoteProductoDistribucionView(_TallerBaseView):
    def put(self, request, lote_producto_id: int):
        if not can_capture_distribucion(request.user):
            return forbidden("No tienes permisos para capturar la distribución.")
        get_object_or_404(LoteProducto, pk=lote_producto_id)
        ser = DistribucionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            lote_producto = editar_distribucion(
                lote_producto_id,
                ser.validated_data["tallas_distribucion"],
                user=request.user,
                guardar_total=ser.validated_data.get("guardar_total", True),
            )
        except ProduccionError as exc:
            return error_response(exc)
        return Response(LoteProductoSerializer(lote_producto).data, status=status.HTTP_200_OK)
