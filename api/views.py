from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.access import (
    can_manage_procesos,
    can_view_audit,
    can_view_inventario,
    can_view_procesos,
)
from core.errors import AlreadyFinalized, ConcurrentModification, ProduccionError
from core.models import AuditLog
from inventario.services import listar_rollos_disponibles, tipos_tela_disponibles
from procesos.models import ProcesoTemplate
from procesos.services import crear_proceso, eliminar_proceso, listar_procesos, reemplazar_pasos

from .serializers import (
    ProcesoCreateSerializer,
    ProcesoPasosSerializer,
    ProcesoTemplateSerializer,
    RolloTelaSerializer,
)


def error_response(exc: ProduccionError) -> Response:
    if isinstance(exc, (ConcurrentModification, AlreadyFinalized)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(exc.as_dict(), status=code)


def forbidden(detail: str) -> Response:
    return Response({"detail": detail}, status=status.HTTP_403_FORBIDDEN)


class _TallerBaseView(APIView):
    permission_classes = [IsAuthenticated]

    @staticmethod
    def _bounded_int(value, *, default: int, min_value: int, max_value: int) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            parsed = default
        return max(min_value, min(parsed, max_value))


class ProcesosView(_TallerBaseView):
    def get(self, request):
        if not can_view_procesos(request.user):
            return forbidden("No tienes permisos para consultar procesos.")
        procesos = list(listar_procesos())
        return Response(
            {"count": len(procesos), "results": ProcesoTemplateSerializer(procesos, many=True).data},
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        if not can_manage_procesos(request.user):
            return forbidden("No tienes permisos para crear procesos.")
        ser = ProcesoCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            proceso = crear_proceso(
                data["nombre"],
                data["pasos"],
                descripcion=data.get("descripcion") or "",
                user=request.user,
            )
        except ProduccionError as exc:
            return error_response(exc)
        return Response(ProcesoTemplateSerializer(proceso).data, status=status.HTTP_201_CREATED)


class ProcesoDetailView(_TallerBaseView):
    def get(self, request, proceso_id: int):
        if not can_view_procesos(request.user):
            return forbidden("No tienes permisos para consultar procesos.")
        proceso = get_object_or_404(ProcesoTemplate.objects.prefetch_related("pasos"), pk=proceso_id)
        return Response(ProcesoTemplateSerializer(proceso).data, status=status.HTTP_200_OK)

    def delete(self, request, proceso_id: int):
        if not can_manage_procesos(request.user):
            return forbidden("No tienes permisos para eliminar procesos.")
        get_object_or_404(ProcesoTemplate, pk=proceso_id)
        try:
            eliminar_proceso(proceso_id, user=request.user)
        except ProduccionError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProcesoPasosView(_TallerBaseView):
    def put(self, request, proceso_id: int):
        if not can_manage_procesos(request.user):
            return forbidden("No tienes permisos para editar procesos.")
        get_object_or_404(ProcesoTemplate, pk=proceso_id)
        ser = ProcesoPasosSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            proceso = reemplazar_pasos(proceso_id, ser.validated_data["pasos"], user=request.user)
        except ProduccionError as exc:
            return error_response(exc)
        proceso = ProcesoTemplate.objects.prefetch_related("pasos").get(pk=proceso.id)
        return Response(ProcesoTemplateSerializer(proceso).data, status=status.HTTP_200_OK)


class RollosDisponiblesView(_TallerBaseView):
    def get(self, request):
        if not can_view_inventario(request.user):
            return forbidden("No tienes permisos para consultar rollos.")
        try:
            qs = listar_rollos_disponibles(
                tipo_tela=(request.query_params.get("tipo_tela") or "").strip() or None,
                metros_minimos=(request.query_params.get("metros_min") or "").strip() or None,
                propietario=(request.query_params.get("propietario") or "").strip() or None,
            )
        except ProduccionError as exc:
            return error_response(exc)
        limit = self._bounded_int(request.query_params.get("limit"), default=200, min_value=1, max_value=1000)
        rows = list(qs[:limit])
        return Response(
            {
                "count": len(rows),
                "tipos_tela": tipos_tela_disponibles(),
                "results": RolloTelaSerializer(rows, many=True).data,
            },
            status=status.HTTP_200_OK,
        )


class AuditoriaView(_TallerBaseView):
    def get(self, request):
        if not can_view_audit(request.user):
            return forbidden("No tienes permisos para consultar la bitácora.")
        qs = AuditLog.objects.select_related("user").all()
        model = (request.query_params.get("model") or "").strip()
        object_id = (request.query_params.get("object_id") or "").strip()
        action = (request.query_params.get("action") or "").strip().upper()
        if model:
            qs = qs.filter(model=model)
        if object_id:
            qs = qs.filter(object_id=object_id)
        if action:
            qs = qs.filter(action=action)
        limit = self._bounded_int(request.query_params.get("limit"), default=100, min_value=1, max_value=500)
        items = [
            {
                "id": row.id,
                "timestamp": row.timestamp,
                "user": row.user.username if row.user else None,
                "action": row.action,
                "model": row.model,
                "object_id": row.object_id,
                "payload": row.payload,
            }
            for row in qs[:limit]
        ]
        return Response({"count": len(items), "items": items}, status=status.HTTP_200_OK)
