from __future__ import annotations

from rest_framework import serializers

from inventario.models import MovimientoRollo, RolloTela
from procesos.models import PasoProceso, ProcesoTemplate
from produccion.models import LoteProduccion, LoteProducto


class PasoProcesoSerializer(serializers.ModelSerializer):
    class Meta:
        model = PasoProceso
        fields = ["id", "nombre", "orden", "requiere_input"]


class ProcesoTemplateSerializer(serializers.ModelSerializer):
    pasos = serializers.SerializerMethodField()

    class Meta:
        model = ProcesoTemplate
        fields = ["id", "nombre", "descripcion", "pasos", "creado_en", "actualizado_en"]

    def get_pasos(self, obj):
        return PasoProcesoSerializer(sorted(obj.pasos.all(), key=lambda p: (p.orden, p.id)), many=True).data


class PasoInputSerializer(serializers.Serializer):
    nombre = serializers.CharField(allow_blank=True, max_length=80)
    requiere_input = serializers.BooleanField(required=False, default=False)


class ProcesoCreateSerializer(serializers.Serializer):
    nombre = serializers.CharField(allow_blank=True, max_length=120)
    descripcion = serializers.CharField(required=False, allow_blank=True, default="")
    pasos = PasoInputSerializer(many=True)


class ProcesoPasosSerializer(serializers.Serializer):
    pasos = PasoInputSerializer(many=True)


class RolloTelaSerializer(serializers.ModelSerializer):
    estado = serializers.ReadOnlyField()

    class Meta:
        model = RolloTela
        fields = [
            "id",
            "codigo",
            "tipo_tela",
            "color",
            "metros_iniciales",
            "metros_restantes",
            "peso_inicial",
            "peso_restante",
            "propietario",
            "estado",
            "creado_en",
        ]


class MovimientoRolloSerializer(serializers.ModelSerializer):
    rollo_codigo = serializers.CharField(source="rollo.codigo", read_only=True)

    class Meta:
        model = MovimientoRollo
        fields = ["id", "rollo", "rollo_codigo", "tipo", "peso", "metros", "peso_resultante", "metros_resultantes", "referencia", "creado_en"]


class LoteProductoSerializer(serializers.ModelSerializer):
    producto_codigo = serializers.CharField(source="producto.codigo", read_only=True)
    producto_nombre = serializers.CharField(source="producto.nombre", read_only=True)

    class Meta:
        model = LoteProducto
        fields = [
            "id",
            "producto",
            "producto_codigo",
            "producto_nombre",
            "orden",
            "tallas_distribucion",
            "cantidad_producto",
            "cantidad_real",
            "stock_conciliado_en",
        ]


class LoteProduccionSerializer(serializers.ModelSerializer):
    productos = LoteProductoSerializer(many=True, read_only=True)
    proceso_nombre = serializers.CharField(source="proceso.nombre", read_only=True, default=None)
    creado_por = serializers.CharField(source="creado_por.username", read_only=True, default=None)

    class Meta:
        model = LoteProduccion
        fields = [
            "id",
            "codigo",
            "proceso",
            "proceso_nombre",
            "proceso_snapshot",
            "etapa_actual",
            "estado",
            "progreso_porcentaje",
            "version",
            "detalle_rollos",
            "productos",
            "modelo_corte",
            "notas",
            "propietario",
            "fecha_inicio",
            "fecha_fin",
            "finalizado_en",
            "cancelado_en",
            "creado_por",
            "creado_en",
        ]


class LoteCreateSerializer(serializers.Serializer):
    codigo = serializers.CharField(allow_blank=True, max_length=40)
    productos = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)
    detalle_rollos = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    proceso_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    modelo_corte = serializers.CharField(required=False, allow_blank=True, default="")
    propietario = serializers.CharField(required=False, allow_blank=True, default="")
    fecha_inicio = serializers.DateField(required=False, allow_null=True, default=None)
    notas = serializers.CharField(required=False, allow_blank=True, default="")


class LoteAvanzarSerializer(serializers.Serializer):
    etapa = serializers.CharField(max_length=120)
    version = serializers.IntegerField(required=False, allow_null=True, default=None)


class LoteFinalizarSerializer(serializers.Serializer):
    # {lote_producto_id: cantidad_real}
    cantidades = serializers.DictField(child=serializers.IntegerField(min_value=0), required=False, default=dict)
    version = serializers.IntegerField(required=False, allow_null=True, default=None)


class LoteVersionSerializer(serializers.Serializer):
    version = serializers.IntegerField(required=False, allow_null=True, default=None)


class LoteConsumoSerializer(serializers.Serializer):
    detalle_rollos = serializers.ListField(child=serializers.DictField(), allow_empty=True)
    version = serializers.IntegerField(required=False, allow_null=True, default=None)


class DistribucionSerializer(serializers.Serializer):
    tallas_distribucion = serializers.DictField()
    guardar_total = serializers.BooleanField(required=False, default=True)
