from django.test import TestCase

from catalogo.models import Producto, ProductoTalla
from catalogo.services import agregar_colores, incrementar_stock, obtener_producto, tallas_de_producto
from core.errors import ValidationError


class CatalogoServicesTests(TestCase):
    def setUp(self):
        self.producto = Producto.objects.create(
            codigo="BUZ-01",
            nombre="Buzo canguro",
            colores=[{"nombre": "Negro", "hex": "#000000"}],
        )
        self.talla_s = ProductoTalla.objects.create(producto=self.producto, talla_codigo="S", orden=0, stock=2)
        self.talla_m = ProductoTalla.objects.create(producto=self.producto, talla_codigo="M", orden=1)
        self.otro = Producto.objects.create(codigo="REM-01", nombre="Remera")

    def test_obtener_producto_missing(self):
        with self.assertRaises(ValidationError) as ctx:
            obtener_producto(999)
        self.assertEqual(ctx.exception.recurso, "producto")
        self.assertEqual(obtener_producto(self.producto.id).codigo, "BUZ-01")

    def test_tallas_keyed_by_text_id(self):
        tallas = tallas_de_producto(self.producto.id)
        self.assertEqual(list(tallas), [str(self.talla_s.id), str(self.talla_m.id)])

    def test_incrementar_stock_por_talla(self):
        incrementar_stock(self.producto.id, self.talla_s.id, 5)
        incrementar_stock(self.producto.id, str(self.talla_s.id), 1)

        self.talla_s.refresh_from_db()
        self.producto.refresh_from_db()
        self.assertEqual(self.talla_s.stock, 8)
        self.assertEqual(self.producto.stock_total, 6)

    def test_incrementar_stock_plano(self):
        incrementar_stock(self.otro.id, None, 20)
        self.otro.refresh_from_db()
        self.assertEqual(self.otro.stock_total, 20)

    def test_talla_de_otro_producto_rechazada(self):
        with self.assertRaises(ValidationError) as ctx:
            incrementar_stock(self.otro.id, self.talla_s.id, 3)
        self.assertEqual(ctx.exception.recurso, "talla")
        self.talla_s.refresh_from_db()
        self.otro.refresh_from_db()
        self.assertEqual(self.talla_s.stock, 2)
        self.assertEqual(self.otro.stock_total, 0)

    def test_agregar_colores_solo_nuevos(self):
        agregados = agregar_colores(
            self.producto.id,
            [{"nombre": "negro", "hex": None}, {"nombre": "Gris  Melange", "hex": "#B5B5B5"}, {"nombre": " "}],
        )
        self.assertEqual(agregados, [{"nombre": "Gris Melange", "hex": "#B5B5B5"}])
        self.producto.refresh_from_db()
        self.assertEqual([c["nombre"] for c in self.producto.colores], ["Negro", "Gris Melange"])
        self.assertEqual(agregar_colores(self.producto.id, [{"nombre": "gris melange"}]), [])
