"""
Pruebas de clasificacion de servicio y resolucion de municipio.
"""

import pytest

from Clasificador import clasificar_servicio, normalizar_texto, resolver_municipio, resolver_tipo_servicio
from modelos import Municipio, TipoServicio
from conftest import crear_factura


class TestClasificarServicio:

    @pytest.mark.parametrize("puc, esperado", [
        ("511505", TipoServicio.SERVICIOS),
        ("613595", TipoServicio.COMPRAS),
        ("522010", TipoServicio.ARRENDAMIENTO),
    ])
    def test_prefijo_puc(self, puc, esperado):
        assert clasificar_servicio(crear_factura(puc_code=puc)) == esperado

    def test_puc_tiene_prioridad_sobre_nombre(self):
        factura = crear_factura(puc_code="613595", supplier_name="Transportes del Valle S.A.S.")
        assert clasificar_servicio(factura) == TipoServicio.COMPRAS

    @pytest.mark.parametrize("nombre, esperado", [
        ("Consultores Asociados Ltda", TipoServicio.PROFESIONAL),
        ("ABOGADOS & CIA", TipoServicio.PROFESIONAL),
        ("Transportes del Valle S.A.S.", TipoServicio.TRANSPORTE),
        ("Logística Integral", TipoServicio.TRANSPORTE),
        ("Constructora Andina S.A.", TipoServicio.CONSTRUCCION),
        ("Obras y Diseños SAS", TipoServicio.CONSTRUCCION),
    ])
    def test_palabras_clave(self, nombre, esperado):
        assert clasificar_servicio(crear_factura(supplier_name=nombre)) == esperado

    def test_palabra_dentro_de_otra_no_cuenta(self):
        # "obra" no debe activarse con "maniobra"
        factura = crear_factura(supplier_name="Maniobras Portuarias S.A.S.")
        assert clasificar_servicio(factura) == TipoServicio.SERVICIOS

    def test_por_defecto(self):
        factura = crear_factura(supplier_name="", puc_code="99")
        assert clasificar_servicio(factura) == TipoServicio.SERVICIOS


class TestResolverTipoServicio:

    def test_sinonimos(self):
        assert resolver_tipo_servicio("Honorarios") == TipoServicio.PROFESIONAL
        assert resolver_tipo_servicio("construcción") == TipoServicio.CONSTRUCCION

    def test_desconocido(self):
        assert resolver_tipo_servicio("mantenimiento") == TipoServicio.SERVICIOS
        assert resolver_tipo_servicio(None) == TipoServicio.SERVICIOS


class TestResolverMunicipio:

    @pytest.mark.parametrize("nombre, esperado", [
        ("Bogotá", Municipio.BOGOTA),
        ("BOGOTA D.C.", Municipio.BOGOTA),
        ("Bogotá, D.C.", Municipio.BOGOTA),
        ("medellin", Municipio.MEDELLIN),
        ("Santiago de Cali", Municipio.CALI),
        ("05001", Municipio.MEDELLIN),
        ("13001", Municipio.CARTAGENA),
    ])
    def test_municipios_soportados(self, nombre, esperado):
        assert resolver_municipio(nombre) == (esperado, False)

    def test_municipio_no_soportado(self, caplog):
        assert resolver_municipio("Pasto") == (Municipio.BOGOTA, True)
        assert "Pasto" in caplog.text

    def test_municipio_vacio(self):
        assert resolver_municipio(None) == (Municipio.BOGOTA, True)


def test_normalizar_texto():
    assert normalizar_texto("  Compañía   Eléctrica ") == "compania electrica"
