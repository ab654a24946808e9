"""
Pruebas del MotorReglasTributarias sobre contextos construidos a mano.
"""

from datetime import date
from decimal import Decimal

import pytest

from Liquidador.motor_tributario import (
    MotorReglasTributarias,
    calcular_valor_retencion,
    truncar_valor,
)
from modelos import TipoEntidad, TipoServicio
from conftest import crear_contexto, crear_entidad


@pytest.fixture
def motor():
    return MotorReglasTributarias()


def test_truncar_valor_no_redondea():
    assert truncar_valor(Decimal("10210.99")) == Decimal("10210")
    assert calcular_valor_retencion(Decimal("1057038.17"), Decimal("0.11")) == Decimal("116274")


class TestFacturaDeReferencia:

    def test_tres_retenciones(self, motor, contexto):
        resultado = motor.calcular_impuestos(contexto)

        assert resultado.anio_fiscal == 2025
        assert resultado.valor_uvt == 49799

        fuente = resultado.retencion_fuente
        assert fuente.aplica
        assert fuente.tarifa == pytest.approx(0.11)
        assert fuente.valor == 116274
        assert fuente.base_gravable == pytest.approx(1057038.17)
        assert fuente.regla_aplicada == "services_legal_person"
        assert fuente.base_uvt == 4
        assert fuente.concepto_dian == "365 - Servicios en general"

        ica = resultado.ica
        assert ica.aplica
        assert ica.valor == 10210
        assert ica.regla_aplicada == "ica_bogota"
        assert ica.municipio == "Bogotá"
        assert ica.codigo_municipal == "11001"

        iva = resultado.retencion_iva
        assert iva.aplica
        assert iva.valor == 11566
        assert iva.base_gravable == pytest.approx(77107.89)
        assert iva.regla_aplicada == "reteiva_15_por_ciento"
        assert iva.concepto_dian == "05"

    def test_proveedor_persona_natural(self, motor):
        contexto = crear_contexto(proveedor=crear_entidad("79876543", juridica=False, es_sujeto_ica=True))
        fuente = motor.calcular_impuestos(contexto).retencion_fuente
        assert fuente.regla_aplicada == "services_natural_person"
        assert fuente.valor == 105703

    def test_es_determinista(self, motor, contexto):
        assert motor.calcular_impuestos(contexto) == motor.calcular_impuestos(contexto)


class TestReglasDeNoAplicacion:

    def test_factura_inferior_monto_minimo(self, motor):
        contexto = crear_contexto(
            subtotal=Decimal("80000"), total_iva=Decimal("10000"), valor_total=Decimal("90000")
        )
        resultado = motor.calcular_impuestos(contexto)

        for impuesto in (resultado.retencion_fuente, resultado.ica, resultado.retencion_iva):
            assert not impuesto.aplica
            assert impuesto.valor == 0
            assert impuesto.regla_aplicada == "factura_inferior_monto_minimo"

    def test_cliente_no_agente(self, motor):
        contexto = crear_contexto(cliente=crear_entidad("79876543", juridica=False))
        resultado = motor.calcular_impuestos(contexto)

        for impuesto in (resultado.retencion_fuente, resultado.ica, resultado.retencion_iva):
            assert not impuesto.aplica
            assert impuesto.regla_aplicada == "cliente_no_agente_retencion"

    def test_base_inferior_umbral_uvt(self, motor):
        # 4 UVT de 2025 = 199.196 pesos
        contexto = crear_contexto(
            subtotal=Decimal("150000"), total_iva=Decimal("28500"), valor_total=Decimal("178500")
        )
        resultado = motor.calcular_impuestos(contexto)

        assert not resultado.retencion_fuente.aplica
        assert resultado.retencion_fuente.regla_aplicada == "base_inferior_umbral_uvt"
        assert resultado.retencion_fuente.base_uvt == 4
        # ICA y ReteIVA no tienen umbral
        assert resultado.ica.aplica
        assert resultado.retencion_iva.aplica

    def test_base_igual_al_umbral_aplica(self, motor):
        contexto = crear_contexto(
            subtotal=Decimal("199196"), total_iva=Decimal("0"), valor_total=Decimal("199196")
        )
        assert motor.calcular_impuestos(contexto).retencion_fuente.aplica

    def test_compras_usan_umbral_de_27_uvt(self, motor):
        # 27 UVT de 2025 = 1.344.573 pesos
        contexto = crear_contexto(
            tipo_servicio=TipoServicio.COMPRAS,
            subtotal=Decimal("2000000"), total_iva=Decimal("380000"), valor_total=Decimal("2380000"),
        )
        fuente = motor.calcular_impuestos(contexto).retencion_fuente
        assert fuente.aplica
        assert fuente.tarifa == pytest.approx(0.025)
        assert fuente.regla_aplicada == "goods_legal_person"
        assert fuente.valor == 50000

    def test_compras_bajo_27_uvt_no_aplican(self, motor):
        fuente = motor.calcular_impuestos(crear_contexto(tipo_servicio=TipoServicio.COMPRAS)).retencion_fuente
        assert not fuente.aplica
        assert fuente.base_uvt == 27

    def test_proveedor_no_sujeto_ica(self, motor):
        contexto = crear_contexto(proveedor=crear_entidad("900123456", es_sujeto_ica=False))
        resultado = motor.calcular_impuestos(contexto)
        assert not resultado.ica.aplica
        assert resultado.ica.regla_aplicada == "proveedor_no_sujeto_ica"
        assert resultado.retencion_fuente.aplica

    def test_factura_sin_iva(self, motor):
        contexto = crear_contexto(total_iva=Decimal("0"), valor_total=Decimal("1057038.17"))
        resultado = motor.calcular_impuestos(contexto)
        assert not resultado.retencion_iva.aplica
        assert resultado.retencion_iva.regla_aplicada == "factura_sin_iva"


class TestIcaPorMunicipio:

    def test_medellin(self, motor):
        ica = motor.calcular_impuestos(crear_contexto(municipio="Medellín")).ica
        assert ica.regla_aplicada == "ica_medellin"
        assert ica.tarifa == pytest.approx(0.007)
        assert ica.valor == 7399
        assert ica.codigo_municipal == "05001"

    def test_municipio_no_soportado_usa_bogota(self, motor):
        ica = motor.calcular_impuestos(crear_contexto(municipio="Pasto")).ica
        assert ica.aplica
        assert ica.regla_aplicada == "ica_bogota_por_defecto"
        assert ica.municipio == "Bogotá"
        assert ica.valor == 10210


class TestVigencias:

    def test_uvt_segun_fecha_de_emision(self, motor):
        resultado = motor.calcular_impuestos(crear_contexto(fecha_emision=date(2024, 12, 31)))
        assert resultado.anio_fiscal == 2024
        assert resultado.valor_uvt == 47065

    def test_vigencia_sin_tabla_usa_la_anterior(self, motor, caplog):
        resultado = motor.calcular_impuestos(crear_contexto(fecha_emision=date(2030, 1, 15)))
        assert resultado.anio_fiscal == 2026
        assert "2030" in caplog.text

    def test_tablas_inyectadas(self, contexto):
        from config import TABLAS_TARIFAS
        motor = MotorReglasTributarias({2025: TABLAS_TARIFAS[2024]})
        assert motor.calcular_impuestos(contexto).valor_uvt == 47065


def test_tarifa_por_tipo_de_entidad():
    from config import obtener_tabla_tarifas
    regla, _ = obtener_tabla_tarifas(2025).regla_retefuente(TipoServicio.CONSTRUCCION)
    assert regla.tarifa_para(TipoEntidad.PERSONA_NATURAL) == Decimal("0.035")
    assert regla.tarifa_para(TipoEntidad.PERSONA_JURIDICA) == Decimal("0.04")
