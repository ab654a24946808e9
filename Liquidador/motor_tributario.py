"""
MOTOR DE REGLAS TRIBUTARIAS
===========================

Calcula las tres retenciones sobre factura electrónica a partir de un
ContextoTributarioFactura:

- Retención en la Fuente: cliente agente + base >= umbral UVT del concepto
- Retención de ICA: cliente agente + proveedor sujeto de ICA
- Retención de IVA: cliente agente + IVA facturado (15% del IVA)

El motor es una funcion pura: no consulta base de datos ni reloj, la
vigencia se toma de la fecha de emision y las tarifas de la tabla
inyectada. Los valores se calculan con Decimal y se truncan a pesos.

Autor: Sistema Preliquidador
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Mapping, Optional

from config import TABLAS_TARIFAS, TablaTarifas, seleccionar_tabla
from modelos import (
    ContextoTributarioFactura,
    ResultadoCalculoImpuesto,
    ResultadoMotorTributario,
)
from Clasificador.clasificador_servicios import normalizar_texto, resolver_municipio

logger = logging.getLogger(__name__)

# Reglas aplicadas cuando la retencion no procede
REGLA_MONTO_MINIMO = "factura_inferior_monto_minimo"
REGLA_CLIENTE_NO_AGENTE = "cliente_no_agente_retencion"
REGLA_BASE_INFERIOR_UVT = "base_inferior_umbral_uvt"
REGLA_PROVEEDOR_NO_SUJETO_ICA = "proveedor_no_sujeto_ica"
REGLA_FACTURA_SIN_IVA = "factura_sin_iva"


def truncar_valor(valor: Decimal) -> Decimal:
    """Trunca a pesos enteros (piso)"""
    return valor.quantize(Decimal("1"), rounding=ROUND_FLOOR)


def calcular_valor_retencion(base: Decimal, tarifa: Decimal) -> Decimal:
    return truncar_valor(base * tarifa)


def _no_aplica(regla: str, base: Decimal = Decimal("0"), **extra) -> ResultadoCalculoImpuesto:
    return ResultadoCalculoImpuesto(
        aplica=False,
        base_gravable=float(base),
        regla_aplicada=regla,
        **extra
    )


class MotorReglasTributarias:
    """
    Motor de reglas de retenciones.

    Args:
        tablas: Tablas de tarifas por vigencia. Por defecto el registro de config.
    """

    def __init__(self, tablas: Optional[Mapping[int, TablaTarifas]] = None):
        self.tablas = tablas if tablas is not None else TABLAS_TARIFAS

    def tabla_para(self, contexto: ContextoTributarioFactura) -> TablaTarifas:
        return seleccionar_tabla(self.tablas, contexto.fecha_emision.year)

    def calcular_impuestos(self, contexto: ContextoTributarioFactura,
                           tabla: Optional[TablaTarifas] = None) -> ResultadoMotorTributario:
        """
        Calcula ReteFuente, ReteICA y ReteIVA de forma independiente.

        Args:
            contexto: Contexto tributario de la factura
            tabla: Tabla ya seleccionada para la vigencia; si no se indica
                se selecciona por la fecha de emision

        Returns:
            ResultadoMotorTributario con los tres resultados. regla_aplicada
            siempre esta diligenciada, aplique o no la retencion.
        """
        if tabla is None:
            tabla = self.tabla_para(contexto)

        if contexto.valor_total < tabla.monto_minimo_factura:
            logger.info(f" Factura por ${contexto.valor_total:,} inferior al monto minimo "
                        f"${tabla.monto_minimo_factura:,}, no se calculan retenciones")
            return ResultadoMotorTributario(
                retencion_fuente=_no_aplica(REGLA_MONTO_MINIMO, contexto.subtotal),
                ica=_no_aplica(REGLA_MONTO_MINIMO, contexto.subtotal),
                retencion_iva=_no_aplica(REGLA_MONTO_MINIMO, contexto.total_iva),
                anio_fiscal=tabla.anio,
                valor_uvt=float(tabla.valor_uvt),
            )

        return ResultadoMotorTributario(
            retencion_fuente=self.calcular_retencion_fuente(contexto, tabla),
            ica=self.calcular_ica(contexto, tabla),
            retencion_iva=self.calcular_retencion_iva(contexto, tabla),
            anio_fiscal=tabla.anio,
            valor_uvt=float(tabla.valor_uvt),
        )

    # ===============================
    # RETENCION EN LA FUENTE
    # ===============================

    def calcular_retencion_fuente(self, contexto: ContextoTributarioFactura,
                                  tabla: TablaTarifas) -> ResultadoCalculoImpuesto:
        base = contexto.subtotal
        if not contexto.cliente.es_agente_retencion:
            return _no_aplica(REGLA_CLIENTE_NO_AGENTE, base)

        regla, por_defecto = tabla.regla_retefuente(contexto.tipo_servicio)
        if por_defecto:
            logger.warning(f" Tipo de servicio {contexto.tipo_servicio.value} sin regla en "
                           f"{tabla.anio}, se usa concepto {regla.codigo_concepto}")

        umbral = regla.umbral_uvt * tabla.valor_uvt
        if base < umbral:
            return _no_aplica(
                REGLA_BASE_INFERIOR_UVT,
                base,
                base_uvt=float(regla.umbral_uvt),
                concepto_dian=regla.concepto_dian,
            )

        tarifa = regla.tarifa_para(contexto.proveedor.tipo_entidad)
        valor = calcular_valor_retencion(base, tarifa)
        return ResultadoCalculoImpuesto(
            aplica=True,
            tarifa=float(tarifa),
            valor=float(valor),
            base_gravable=float(base),
            regla_aplicada=f"{regla.tipo_servicio.value}_{contexto.proveedor.tipo_entidad.value}",
            base_uvt=float(regla.umbral_uvt),
            concepto_dian=regla.concepto_dian,
        )

    # ===============================
    # RETENCION DE ICA
    # ===============================

    def calcular_ica(self, contexto: ContextoTributarioFactura,
                     tabla: TablaTarifas) -> ResultadoCalculoImpuesto:
        base = contexto.subtotal
        if not contexto.cliente.es_agente_retencion:
            return _no_aplica(REGLA_CLIENTE_NO_AGENTE, base)
        if not contexto.proveedor.es_sujeto_ica:
            return _no_aplica(REGLA_PROVEEDOR_NO_SUJETO_ICA, base)

        municipio, municipio_por_defecto = resolver_municipio(contexto.municipio)
        tarifa_ica, tarifa_por_defecto = tabla.tarifa_ica(municipio)

        if municipio_por_defecto or tarifa_por_defecto:
            regla_aplicada = f"ica_{normalizar_texto(tarifa_ica.municipio.value)}_por_defecto"
        else:
            regla_aplicada = f"ica_{normalizar_texto(tarifa_ica.municipio.value)}"

        valor = calcular_valor_retencion(base, tarifa_ica.tarifa)
        return ResultadoCalculoImpuesto(
            aplica=True,
            tarifa=float(tarifa_ica.tarifa),
            valor=float(valor),
            base_gravable=float(base),
            regla_aplicada=regla_aplicada,
            municipio=tarifa_ica.municipio.value,
            codigo_municipal=tarifa_ica.codigo_municipal,
        )

    # ===============================
    # RETENCION DE IVA
    # ===============================

    def calcular_retencion_iva(self, contexto: ContextoTributarioFactura,
                               tabla: TablaTarifas) -> ResultadoCalculoImpuesto:
        base = contexto.total_iva
        if not contexto.cliente.es_agente_retencion:
            return _no_aplica(REGLA_CLIENTE_NO_AGENTE, base)
        if base <= 0:
            return _no_aplica(REGLA_FACTURA_SIN_IVA, base)

        valor = calcular_valor_retencion(base, tabla.tarifa_reteiva)
        porcentaje = truncar_valor(tabla.tarifa_reteiva * 100)
        return ResultadoCalculoImpuesto(
            aplica=True,
            tarifa=float(tabla.tarifa_reteiva),
            valor=float(valor),
            base_gravable=float(base),
            regla_aplicada=f"reteiva_{porcentaje}_por_ciento",
            concepto_dian=tabla.codigo_dian_reteiva,
        )
