"""
PROCESADOR DE RETENCIONES POR FACTURA
=====================================

Orquesta el cálculo de retenciones de una factura:

1. Resuelve proveedor y cliente con ValidadorEntidades
2. Clasifica el servicio (PUC / nombre del proveedor) y el municipio
3. Invoca una sola vez el MotorReglasTributarias
4. Convierte cada resultado aplicable en un DetalleRetencion
5. Aplica reglas override de la empresa (tarifa y/o umbral)
6. Agrega el DesgloseRetenciones con totales y valor neto

No persiste nada: la escritura atomica vive en database_service.

PRINCIPIOS SOLID APLICADOS:
- SRP: Solo orquesta, las reglas viven en el motor
- DIP: Validador, motor y clasificador se inyectan

Autor: Sistema Preliquidador
Version: 3.0
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from config import (
    CODIGO_CONCEPTO_ICA,
    CODIGO_CONCEPTO_RETEIVA,
    CONFIANZA_POR_TIPO_RETENCION,
    MUNICIPIO_POR_DEFECTO,
    TablaTarifas,
)
from modelos import (
    ClasificacionEntidad,
    ContextoTributarioFactura,
    DesgloseRetenciones,
    DetalleRetencion,
    Factura,
    MetodoCalculo,
    ReglaOverride,
    ResultadoCalculoImpuesto,
    ResultadoValidacionEntidad,
    ResumenRetenciones,
    TipoRetencion,
)
from Clasificador.clasificador_servicios import clasificar_servicio, resolver_municipio
from Clasificador.validador_entidades import ValidadorEntidades
from .exceptions import FacturaInvalidaError
from .motor_tributario import MotorReglasTributarias, calcular_valor_retencion

logger = logging.getLogger(__name__)


def _decimal(valor: Any) -> Decimal:
    return Decimal(str(valor or 0))


class ProcesadorRetenciones:
    """
    Procesador de retenciones sobre factura electronica.

    Args:
        validador: ValidadorEntidades (sin repositorio si no se provee)
        motor: MotorReglasTributarias (tablas de config si no se provee)
        municipio_por_defecto: Municipio cuando la factura no indica uno
    """

    def __init__(self, validador: Optional[ValidadorEntidades] = None,
                 motor: Optional[MotorReglasTributarias] = None,
                 municipio_por_defecto: str = MUNICIPIO_POR_DEFECTO.value):
        self.validador = validador or ValidadorEntidades()
        self.motor = motor or MotorReglasTributarias()
        self.municipio_por_defecto = municipio_por_defecto

    def procesar_retenciones_factura(self, factura: Union[Factura, Dict[str, Any]],
                                     nit_proveedor: Optional[str] = None,
                                     nit_cliente: Optional[str] = None,
                                     municipio: Optional[str] = None,
                                     nombre_cliente: Optional[str] = None,
                                     reglas_override: Sequence[ReglaOverride] = ()) -> DesgloseRetenciones:
        """
        Calcula el desglose de retenciones de una factura.

        Args:
            factura: Factura (o diccionario con sus campos)
            nit_proveedor: NIT del proveedor, por defecto supplier_tax_id de la factura
            nit_cliente: NIT de la empresa que recibe la factura
            municipio: Municipio para ReteICA, por defecto Bogotá
            nombre_cliente: Razon social del cliente
            reglas_override: Reglas de excepcion de la empresa

        Returns:
            DesgloseRetenciones con detalles, totales, valor neto y observaciones

        Raises:
            FacturaInvalidaError: Si la factura no cumple el modelo
        """
        factura = self._validar_factura(factura)
        logger.info(f" Procesando retenciones factura {factura.id} "
                    f"({factura.invoice_number or 'sin numero'})")

        validacion_proveedor = self.validador.validar_entidad(
            nit_proveedor if nit_proveedor is not None else factura.supplier_tax_id,
            factura.supplier_name,
        )
        validacion_cliente = self.validador.validar_entidad(nit_cliente, nombre_cliente)

        contexto = ContextoTributarioFactura(
            subtotal=_decimal(factura.subtotal),
            total_iva=_decimal(factura.total_tax),
            valor_total=_decimal(factura.total_amount),
            tipo_servicio=clasificar_servicio(factura),
            proveedor=validacion_proveedor.entidad,
            cliente=validacion_cliente.entidad,
            fecha_emision=factura.issue_date,
            municipio=municipio or self.municipio_por_defecto,
        )

        # Una sola seleccion de vigencia por factura
        tabla = self.motor.tabla_para(contexto)
        resultado_motor = self.motor.calcular_impuestos(contexto, tabla)

        desglose = DesgloseRetenciones()
        resultados = (
            (TipoRetencion.RETENCION_FUENTE, resultado_motor.retencion_fuente, desglose.retefuente),
            (TipoRetencion.RETENCION_ICA, resultado_motor.ica, desglose.reteica),
            (TipoRetencion.RETENCION_IVA, resultado_motor.retencion_iva, desglose.reteiva),
        )

        for tipo, resultado, destino in resultados:
            if not resultado.aplica:
                desglose.observaciones.append(f"{tipo.value}: {resultado.regla_aplicada}")
                continue

            detalle = self._crear_detalle(tipo, resultado, contexto, tabla)
            detalle = self._aplicar_override(detalle, contexto, tabla, reglas_override, desglose.observaciones)
            if detalle is not None:
                destino.append(detalle)

        self._agregar_totales(desglose, contexto.valor_total)
        self._marcar_revision_manual(desglose, validacion_proveedor, validacion_cliente)

        logger.info(f" Factura {factura.id}: total retenciones ${desglose.total_retenciones:,.0f} "
                    f"(ReteFuente ${desglose.resumen.total_retefuente:,.0f}, "
                    f"ReteICA ${desglose.resumen.total_reteica:,.0f}, "
                    f"ReteIVA ${desglose.resumen.total_reteiva:,.0f})")
        return desglose

    # ===============================
    # METODOS PRIVADOS
    # ===============================

    @staticmethod
    def _validar_factura(factura: Union[Factura, Dict[str, Any]]) -> Factura:
        if isinstance(factura, Factura):
            return factura
        try:
            return Factura.model_validate(factura)
        except ValidationError as e:
            raise FacturaInvalidaError(f"Factura invalida: {e}") from e

    def _crear_detalle(self, tipo: TipoRetencion, resultado: ResultadoCalculoImpuesto,
                       contexto: ContextoTributarioFactura, tabla: TablaTarifas) -> DetalleRetencion:
        """Mapea un resultado aplicable del motor a la linea persistible"""
        comunes = dict(
            tipo_impuesto=tipo,
            base_gravable=resultado.base_gravable,
            tarifa=resultado.tarifa,
            valor_retencion=resultado.valor,
            tipo_proveedor=contexto.proveedor.tipo_entidad.value,
            metodo_calculo=MetodoCalculo.AUTOMATICO,
            regla_aplicada=resultado.regla_aplicada,
            confianza=CONFIANZA_POR_TIPO_RETENCION[tipo],
        )

        if tipo == TipoRetencion.RETENCION_FUENTE:
            regla, _ = tabla.regla_retefuente(contexto.tipo_servicio)
            return DetalleRetencion(
                codigo_concepto=regla.codigo_concepto,
                descripcion_concepto=regla.descripcion_concepto,
                umbral_uvt=float(regla.umbral_uvt),
                codigo_dian=regla.codigo_concepto,
                **comunes
            )

        if tipo == TipoRetencion.RETENCION_ICA:
            return DetalleRetencion(
                codigo_concepto=CODIGO_CONCEPTO_ICA,
                descripcion_concepto=f"Retencion de ICA {resultado.municipio}",
                municipio=resultado.municipio,
                codigo_municipal=resultado.codigo_municipal,
                **comunes
            )

        return DetalleRetencion(
            codigo_concepto=CODIGO_CONCEPTO_RETEIVA,
            descripcion_concepto=f"Retencion de IVA {resultado.tarifa:.0%}",
            codigo_dian=tabla.codigo_dian_reteiva,
            **comunes
        )

    def _aplicar_override(self, detalle: DetalleRetencion, contexto: ContextoTributarioFactura,
                          tabla: TablaTarifas, reglas: Sequence[ReglaOverride],
                          observaciones: List[str]) -> Optional[DetalleRetencion]:
        """
        Aplica la primera regla override que cubra la retencion.

        Returns:
            El detalle ajustado, el mismo detalle si ninguna regla aplica, o
            None si el umbral del override deja la base por debajo.
        """
        if not reglas:
            return detalle

        municipio, _ = resolver_municipio(contexto.municipio)
        regla = self._buscar_override(reglas, detalle.tipo_impuesto, contexto, municipio.value)
        if regla is None:
            return detalle

        base = _decimal(detalle.base_gravable)
        if regla.umbral_uvt_override is not None:
            umbral = _decimal(regla.umbral_uvt_override) * tabla.valor_uvt
            if base < umbral:
                logger.info(f" Override '{regla.nombre_regla}' descarta {detalle.tipo_impuesto.value}: "
                            f"base ${base:,} inferior a {regla.umbral_uvt_override} UVT")
                observaciones.append(
                    f"{detalle.tipo_impuesto.value}: override_{regla.nombre_regla}_base_inferior_umbral"
                )
                return None

        cambios = {
            "metodo_calculo": MetodoCalculo.OVERRIDE,
            "regla_aplicada": f"override_{regla.nombre_regla}",
        }
        if regla.tarifa_override is not None:
            tarifa = _decimal(regla.tarifa_override)
            cambios["tarifa"] = float(tarifa)
            cambios["valor_retencion"] = float(calcular_valor_retencion(base, tarifa))
        if regla.umbral_uvt_override is not None:
            cambios["umbral_uvt"] = regla.umbral_uvt_override
        if regla.codigo_concepto:
            cambios["codigo_concepto"] = regla.codigo_concepto

        logger.info(f" Override '{regla.nombre_regla}' aplicado a {detalle.tipo_impuesto.value}")
        return detalle.model_copy(update=cambios)

    @staticmethod
    def _buscar_override(reglas: Sequence[ReglaOverride], tipo: TipoRetencion,
                         contexto: ContextoTributarioFactura, municipio: str) -> Optional[ReglaOverride]:
        fecha: date = contexto.fecha_emision
        for regla in reglas:
            if regla.aplica_a(tipo, contexto.tipo_servicio, contexto.proveedor.tipo_entidad, municipio, fecha):
                return regla
        return None

    @staticmethod
    def _agregar_totales(desglose: DesgloseRetenciones, valor_total: Decimal) -> None:
        def _sumar(detalles: List[DetalleRetencion]) -> Decimal:
            return sum((_decimal(d.valor_retencion) for d in detalles), Decimal("0"))

        total_retefuente = _sumar(desglose.retefuente)
        total_reteica = _sumar(desglose.reteica)
        total_reteiva = _sumar(desglose.reteiva)
        total = total_retefuente + total_reteica + total_reteiva

        desglose.total_retenciones = float(total)
        desglose.resumen = ResumenRetenciones(
            total_retefuente=float(total_retefuente),
            total_reteica=float(total_reteica),
            total_reteiva=float(total_reteiva),
            valor_neto=float(valor_total - total),
        )

    @staticmethod
    def _marcar_revision_manual(desglose: DesgloseRetenciones,
                                *validaciones: ResultadoValidacionEntidad) -> None:
        for rol, validacion in zip(("Proveedor", "Cliente"), validaciones):
            if validacion.clasificacion == ClasificacionEntidad.DESCONOCIDA or validacion.requiere_revision_manual:
                desglose.requiere_revision_manual = True
                desglose.observaciones.append(
                    f"{rol} requiere revision manual ({validacion.clasificacion.value}, "
                    f"confianza {validacion.confianza:.2f})"
                )
