"""
DATABASE SERVICE - RETENCIONES POR FACTURA
==========================================

Servicio que une el procesador de retenciones con el repositorio:
calcula el desglose de una factura y lo persiste con reemplazo atomico.

PRINCIPIOS APLICADOS:
- SRP: Responsabilidad única - calcular y persistir retenciones de facturas
- DIP: Depende de abstracción (RepositorioRetenciones) no de implementación concreta
- OCP: Abierto para extensión (nuevas fuentes de datos) cerrado para modificación

CONCURRENCIA:
- Un lock por factura serializa recalculos dentro del proceso
- Entre procesos, la funcion SQL de reemplazo toma un advisory lock

Autor: Sistema Preliquidador
Arquitectura: SOLID + Clean Architecture
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, List, Optional

from modelos import (
    DetalleRetencion,
    EstadoProcesamiento,
    Factura,
    ResultadoProcesamientoFactura,
)
from Clasificador.validador_entidades import ValidadorEntidades
from Liquidador.exceptions import FacturaNoEncontradaError
from Liquidador.motor_tributario import MotorReglasTributarias
from Liquidador.procesador_retenciones import ProcesadorRetenciones
from .database import RepositorioRetenciones

# Configuración de logging
logger = logging.getLogger(__name__)


# ===============================
# INTERFACES Y ABSTRACCIONES
# ===============================

class IRetencionesService(ABC):
    """
    Interface para servicios de retenciones persistidas.

    ISP: Interface específica para una responsabilidad concreta
    """

    @abstractmethod
    def recalcular_factura(self, invoice_id: str, company_id: str,
                           nit_cliente: Optional[str] = None,
                           municipio: Optional[str] = None) -> ResultadoProcesamientoFactura:
        """Recalcula y persiste las retenciones de una factura existente"""
        pass

    @abstractmethod
    def obtener_detalles_retencion(self, invoice_id: str) -> List[DetalleRetencion]:
        """Obtiene las retenciones persistidas de una factura"""
        pass


# ===============================
# IMPLEMENTACIÓN CONCRETA
# ===============================

class RetencionesService(IRetencionesService):
    """
    Servicio de retenciones persistidas.

    PRINCIPIOS SOLID APLICADOS:
    - SRP: Solo coordina calculo y persistencia
    - DIP: Repositorio y procesador se inyectan
    """

    def __init__(self, repositorio: RepositorioRetenciones,
                 procesador: Optional[ProcesadorRetenciones] = None):
        """
        Inicializa el servicio con inyección de dependencias.

        Args:
            repositorio: Repositorio de entidades, facturas y retenciones
            procesador: Procesador de retenciones. Por defecto uno cuyo
                validador cachea entidades en el mismo repositorio.
        """
        self.repositorio = repositorio
        self.procesador = procesador or ProcesadorRetenciones(
            validador=ValidadorEntidades(repositorio),
            motor=MotorReglasTributarias(),
        )
        # invoice_id -> [lock, hilos que lo tienen o lo esperan]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()
        logger.info("RetencionesService inicializado siguiendo principios SOLID")

    @contextmanager
    def _bloqueo_factura(self, invoice_id: str):
        """Serializa el procesamiento de una factura; la entrada se libera con el ultimo usuario"""
        with self._locks_guard:
            entrada = self._locks.setdefault(invoice_id, [threading.Lock(), 0])
            entrada[1] += 1
        try:
            with entrada[0]:
                yield
        finally:
            with self._locks_guard:
                entrada[1] -= 1
                if entrada[1] == 0:
                    del self._locks[invoice_id]

    def procesar_y_guardar(self, factura: Factura,
                           nit_cliente: Optional[str] = None,
                           nombre_cliente: Optional[str] = None,
                           municipio: Optional[str] = None) -> ResultadoProcesamientoFactura:
        """
        Calcula y persiste las retenciones de una factura.

        RESPONSABILIDADES (SRP):
        - Resolver el cliente (empresa receptora) si no se indica
        - Consultar reglas override vigentes de la empresa
        - Calcular el desglose con el procesador
        - Reemplazar atomicamente las lineas y el total de la factura

        Args:
            factura: Factura a procesar
            nit_cliente: NIT de la empresa receptora (por defecto el de company_id)
            nombre_cliente: Razon social de la empresa receptora
            municipio: Municipio para ReteICA

        Returns:
            ResultadoProcesamientoFactura con estado retenciones_calculadas
            o sin_retenciones_aplicables

        Raises:
            PersistenciaRetencionesError: Si la escritura falla (las lineas
                anteriores se conservan)
        """
        with self._bloqueo_factura(factura.id):
            if nit_cliente is None:
                empresa = self.repositorio.obtener_empresa(factura.company_id)
                if empresa:
                    nit_cliente = empresa.get('nit')
                    nombre_cliente = nombre_cliente or empresa.get('nombre')
                else:
                    logger.warning(f" Empresa {factura.company_id} sin NIT registrado")

            reglas = self.repositorio.obtener_reglas_override(factura.company_id, factura.issue_date)

            desglose = self.procesador.procesar_retenciones_factura(
                factura,
                nit_proveedor=factura.supplier_tax_id,
                nit_cliente=nit_cliente,
                municipio=municipio,
                nombre_cliente=nombre_cliente,
                reglas_override=reglas,
            )

            self.repositorio.reemplazar_retenciones_factura(
                factura.id,
                factura.company_id,
                desglose.detalles(),
                desglose.total_retenciones,
            )

        if desglose.tiene_retenciones:
            estado = EstadoProcesamiento.CALCULADAS
            mensaje = f"{len(desglose.detalles())} retenciones calculadas"
        else:
            estado = EstadoProcesamiento.SIN_RETENCIONES
            mensaje = "Ninguna retencion aplica a la factura"

        logger.info(f" Factura {factura.id} persistida: {estado.value} "
                    f"(total ${desglose.total_retenciones:,.0f})")

        return ResultadoProcesamientoFactura(
            invoice_id=factura.id,
            estado=estado,
            desglose=desglose,
            total_retencion=desglose.total_retenciones,
            mensaje=mensaje,
        )

    def recalcular_factura(self, invoice_id: str, company_id: str,
                           nit_cliente: Optional[str] = None,
                           municipio: Optional[str] = None) -> ResultadoProcesamientoFactura:
        """
        Recalcula una factura existente. Repetir la llamada produce el
        mismo conjunto de lineas y el mismo total.

        Raises:
            FacturaNoEncontradaError: Si la factura no existe o fue eliminada
            PersistenciaRetencionesError: Si la escritura falla
        """
        logger.info(f" Recalculando retenciones de la factura {invoice_id}")
        factura = self.repositorio.obtener_factura(invoice_id, company_id)
        if factura is None:
            raise FacturaNoEncontradaError(invoice_id, company_id)
        return self.procesar_y_guardar(factura, nit_cliente=nit_cliente, municipio=municipio)

    def obtener_detalles_retencion(self, invoice_id: str) -> List[DetalleRetencion]:
        return self.repositorio.obtener_detalles_retencion(invoice_id)


# ===============================
# FUNCIONES DE CONVENIENCIA
# ===============================

def crear_retenciones_service(repositorio: RepositorioRetenciones) -> RetencionesService:
    """
    Función de conveniencia para crear RetencionesService.

    Args:
        repositorio: Repositorio configurado

    Returns:
        RetencionesService: Servicio listo para usar
    """
    servicio = RetencionesService(repositorio)
    logger.info(" RetencionesService creado")
    return servicio
