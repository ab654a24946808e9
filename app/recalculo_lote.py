"""
RECALCULO DE RETENCIONES POR LOTE - MODULO DE NEGOCIO
=====================================================

Modulo responsable de recalcular las retenciones de varias facturas en
paralelo con control de concurrencia y manejo de errores por factura.

Cada factura es independiente: un fallo (calculo, persistencia o timeout)
se registra en su ResultadoProcesamientoFactura con estado "error" y el
lote continua con las demas.

ARQUITECTURA:
- 3 clases con responsabilidad unica cada una + funcion fachada
- El servicio sincrono se ejecuta en hilos con asyncio.to_thread
- Inyeccion de dependencias por constructor

Autor: Sistema Preliquidador
"""

import logging
import traceback
import asyncio
from typing import List, Optional
from datetime import datetime

from modelos import EstadoProcesamiento, ResultadoLote, ResultadoProcesamientoFactura
from database.database_service import IRetencionesService

logger = logging.getLogger(__name__)


# =================================
# CLASE 1: EJECUTOR DE RECALCULO INDIVIDUAL
# =================================


class EjecutorRecalculoIndividual:
    """
    Recalcula una factura con medicion de tiempo, timeout y captura de errores.

    Attributes:
        servicio: Servicio de retenciones (sincrono)
        timeout_segundos: Tiempo maximo por factura (None = sin limite)
    """

    def __init__(self, servicio: IRetencionesService, timeout_segundos: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        self.servicio = servicio
        self.timeout_segundos = timeout_segundos
        self.logger = logger or globals()['logger']

    async def recalcular(self, invoice_id: str, company_id: str, worker_id: int,
                         nit_cliente: Optional[str] = None,
                         municipio: Optional[str] = None) -> ResultadoProcesamientoFactura:
        """
        Recalcula una factura y encapsula el resultado o el error.

        Notes:
            - Captura TODAS las excepciones para no abortar el lote
            - Si vence el timeout el hilo puede seguir corriendo; la
              escritura sigue siendo atomica y el lote no la espera
        """
        inicio = datetime.now()
        self.logger.info(f" Worker {worker_id}: Recalculando factura {invoice_id}")

        try:
            resultado = await asyncio.wait_for(
                asyncio.to_thread(
                    self.servicio.recalcular_factura,
                    invoice_id,
                    company_id,
                    nit_cliente=nit_cliente,
                    municipio=municipio,
                ),
                timeout=self.timeout_segundos,
            )
            tiempo_ejecucion = (datetime.now() - inicio).total_seconds()
            self.logger.info(
                f" Worker {worker_id}: factura {invoice_id} {resultado.estado.value} en {tiempo_ejecucion:.2f}s"
            )
            return resultado

        except asyncio.TimeoutError:
            error_msg = f"Timeout de {self.timeout_segundos}s recalculando la factura"
            self.logger.error(f" Worker {worker_id}: {error_msg} {invoice_id}")
            return self._resultado_error(invoice_id, error_msg)

        except Exception as e:
            tiempo_ejecucion = (datetime.now() - inicio).total_seconds()
            error_msg = str(e)
            self.logger.error(
                f" Worker {worker_id}: Error en factura {invoice_id} tras {tiempo_ejecucion:.2f}s: {error_msg}"
            )
            self.logger.error(traceback.format_exc())
            return self._resultado_error(invoice_id, error_msg)

    @staticmethod
    def _resultado_error(invoice_id: str, error_msg: str) -> ResultadoProcesamientoFactura:
        return ResultadoProcesamientoFactura(
            invoice_id=invoice_id,
            estado=EstadoProcesamiento.ERROR,
            mensaje="No se pudieron recalcular las retenciones",
            error=error_msg,
        )


# =================================
# CLASE 2: AGREGADOR DE RESULTADOS
# =================================


class AgregadorResultadosLote:
    """Calcula metricas del lote sin mezclar "sin retenciones" con "error" """

    def agregar(self, resultados: List[ResultadoProcesamientoFactura], tiempo_total: float) -> ResultadoLote:
        return ResultadoLote(
            resultados=resultados,
            total_facturas=len(resultados),
            con_retenciones=sum(1 for r in resultados if r.estado == EstadoProcesamiento.CALCULADAS),
            sin_retenciones=sum(1 for r in resultados if r.estado == EstadoProcesamiento.SIN_RETENCIONES),
            fallidas=sum(1 for r in resultados if r.estado == EstadoProcesamiento.ERROR),
            tiempo_total=tiempo_total,
        )


# =================================
# CLASE 3: COORDINADOR DE RECALCULO (FACHADA)
# =================================


class CoordinadorRecalculoLote:
    """
    Coordina el recalculo paralelo de multiples facturas.

    Example:
        >>> coordinador = CoordinadorRecalculoLote(servicio, max_workers=4)
        >>> lote = await coordinador.recalcular_lote(["f-1", "f-2"], "c-1")
        >>> print(f"Fallidas: {lote.fallidas}/{lote.total_facturas}")
    """

    def __init__(self, servicio: IRetencionesService, max_workers: int = 4,
                 timeout_segundos: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        self.max_workers = max(1, max_workers)
        self.logger = logger or globals()['logger']
        self.ejecutor = EjecutorRecalculoIndividual(servicio, timeout_segundos, self.logger)
        self.agregador = AgregadorResultadosLote()

    async def recalcular_lote(self, invoice_ids: List[str], company_id: str,
                              nit_cliente: Optional[str] = None,
                              municipio: Optional[str] = None) -> ResultadoLote:
        """
        Recalcula todas las facturas con maximo max_workers simultaneas.

        Los identificadores repetidos se procesan una sola vez. El orden de
        los resultados sigue el orden de invoice_ids.
        """
        ids_unicos = list(dict.fromkeys(invoice_ids))
        self.logger.info(f" Recalculando {len(ids_unicos)} facturas con maximo {self.max_workers} workers...")

        # El semaforo se crea dentro del event loop que ejecuta el lote
        semaforo = asyncio.Semaphore(self.max_workers)

        async def recalcular_con_control(invoice_id: str, worker_id: int):
            async with semaforo:
                return await self.ejecutor.recalcular(
                    invoice_id, company_id, worker_id,
                    nit_cliente=nit_cliente, municipio=municipio,
                )

        inicio_total = datetime.now()
        resultados = await asyncio.gather(*[
            recalcular_con_control(invoice_id, i + 1)
            for i, invoice_id in enumerate(ids_unicos)
        ])
        tiempo_total = (datetime.now() - inicio_total).total_seconds()

        lote = self.agregador.agregar(list(resultados), tiempo_total)
        self.logger.info(
            f" Lote completado: {lote.con_retenciones} con retenciones, {lote.sin_retenciones} sin retenciones, "
            f"{lote.fallidas} fallidas en {lote.tiempo_total:.2f}s"
        )
        return lote


# =================================
# FUNCION FACHADA (PUBLIC API)
# =================================


async def recalcular_facturas_lote(
    servicio: IRetencionesService,
    invoice_ids: List[str],
    company_id: str,
    max_workers: int = 4,
    timeout_segundos: Optional[float] = None,
    nit_cliente: Optional[str] = None,
    municipio: Optional[str] = None,
) -> ResultadoLote:
    """
    Funcion fachada para recalcular facturas en paralelo.

    Args:
        servicio: Servicio de retenciones con repositorio configurado
        invoice_ids: Facturas a recalcular
        company_id: Empresa duena de las facturas
        max_workers: Maximo de facturas simultaneas. Default: 4.
        timeout_segundos: Tiempo maximo por factura
        nit_cliente: NIT del cliente (por defecto el de la empresa)
        municipio: Municipio para ReteICA

    Returns:
        ResultadoLote con un resultado por factura y metricas agregadas
    """
    coordinador = CoordinadorRecalculoLote(
        servicio,
        max_workers=max_workers,
        timeout_segundos=timeout_segundos,
    )
    return await coordinador.recalcular_lote(
        invoice_ids, company_id, nit_cliente=nit_cliente, municipio=municipio
    )
