"""
Excepciones personalizadas para el modulo de retenciones
SRP: Solo define las excepciones del modulo
"""


class RetencionesError(Exception):
    """Excepcion base para errores del calculo de retenciones"""
    pass


class ConfiguracionTarifasError(RetencionesError):
    """Excepcion para tablas de tarifas invalidas o incompletas"""
    pass


class FacturaInvalidaError(RetencionesError):
    """Excepcion para facturas con datos que no permiten el calculo"""
    pass


class PersistenciaRetencionesError(RetencionesError):
    """Excepcion para fallos al leer o escribir en el repositorio"""
    pass


class FacturaNoEncontradaError(RetencionesError):
    """Excepcion para facturas inexistentes o eliminadas"""

    def __init__(self, invoice_id: str, company_id: str = None):
        self.invoice_id = invoice_id
        self.company_id = company_id
        super().__init__(f"Factura {invoice_id} no encontrada")
