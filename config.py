"""
CONFIGURACIÓN DEL PRELIQUIDADOR DE RETENCIONES
==============================================

Maneja las tablas de tarifas por vigencia fiscal (UVT, ReteFuente, ReteICA,
ReteIVA), las constantes del procesador y la configuracion de base de datos.

Las tablas son inmutables y versionadas por año. Se pueden reemplazar desde
un archivo JSON indicado en RETENCIONES_TARIFAS_PATH sin desplegar codigo.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from modelos import Municipio, TipoEntidad, TipoRetencion, TipoServicio
from Liquidador.exceptions import ConfiguracionTarifasError

logger = logging.getLogger(__name__)

# ===============================
# CONSTANTES DEL PROCESADOR
# ===============================

MUNICIPIO_POR_DEFECTO = Municipio.BOGOTA
TIPO_SERVICIO_POR_DEFECTO = TipoServicio.SERVICIOS

# Confianza fija reportada en cada detalle de retencion
CONFIANZA_POR_TIPO_RETENCION = {
    TipoRetencion.RETENCION_FUENTE: 0.95,
    TipoRetencion.RETENCION_ICA: 0.90,
    TipoRetencion.RETENCION_IVA: 0.95,
}

# Por debajo de esta confianza la entidad requiere revision manual
CONFIANZA_MINIMA_REVISION = 0.8

CODIGO_CONCEPTO_ICA = "ICA"
CODIGO_CONCEPTO_RETEIVA = "RETIVA"

# ===============================
# TABLAS DE TARIFAS POR VIGENCIA
# ===============================


@dataclass(frozen=True)
class ReglaRetefuente:
    """Fila de la tabla de ReteFuente para un tipo de servicio"""
    tipo_servicio: TipoServicio
    umbral_uvt: Decimal
    tarifa_persona_natural: Decimal
    tarifa_persona_juridica: Decimal
    codigo_concepto: str
    descripcion_concepto: str

    def tarifa_para(self, tipo_entidad: TipoEntidad) -> Decimal:
        if tipo_entidad == TipoEntidad.PERSONA_JURIDICA:
            return self.tarifa_persona_juridica
        return self.tarifa_persona_natural

    @property
    def concepto_dian(self) -> str:
        return f"{self.codigo_concepto} - {self.descripcion_concepto}"


@dataclass(frozen=True)
class TarifaICA:
    """Tarifa de ReteICA de un municipio (fraccion decimal, no por mil)"""
    municipio: Municipio
    tarifa: Decimal
    codigo_municipal: str


def _validar_fraccion(anio: int, campo: str, valor: Decimal) -> None:
    if not Decimal("0") <= valor <= Decimal("1"):
        raise ConfiguracionTarifasError(
            f"Tabla {anio}: {campo} = {valor} fuera de [0, 1] (las tarifas son fracciones decimales)"
        )


@dataclass(frozen=True)
class TablaTarifas:
    """
    Tabla de tarifas de una vigencia fiscal.

    Inmutable: los mapeos internos se exponen como MappingProxyType.
    Debe incluir la regla del tipo de servicio por defecto y la tarifa del
    municipio por defecto, que son las ramas de respaldo del motor.

    Attributes:
        anio: Vigencia fiscal
        valor_uvt: Valor de la UVT en pesos
        reglas_retefuente: Regla por tipo de servicio
        tarifas_ica: Tarifa por municipio
        tarifa_reteiva: Fraccion del IVA a retener
        codigo_dian_reteiva: Codigo DIAN reportado para ReteIVA
        monto_minimo_factura: Valor total por debajo del cual no se retiene
    """
    anio: int
    valor_uvt: Decimal
    reglas_retefuente: Mapping[TipoServicio, ReglaRetefuente]
    tarifas_ica: Mapping[Municipio, TarifaICA]
    tarifa_reteiva: Decimal = Decimal("0.15")
    codigo_dian_reteiva: str = "05"
    monto_minimo_factura: Decimal = Decimal("100000")
    origen: str = field(default="codigo", compare=False)

    def __post_init__(self):
        object.__setattr__(self, "reglas_retefuente", MappingProxyType(dict(self.reglas_retefuente)))
        object.__setattr__(self, "tarifas_ica", MappingProxyType(dict(self.tarifas_ica)))

        if self.valor_uvt <= 0:
            raise ConfiguracionTarifasError(f"UVT {self.anio} debe ser mayor a 0")
        if self.monto_minimo_factura < 0:
            raise ConfiguracionTarifasError(f"Tabla {self.anio}: monto_minimo_factura no puede ser negativo")

        # Tarifas como fraccion decimal: 0.00966, no 9.66
        _validar_fraccion(self.anio, "tarifa_reteiva", self.tarifa_reteiva)
        for tipo, regla in self.reglas_retefuente.items():
            if regla.umbral_uvt < 0:
                raise ConfiguracionTarifasError(
                    f"Tabla {self.anio}: umbral_uvt negativo para {tipo.value}"
                )
            _validar_fraccion(self.anio, f"{tipo.value}.tarifa_persona_natural", regla.tarifa_persona_natural)
            _validar_fraccion(self.anio, f"{tipo.value}.tarifa_persona_juridica", regla.tarifa_persona_juridica)
        for municipio, tarifa in self.tarifas_ica.items():
            _validar_fraccion(self.anio, f"ica.{municipio.value}", tarifa.tarifa)

        if TIPO_SERVICIO_POR_DEFECTO not in self.reglas_retefuente:
            raise ConfiguracionTarifasError(
                f"Tabla {self.anio} sin regla para {TIPO_SERVICIO_POR_DEFECTO.value}"
            )
        if MUNICIPIO_POR_DEFECTO not in self.tarifas_ica:
            raise ConfiguracionTarifasError(
                f"Tabla {self.anio} sin tarifa ICA para {MUNICIPIO_POR_DEFECTO.value}"
            )

    def regla_retefuente(self, tipo_servicio: TipoServicio) -> Tuple[ReglaRetefuente, bool]:
        """Retorna (regla, es_regla_por_defecto)"""
        regla = self.reglas_retefuente.get(tipo_servicio)
        if regla is None:
            return self.reglas_retefuente[TIPO_SERVICIO_POR_DEFECTO], True
        return regla, False

    def tarifa_ica(self, municipio: Municipio) -> Tuple[TarifaICA, bool]:
        """Retorna (tarifa, es_tarifa_por_defecto)"""
        tarifa = self.tarifas_ica.get(municipio)
        if tarifa is None:
            return self.tarifas_ica[MUNICIPIO_POR_DEFECTO], True
        return tarifa, False

    def a_diccionario(self) -> Dict[str, Any]:
        """Representacion serializable (mismo formato que cargar_tablas_desde_archivo)"""
        return {
            "anio": self.anio,
            "valor_uvt": float(self.valor_uvt),
            "tarifa_reteiva": float(self.tarifa_reteiva),
            "codigo_dian_reteiva": self.codigo_dian_reteiva,
            "monto_minimo_factura": float(self.monto_minimo_factura),
            "origen": self.origen,
            "retefuente": {
                tipo.value: {
                    "umbral_uvt": float(regla.umbral_uvt),
                    "tarifa_persona_natural": float(regla.tarifa_persona_natural),
                    "tarifa_persona_juridica": float(regla.tarifa_persona_juridica),
                    "codigo_concepto": regla.codigo_concepto,
                    "descripcion_concepto": regla.descripcion_concepto,
                }
                for tipo, regla in self.reglas_retefuente.items()
            },
            "ica": {
                municipio.value: {
                    "tarifa": float(tarifa.tarifa),
                    "codigo_municipal": tarifa.codigo_municipal,
                }
                for municipio, tarifa in self.tarifas_ica.items()
            },
        }


def _regla(tipo: TipoServicio, umbral: str, natural: str, juridica: str,
           codigo: str, descripcion: str) -> ReglaRetefuente:
    return ReglaRetefuente(
        tipo_servicio=tipo,
        umbral_uvt=Decimal(umbral),
        tarifa_persona_natural=Decimal(natural),
        tarifa_persona_juridica=Decimal(juridica),
        codigo_concepto=codigo,
        descripcion_concepto=descripcion,
    )


REGLAS_RETEFUENTE_VIGENTES = {
    TipoServicio.SERVICIOS: _regla(TipoServicio.SERVICIOS, "4", "0.10", "0.11", "365", "Servicios en general"),
    TipoServicio.PROFESIONAL: _regla(TipoServicio.PROFESIONAL, "4", "0.10", "0.11", "365", "Servicios profesionales"),
    TipoServicio.CONSTRUCCION: _regla(TipoServicio.CONSTRUCCION, "4", "0.035", "0.04", "373", "Contratos de construccion"),
    TipoServicio.COMPRAS: _regla(TipoServicio.COMPRAS, "27", "0.025", "0.025", "366", "Compras generales"),
    TipoServicio.ARRENDAMIENTO: _regla(TipoServicio.ARRENDAMIENTO, "27", "0.035", "0.035", "370", "Arrendamiento de bienes inmuebles"),
    TipoServicio.TRANSPORTE: _regla(TipoServicio.TRANSPORTE, "4", "0.035", "0.035", "371", "Servicio de transporte"),
}

TARIFAS_ICA_VIGENTES = {
    Municipio.BOGOTA: TarifaICA(Municipio.BOGOTA, Decimal("0.00966"), "11001"),
    Municipio.MEDELLIN: TarifaICA(Municipio.MEDELLIN, Decimal("0.007"), "05001"),
    Municipio.CALI: TarifaICA(Municipio.CALI, Decimal("0.00414"), "76001"),
    Municipio.BUCARAMANGA: TarifaICA(Municipio.BUCARAMANGA, Decimal("0.007"), "68001"),
    Municipio.BARRANQUILLA: TarifaICA(Municipio.BARRANQUILLA, Decimal("0.007"), "08001"),
    Municipio.CARTAGENA: TarifaICA(Municipio.CARTAGENA, Decimal("0.008"), "13001"),
}

# Valor UVT por vigencia en pesos (resoluciones DIAN)
UVT_POR_ANIO = {
    2024: Decimal("47065"),
    2025: Decimal("49799"),
    2026: Decimal("52374"),
}

TABLAS_TARIFAS: Dict[int, TablaTarifas] = {
    anio: TablaTarifas(
        anio=anio,
        valor_uvt=uvt,
        reglas_retefuente=REGLAS_RETEFUENTE_VIGENTES,
        tarifas_ica=TARIFAS_ICA_VIGENTES,
    )
    for anio, uvt in UVT_POR_ANIO.items()
}


def seleccionar_tabla(tablas: Mapping[int, TablaTarifas], anio: int) -> TablaTarifas:
    """
    Selecciona la tabla de una vigencia.

    Si no existe la vigencia exacta se usa la mas reciente anterior a ella;
    si la fecha es anterior a todas las vigencias se usa la mas antigua.
    """
    if not tablas:
        raise ConfiguracionTarifasError("No hay tablas de tarifas configuradas")

    if anio in tablas:
        return tablas[anio]

    anteriores = [a for a in tablas if a <= anio]
    anio_usado = max(anteriores) if anteriores else min(tablas)
    logger.warning(f" Sin tabla de tarifas para {anio}, se usa la vigencia {anio_usado}")
    return tablas[anio_usado]


def obtener_tabla_tarifas(anio: int) -> TablaTarifas:
    """Obtiene la tabla de tarifas registrada para la vigencia"""
    return seleccionar_tabla(TABLAS_TARIFAS, anio)


# ===============================
# CARGA DE TABLAS DESDE ARCHIVO
# ===============================

def _a_decimal(valor: Any, campo: str) -> Decimal:
    try:
        numero = Decimal(str(valor))
    except (InvalidOperation, TypeError, ValueError):
        raise ConfiguracionTarifasError(f"Valor invalido para {campo}: {valor!r}")
    if not numero.is_finite():
        raise ConfiguracionTarifasError(f"Valor invalido para {campo}: {valor!r}")
    return numero


def _municipio_desde_texto(nombre: str) -> Municipio:
    for municipio in Municipio:
        if municipio.value == nombre or municipio.name == nombre.upper():
            return municipio
    raise ConfiguracionTarifasError(f"Municipio no soportado en tabla ICA: {nombre}")


def _tabla_desde_diccionario(anio: int, datos: Dict[str, Any], base: TablaTarifas,
                             origen: str) -> TablaTarifas:
    reglas = dict(base.reglas_retefuente)
    for tipo_texto, fila in datos.get("retefuente", {}).items():
        try:
            tipo = TipoServicio(tipo_texto)
        except ValueError:
            raise ConfiguracionTarifasError(f"Tipo de servicio no soportado: {tipo_texto}")
        anterior = reglas.get(tipo)
        reglas[tipo] = ReglaRetefuente(
            tipo_servicio=tipo,
            umbral_uvt=_a_decimal(fila.get("umbral_uvt", anterior.umbral_uvt if anterior else None), "umbral_uvt"),
            tarifa_persona_natural=_a_decimal(
                fila.get("tarifa_persona_natural", anterior.tarifa_persona_natural if anterior else None),
                "tarifa_persona_natural"),
            tarifa_persona_juridica=_a_decimal(
                fila.get("tarifa_persona_juridica", anterior.tarifa_persona_juridica if anterior else None),
                "tarifa_persona_juridica"),
            codigo_concepto=str(fila.get("codigo_concepto", anterior.codigo_concepto if anterior else "365")),
            descripcion_concepto=fila.get("descripcion_concepto",
                                          anterior.descripcion_concepto if anterior else tipo.value),
        )

    tarifas_ica = dict(base.tarifas_ica)
    for nombre, fila in datos.get("ica", {}).items():
        municipio = _municipio_desde_texto(nombre)
        anterior = tarifas_ica.get(municipio)
        tarifas_ica[municipio] = TarifaICA(
            municipio=municipio,
            tarifa=_a_decimal(fila.get("tarifa", anterior.tarifa if anterior else None), "tarifa"),
            codigo_municipal=str(fila.get("codigo_municipal", anterior.codigo_municipal if anterior else "")),
        )

    return TablaTarifas(
        anio=anio,
        valor_uvt=_a_decimal(datos.get("valor_uvt", base.valor_uvt), "valor_uvt"),
        reglas_retefuente=reglas,
        tarifas_ica=tarifas_ica,
        tarifa_reteiva=_a_decimal(datos.get("tarifa_reteiva", base.tarifa_reteiva), "tarifa_reteiva"),
        codigo_dian_reteiva=str(datos.get("codigo_dian_reteiva", base.codigo_dian_reteiva)),
        monto_minimo_factura=_a_decimal(datos.get("monto_minimo_factura", base.monto_minimo_factura),
                                        "monto_minimo_factura"),
        origen=origen,
    )


def cargar_tablas_desde_archivo(ruta: Union[str, Path]) -> Dict[int, TablaTarifas]:
    """
    Carga tablas de tarifas desde un archivo JSON.

    Formato: objeto con una clave por vigencia. Las secciones que no se
    incluyen se heredan de la tabla de codigo de la vigencia mas cercana.

        {
          "2027": {
            "valor_uvt": 55000,
            "retefuente": {"services": {"tarifa_persona_juridica": 0.11}},
            "ica": {"Bogotá": {"tarifa": 0.00966, "codigo_municipal": "11001"}}
          }
        }

    Args:
        ruta: Ruta del archivo JSON

    Returns:
        Dict[int, TablaTarifas]: Tablas indexadas por vigencia

    Raises:
        ConfiguracionTarifasError: Si el archivo no existe o es invalido
    """
    ruta = Path(ruta)
    try:
        with open(ruta, "r", encoding="utf-8") as f:
            contenido = json.load(f)
    except FileNotFoundError:
        raise ConfiguracionTarifasError(f"Archivo de tarifas no encontrado: {ruta}")
    except json.JSONDecodeError as e:
        raise ConfiguracionTarifasError(f"Archivo de tarifas con JSON invalido: {e}")

    if not isinstance(contenido, dict) or not contenido:
        raise ConfiguracionTarifasError("El archivo de tarifas debe ser un objeto con al menos una vigencia")

    tablas = {}
    for anio_texto, datos in contenido.items():
        try:
            anio = int(anio_texto)
        except ValueError:
            raise ConfiguracionTarifasError(f"Vigencia invalida: {anio_texto}")
        if not isinstance(datos, dict):
            raise ConfiguracionTarifasError(f"Vigencia {anio} debe ser un objeto")

        base = seleccionar_tabla(TABLAS_TARIFAS, anio)
        tablas[anio] = _tabla_desde_diccionario(anio, datos, base, origen=str(ruta))

    logger.info(f" Tablas de tarifas cargadas desde {ruta}: {sorted(tablas)}")
    return tablas


def registrar_tablas_tarifas(tablas: Mapping[int, TablaTarifas]) -> None:
    """Registra (o reemplaza) vigencias en el registro global"""
    TABLAS_TARIFAS.update(tablas)


# ===============================
# INICIALIZACIÓN
# ===============================

def inicializar_configuracion() -> bool:
    """Inicializa la configuracion: carga tablas externas si RETENCIONES_TARIFAS_PATH esta definida"""
    ruta = os.getenv("RETENCIONES_TARIFAS_PATH")
    if ruta:
        registrar_tablas_tarifas(cargar_tablas_desde_archivo(ruta))

    logger.info(" Configuración inicializada correctamente")
    for anio in sorted(TABLAS_TARIFAS):
        logger.info(f"   - UVT {anio}: ${TABLAS_TARIFAS[anio].valor_uvt:,}")
    return True


# =====================================
# CONFIGURACION DE BASE DE DATOS
# =====================================

class DatabaseConfig:
    """
    Configuracion centralizada de la fuente de datos y del procesamiento por lote (SRP)

    Principios SOLID:
    - SRP: Solo maneja configuracion leida del entorno
    - OCP: Extensible para nuevas fuentes de datos
    """

    DB_TYPE_SUPABASE = "supabase"
    DB_TYPE_MEMORIA = "memoria"

    DEFAULT_LOTE_MAX_CONCURRENCIA = 4
    DEFAULT_LOG_LEVEL = "INFO"

    @staticmethod
    def get_database_type() -> str:
        """
        Obtiene el tipo de database configurado desde variables de entorno

        Returns:
            str: 'supabase' o 'memoria' (default: 'supabase')
        """
        return os.getenv("DATABASE_TYPE", DatabaseConfig.DB_TYPE_SUPABASE).strip().lower()

    @staticmethod
    def is_supabase_enabled() -> bool:
        return DatabaseConfig.get_database_type() == DatabaseConfig.DB_TYPE_SUPABASE

    @staticmethod
    def get_log_level() -> str:
        return os.getenv("LOG_LEVEL", DatabaseConfig.DEFAULT_LOG_LEVEL).upper()

    @staticmethod
    def get_lote_max_concurrencia() -> int:
        valor = os.getenv("LOTE_MAX_CONCURRENCIA")
        try:
            return max(1, int(valor)) if valor else DatabaseConfig.DEFAULT_LOTE_MAX_CONCURRENCIA
        except ValueError:
            logger.warning(f" LOTE_MAX_CONCURRENCIA invalido ({valor}), usando default")
            return DatabaseConfig.DEFAULT_LOTE_MAX_CONCURRENCIA

    @staticmethod
    def get_lote_timeout() -> Optional[float]:
        """Timeout por factura en segundos, None si no esta configurado"""
        valor = os.getenv("LOTE_TIMEOUT_SEGUNDOS")
        if not valor:
            return None
        try:
            timeout = float(valor)
        except ValueError:
            logger.warning(f" LOTE_TIMEOUT_SEGUNDOS invalido ({valor}), se ignora")
            return None
        return timeout if timeout > 0 else None

    @staticmethod
    def validate_database_config() -> Dict[str, Any]:
        """
        Valida la configuracion de database actual

        Returns:
            Dict con resultado de validacion:
            {
                'valid': bool,
                'tipo_db': str,
                'errores': List[str],
                'warnings': List[str]
            }
        """
        errores = []
        warnings = []
        tipo_db = DatabaseConfig.get_database_type()

        if tipo_db == DatabaseConfig.DB_TYPE_SUPABASE:
            if not os.getenv("SUPABASE_URL"):
                errores.append("SUPABASE_URL no configurada")
            if not os.getenv("SUPABASE_KEY"):
                errores.append("SUPABASE_KEY no configurada")

        elif tipo_db == DatabaseConfig.DB_TYPE_MEMORIA:
            warnings.append("Base de datos en memoria: las retenciones no sobreviven al reinicio")

        else:
            errores.append(f"DATABASE_TYPE invalido: {tipo_db}")

        return {
            'valid': len(errores) == 0,
            'tipo_db': tipo_db,
            'errores': errores,
            'warnings': warnings
        }
