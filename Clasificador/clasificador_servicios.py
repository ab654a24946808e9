"""
CLASIFICADOR DE SERVICIOS Y MUNICIPIOS
======================================

Mapeos totales de texto libre a las enumeraciones del dominio:
- Tipo de servicio por prefijo PUC o palabras clave del proveedor
- Municipio por nombre (sin sensibilidad a tildes) o codigo DANE

Todo texto no reconocido cae en la rama por defecto documentada
(servicios / Bogotá), nunca en una excepcion.
"""

import logging
import re
import unicodedata
from typing import Optional, Tuple

from modelos import Factura, Municipio, TipoServicio

logger = logging.getLogger(__name__)

# Prefijo de cuenta PUC -> tipo de servicio
PREFIJOS_PUC = {
    "51": TipoServicio.SERVICIOS,
    "61": TipoServicio.COMPRAS,
    "52": TipoServicio.ARRENDAMIENTO,
}

# Palabras clave en el nombre del proveedor (texto normalizado sin tildes)
PALABRAS_CLAVE_SERVICIO = [
    (TipoServicio.PROFESIONAL, ("consultor", "asesor", "abogad", "auditor")),
    (TipoServicio.TRANSPORTE, ("transport", "logistic", "flete", "mensajeria")),
    (TipoServicio.CONSTRUCCION, ("construccion", "constructor", "obra", "ingenieria civil")),
]

# Sinonimos aceptados por resolver_tipo_servicio
SINONIMOS_SERVICIO = {
    "services": TipoServicio.SERVICIOS,
    "servicios": TipoServicio.SERVICIOS,
    "professional": TipoServicio.PROFESIONAL,
    "profesional": TipoServicio.PROFESIONAL,
    "honorarios": TipoServicio.PROFESIONAL,
    "construction": TipoServicio.CONSTRUCCION,
    "construccion": TipoServicio.CONSTRUCCION,
    "goods": TipoServicio.COMPRAS,
    "purchases": TipoServicio.COMPRAS,
    "compras": TipoServicio.COMPRAS,
    "rent": TipoServicio.ARRENDAMIENTO,
    "arrendamiento": TipoServicio.ARRENDAMIENTO,
    "transport": TipoServicio.TRANSPORTE,
    "transporte": TipoServicio.TRANSPORTE,
}

CODIGOS_DANE = {
    "11001": Municipio.BOGOTA,
    "05001": Municipio.MEDELLIN,
    "76001": Municipio.CALI,
    "68001": Municipio.BUCARAMANGA,
    "08001": Municipio.BARRANQUILLA,
    "13001": Municipio.CARTAGENA,
}


def normalizar_texto(texto: Optional[str]) -> str:
    """Minusculas, sin tildes y con espacios colapsados"""
    if not texto:
        return ""
    sin_tildes = unicodedata.normalize("NFKD", texto)
    sin_tildes = "".join(c for c in sin_tildes if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", sin_tildes.lower()).strip()


def resolver_tipo_servicio(valor: Optional[str]) -> TipoServicio:
    """Convierte texto libre al tipo de servicio; default SERVICIOS"""
    if isinstance(valor, TipoServicio):
        return valor
    return SINONIMOS_SERVICIO.get(normalizar_texto(valor), TipoServicio.SERVICIOS)


def clasificar_servicio(factura: Factura) -> TipoServicio:
    """
    Clasifica el tipo de servicio facturado.

    Prioridad:
    1. Prefijo de la cuenta PUC (51 servicios, 61 compras, 52 arrendamiento)
    2. Palabras clave en el nombre del proveedor
    3. SERVICIOS por defecto
    """
    puc = (factura.puc_code or "").strip()
    if len(puc) >= 2 and puc[:2] in PREFIJOS_PUC:
        return PREFIJOS_PUC[puc[:2]]

    nombre = normalizar_texto(factura.supplier_name)
    for tipo, palabras in PALABRAS_CLAVE_SERVICIO:
        if any(re.search(r"\b" + re.escape(palabra), nombre) for palabra in palabras):
            return tipo

    return TipoServicio.SERVICIOS


def resolver_municipio(nombre: Optional[str]) -> Tuple[Municipio, bool]:
    """
    Convierte el nombre o codigo DANE de un municipio a la enumeracion.

    Returns:
        Tuple[Municipio, bool]: (municipio, es_municipio_por_defecto)
    """
    if isinstance(nombre, Municipio):
        return nombre, False

    texto = normalizar_texto(nombre)
    if texto in CODIGOS_DANE:
        return CODIGOS_DANE[texto], False

    # "Bogotá D.C.", "Bogota, D.C.", "Santiago de Cali"
    texto = re.sub(r"[.,]", " ", texto)
    texto = re.sub(r"\bd\s*c\b", "", texto).strip()
    for municipio in Municipio:
        objetivo = normalizar_texto(municipio.value)
        if texto == objetivo or texto.endswith(f" {objetivo}"):
            return municipio, False

    if texto:
        logger.warning(f" Municipio no soportado '{nombre}', se usa {Municipio.BOGOTA.value}")
    return Municipio.BOGOTA, True
