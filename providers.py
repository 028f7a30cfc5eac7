"""
AF Provider Aggregation
=======================

Extracts provider / contract / billing-period records from the AF segment and
accumulates them per provider (key: "<NI>-<provider name>").

Each file is reduced to its own partial summary; partials are then folded in
caller order with merge_af_summaries(). Amounts are Decimal, so the merged
total always equals the sum of the merged detail values.
"""

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

import dictionary

logger = logging.getLogger(__name__)


@dataclass
class AfDetail:
    """One billing period of a provider, as declared in one file"""
    inicio: str
    periodo: str
    valor: Decimal
    archivo: str

    def to_dict(self):
        return {
            'inicio': self.inicio,
            'periodo': self.periodo,
            'valor': self.valor,
            'archivo': self.archivo,
        }


@dataclass
class AfProvider:
    """Provider aggregate keyed by tax ID + name"""
    nombre_prestador: str
    ni: str
    contrato: str
    tipo_servicio: str
    regimen: str
    detalles: List[AfDetail] = field(default_factory=list)
    valor_total: Decimal = Decimal('0')
    # Enrichment (unset until a lookup source matches)
    departamento: Optional[str] = None
    municipio: Optional[str] = None
    valor_por_contrato: Optional[Decimal] = None
    poblacion: Optional[int] = None
    poblaciones_especialidad: Dict[str, int] = field(default_factory=dict)
    fuente: Optional[str] = None

    @property
    def key(self) -> str:
        return provider_key(self.ni, self.nombre_prestador)

    def add_detail(self, detail: AfDetail):
        self.detalles.append(detail)
        self.valor_total += detail.valor

    def to_dict(self):
        return {
            'nombrePrestador': self.nombre_prestador,
            'NI': self.ni,
            'contrato': self.contrato,
            'tipoServicio': self.tipo_servicio,
            'regimen': self.regimen,
            'detalles': [d.to_dict() for d in self.detalles],
            'valorTotal': self.valor_total,
            'departamento': self.departamento,
            'municipio': self.municipio,
            'valorPorContrato': self.valor_por_contrato,
            'poblacion': self.poblacion,
        }


def provider_key(ni: str, nombre_prestador: str) -> str:
    return f"{ni}-{nombre_prestador}"


def parse_billed_value(value) -> Decimal:
    """
    Parse an AF net value. Never raises: anything unparseable is 0.

    Args:
        value: Raw column text

    Returns:
        Finite Decimal
    """
    if value is None:
        return Decimal('0')
    value_str = str(value).strip()
    if not value_str:
        return Decimal('0')
    try:
        amount = Decimal(value_str)
    except (InvalidOperation, ValueError, TypeError):
        logger.debug("Unparseable AF value %r counted as 0", value_str)
        return Decimal('0')
    return amount if amount.is_finite() else Decimal('0')


def extract_af(segments: Dict[str, List[str]], file_name: str) -> Dict[str, AfProvider]:
    """
    Build the per-file provider summary from the AF segment.

    Lines with fewer than 17 columns are skipped.

    Args:
        segments: Parsed segment map of one file
        file_name: Source file name recorded on every detail

    Returns:
        Dict of provider key -> AfProvider, in first-seen order
    """
    af_info: Dict[str, AfProvider] = {}
    cols_map = dictionary.AF_COLUMNS

    for line_no, row in enumerate(segments.get('AF', []), 1):
        cols = row.split(',')
        if len(cols) < dictionary.AF_MIN_COLUMNS:
            logger.debug("%s AF line %d skipped: %d columns", file_name, line_no, len(cols))
            continue

        nombre = cols[cols_map['nombre_prestador']].strip()
        ni = cols[cols_map['ni']].strip()
        inicio = cols[cols_map['inicio']].strip()
        fin = cols[cols_map['fin']].strip()
        valor = parse_billed_value(cols[cols_map['valor_neto']])
        key = provider_key(ni, nombre)

        if key not in af_info:
            af_info[key] = AfProvider(
                nombre_prestador=nombre,
                ni=ni,
                contrato=cols[cols_map['contrato']].strip(),
                tipo_servicio=cols[cols_map['tipo_servicio']].strip(),
                regimen=cols[cols_map['regimen']].strip(),
            )
        af_info[key].add_detail(AfDetail(
            inicio=inicio,
            periodo=f"{inicio} a {fin}",
            valor=valor,
            archivo=file_name,
        ))

    return af_info


def merge_af_summaries(partials: Iterable[Dict[str, AfProvider]]) -> Dict[str, AfProvider]:
    """
    Fold per-file summaries into one, in the given order.

    Identity fields come from the first occurrence of each key; detail lists
    are concatenated and totals summed. Inputs are not modified.
    """
    merged: Dict[str, AfProvider] = {}
    for partial in partials:
        for key, provider in partial.items():
            if key not in merged:
                merged[key] = copy.deepcopy(provider)
                continue
            target = merged[key]
            target.detalles.extend(copy.deepcopy(provider.detalles))
            target.valor_total += provider.valor_total
    return merged


def total_billed(providers: Dict[str, AfProvider]) -> Decimal:
    """Grand total across all providers"""
    return sum((p.valor_total for p in providers.values()), Decimal('0'))
