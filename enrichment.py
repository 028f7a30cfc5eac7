"""
Provider Enrichment
===================

Joins provider aggregates with the auxiliary templates (Especialidades,
Asiste-EspeB) to add location, contract value and population figures, and
resolves the population denominator used for frequency-of-use.

Lookup order for each provider:
1. Contract number, in each source in priority order
2. Tax ID (NIT), in each source in priority order

Enrichment never nulls a field: a missing column or an unparseable cell keeps
whatever value the provider already had.
"""

import copy
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import dictionary
from categorization import categorize_service, resolve_regimen
from lookups import AuxiliarySource, cell_to_text, normalize_number
from providers import AfProvider

logger = logging.getLogger(__name__)


def match_source(provider: AfProvider,
                 sources: Sequence[AuxiliarySource]) -> Tuple[Optional[AuxiliarySource], Optional[list]]:
    """Find the auxiliary row for a provider (contract first, then NIT)."""
    contract = cell_to_text(provider.contrato)
    if contract:
        for source in sources:
            row = source.by_contract.get(contract)
            if row is not None:
                return source, row
    tax_id = cell_to_text(provider.ni)
    if tax_id:
        for source in sources:
            row = source.by_tax_id.get(tax_id)
            if row is not None:
                return source, row
    return None, None


def _to_population(value) -> Optional[int]:
    number = normalize_number(value)
    if number is None:
        return None
    return int(number.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _text(value) -> Optional[str]:
    text = cell_to_text(value)
    return text or None


def apply_row(provider: AfProvider, source: AuxiliarySource, row: list):
    """Copy enrichment fields from one auxiliary row onto provider (in place)."""
    regimen = resolve_regimen(provider.regimen, provider.tipo_servicio)

    departamento = _text(source.value(row, dictionary.DEPARTMENT_HEADERS))
    if departamento is not None:
        provider.departamento = departamento
    municipio = _text(source.value(row, dictionary.MUNICIPALITY_HEADERS))
    if municipio is not None:
        provider.municipio = municipio

    valor = normalize_number(source.value(row, dictionary.CONTRACT_VALUE_HEADERS[regimen]))
    if valor is not None:
        provider.valor_por_contrato = valor

    poblacion = _to_population(source.value(row, dictionary.POPULATION_HEADERS[regimen]))
    if poblacion is not None:
        provider.poblacion = poblacion

    for specialty, candidates in dictionary.SPECIALTY_POPULATION_HEADERS[regimen].items():
        figure = _to_population(source.value(row, candidates))
        if figure is not None:
            provider.poblaciones_especialidad[specialty] = figure

    provider.fuente = source.name


def enrich_providers(providers: Dict[str, AfProvider],
                     sources: Sequence[AuxiliarySource]) -> Dict[str, AfProvider]:
    """
    Return an enriched copy of providers.

    Args:
        providers: Merged provider map (not modified)
        sources: Auxiliary sources in priority order

    Returns:
        New provider map with enrichment fields set where a source matched
    """
    enriched = copy.deepcopy(providers)
    matched = 0
    for key, provider in enriched.items():
        source, row = match_source(provider, sources)
        if row is None:
            logger.debug("No auxiliary match for %s (contrato %s)", key, provider.contrato)
            continue
        apply_row(provider, source, row)
        matched += 1

    logger.info("Enriched %d of %d providers", matched, len(enriched))
    return enriched


def population_for(provider: Optional[AfProvider], service_label) -> int:
    """
    Population denominator for a service type.

    Whole-population services use the provider's population. Pediatrics,
    gynecology and internal medicine use their own figure when the matched
    template carries one, otherwise the provider's population.

    Returns:
        Population (0 only when no data exists)
    """
    if provider is None:
        return 0
    general = provider.poblacion or 0
    category = categorize_service(service_label)
    if category == 'GENERAL':
        return general
    return provider.poblaciones_especialidad.get(category) or general


def representative_provider(providers: Dict[str, AfProvider]) -> Optional[AfProvider]:
    """First provider with population data, else the first provider."""
    first = None
    for provider in providers.values():
        if first is None:
            first = provider
        if provider.poblacion:
            return provider
    return first


def enrichment_summary(providers: Dict[str, AfProvider]) -> List[dict]:
    """Flat rows for the provider sheet of the report"""
    rows = []
    for provider in providers.values():
        rows.append({
            'nombrePrestador': provider.nombre_prestador,
            'NI': provider.ni,
            'contrato': provider.contrato,
            'regimen': provider.regimen,
            'departamento': provider.departamento or '',
            'municipio': provider.municipio or '',
            'valorPorContrato': provider.valor_por_contrato,
            'poblacion': provider.poblacion,
            'valorTotal': provider.valor_total,
            'fuente': provider.fuente or '',
        })
    return rows
