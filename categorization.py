import re
import unicodedata

import dictionary

_WHITESPACE_PATTERN = re.compile(r'\s+')


def normalize_label(label):
    """
    Normalize a free-text label for comparison: upper case, accents removed,
    inner whitespace collapsed.

    Args:
        label: Any value (None and numbers are accepted)

    Returns:
        Normalized string ('' for None)
    """
    if label is None:
        return ''
    text = unicodedata.normalize('NFKD', str(label))
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    return _WHITESPACE_PATTERN.sub(' ', text).strip().upper()


def is_whole_population_service(service_label):
    """True when the service is measured against the provider's whole population."""
    label = normalize_label(service_label)
    if not label:
        return False
    return any(term in label for term in dictionary.WHOLE_POPULATION_SERVICES)


def specialty_for_service(service_label):
    """
    Map a service-type label to a specialty population bucket.

    Returns:
        'PEDIATRIA', 'GINECOLOGIA', 'MEDICINA INTERNA' or None when the label
        names no specialty with its own population column.
    """
    label = normalize_label(service_label)
    if not label:
        return None
    for specialty, keywords in dictionary.SPECIALTY_KEYWORDS.items():
        if any(keyword in label for keyword in keywords):
            return specialty
    return None


def categorize_service(service_label):
    """
    Categorize a service-type label for population resolution.

    WHOLE-POPULATION LIST TAKES PRECEDENCE:
    - General medicine, dentistry, nursing, labs, imaging, transport,
      emergency, hospitalization, nutrition and psychology -> 'GENERAL'
    - Labels naming pediatrics, gynecology or internal medicine -> that specialty
    - Anything else -> 'GENERAL' (provider population is the fallback)

    Args:
        service_label: The 'Tipo Ser' value of a dictionary row

    Returns:
        Category string
    """
    if is_whole_population_service(service_label):
        return 'GENERAL'
    return specialty_for_service(service_label) or 'GENERAL'


def resolve_regimen(regimen, service_type=''):
    """
    Resolve the health-plan regimen of an AF record.

    The regimen column wins. When it is blank the contract's service-type
    label is checked (contract names usually end in _SUBSIDIADO or
    _CONTRIBUTIVO). SUBSIDIADO is the default.
    """
    for text in (regimen, service_type):
        label = normalize_label(text)
        if dictionary.REGIMEN_CONTRIBUTIVO in label:
            return dictionary.REGIMEN_CONTRIBUTIVO
        if dictionary.REGIMEN_SUBSIDIADO in label:
            return dictionary.REGIMEN_SUBSIDIADO
    return dictionary.REGIMEN_SUBSIDIADO
