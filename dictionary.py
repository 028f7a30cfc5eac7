"""
RIPS Reference Tables
=====================

Static lookup tables used by the parser, the validator and the
reconciliation engines. Column positions are 0-indexed positions in a
comma-delimited RIPS line.

Keeping every positional contract here means a change in the file format
is a one-line edit.
"""

# ============================================================
# SEGMENT CODES
# ============================================================
SEGMENT_DESCRIPTIONS = {
    'CT': 'Control',
    'AF': 'Transacciones (prestador / contrato)',
    'US': 'Usuarios',
    'AC': 'Consultas',
    'AP': 'Procedimientos',
    'AU': 'Urgencias',
    'AH': 'Hospitalizacion',
    'AN': 'Recien nacidos',
    'AM': 'Medicamentos',
    'AT': 'Otros servicios',
}

# Segments scanned for service codes, in report column order.
ACTIVITY_SEGMENTS = ('AP', 'AC', 'AT', 'AN', 'AH', 'AU', 'US')

# Column holding the service (CUPS) code per activity segment.
# US has no service column and is matched by delimited substring instead.
ACTIVITY_CODE_COLUMNS = {
    'AC': 6,
    'AP': 7,
    'AU': 6,
    'AH': 8,
    'AN': 6,
    'AT': 6,
}

# Patient document number inside activity lines and inside US lines.
ACTIVITY_DOCUMENT_COLUMN = 3
USER_DOCUMENT_COLUMN = 1

# ============================================================
# AF (PROVIDER / CONTRACT) LAYOUT
# ============================================================
AF_MIN_COLUMNS = 17
AF_COLUMNS = {
    'nombre_prestador': 1,
    'ni': 3,
    'inicio': 6,
    'fin': 7,
    'contrato': 10,
    'tipo_servicio': 11,
    'regimen': 12,
    'valor_neto': 16,
}

# ============================================================
# CT (CONTROL) LAYOUT
# ============================================================
CT_MIN_COLUMNS = 4
CT_SEGMENT_COLUMN = 2
CT_COUNT_COLUMN = 3

# ============================================================
# US (USER) LAYOUT
# ============================================================
# Fields 0..13 are all the parser reads; a record needs nothing past the zone.
US_MIN_COLUMNS = 14
US_COLUMNS = {
    'tipo_doc': 0,
    'num_doc': 1,
    'codigo_habilitacion': 2,
    'tipo_usuario': 3,
    'primer_apellido': 4,
    'segundo_apellido': 5,
    'primer_nombre': 6,
    'segundo_nombre': 7,
    'edad': 8,
    'unidad_medida_edad': 9,
    'sexo': 10,
    'departamento': 11,
    'municipio': 12,
    'zona': 13,
}

AGE_UNIT_SUFFIX = {
    '1': 'A',  # years
    '2': 'M',  # months
    '3': 'D',  # days
}

# Life-course bands (inclusive year ranges). Ages in months/days fall
# into the first band.
AGE_GROUPS = [
    ('Primera infancia', 0, 5),
    ('Infancia', 6, 11),
    ('Adolescencia', 12, 17),
    ('Juventud', 18, 28),
    ('Adultez', 29, 59),
    ('Vejez', 60, None),
]

# ============================================================
# HEURISTIC PARSER THRESHOLDS
# ============================================================
# Used only for files without ARCHIVO-RIPS markers. Approximate by nature;
# overridable through config (fallback_*_min_columns).
FALLBACK_THRESHOLDS = {
    'ct_min_columns': 4,
    'af_min_columns': 17,
    'us_min_columns': 11,
}

# ============================================================
# AUXILIARY SPREADSHEET HEADER ALIASES
# ============================================================
# Candidates are tried in order; first header match wins.
CONTRACT_HEADERS = [
    'NUMERO CONTRATO',
    'NÚMERO CONTRATO',
    'NUMERO DE CONTRATO',
    'NÚMERO DE CONTRATO',
    'NO. CONTRATO',
    'CONTRATO',
]

TAX_ID_HEADERS = [
    'NIT',
    'NI',
    'NIT PRESTADOR',
    'NUMERO IDENTIFICACION',
    'NÚMERO IDENTIFICACIÓN',
]

DEPARTMENT_HEADERS = ['DEPARTAMENTO', 'DPTO', 'DEPTO']
MUNICIPALITY_HEADERS = ['MUNICIPIO', 'MPIO', 'CIUDAD']

REGIMEN_SUBSIDIADO = 'SUBSIDIADO'
REGIMEN_CONTRIBUTIVO = 'CONTRIBUTIVO'

CONTRACT_VALUE_HEADERS = {
    REGIMEN_SUBSIDIADO: [
        'VALOR CONTRATO SUBSIDIADO',
        'VALOR SUBSIDIADO',
        'VALOR CONTRATO',
    ],
    REGIMEN_CONTRIBUTIVO: [
        'VALOR CONTRATO CONTRIBUTIVO',
        'VALOR CONTRIBUTIVO',
        'VALOR CONTRATO',
    ],
}

POPULATION_HEADERS = {
    REGIMEN_SUBSIDIADO: [
        'POBLACION SUBSIDIADO',
        'POBLACIÓN SUBSIDIADO',
        'POBLACION SUBSIDIADA',
        'POBLACION',
        'POBLACIÓN',
    ],
    REGIMEN_CONTRIBUTIVO: [
        'POBLACION CONTRIBUTIVO',
        'POBLACIÓN CONTRIBUTIVO',
        'POBLACION CONTRIBUTIVA',
        'POBLACION',
        'POBLACIÓN',
    ],
}

# Specialty keyword -> population column candidates, per regimen.
SPECIALTY_POPULATION_HEADERS = {
    REGIMEN_SUBSIDIADO: {
        'PEDIATRIA': [
            'POBLACION PEDIATRIA SUBSIDIADO',
            'POBLACION PEDIATRIA',
            'PEDIATRIA',
        ],
        'GINECOLOGIA': [
            'POBLACION GINECOLOGIA SUBSIDIADO',
            'POBLACION GINECOLOGIA',
            'GINECOLOGIA',
        ],
        'MEDICINA INTERNA': [
            'POBLACION MEDICINA INTERNA SUBSIDIADO',
            'POBLACION MEDICINA INTERNA',
            'MEDICINA INTERNA',
        ],
    },
    REGIMEN_CONTRIBUTIVO: {
        'PEDIATRIA': [
            'POBLACION PEDIATRIA CONTRIBUTIVO',
            'POBLACION PEDIATRIA',
            'PEDIATRIA',
        ],
        'GINECOLOGIA': [
            'POBLACION GINECOLOGIA CONTRIBUTIVO',
            'POBLACION GINECOLOGIA',
            'GINECOLOGIA',
        ],
        'MEDICINA INTERNA': [
            'POBLACION MEDICINA INTERNA CONTRIBUTIVO',
            'POBLACION MEDICINA INTERNA',
            'MEDICINA INTERNA',
        ],
    },
}

# Label fragments that identify each specialty in a service-type label.
SPECIALTY_KEYWORDS = {
    'PEDIATRIA': ('PEDIATR',),
    'GINECOLOGIA': ('GINECO', 'OBSTETRI'),
    'MEDICINA INTERNA': ('MEDICINA INTERNA', 'INTERNISTA'),
}

# Services whose denominator is the provider's whole population.
WHOLE_POPULATION_SERVICES = frozenset([
    'MEDICINA GENERAL',
    'ODONTOLOGIA',
    'ENFERMERIA',
    'LABORATORIO',
    'IMAGENES DIAGNOSTICAS',
    'RADIOLOGIA',
    'TRANSPORTE',
    'URGENCIAS',
    'HOSPITALIZACION',
    'NUTRICION',
    'PSICOLOGIA',
])

# ============================================================
# CODE DICTIONARY (CUPS) HEADERS
# ============================================================
CUPS_HEADERS = {
    'tipo_ser': ['TIPO SER', 'TIPO SERVICIO', 'TIPO DE SERVICIO'],
    'cups': ['CUPS', 'CODIGO CUPS', 'CÓDIGO CUPS'],
    'cups_vigente': ['CUPS VIGENTE', 'CUPS ACTUAL'],
    'nombre': ['NOMBRE CUPS', 'DESCRIPCION', 'DESCRIPCIÓN', 'NOMBRE'],
}


def get_segment_description(code):
    """Human-readable name for a segment code ('' when unknown)."""
    return SEGMENT_DESCRIPTIONS.get((code or '').upper(), '')


def get_code_column(segment):
    """Service-code column for an activity segment, or None (substring match)."""
    return ACTIVITY_CODE_COLUMNS.get(segment)
