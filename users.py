"""
US (User Registry) Analysis

Parses patient records from the US segment, de-duplicates them by document
number and links activity lines (AC/AP/AT/AN/AH/AU) back to each patient for
per-code and per-patient rankings.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import dictionary
from lookups import normalize_code

logger = logging.getLogger(__name__)


@dataclass
class UserActivity:
    segment: str
    cups: str
    description: str


@dataclass
class UserRecord:
    tipo_doc: str
    num_doc: str
    codigo_habilitacion: str
    tipo_usuario: str
    primer_apellido: str
    segundo_apellido: str
    primer_nombre: str
    segundo_nombre: str
    edad: Optional[int]
    unidad_medida_edad: str
    sexo: str
    departamento: str
    municipio: str
    zona: str
    activities: List[UserActivity] = field(default_factory=list)

    @property
    def nombre_completo(self) -> str:
        parts = [self.primer_nombre, self.segundo_nombre, self.primer_apellido, self.segundo_apellido]
        return ' '.join(p for p in parts if p)

    @property
    def edad_formateada(self) -> str:
        return format_age(self.edad, self.unidad_medida_edad)

    @property
    def grupo_etario(self) -> str:
        return age_group(self.edad, self.unidad_medida_edad)


@dataclass
class ActivityRanking:
    cups: str
    description: str
    count: int


@dataclass
class UserRanking:
    user: UserRecord
    count: int


def format_age(edad: Optional[int], unidad: str) -> str:
    """Age with unit suffix: 34A (years), 5M (months), 12D (days)"""
    if edad is None:
        return ''
    return f"{edad}{dictionary.AGE_UNIT_SUFFIX.get(unidad, '')}"


def age_group(edad: Optional[int], unidad: str) -> str:
    """Life-course band for an age; months and days count as under one year"""
    if edad is None:
        return ''
    years = edad if unidad == '1' else 0
    for name, low, high in dictionary.AGE_GROUPS:
        if years >= low and (high is None or years <= high):
            return name
    return ''


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except (ValueError, AttributeError):
        return None


def parse_user(line: str) -> Optional[UserRecord]:
    """Parse one US line; None for lines with fewer than 14 columns"""
    cols = line.split(',')
    if len(cols) < dictionary.US_MIN_COLUMNS:
        return None
    values = {name: cols[idx].strip() for name, idx in dictionary.US_COLUMNS.items()}
    values['edad'] = _parse_int(values['edad'])
    return UserRecord(**values)


def unique_document_numbers(lines: Sequence[str]) -> List[str]:
    """Distinct patient document numbers of a US segment, first-seen order"""
    seen = {}
    for line in lines:
        cols = line.split(',')
        if len(cols) <= dictionary.USER_DOCUMENT_COLUMN:
            continue
        num_doc = cols[dictionary.USER_DOCUMENT_COLUMN].strip()
        if num_doc:
            seen.setdefault(num_doc, None)
    return list(seen)


def unique_users(lines: Sequence[str]) -> List[UserRecord]:
    """
    Parse and de-duplicate users by document number.

    The last record for a document wins; output keeps first-seen order.
    """
    users: Dict[str, UserRecord] = {}
    skipped = 0
    for line in lines:
        user = parse_user(line)
        if user is None or not user.num_doc:
            skipped += 1
            continue
        users[user.num_doc] = user
    if skipped:
        logger.debug("Skipped %d malformed US lines", skipped)
    return list(users.values())


def link_activities(users: Sequence[UserRecord],
                    segments: Dict[str, List[str]],
                    descriptions: Optional[Dict[str, str]] = None) -> int:
    """
    Attach activity lines to users by document number (in place).

    Args:
        users: Users from unique_users()
        segments: Segment map (union across files)
        descriptions: Code -> description, from the code dictionary

    Returns:
        Number of activity lines linked
    """
    descriptions = descriptions or {}
    by_doc = {u.num_doc: u for u in users}
    linked = 0
    for segment, column in dictionary.ACTIVITY_CODE_COLUMNS.items():
        for line in segments.get(segment, []):
            cols = line.split(',')
            if len(cols) <= max(column, dictionary.ACTIVITY_DOCUMENT_COLUMN):
                continue
            user = by_doc.get(cols[dictionary.ACTIVITY_DOCUMENT_COLUMN].strip())
            if user is None:
                continue
            cups = normalize_code(cols[column]) or ''
            user.activities.append(UserActivity(
                segment=segment,
                cups=cups,
                description=descriptions.get(cups, ''),
            ))
            linked += 1
    return linked


def rank_activities(users: Sequence[UserRecord], limit: Optional[int] = None) -> List[ActivityRanking]:
    """Most frequent service codes across linked activities"""
    counts = Counter()
    names = {}
    for user in users:
        for activity in user.activities:
            if not activity.cups:
                continue
            counts[activity.cups] += 1
            if activity.description:
                names.setdefault(activity.cups, activity.description)
    return [
        ActivityRanking(cups=cups, description=names.get(cups, ''), count=count)
        for cups, count in counts.most_common(limit)
    ]


def rank_users(users: Sequence[UserRecord], limit: Optional[int] = None) -> List[UserRanking]:
    """Users ordered by number of linked activities (ties keep input order)"""
    ranked = sorted(
        (UserRanking(user=u, count=len(u.activities)) for u in users if u.activities),
        key=lambda r: r.count,
        reverse=True,
    )
    return ranked[:limit] if limit is not None else ranked


def filter_users(users: Sequence[UserRecord], text: str) -> List[UserRecord]:
    """Case-insensitive match on full name or document number"""
    if not text:
        return list(users)
    needle = text.lower()
    return [u for u in users if needle in u.nombre_completo.lower() or needle in u.num_doc]
