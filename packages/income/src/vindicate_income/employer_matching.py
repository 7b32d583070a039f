"""Employer name matching.

Groups normalized incomes that describe the same employer, across document
types and name variants. Matching is done in two passes:

1. Exact match on EIN (digits only). These groups are authoritative.
2. Fuzzy match on normalized employer name for everything without an EIN.

Bank statements are the main source of name variants: they truncate and
abbreviate ("SPRNGFLD NUCLEAR" for "Springfield Nuclear Power Plant"), so
the similarity score treats a leading abbreviation like a containment.
"""

import re
from typing import Iterable, Optional

import structlog

from .config import DEFAULT_NAME_PRIORITY, MatchingConfig
from .models import DocumentType, NormalizedIncome
from .normalization import normalize_employer_name

logger = structlog.get_logger()

EmployerGroups = dict[str, list[NormalizedIncome]]
EmployerYearGroups = dict[str, dict[int, list[NormalizedIncome]]]

_NON_DIGIT_RE = re.compile(r"\D")


# =============================================================================
# SIMILARITY
# =============================================================================


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character edits turning ``a`` into ``b``."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def _is_abbreviation(short: str, long: str) -> bool:
    """True if ``short`` keeps ``long``'s first letter, drops only letters,
    and keeps at least half of them."""
    if not short or not long or short[0] != long[0]:
        return False
    if len(short) > len(long) or len(short) * 2 < len(long):
        return False
    remaining = iter(long)
    return all(char in remaining for char in short)


def _is_truncation(shorter: str, longer: str) -> bool:
    """Whether ``shorter`` is a truncated form of ``longer``.

    Covers plain substrings and word-wise abbreviation of the leading words,
    e.g. "SPRNGFLD NUCLEAR" for "SPRINGFIELD NUCLEAR POWER PLANT". At least
    one of those words must match exactly, so "JOHN SMITH" is not read as
    "JOHNSON SMITHFIELD FOODS".
    """
    if shorter in longer:
        return True
    short_words = shorter.split(" ")
    long_words = longer.split(" ")
    if len(short_words) < 2 or len(short_words) > len(long_words):
        return False
    pairs = list(zip(short_words, long_words))
    if not any(s == l for s, l in pairs):
        return False
    return all(_is_abbreviation(s, l) for s, l in pairs)


def employer_similarity(
    name1: str,
    name2: str,
    config: Optional[MatchingConfig] = None,
) -> float:
    """Similarity between two employer names, 0.0 to 1.0.

    Symmetric. Names are normalized first, so case, punctuation and
    entity suffixes never count against a match.
    """
    config = config or MatchingConfig()
    norm1 = normalize_employer_name(name1)
    norm2 = normalize_employer_name(name2)

    if norm1 == norm2:
        return 1.0
    if not norm1 or not norm2:
        return 0.0

    shorter, longer = sorted((norm1, norm2), key=lambda name: (len(name), name))
    if _is_truncation(shorter, longer):
        return max(config.containment_floor, len(shorter) / len(longer))

    edit_score = 1 - levenshtein_distance(norm1, norm2) / len(longer)

    words1 = {w for w in norm1.split(" ") if len(w) >= config.min_word_length}
    words2 = {w for w in norm2.split(" ") if len(w) >= config.min_word_length}
    if not words1 or not words2:
        return edit_score

    jaccard = len(words1 & words2) / len(words1 | words2)

    # Word overlap carries multi-word names; edit distance carries single words.
    if len(words1) > 1 or len(words2) > 1:
        weight = config.jaccard_weight
        return max(jaccard * weight + edit_score * (1 - weight), edit_score)
    return max(jaccard, edit_score)


# =============================================================================
# GROUPING
# =============================================================================


def normalize_ein(ein: str) -> str:
    """Digits-only EIN, so '12-3456789' and '123456789' compare equal."""
    return _NON_DIGIT_RE.sub("", ein)


def _split_by_ein(
    incomes: Iterable[NormalizedIncome],
) -> tuple[EmployerGroups, list[NormalizedIncome]]:
    ein_groups: EmployerGroups = {}
    without_ein: list[NormalizedIncome] = []
    for income in incomes:
        ein = normalize_ein(income.employer_ein) if income.employer_ein else ""
        if ein:
            ein_groups.setdefault(ein, []).append(income)
        else:
            without_ein.append(income)
    return ein_groups, without_ein


def _first_match(
    income: NormalizedIncome,
    groups: Iterable[list[NormalizedIncome]],
    config: MatchingConfig,
) -> Optional[list[NormalizedIncome]]:
    for group in groups:
        score = employer_similarity(
            income.employer_normalized, group[0].employer_normalized, config
        )
        if score >= config.similarity_threshold:
            return group
    return None


def group_by_employer(
    incomes: Iterable[NormalizedIncome],
    similarity_threshold: Optional[float] = None,
    config: Optional[MatchingConfig] = None,
) -> EmployerGroups:
    """Partition incomes into groups that describe the same employer.

    Keys are ``ein:<digits>`` for EIN groups and ``name:<normalized name>``
    for name groups, with EIN groups first. An income without an EIN joins
    the first name group, then the first EIN group, whose representative
    name scores at least the threshold; otherwise it starts a new group.
    """
    config = config or MatchingConfig()
    if similarity_threshold is not None:
        config = config.model_copy(update={"similarity_threshold": similarity_threshold})

    ein_groups, without_ein = _split_by_ein(incomes)
    name_groups: list[list[NormalizedIncome]] = []

    for income in without_ein:
        group = _first_match(income, name_groups, config)
        if group is None:
            group = _first_match(income, ein_groups.values(), config)
        if group is None:
            name_groups.append([income])
        else:
            group.append(income)

    result: EmployerGroups = {f"ein:{ein}": group for ein, group in ein_groups.items()}
    for group in name_groups:
        key = f"name:{group[0].employer_normalized}"
        # Only reachable with a threshold above 1.0.
        while key in result:
            key += "+"
        result[key] = group

    logger.debug(
        "employer_groups_built",
        ein_groups=len(ein_groups),
        name_groups=len(name_groups),
    )
    return result


def group_by_employer_and_year(
    incomes: Iterable[NormalizedIncome],
    similarity_threshold: Optional[float] = None,
    config: Optional[MatchingConfig] = None,
) -> EmployerYearGroups:
    """Group incomes by employer, then by income year within each employer."""
    result: EmployerYearGroups = {}
    for key, group in group_by_employer(incomes, similarity_threshold, config).items():
        years: dict[int, list[NormalizedIncome]] = {}
        for income in group:
            years.setdefault(income.income_year, []).append(income)
        result[key] = years
    return result


# =============================================================================
# GROUP HELPERS
# =============================================================================


def get_best_employer_name(
    incomes: list[NormalizedIncome],
    priority: Iterable[DocumentType] = DEFAULT_NAME_PRIORITY,
) -> str:
    """Employer name as printed on the most trustworthy document in the group.

    Pay stubs and W-2s print the full legal name; bank statements truncate.
    """
    for document_type in priority:
        for income in incomes:
            if income.document_type == document_type:
                return income.employer_original
    return incomes[0].employer_original


def get_employer_ein(incomes: list[NormalizedIncome]) -> Optional[str]:
    """First EIN found in the group, if any."""
    for income in incomes:
        if income.employer_ein:
            return income.employer_ein
    return None
