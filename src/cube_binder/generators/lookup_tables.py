"""
Lookup table column heuristics and normalisation SQL.

An uploaded lookup table is mapped onto a LookupTableExtractor: which column
joins to the fact table, which hold descriptions and notes (and in which
language), and the optional sort, hierarchy and language columns. The
extractor is then enough to regenerate the normalised reference table

    (<join column>, language, description, notes, sort_order, hierarchy)

with one row per (code, language), whether the upload was wide (one
description column per language) or long (a language column).
"""

import hashlib
import logging
import re

from ..db.duckdb_engine import quote_identifier, quote_literal
from ..shared.exceptions import (
    MissingParameterError,
    NoDescriptionColumnsError,
    NoJoinColumnError,
    UnknownColumnError,
)
from ..shared.i18n import LANGUAGE_NAMES, language_of
from ..shared.models import LanguageColumn, LookupTableExtractor

logger = logging.getLogger(__name__)

# Names publishers are told to give the code column of a lookup table
CONVENTIONAL_JOIN_NAMES = ("ref_code", "refcode", "reference_code")

NORMALISED_COLUMNS = ("language", "description", "notes", "sort_order", "hierarchy")


def reference_table_name(fact_column: str) -> str:
    """
    Deterministic, collision-safe reference table name for a fact column.

    The readable prefix keeps only letters, digits and underscores; the hash
    suffix keeps columns differing only in punctuation apart.
    """
    safe = re.sub(r"[^a-z0-9_]", "", fact_column.lower().replace(" ", "_"))
    digest = hashlib.sha1(fact_column.encode("utf-8")).hexdigest()[:8]
    return f"{safe}_{digest}_lookup"


def find_join_column(
    columns: list[str], fact_column: str, hint: str | None = None
) -> str:
    """
    Pick the lookup column that holds the fact column's codes.

    An explicit hint wins. Otherwise the first of: a case-insensitive exact
    name match, a ``<fact>_code``/``<fact>code``/``<fact> code`` match, or one
    of the conventional reference-code names.

    Raises:
        NoJoinColumnError: The hint is not a column, or nothing matched
    """
    if hint is not None:
        if hint in columns:
            return hint
        raise NoJoinColumnError(
            f"Join column '{hint}' is not in the lookup table",
            fact_table_column=fact_column,
            detail=f"Lookup columns: {', '.join(columns)}",
        )

    by_lower = {col.lower(): col for col in columns}
    target = fact_column.lower()
    candidates = [
        target,
        f"{target}_code",
        f"{target}code",
        f"{target} code",
        *CONVENTIONAL_JOIN_NAMES,
    ]
    for candidate in candidates:
        if candidate in by_lower:
            logger.debug(f"Join column for {fact_column} is {by_lower[candidate]}")
            return by_lower[candidate]

    raise NoJoinColumnError(
        "Could not find a column to join against the fact table",
        fact_table_column=fact_column,
        detail=f"Lookup columns: {', '.join(columns)}",
    )


def detect_column_language(column_name: str, languages: list[str]) -> str | None:
    """
    Language a description/notes column holds, from its name's last word.

    ``description_en``, ``Description Welsh`` and ``Disgrifiad Cymraeg`` are
    recognised; None means the column carries no language marker.
    """
    tokens = [token for token in re.split(r"[^a-z]+", column_name.lower()) if token]
    if not tokens:
        return None
    suffix = tokens[-1]
    for locale in languages:
        lang = language_of(locale)
        names = {names_by_lang.get(lang) for names_by_lang in LANGUAGE_NAMES.values()}
        if suffix == lang or suffix in names:
            return locale.lower()
    return None


def _first_containing(columns: list[str], needle: str, exclude: set[str]) -> str | None:
    for col in columns:
        if col not in exclude and needle in col.lower():
            return col
    return None


def _check_hint(columns: list[str], name: str | None) -> str | None:
    if name is not None and name not in columns:
        raise UnknownColumnError(name, columns)
    return name


def derive_lookup_extractor(
    columns: list[str],
    join_column: str,
    languages: list[str],
    sort_column: str | None = None,
    hierarchy_column: str | None = None,
    description_columns: list[str] | None = None,
    notes_columns: list[str] | None = None,
    language_column: str | None = None,
    is_per_language: bool | None = None,
    fact_column: str | None = None,
) -> LookupTableExtractor:
    """
    Build the extractor for an uploaded lookup table.

    Hints win; anything not hinted is found by column name: the first column
    containing ``sort`` or ``hierarchy``, every column containing
    ``description`` or ``note``, and the first containing ``lang``.
    """
    exclude = {join_column}

    sort_column = _check_hint(columns, sort_column) or _first_containing(columns, "sort", exclude)
    hierarchy_column = _check_hint(columns, hierarchy_column) or _first_containing(
        columns, "hierarchy", exclude
    )

    if is_per_language is False:
        language_column = None
    else:
        language_column = _check_hint(columns, language_column) or _first_containing(
            columns, "lang", exclude
        )
        if is_per_language and language_column is None:
            raise MissingParameterError(
                "language_column", "the lookup table was flagged as per-language"
            )

    taken = exclude | {c for c in (sort_column, hierarchy_column, language_column) if c}

    if description_columns:
        descriptions = [_check_hint(columns, col) for col in description_columns]
    else:
        descriptions = [c for c in columns if c not in taken and "description" in c.lower()]
    if not descriptions:
        raise NoDescriptionColumnsError(
            "No description columns found in the lookup table",
            fact_table_column=fact_column,
            detail=f"Lookup columns: {', '.join(columns)}",
        )

    if notes_columns:
        notes = [_check_hint(columns, col) for col in notes_columns]
    else:
        notes = [
            c
            for c in columns
            if c not in taken and c not in descriptions and "note" in c.lower()
        ]

    return LookupTableExtractor(
        join_column=join_column,
        description_columns=[
            LanguageColumn(name=col, language=detect_column_language(col, languages))
            for col in descriptions
        ],
        notes_columns=[
            LanguageColumn(name=col, language=detect_column_language(col, languages))
            for col in notes
        ],
        sort_column=sort_column,
        hierarchy_column=hierarchy_column,
        language_column=language_column,
    )


def _column_for(columns: list[LanguageColumn], locale: str | None) -> LanguageColumn | None:
    """Column labelled ``locale``, else an unlabelled one, else the first."""
    if not columns:
        return None
    for col in columns:
        if locale is not None and col.language == locale:
            return col
    for col in columns:
        if col.language is None:
            return col
    return columns[0]


def language_case_sql(column: str, languages: list[str]) -> str:
    """CASE expression mapping a lookup language cell to a supported locale."""
    cell = f"LOWER(TRIM(CAST({quote_identifier(column)} AS VARCHAR)))"
    exact = []
    fuzzy = []
    for locale in languages:
        lang = language_of(locale)
        names = sorted(
            names_by_lang[lang] for names_by_lang in LANGUAGE_NAMES.values() if lang in names_by_lang
        )
        accepted = ", ".join(quote_literal(v) for v in [locale.lower(), lang, *names])
        exact.append(f"WHEN {cell} IN ({accepted}) THEN {quote_literal(locale.lower())}")
        for name in names:
            fuzzy.append(f"WHEN {cell} LIKE {quote_literal(f'%{name}%')} THEN {quote_literal(locale.lower())}")
        fuzzy.append(f"WHEN {cell} LIKE {quote_literal(f'{lang}%')} THEN {quote_literal(locale.lower())}")
    return "CASE " + " ".join(exact + fuzzy) + " END"


def _optional(column: str | None, cast: str) -> str:
    if column is None:
        return f"CAST(NULL AS {cast})"
    return f"TRY_CAST({quote_identifier(column)} AS {cast})"


def normalise_lookup_sql(
    source_table: str,
    target_table: str,
    extractor: LookupTableExtractor,
    languages: list[str],
) -> str:
    """SQL that materialises ``target_table`` in the normalised layout."""
    join = quote_identifier(extractor.join_column)
    source = quote_identifier(source_table)
    sort_expr = _optional(extractor.sort_column, "BIGINT")
    hierarchy_expr = _optional(extractor.hierarchy_column, "VARCHAR")

    def select_for(language_expr: str, locale: str | None) -> str:
        description = _column_for(extractor.description_columns, locale)
        notes = _column_for(extractor.notes_columns, locale)
        return (
            f"SELECT CAST({join} AS VARCHAR) AS {join}, "
            f"{language_expr} AS language, "
            f"CAST({quote_identifier(description.name)} AS VARCHAR) AS description, "
            f"{_optional(notes.name if notes else None, 'VARCHAR')} AS notes, "
            f"{sort_expr} AS sort_order, "
            f"{hierarchy_expr} AS hierarchy "
            f"FROM {source}"
        )

    if extractor.is_per_language:
        body = (
            f"SELECT * FROM ({select_for(language_case_sql(extractor.language_column, languages), None)}) "
            f"WHERE language IS NOT NULL"
        )
    else:
        body = " UNION ALL ".join(
            select_for(quote_literal(locale.lower()), locale.lower()) for locale in languages
        )

    return f"CREATE OR REPLACE TABLE {quote_identifier(target_table)} AS {body}"
