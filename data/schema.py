"""Formula-based schema for turning shard tables into design matrices."""

import re
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
import pandas as pd

from utils.exceptions import ConfigurationError, DataError

INTERCEPT = '(Intercept)'
ALL_COLUMNS = '.'

_TERM_PATTERN = re.compile(r'([+-])\s*([^+-]+)')


@dataclass
class FormulaSchema:
    """Parsed ``response ~ terms`` formula.

    Supported right-hand side terms:
    - column names joined with ``+``
    - ``.`` for every column except the response and excluded columns
    - ``- name`` to exclude a column from ``.``
    - ``- 1`` or ``+ 0`` to drop the intercept

    Attributes:
        formula: Original formula string
        response: Response column name
        terms: Ordered feature terms (column names or ``.``)
        excluded: Columns excluded from ``.``
        intercept: Whether an intercept column leads the design matrix
    """
    formula: str
    response: str
    terms: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    intercept: bool = True

    @classmethod
    def parse(cls, formula: str) -> 'FormulaSchema':
        """Parse a formula string.

        Args:
            formula: Formula such as ``"y ~ x1 + x2"`` or ``"y ~ . - 1"``

        Returns:
            FormulaSchema instance

        Raises:
            ConfigurationError: If the formula cannot be parsed
        """
        if not isinstance(formula, str) or formula.count('~') != 1:
            raise ConfigurationError(
                f"Formula must have the form 'response ~ terms': {formula!r}"
            )

        lhs, rhs = (part.strip() for part in formula.split('~'))
        if not lhs or not rhs:
            raise ConfigurationError(f"Formula has an empty side: {formula!r}")
        if any(op in lhs for op in '+-'):
            raise ConfigurationError(f"Formula must have a single response: {formula!r}")

        if rhs[0] not in '+-':
            rhs = '+' + rhs

        # Every character must belong to a signed term
        consumed = ''.join(m.group(0) for m in _TERM_PATTERN.finditer(rhs))
        if consumed.replace(' ', '') != rhs.replace(' ', ''):
            raise ConfigurationError(f"Cannot parse formula terms: {formula!r}")

        schema = cls(formula=formula, response=lhs)
        for sign, raw_term in _TERM_PATTERN.findall(rhs):
            term = raw_term.strip()
            if not term:
                raise ConfigurationError(f"Empty term in formula: {formula!r}")

            if term in ('0', '1'):
                schema.intercept = (sign == '+') == (term == '1')
            elif sign == '-':
                if term == ALL_COLUMNS:
                    raise ConfigurationError(f"Cannot subtract '.' in formula: {formula!r}")
                schema.excluded.append(term)
            elif term == lhs:
                raise ConfigurationError(
                    f"Response '{lhs}' cannot also be a feature: {formula!r}"
                )
            elif term not in schema.terms:
                schema.terms.append(term)

        if not schema.terms and not schema.intercept:
            raise ConfigurationError(f"Formula selects no features: {formula!r}")

        return schema

    def resolve(self, frame: pd.DataFrame, source: str = '<frame>') -> List[str]:
        """Fix the design matrix columns against a shard's table.

        Args:
            frame: Shard data
            source: Shard identifier used in error messages

        Returns:
            Ordered feature names, intercept first when present

        Raises:
            DataError: If the response or a named term is missing
        """
        columns = [str(c) for c in frame.columns]
        if self.response not in columns:
            raise DataError(f"Shard {source}: response column '{self.response}' not found")

        features = [INTERCEPT] if self.intercept else []
        for term in self.terms:
            if term == ALL_COLUMNS:
                features.extend(
                    c for c in columns
                    if c != self.response and c not in self.excluded
                    and c not in self.terms and c not in features
                )
            elif term not in columns:
                raise DataError(f"Shard {source}: feature column '{term}' not found")
            elif term not in features:
                features.append(term)

        if not features:
            raise DataError(f"Shard {source}: formula {self.formula!r} selects no features")

        return features

    def design_matrix(
        self,
        frame: pd.DataFrame,
        features: List[str],
        source: str = '<frame>'
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Build the float64 design matrix and response vector.

        Args:
            frame: Shard data
            features: Feature names from :meth:`resolve`
            source: Shard identifier used in error messages

        Returns:
            Tuple of (X, y) with shapes (n, len(features)) and (n,)

        Raises:
            DataError: If columns are missing, non-numeric or incomplete
        """
        if len(frame) == 0:
            raise DataError(f"Shard {source} contains no rows")

        frame = frame.rename(columns=str)
        missing = [
            c for c in [self.response] + features
            if c != INTERCEPT and c not in frame.columns
        ]
        if missing:
            raise DataError(f"Shard {source}: columns not found: {missing}")

        columns = []
        for feature in features:
            if feature == INTERCEPT:
                columns.append(np.ones(len(frame), dtype=np.float64))
            else:
                columns.append(self._numeric(frame[feature], feature, source))

        X = np.column_stack(columns)
        y = self._numeric(frame[self.response], self.response, source)

        return X, y

    @staticmethod
    def _numeric(series: pd.Series, name: str, source: str) -> np.ndarray:
        try:
            values = pd.to_numeric(series, errors='raise').to_numpy(dtype=np.float64)
        except (ValueError, TypeError) as e:
            raise DataError(f"Shard {source}: column '{name}' is not numeric: {e}") from e

        if np.isnan(values).any():
            raise DataError(f"Shard {source}: column '{name}' contains missing values")

        return values
