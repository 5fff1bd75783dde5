"""Pattern catalog: detection patterns, metadata hints and third-party terms.

The catalog is loaded once from versioned YAML data, validated with pydantic
and compiled lazily. It is immutable after construction and is injected into
the detection engine, so tests can substitute a smaller catalog.

The YAML file is expected at:
    {this_module_dir}/data/{version}/{name}.yaml
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from enum import Enum
from functools import cache
from pathlib import Path

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from waivern_dsar.categories import DataCategory, is_special_category
from waivern_dsar.errors import InvalidPatternError, RulesetNotFoundError
from waivern_dsar.masking import PIIType, redact_sample
from waivern_dsar.rulesets.validators import VALIDATORS, ValidatorName

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_NAME = "dsar_detection"
DEFAULT_CATALOG_VERSION = "1.0.0"
DATA_DIR = Path(__file__).parent / "data"


class PatternKind(Enum):
    """How a pattern matches text."""

    REGEX = "regex"
    KEYWORD = "keyword"


class HintSource(Enum):
    """Which piece of item metadata a hint inspects."""

    FILE_NAME = "file_name"
    MIME_TYPE = "mime_type"
    PROVIDER = "provider"


@cache
def _compile_regex(pattern: str, ignore_case: bool) -> re.Pattern[str]:
    """Compile a regex pattern once per (pattern, flags) pair."""
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


@cache
def _compile_keywords(keywords: tuple[str, ...]) -> re.Pattern[str]:
    """Compile keywords into one case-insensitive alternation.

    Only letters and digits count as word characters, so underscores and
    punctuation act as boundaries.
    """
    # Longest first so multi-word terms win over their prefixes
    ordered = sorted(keywords, key=len, reverse=True)
    alternation = "|".join(re.escape(keyword) for keyword in ordered)
    return re.compile(rf"(?<![^\W_])(?:{alternation})(?![^\W_])", re.IGNORECASE)


def _reject_blank(values: tuple[str, ...]) -> tuple[str, ...]:
    if any(not value.strip() for value in values):
        raise ValueError("Entries must be non-empty strings")
    return values


class DetectionPattern(BaseModel):
    """A single regex or keyword detection pattern.

    Attributes:
        name: Unique pattern name, reported as the detected element type
        kind: Regex or keyword matching
        category: Data category attributed to every match
        special: Whether the category is an Art. 9 special category
        pii_type: Masking rule applied to matched values
        validator: Optional checksum that every match must pass
        pattern: Regular expression (regex patterns only)
        keywords: Terms matched at word boundaries (keyword patterns only)
        ignore_case: Case-insensitive regex matching

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    description: str = ""
    kind: PatternKind
    category: DataCategory
    special: bool
    pii_type: PIIType
    validator: ValidatorName | None = None
    pattern: str | None = None
    keywords: tuple[str, ...] = ()
    ignore_case: bool = False

    @field_validator("keywords")
    @classmethod
    def validate_keywords_not_blank(cls, keywords: tuple[str, ...]) -> tuple[str, ...]:
        """Validate that keywords contain no empty strings."""
        return _reject_blank(keywords)

    @model_validator(mode="after")
    def validate_definition(self) -> DetectionPattern:
        """Ensure the pattern is internally consistent and compiles."""
        if self.special != is_special_category(self.category):
            raise ValueError(
                f"Pattern '{self.name}' has special={self.special} "
                f"but category {self.category.value} disagrees"
            )
        match self.kind:
            case PatternKind.REGEX:
                if not self.pattern or self.keywords:
                    raise ValueError(
                        f"Regex pattern '{self.name}' needs a pattern and no keywords"
                    )
                try:
                    _compile_regex(self.pattern, self.ignore_case)
                except re.error as e:
                    raise ValueError(
                        f"Pattern '{self.name}' does not compile: {e}"
                    ) from e
            case PatternKind.KEYWORD:
                if not self.keywords or self.pattern:
                    raise ValueError(
                        f"Keyword pattern '{self.name}' needs keywords and no pattern"
                    )
        return self

    @property
    def matcher(self) -> re.Pattern[str]:
        """Compiled matcher for this pattern."""
        if self.kind is PatternKind.KEYWORD:
            return _compile_keywords(self.keywords)
        assert self.pattern is not None
        return _compile_regex(self.pattern, self.ignore_case)

    def finditer(self, text: str) -> Iterator[re.Match[str]]:
        """Iterate over raw matches of this pattern in text."""
        return self.matcher.finditer(text)

    def is_valid_match(self, value: str) -> bool:
        """Check a matched value against this pattern's checksum, if any."""
        if self.validator is None:
            return True
        return VALIDATORS[self.validator](value)

    def redact(self, value: str) -> str:
        """Mask a matched value with this pattern's masking rule."""
        return redact_sample(value, self.pii_type)


class MetadataHint(BaseModel):
    """A low-confidence category hint derived from item metadata only."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    source: HintSource
    match: tuple[str, ...] = Field(min_length=1)
    category: DataCategory
    confidence: float = Field(gt=0.0, le=0.6)

    @field_validator("match")
    @classmethod
    def validate_match_not_blank(cls, match: tuple[str, ...]) -> tuple[str, ...]:
        """Validate that match values contain no empty strings."""
        return _reject_blank(match)

    @property
    def special(self) -> bool:
        """Whether this hint points at a special category."""
        return is_special_category(self.category)

    def applies_to(self, value: str | None) -> bool:
        """Check whether a metadata value triggers this hint.

        File names match keywords at word boundaries, MIME types match by
        prefix and providers match exactly. All comparisons ignore case.
        """
        if not value:
            return False
        match self.source:
            case HintSource.FILE_NAME:
                return _compile_keywords(self.match).search(value) is not None
            case HintSource.MIME_TYPE:
                lowered = value.lower()
                return any(lowered.startswith(prefix.lower()) for prefix in self.match)
            case HintSource.PROVIDER:
                return value.upper() in {provider.upper() for provider in self.match}


class PatternCatalogData(BaseModel):
    """Pattern catalog data class for YAML parsing."""

    name: str = Field(min_length=1, description="Canonical name of the catalog")
    version: str = Field(
        pattern=r"^\d+\.\d+\.\d+$", description='Semantic version (e.g., "1.0.0")'
    )
    description: str = Field(min_length=1)
    patterns: list[DetectionPattern] = Field(min_length=1)
    metadata_hints: list[MetadataHint] = Field(default_factory=list)
    third_party_keywords: tuple[str, ...] = ()

    @field_validator("patterns")
    @classmethod
    def validate_unique_pattern_names(
        cls, patterns: list[DetectionPattern]
    ) -> list[DetectionPattern]:
        """Validate that pattern names are unique within the catalog."""
        names = [pattern.name for pattern in patterns]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate pattern names found: {duplicates}")
        return patterns


class PatternCatalog:
    """Immutable collection of detection patterns and metadata hints."""

    def __init__(
        self,
        patterns: Iterable[DetectionPattern],
        metadata_hints: Iterable[MetadataHint] = (),
        third_party_keywords: Iterable[str] = (),
        name: str = "custom",
        version: str = "0.0.0",
    ) -> None:
        """Initialise the catalog.

        Args:
            patterns: Detection patterns, unique by name
            metadata_hints: Metadata-only category hints
            third_party_keywords: Terms indicating third-party personal data
            name: Catalog name, used in logs
            version: Catalog version, used in logs

        Raises:
            InvalidPatternError: If pattern names are not unique

        """
        self._patterns = tuple(patterns)
        self._metadata_hints = tuple(metadata_hints)
        self._third_party_keywords = tuple(_reject_blank(tuple(third_party_keywords)))
        self.name = name
        self.version = version

        names = [pattern.name for pattern in self._patterns]
        if len(names) != len(set(names)):
            raise InvalidPatternError(f"Duplicate pattern names in catalog '{name}'")
        self._by_name = {pattern.name: pattern for pattern in self._patterns}

    @classmethod
    def from_data(cls, data: PatternCatalogData) -> PatternCatalog:
        """Build a catalog from parsed catalog data."""
        return cls(
            patterns=data.patterns,
            metadata_hints=data.metadata_hints,
            third_party_keywords=data.third_party_keywords,
            name=data.name,
            version=data.version,
        )

    @classmethod
    def load(
        cls,
        name: str = DEFAULT_CATALOG_NAME,
        version: str = DEFAULT_CATALOG_VERSION,
        data_dir: Path | None = None,
    ) -> PatternCatalog:
        """Load and validate a catalog from its YAML data file.

        Args:
            name: Catalog name (file stem)
            version: Catalog version (directory name)
            data_dir: Root data directory, defaults to the packaged data

        Returns:
            The validated catalog.

        Raises:
            RulesetNotFoundError: If the data file does not exist
            InvalidPatternError: If the data file is malformed

        """
        yaml_file = (data_dir or DATA_DIR) / version / f"{name}.yaml"
        if not yaml_file.is_file():
            raise RulesetNotFoundError(f"Pattern catalog not found: {yaml_file}")

        try:
            with yaml_file.open("r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f)
            data = PatternCatalogData.model_validate(raw_data)
        except (yaml.YAMLError, ValidationError) as e:
            raise InvalidPatternError(
                f"Invalid pattern catalog {name} v{version}: {e}"
            ) from e

        catalog = cls.from_data(data)
        logger.debug(
            f"Loaded {len(catalog.patterns)} patterns and "
            f"{len(catalog.metadata_hints)} metadata hints from {name} v{version}"
        )
        return catalog

    @property
    def patterns(self) -> tuple[DetectionPattern, ...]:
        """All detection patterns in declaration order."""
        return self._patterns

    @property
    def metadata_hints(self) -> tuple[MetadataHint, ...]:
        """All metadata hints in declaration order."""
        return self._metadata_hints

    @property
    def third_party_keywords(self) -> tuple[str, ...]:
        """Terms indicating personal data about people other than the subject."""
        return self._third_party_keywords

    @property
    def regex_patterns(self) -> tuple[DetectionPattern, ...]:
        """Value-based patterns, used for metadata fields and error sanitising."""
        return tuple(p for p in self._patterns if p.kind is PatternKind.REGEX)

    def get_pattern(self, name: str) -> DetectionPattern:
        """Look up a pattern by name.

        Raises:
            KeyError: If no pattern has that name

        """
        return self._by_name[name]

    def contains_third_party_terms(self, text: str) -> bool:
        """Check whether text mentions any third-party indicator term."""
        if not self._third_party_keywords or not text:
            return False
        return _compile_keywords(self._third_party_keywords).search(text) is not None

    def __len__(self) -> int:
        """Return the number of detection patterns."""
        return len(self._patterns)


@cache
def load_default_catalog() -> PatternCatalog:
    """Load the packaged default catalog once per process."""
    return PatternCatalog.load()
