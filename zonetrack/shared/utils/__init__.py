"""Shared utilities for the zone analytics platform."""
from .variants import (
    FULLY_ADMITTED_STAGE,
    ADMISSION_STAGE,
    MATRICULATION_BASELINE,
    FirstOf,
    VariantReader,
    VariantValue,
    is_admitted,
    read_matriculation_percentage,
    read_subject_baselines,
)

__all__ = [
    "FULLY_ADMITTED_STAGE",
    "ADMISSION_STAGE",
    "MATRICULATION_BASELINE",
    "FirstOf",
    "VariantReader",
    "VariantValue",
    "is_admitted",
    "read_matriculation_percentage",
    "read_subject_baselines",
]
