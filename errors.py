# errors.py
from __future__ import annotations


class EpubToolError(Exception):
    """Base class for every failure the CLI reports and exits 1 on."""


class InputNotFoundError(EpubToolError):
    pass


class PackageDocumentNotFoundError(EpubToolError):
    pass


class DecompositionError(EpubToolError):
    pass


class MissingBodyError(DecompositionError):
    pass


class HeadingStructureError(DecompositionError):
    pass


class ArchiveError(EpubToolError):
    pass


class GenerationError(EpubToolError):
    pass
