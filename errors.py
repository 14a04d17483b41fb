"""
Exceptions raised by the GEDCOM, editing and layout services.
"""


class FamilyTreeError(Exception):
    """Base exception for family tree failures."""


class GedcomError(FamilyTreeError):
    """Raised when GEDCOM input cannot be used."""


class EmptyGedcomError(GedcomError):
    """Raised when the GEDCOM text is blank."""


class NoIndividualsError(GedcomError):
    """Raised when the text holds no INDI record."""


class GedcomFileError(GedcomError):
    """Raised when an uploaded file has the wrong type or size."""

    def __init__(self, message: str, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


class EditValidationError(FamilyTreeError, ValueError):
    """Raised when a builder edit is rejected. Nothing is modified."""


class LayoutError(FamilyTreeError):
    """Raised when a simulation run or draw pass fails."""


class TreeNotFoundError(FamilyTreeError):
    """Raised when a stored tree does not exist."""


class PersonNotFoundError(EditValidationError):
    """Raised when an edit targets a person id that is not in the tree."""
