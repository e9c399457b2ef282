"""Exception taxonomy for the extraction pipeline."""


class MonitraError(Exception):
    """Base class for all pipeline errors."""
    pass


class ExtractionError(MonitraError):
    """Raised to the caller when a URL could not be turned into a product record."""
    pass


class FetchError(ExtractionError):
    """Raised when the page could not be fetched (network, timeout, blocked body)."""
    pass


class AIExtractionError(ExtractionError):
    """Raised when the full-page AI extraction tier fails."""
    pass


class InvalidExtractionResult(ExtractionError):
    """Raised when every tier ran but no record with a name and a valid price came out."""
    pass


class SelectorDetectionError(MonitraError):
    """Raised internally when the language model could not propose usable locators."""
    pass


class NoValidPriceFound(MonitraError):
    """Internal signal: a locator tier produced no acceptable price."""
    pass


class LLMServiceError(MonitraError):
    """Raised when the language model service fails or answers with unusable content."""
    pass
