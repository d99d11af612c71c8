"""
Rescan Backend — Abstract Vision Service Interface
===================================================

What:  Contract for services that identify the recycling material in a photo.
How:   Concrete providers implement analyze_image() and health_check().
Who:   Called by ScanService before the ledger transaction starts.

Implementations:
    - GeminiVisionService: Google Gemini vision model (retry + circuit breaker)
    - MockVisionService:   deterministic classroom fallback without an API key
"""

from abc import ABC, abstractmethod

from rescan.schemas.scan import MaterialResult


class VisionService(ABC):
    """
    Abstract interface for recycling symbol recognition.

    Contract:
        - analyze_image() returns a MaterialResult or raises; it never
          touches the ledger.
        - Provider-specific errors are wrapped in VisionServiceError,
          CircuitBreakerOpenError or UnrecognizedMaterialError.
    """

    #: Provider name reported by /health
    name: str = "abstract"

    @abstractmethod
    async def analyze_image(self, image_path: str, filename: str) -> MaterialResult:
        """
        Identify the material shown in an image.

        Args:
            image_path: Absolute path of the stored, already-validated image.
            filename:   Original upload filename (for logging and heuristics).

        Raises:
            VisionServiceError: provider failed after all retries.
            CircuitBreakerOpenError: provider disabled after repeated failures.
            UnrecognizedMaterialError: the response could not be interpreted.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe used by GET /health."""
        ...
