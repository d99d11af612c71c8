"""
Rescan Backend — Google Gemini Vision Service
==============================================

What:  VisionService that asks a Gemini vision model to read the recycling
       symbol in a photo and reply with a JSON material description.
How:   Uploads the image, sends it with a fixed classification prompt, and
       parses the reply with analysis_parser. Calls are wrapped in tenacity
       retries (exponential backoff + jitter) and a circuit breaker.
Who:   Constructed by the app factory when a GEMINI_API_KEY is configured;
       called by ScanService before the ledger transaction.

Error Handling Chain:
    API call fails → tenacity retries (retry_max_attempts, with backoff)
    → all retries fail → circuit breaker records a failure → VisionServiceError
    → threshold reached → further calls rejected instantly (CircuitBreakerOpenError)
    → recovery timeout → one trial call (HALF_OPEN) → success closes the circuit
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

import google.generativeai as genai
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from rescan.config import Settings
from rescan.exceptions import (
    CircuitBreakerOpenError,
    UnrecognizedMaterialError,
    VisionServiceError,
)
from rescan.schemas.scan import MaterialResult
from rescan.services.analysis_parser import parse_analysis
from rescan.services.vision_base import VisionService

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Circuit breaker guarding the vision provider.

    State Machine:
        CLOSED (normal operation)
            → on failure: increment failure_count
            → failure_count >= threshold: OPEN
        OPEN (rejecting all requests)
            → can_execute() raises CircuitBreakerOpenError
            → after recovery_timeout seconds: HALF_OPEN
        HALF_OPEN (testing recovery)
            → success: CLOSED (failure_count reset)
            → failure: OPEN (timer restarted)

    Not shared across processes; each uvicorn worker keeps its own state.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError: OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(int(self.recovery_timeout - elapsed), 1)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


class GeminiVisionService(VisionService):
    """
    Google Gemini implementation of VisionService.

    One instance per application: it owns the circuit breaker, whose state
    must outlive individual requests.
    """

    name = "gemini"

    ANALYSIS_PROMPT = """You are an expert recycling symbol recognition system used in a classroom.
Analyze this photo and identify the recycling symbol and material.

1. Look for recycling triangles with numbers (Resin Identification Codes 1-7)
2. Identify the material type: plastic, cardboard, paper, glass, metal or aluminum
3. Decide whether the item is accepted by typical curbside recycling
4. Rate how clearly you can see the symbol

Reply with ONLY a JSON object, no commentary:
{
  "material_type": "plastic|cardboard|paper|glass|metal|aluminum|unknown",
  "ric_code": 1-7 for plastics or null,
  "confidence": number between 0 and 100,
  "recyclable": true or false,
  "description": "what you see in one sentence"
}"""

    def __init__(self, app_settings: Settings):
        self.settings = app_settings
        if app_settings.gemini_configured:
            genai.configure(api_key=app_settings.gemini_api_key)

        self.model = genai.GenerativeModel(
            app_settings.gemini_model,
            generation_config={"response_mime_type": "application/json", "temperature": 0.1},
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=app_settings.cb_failure_threshold,
            recovery_timeout=app_settings.cb_recovery_timeout,
        )

        # Built per instance so retry limits follow this instance's settings
        self._call_with_retry = retry(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(app_settings.retry_max_attempts),
            wait=wait_exponential(
                multiplier=app_settings.retry_min_wait,
                max=app_settings.retry_max_wait,
            )
            + wait_random(0, 1 if app_settings.retry_max_wait else 0),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )(self._call_gemini)

        logger.info(
            "GeminiVisionService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            app_settings.gemini_model,
            app_settings.cb_failure_threshold,
            app_settings.cb_recovery_timeout,
        )

    async def analyze_image(self, image_path: str, filename: str) -> MaterialResult:
        """
        Identify the material in an image via Gemini.

        Flow:
            1. Circuit breaker check (may raise CircuitBreakerOpenError)
            2. Upload + generate with retries
            3. Record success/failure in the circuit breaker
            4. Parse the reply into a MaterialResult
        """
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        logger.info(
            "[%s] Starting Gemini analysis for %s (stored as %s)",
            request_id,
            filename,
            Path(image_path).name,
        )

        try:
            reply = await self._call_with_retry(image_path, request_id)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            last_error = e.last_attempt.exception() if e.last_attempt else None
            logger.error(
                "[%s] All Gemini retries exhausted: %s",
                request_id,
                str(last_error) if last_error else "Unknown error",
            )
            raise VisionServiceError(
                message="Material recognition failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": self.settings.retry_max_attempts},
            ) from e

        self.circuit_breaker.record_success()

        try:
            result = parse_analysis(reply)
        except UnrecognizedMaterialError:
            logger.warning("[%s] Gemini reply could not be interpreted", request_id)
            raise

        logger.info(
            "[%s] Gemini identified %s (ric=%s, confidence=%s, recyclable=%s)",
            request_id,
            result.material_type,
            result.ric_code,
            result.confidence,
            result.is_recyclable,
        )
        return result

    async def _call_gemini(self, image_path: str, request_id: str) -> str:
        """One upload + generate round trip. Raises to let tenacity retry."""
        start_time = time.perf_counter()
        try:
            image_file = await asyncio.to_thread(genai.upload_file, path=image_path)
            response = await self.model.generate_content_async(
                [self.ANALYSIS_PROMPT, image_file],
                request_options={"timeout": 60},
            )
            reply = response.text.strip() if response.text else ""
        except Exception as e:
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                (time.perf_counter() - start_time) * 1000,
                str(e),
            )
            raise

        logger.info(
            "[%s] Gemini replied in %.0fms (%d chars)",
            request_id,
            (time.perf_counter() - start_time) * 1000,
            len(reply),
        )
        return reply

    async def health_check(self) -> bool:
        """Lists models (no token cost) to verify the key and connectivity."""
        try:
            models = await asyncio.to_thread(lambda: [m.name for m in genai.list_models()])
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
        target = f"models/{self.settings.gemini_model}"
        if target not in models:
            logger.warning("Configured model %s not found in available models", target)
        return True
