"""Automated analysis of submitted proof.

Each proof source (primary video, secondary social post) is analyzed
independently on a worker thread, retried with exponential backoff and
bounded by an overall deadline. Whatever an analyzer returns is normalized
into a :class:`Verdict`; a source that fails or times out yields ``None``.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from challengeflow.errors import AnalysisUnavailable
from challengeflow.models.challenge import GOAL_DURATION
from challengeflow.utils.gemini_client import generate_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict:
    is_valid: bool
    confidence: int
    observed_value: Optional[float]
    reason: str
    is_suspicious: bool = False

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "observed_value": self.observed_value,
            "reason": self.reason,
            "is_suspicious": self.is_suspicious,
        }


@dataclass(frozen=True)
class VideoAnalysis:
    is_valid: bool
    confidence: float
    reason: str
    observed_value: Optional[float] = None
    is_suspicious: bool = False


@dataclass(frozen=True)
class SocialPostAnalysis:
    is_valid: bool
    confidence: float
    reason: str
    is_suspicious: bool = False


RawAnalysis = Union[VideoAnalysis, SocialPostAnalysis]


@dataclass(frozen=True)
class AnalysisRequest:
    """Plain snapshot of what the analyzers need; safe to hand to worker threads."""

    challenge_title: str
    category: str
    goal: Optional[float]
    goal_kind: Optional[str]
    result_value: Optional[float]
    primary_url: str
    secondary_url: Optional[str]
    requires_dual_proof: bool


@dataclass(frozen=True)
class AdjudicationOutcome:
    primary: Optional[Verdict]
    secondary: Optional[Verdict]


class Analyzer(Protocol):
    def analyze_video(self, request: AnalysisRequest) -> VideoAnalysis: ...

    def analyze_social_post(self, request: AnalysisRequest) -> SocialPostAnalysis: ...


def _clamp_confidence(value) -> int:
    try:
        c = int(round(float(value)))
    except (TypeError, ValueError):
        c = 0
    return max(0, min(100, c))


def normalize(raw: RawAnalysis) -> Verdict:
    if isinstance(raw, VideoAnalysis):
        observed = raw.observed_value
        return Verdict(
            is_valid=bool(raw.is_valid),
            confidence=_clamp_confidence(raw.confidence),
            observed_value=float(observed) if observed is not None else None,
            reason=(raw.reason or "").strip()[:500],
            is_suspicious=bool(raw.is_suspicious),
        )
    if isinstance(raw, SocialPostAnalysis):
        return Verdict(
            is_valid=bool(raw.is_valid),
            confidence=_clamp_confidence(raw.confidence),
            observed_value=None,
            reason=(raw.reason or "").strip()[:500],
            is_suspicious=bool(raw.is_suspicious),
        )
    raise TypeError(f"Unsupported analysis payload: {type(raw).__name__}")


def snapshot(participation, challenge) -> AnalysisRequest:
    return AnalysisRequest(
        challenge_title=challenge.title or "",
        category=challenge.category,
        goal=float(challenge.goal) if challenge.goal is not None else None,
        goal_kind=challenge.goal_kind,
        result_value=float(participation.result_value) if participation.result_value is not None else None,
        primary_url=participation.primary_proof_url,
        secondary_url=participation.secondary_proof_url,
        requires_dual_proof=challenge.requires_dual_proof,
    )


# -------------------------
# Gemini-backed analyzer
# -------------------------

def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GeminiAnalyzer:
    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", request_timeout: float = 30.0):
        self.api_key = api_key
        self.model = model
        self.request_timeout = request_timeout

    def _ask(self, prompt: str) -> dict:
        res = generate_json(api_key=self.api_key, model=self.model, prompt=prompt, timeout=self.request_timeout)
        if not res.get("ok"):
            raise AnalysisUnavailable(res.get("error") or "analysis_failed", retryable=bool(res.get("retryable")))
        return res["data"]

    def analyze_video(self, request: AnalysisRequest) -> VideoAnalysis:
        if request.goal is not None:
            unit = "seconds" if request.goal_kind == GOAL_DURATION else "repetitions"
            goal_line = f"{request.goal:g} {unit}"
        else:
            goal_line = "not specified"
        prompt = (
            "You verify community challenge submissions. Watch the YouTube video below and decide "
            "whether the participant legitimately completed the challenge.\n\n"
            f"CHALLENGE: {request.challenge_title}\n"
            f"GOAL: {goal_line}\n"
            f"CLAIMED RESULT: {request.result_value if request.result_value is not None else 'n/a'}\n"
            f"VIDEO URL: {request.primary_url}\n\n"
            "Count the repetitions (or measure the duration) you observe. Flag the video as suspicious "
            "if it looks edited, reused or unrelated to the challenge.\n"
            "Answer ONLY with JSON: "
            '{"isValid": true|false, "confidence": 0-100, "observedValue": number|null, '
            '"reason": "short explanation", "isSuspicious": true|false}'
        )
        data = self._ask(prompt)
        return VideoAnalysis(
            is_valid=bool(data.get("isValid")),
            confidence=data.get("confidence") or 0,
            reason=str(data.get("reason") or ""),
            observed_value=_optional_float(data.get("observedValue")),
            is_suspicious=bool(data.get("isSuspicious")),
        )

    def analyze_social_post(self, request: AnalysisRequest) -> SocialPostAnalysis:
        prompt = (
            "You verify acts-of-care challenge submissions. Inspect the Instagram post below and decide "
            "whether it shows the participant performing the act described by the challenge.\n\n"
            f"CHALLENGE: {request.challenge_title}\n"
            f"POST URL: {request.secondary_url}\n\n"
            "Answer ONLY with JSON: "
            '{"isValid": true|false, "confidence": 0-100, "reason": "short explanation", '
            '"isSuspicious": true|false}'
        )
        data = self._ask(prompt)
        return SocialPostAnalysis(
            is_valid=bool(data.get("isValid")),
            confidence=data.get("confidence") or 0,
            reason=str(data.get("reason") or ""),
            is_suspicious=bool(data.get("isSuspicious")),
        )


# -------------------------
# Client
# -------------------------

class AdjudicationClient:
    def __init__(
        self,
        analyzer: Analyzer,
        *,
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        max_workers: int = 8,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.analyzer = analyzer
        self.timeout = float(timeout)
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = float(backoff_seconds)
        self._sleep = sleep
        self.max_workers = max(1, int(max_workers))
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="adjudication")

    def _run_with_retries(self, source: str, call: Callable[[], RawAnalysis], deadline: float) -> Verdict:
        attempt = 0
        while True:
            attempt += 1
            try:
                return normalize(call())
            except AnalysisUnavailable as e:
                retryable = e.retryable
                error = e.message
            except Exception as e:  # noqa: BLE001
                retryable = True
                error = str(e)

            remaining = deadline - time.monotonic()
            if not retryable or attempt >= self.max_attempts or remaining <= 0:
                logger.warning("%s analysis unavailable after %s attempt(s): %s", source, attempt, error)
                raise AnalysisUnavailable(error)

            delay = min(self.backoff_seconds * (2 ** (attempt - 1)), remaining)
            logger.info("%s analysis attempt %s failed (%s); retrying in %.2fs", source, attempt, error, delay)
            self._sleep(delay)

    def adjudicate(self, participation, challenge) -> AdjudicationOutcome:
        request = snapshot(participation, challenge)
        return self.adjudicate_request(request)

    def adjudicate_request(self, request: AnalysisRequest) -> AdjudicationOutcome:
        deadline = time.monotonic() + self.timeout

        futures = {
            "primary": self._executor.submit(
                self._run_with_retries, "primary", lambda: self.analyzer.analyze_video(request), deadline
            )
        }
        if request.requires_dual_proof and request.secondary_url:
            futures["secondary"] = self._executor.submit(
                self._run_with_retries, "secondary", lambda: self.analyzer.analyze_social_post(request), deadline
            )

        wait(list(futures.values()), timeout=self.timeout)

        verdicts: dict[str, Optional[Verdict]] = {}
        for source, fut in futures.items():
            if not fut.done():
                fut.cancel()
                logger.warning("%s analysis timed out after %.1fs", source, self.timeout)
                verdicts[source] = None
                continue
            try:
                verdicts[source] = fut.result()
            except AnalysisUnavailable:
                verdicts[source] = None

        return AdjudicationOutcome(primary=verdicts.get("primary"), secondary=verdicts.get("secondary"))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_client(config) -> AdjudicationClient:
    analyzer = GeminiAnalyzer(
        api_key=config.get("GEMINI_API_KEY", ""),
        model=config.get("GEMINI_MODEL", "gemini-1.5-flash"),
        request_timeout=min(30.0, float(config.get("ADJUDICATION_TIMEOUT_SECONDS", 60.0))),
    )
    return AdjudicationClient(
        analyzer,
        timeout=config.get("ADJUDICATION_TIMEOUT_SECONDS", 60.0),
        max_attempts=config.get("ADJUDICATION_MAX_ATTEMPTS", 3),
        backoff_seconds=config.get("ADJUDICATION_BACKOFF_SECONDS", 1.0),
        max_workers=config.get("ADJUDICATION_MAX_WORKERS", 16),
    )
