# spamshield/checks/spacing.py
"""
Анализ аномальных пробелов: разреженные буквы, доля пробелов,
доля коротких слов, нестандартные пробельные символы.
"""
import re
from dataclasses import dataclass, field
from typing import List

from spamshield.checks.base import BaseCheck
from spamshield.checks.invisible_chars import count_invisible
from spamshield.config.models import SpacingConfig, ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.utils.text_utils import strip_urls_and_mentions

LETTER_SPACING_REGEX = re.compile(r"\b[a-zA-Z]\s[a-zA-Z]\s[a-zA-Z]\s[a-zA-Z]")
UNUSUAL_SPACES = frozenset("\u00a0\u2000\u2001\u2002\u2003\u2009\u200a\u202f\u3000")

PATTERN_LETTERS = "Letters artificially separated"
PATTERN_UNUSUAL = "Non-standard spacing characters"

# Шкала уверенности, 0-100
SPACE_RATIO_HIGH = 0.4
SPACE_RATIO_MEDIUM = 0.3
SHORT_WORD_RATIO_HIGH = 0.8
SHORT_WORD_RATIO_MEDIUM = 0.7


@dataclass
class SpacingAnalysis:
    space_ratio: float = 0.0
    short_word_ratio: float = 0.0
    patterns: List[str] = field(default_factory=list)
    is_suspicious: bool = False


def _is_punctuation(word: str) -> bool:
    return all(not ch.isalnum() for ch in word)


def analyze_spacing(message: str, cfg: SpacingConfig) -> SpacingAnalysis | None:
    """
    Возвращает анализ или None, если слов слишком мало для выводов.
    """
    cleaned = strip_urls_and_mentions(message)
    words = [w for w in cleaned.split() if not _is_punctuation(w)]
    if len(words) < cfg.min_words:
        return None

    space_ratio = message.count(" ") / len(message)
    short_word_ratio = sum(1 for w in words if len(w) <= cfg.short_word_length) / len(words)

    patterns = []
    if LETTER_SPACING_REGEX.search(message):
        patterns.append(PATTERN_LETTERS)
    invisible = sum(count_invisible(message).values())
    if invisible:
        patterns.append(f"Invisible characters ({invisible})")
    if any(ch in UNUSUAL_SPACES for ch in message):
        patterns.append(PATTERN_UNUSUAL)

    threshold = cfg.suspicious_ratio_threshold
    suspicious = space_ratio >= threshold or short_word_ratio >= threshold or bool(patterns)
    return SpacingAnalysis(space_ratio, short_word_ratio, patterns, suspicious)


def calculate_confidence(analysis: SpacingAnalysis) -> int:
    """Уверенность 0-100; шаблоны без высоких долей учитываются вполовину."""
    if not analysis.is_suspicious:
        return 0

    confidence = 0
    high_ratios = False

    if analysis.space_ratio >= SPACE_RATIO_HIGH:
        confidence += 40
        high_ratios = True
    elif analysis.space_ratio >= SPACE_RATIO_MEDIUM:
        confidence += 25
        high_ratios = True

    if analysis.short_word_ratio >= SHORT_WORD_RATIO_HIGH:
        confidence += 35
        high_ratios = True
    elif analysis.short_word_ratio >= SHORT_WORD_RATIO_MEDIUM:
        confidence += 20
        high_ratios = True

    pattern_score = 0
    for pattern in analysis.patterns:
        lowered = pattern.lower()
        if "invisible" in lowered:
            pattern_score += 50
        elif "separated" in lowered:
            pattern_score += 40
        else:
            pattern_score += 20

    if not high_ratios and analysis.patterns:
        pattern_score = int(pattern_score * 0.5)

    return min(100, confidence + pattern_score)


class SpacingCheck(BaseCheck):
    name = CheckName.SPACING
    config_section = "spacing"

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.spacing
        analysis = analyze_spacing(request.combined_text, cfg)
        if analysis is None:
            return CheckResult.abstain(self.name, "Message too short for spacing analysis")

        confidence = calculate_confidence(analysis)
        details = f"Space ratio: {analysis.space_ratio:.3f}; Short word ratio: {analysis.short_word_ratio:.3f}"
        if analysis.patterns:
            details += f"; Patterns: {', '.join(analysis.patterns)}"

        if confidence < cfg.min_confidence:
            return CheckResult.verdict(self.name, 0.0, f"Normal spacing ({confidence}%) - {details}", confidence=confidence)

        return CheckResult.verdict(
            self.name,
            confidence / 20.0,
            f"Suspicious spacing ({confidence}%) - {details}",
            confidence=confidence,
        )
