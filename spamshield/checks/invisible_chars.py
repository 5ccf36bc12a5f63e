# spamshield/checks/invisible_chars.py
"""
Обнаружение невидимых и управляющих символов Unicode.
"""
from collections import Counter

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult

INVISIBLE_CHARS = frozenset({
    "\u200b",  # zero width space
    "\u200c",  # zero width non-joiner
    "\u200d",  # zero width joiner
    "\u2060",  # word joiner
    "\ufeff",  # BOM
    "\u00ad",  # soft hyphen
    "\u180e",  # mongolian vowel separator
    "\u2061", "\u2062", "\u2063", "\u2064",
    # bidi overrides и изоляторы
    "\u202a", "\u202b", "\u202c", "\u202d", "\u202e",
    "\u2066", "\u2067", "\u2068", "\u2069",
})


def count_invisible(text: str) -> Counter:
    return Counter(ch for ch in text if ch in INVISIBLE_CHARS)


class InvisibleCharsCheck(BaseCheck):
    name = CheckName.INVISIBLE_CHARS
    config_section = "invisible_chars"

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.invisible_chars
        counts = count_invisible(request.combined_text)
        total = sum(counts.values())

        if total < cfg.min_count:
            return CheckResult.verdict(self.name, 0.0, "No invisible characters")

        score = cfg.base_score + cfg.per_extra_score * (total - cfg.min_count)
        codes = ", ".join(f"U+{ord(ch):04X}x{n}" for ch, n in counts.most_common(5))
        return CheckResult.verdict(
            self.name,
            min(5.0, score),
            f"Invisible characters ({total}): {codes}",
            count=total,
        )
