# spamshield/checks/stop_words.py
"""
Проверка по базе стоп-слов и стоп-фраз.
"""
from typing import List, Set

from rapidfuzz import fuzz, process

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.stop_word_service import StopWordService
from spamshield.utils.text_utils import tokenize


class StopWordsCheck(BaseCheck):
    """
    Ищет стоп-слова в тексте сообщения и OCR.

    Однословные записи ищутся точным совпадением токенов, фразы по
    вхождению подстроки. Для длинных слов дополнительно применяется
    нечеткое сравнение (rapidfuzz), чтобы ловить "кр1пта" и подобное.
    """

    name = CheckName.STOP_WORDS
    config_section = "stop_words"

    def __init__(self, stop_word_service: StopWordService):
        self.stop_word_service = stop_word_service

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.stop_words
        stop_words = await self.stop_word_service.get_stop_words_set()
        if not stop_words:
            return CheckResult.verdict(self.name, 0.0, "Stop word list is empty")

        matches = self.find_matches(request.combined_text, stop_words, cfg.fuzzy_threshold, cfg.min_fuzzy_length)
        if not matches:
            return CheckResult.verdict(self.name, 0.0, "No stop words found")

        score = min(5.0, len(matches) * cfg.score_per_match)
        preview = ", ".join(matches[:5])
        return CheckResult.verdict(
            self.name,
            score,
            f"Stop words matched ({len(matches)}): {preview}",
            matches=matches,
        )

    @staticmethod
    def find_matches(text: str, stop_words: Set[str], fuzzy_threshold: int, min_fuzzy_length: int) -> List[str]:
        tokens = tokenize(text)
        token_set = set(tokens)
        normalized_text = " ".join(tokens)

        single = [w for w in stop_words if " " not in w]
        phrases = [w for w in stop_words if " " in w]

        matched: List[str] = []
        for word in sorted(single):
            if word in token_set:
                matched.append(word)
        for phrase in sorted(phrases):
            if f" {phrase} " in f" {normalized_text} ":
                matched.append(phrase)

        fuzzy_pool = [w for w in single if len(w) >= min_fuzzy_length and w not in matched]
        if fuzzy_pool:
            for token in sorted(token_set):
                if len(token) < min_fuzzy_length or token in stop_words:
                    continue
                best = process.extractOne(token, fuzzy_pool, scorer=fuzz.ratio, score_cutoff=fuzzy_threshold)
                if best and best[0] not in matched:
                    matched.append(best[0])

        return matched
