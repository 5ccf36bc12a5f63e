# spamshield/services/coordinator.py
"""
Координатор проверок: фильтрация, параллельный запуск, вердикт.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from loguru import logger

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.exceptions import PipelineStateError
from spamshield.models import (
    AggregateVerdict,
    CheckName,
    CheckRequest,
    CheckResult,
    Classification,
    DetectionRecord,
)
from spamshield.services.config_service import ThresholdConfigService
from spamshield.services.verdict_calculator import VerdictCalculator
from spamshield.storage.base import DetectionRepository


class PipelineStage(str, Enum):
    INIT = "init"
    FILTERING = "filtering"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    VERDICTED = "verdicted"


_TRANSITIONS = {
    PipelineStage.INIT: {PipelineStage.FILTERING},
    PipelineStage.FILTERING: {PipelineStage.RUNNING},
    PipelineStage.RUNNING: {PipelineStage.AGGREGATING},
    PipelineStage.AGGREGATING: {PipelineStage.VERDICTED},
    PipelineStage.VERDICTED: set(),
}


@dataclass
class EvaluationRun:
    """Состояние одной оценки сообщения."""
    request: CheckRequest
    stage: PipelineStage = PipelineStage.INIT
    results: Dict[CheckName, CheckResult] = field(default_factory=dict)
    timed_out: List[CheckName] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)

    def advance(self, stage: PipelineStage) -> None:
        if stage not in _TRANSITIONS[self.stage]:
            raise PipelineStateError(f"Illegal pipeline transition {self.stage.value} -> {stage.value}")
        self.stage = stage

    def record(self, result: CheckResult) -> None:
        if self.stage not in (PipelineStage.FILTERING, PipelineStage.RUNNING):
            raise PipelineStateError(f"Cannot record {result.check_name.value} in stage {self.stage.value}")
        self.results[result.check_name] = result

    def record_timeout(self, check_name: CheckName) -> None:
        self.record(CheckResult.abstain(check_name, f"{check_name.value} timed out", error="timeout"))
        self.timed_out.append(check_name)

    @property
    def pipeline_score(self) -> float:
        return sum(r.score for r in self.results.values() if not r.abstained)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


class ContentCheckCoordinator:
    """
    Оценка сообщения всеми проверками.

    Архитектура:
    ┌──────────────────────────────────────┐
    │  FILTERING: config чата + фильтры    │
    └──────────────────────────────────────┘
                   ↓
    ┌──────────────────────────────────────┐
    │  RUNNING, пре-фильтр: блок-лист URL, │
    │  совпадение сразу дает auto_ban      │
    └──────────────────────────────────────┘
                   ↓
    ┌──────────────────────────────────────┐
    │  RUNNING, фаза 1: все проверки кроме │
    │  AI, параллельно, с общим дедлайном  │
    └──────────────────────────────────────┘
                   ↓
    ┌──────────────────────────────────────┐
    │  RUNNING, фаза 2: AI veto, флаг      │
    │  спама из результатов фазы 1         │
    └──────────────────────────────────────┘
                   ↓
    ┌──────────────────────────────────────┐
    │  AGGREGATING → VERDICTED → запись    │
    └──────────────────────────────────────┘

    Координатор не взаимодействует с чатом: действия по вердикту
    (удаление, бан, уведомления) выполняет вызывающий код.
    """

    DEFAULT_CHECK_TIMEOUT = 8.0
    DEFAULT_DEADLINE = 12.0

    def __init__(
        self,
        checks: Sequence[BaseCheck],
        config_service: ThresholdConfigService,
        verdict_calculator: Optional[VerdictCalculator] = None,
        detection_repository: Optional[DetectionRepository] = None,
        check_timeout: float = DEFAULT_CHECK_TIMEOUT,
        default_deadline: float = DEFAULT_DEADLINE,
    ):
        self.checks = list(checks)
        self.config_service = config_service
        self.verdict_calculator = verdict_calculator or VerdictCalculator()
        self.detection_repository = detection_repository
        self.check_timeout = check_timeout
        self.default_deadline = default_deadline

    async def evaluate(
        self,
        request: CheckRequest,
        *,
        timeout: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> AggregateVerdict:
        """
        Оценивает сообщение.

        Args:
            request: Запрос на проверку
            timeout: Лимит одной проверки в секундах
            deadline: Общий бюджет времени в секундах

        Returns:
            Итоговый вердикт

        Raises:
            ConfigurationError: Конфигурация чата недоступна или повреждена
        """
        run = EvaluationRun(request=request)
        per_check = timeout if timeout is not None else self.check_timeout
        ends_at = asyncio.get_running_loop().time() + (deadline if deadline is not None else self.default_deadline)

        run.advance(PipelineStage.FILTERING)
        config = await self.config_service.get_config(request.chat_id)
        pre_filter, phase_one, phase_two = self._filter(run, config)

        run.advance(PipelineStage.RUNNING)
        await self._run_phase(run, pre_filter, request, config, per_check, ends_at)
        hard_block = self._find_hard_block(run, pre_filter)
        if hard_block is None:
            await self._run_phase(run, phase_one, request, config, per_check, ends_at)
            if phase_two:
                flagged = request.with_spam_flags(request.has_spam_flags or run.pipeline_score > 0)
                await self._run_phase(run, phase_two, flagged, config, per_check, ends_at)

        run.advance(PipelineStage.AGGREGATING)
        results = [run.results[c.name] for c in self.checks if c.name in run.results]
        if hard_block is not None:
            logger.warning(f"🚫 Жесткая блокировка user {request.user_id} в чате {request.chat_id}: {hard_block.details}")
            classification, vetoed, reason = Classification.AUTO_BAN, False, hard_block.details
        else:
            classification, vetoed, reason = self.verdict_calculator.calculate(results, config)
        verdict = AggregateVerdict(
            results=results,
            classification=classification,
            vetoed=vetoed,
            primary_reason=reason,
            timed_out=list(run.timed_out),
            hard_blocked=hard_block is not None,
            processing_time_ms=run.elapsed_ms,
            user_id=request.user_id,
            chat_id=request.chat_id,
            message_id=request.message_id,
        )
        run.advance(PipelineStage.VERDICTED)

        logger.info(
            f"🛡️ Вердикт {classification.value} (score {verdict.total_score:.2f}, vetoed: {vetoed}) "
            f"для user {request.user_id} в чате {request.chat_id} за {verdict.processing_time_ms:.0f}ms"
        )
        if run.timed_out:
            logger.warning(f"⏱️ Проверки не уложились в бюджет: {', '.join(n.value for n in run.timed_out)}")

        await self._persist(verdict, request)
        return verdict

    def _filter(self, run: EvaluationRun, config: ThresholdConfig):
        pre_filter: List[BaseCheck] = []
        phase_one: List[BaseCheck] = []
        phase_two: List[BaseCheck] = []
        request = run.request
        for check in self.checks:
            if not check.is_enabled(config):
                continue
            if not check.should_execute(request, config):
                reason = "Skipped: trusted author" if request.is_privileged and not check.critical else "Skipped: not eligible"
                run.record(CheckResult.abstain(check.name, reason))
                continue
            if check.pre_filter:
                pre_filter.append(check)
            elif check.runs_after_pipeline:
                phase_two.append(check)
            else:
                phase_one.append(check)
        return pre_filter, phase_one, phase_two

    @staticmethod
    def _find_hard_block(run: EvaluationRun, checks: List[BaseCheck]) -> Optional[CheckResult]:
        for check in checks:
            result = run.results.get(check.name)
            if result is not None and result.score > 0 and result.metadata.get("hard_block"):
                return result
        return None

    async def _run_phase(
        self,
        run: EvaluationRun,
        checks: List[BaseCheck],
        request: CheckRequest,
        config: ThresholdConfig,
        per_check: float,
        ends_at: float,
    ) -> None:
        if not checks:
            return
        remaining = ends_at - asyncio.get_running_loop().time()
        if remaining <= 0:
            for check in checks:
                run.record_timeout(check.name)
            return

        limit = min(per_check, remaining)
        tasks = {
            asyncio.create_task(asyncio.wait_for(check.check(request, config), limit)): check
            for check in checks
        }
        try:
            _, pending = await asyncio.wait(tasks, timeout=remaining)
        finally:
            # Дедлайн или отмена вызова: незавершенные проверки бросаются
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        for task, check in tasks.items():
            if task in pending:
                run.record_timeout(check.name)
                continue
            try:
                run.record(task.result())
            except asyncio.TimeoutError:
                run.record_timeout(check.name)
            except Exception as e:
                logger.exception(f"❌ Проверка {check.name.value} завершилась исключением")
                run.record(CheckResult.abstain(check.name, f"{check.name.value} failed: {type(e).__name__}", error=str(e)))

    async def _persist(self, verdict: AggregateVerdict, request: CheckRequest) -> None:
        if self.detection_repository is None:
            return
        training_eligible = verdict.classification is Classification.AUTO_BAN or (
            verdict.vetoed and verdict.classification is Classification.CLEAN
        )
        record = DetectionRecord.from_verdict(verdict, request, training_eligible)
        try:
            await self.detection_repository.save(record)
        except Exception as e:
            logger.error(f"❌ Не удалось сохранить запись проверки {record.record_id}: {e}")
