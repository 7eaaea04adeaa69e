import asyncio
import logging
from typing import Mapping, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from docsmith.agents.extraction import JSONExtractionError, extract_json
from docsmith.cancellation import CancellationToken
from docsmith.config import ORACLE_TIMEOUT_SECONDS
from docsmith.errors import OracleError, PipelineCancelled
from docsmith.models.steps import StepResult
from docsmith.services.llm import ReasoningOracle
from docsmith.services.templates import TemplateStore, render_template

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class Executor(Protocol):
    async def execute(
        self,
        template_id: str,
        variables: Mapping[str, str],
        schema: type[M],
        *,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> StepResult[M]: ...


def _describe_validation_error(schema: type[BaseModel], error: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in e['loc']) or '<root>'}: {e['msg']}"
        for e in error.errors()
    )
    return f"{schema.__name__} validation failed: {problems}"


class StepExecutor:
    """Runs one pipeline step: render prompt, ask the oracle, extract and validate JSON.

    One oracle call per invocation. No caching and no retries; wrap in
    RetryingExecutor for bounded re-asks.
    """

    def __init__(
        self,
        oracle: ReasoningOracle,
        templates: TemplateStore,
        timeout: float | None = ORACLE_TIMEOUT_SECONDS,
    ):
        self._oracle = oracle
        self._templates = templates
        self.timeout = timeout

    async def execute(
        self,
        template_id: str,
        variables: Mapping[str, str],
        schema: type[M],
        *,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> StepResult[M]:
        template = self._templates.get(template_id)
        prompt = render_template(template_id, template, variables)
        timeout = self.timeout if timeout is None else timeout

        try:
            response = await self._ask(prompt, timeout, cancel)
        except asyncio.TimeoutError:
            logger.warning("Oracle call for %s timed out after %ss", template_id, timeout)
            return StepResult[schema](success=False, error="timeout", prompt=prompt)
        except OracleError as e:
            logger.warning("Oracle call for %s failed: %s", template_id, e)
            return StepResult[schema](success=False, error=str(e), prompt=prompt)
        except PipelineCancelled:
            raise
        except Exception as e:
            logger.exception("Oracle call for %s raised unexpectedly", template_id)
            return StepResult[schema](success=False, error=f"{type(e).__name__}: {e}", prompt=prompt)

        logger.info("Received %s response (%d chars)", template_id, len(response))
        return self.parse(prompt, response, schema)

    async def _ask(self, prompt: str, timeout: float | None, cancel: CancellationToken | None) -> str:
        call = asyncio.ensure_future(self._oracle.send(prompt, timeout))
        if cancel is None:
            return await asyncio.wait_for(call, timeout)

        stop = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {call, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [task for task in (call, stop) if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if call in done:
            return call.result()
        if stop in done:
            raise PipelineCancelled()
        raise asyncio.TimeoutError()

    @staticmethod
    def parse(prompt: str, response: str, schema: type[M]) -> StepResult[M]:
        try:
            extraction = extract_json(response)
        except JSONExtractionError as e:
            return StepResult[schema](success=False, error=str(e), prompt=prompt, response=response)

        if not isinstance(extraction.value, dict):
            error = f"Expected a JSON object, got {type(extraction.value).__name__}"
            return StepResult[schema](success=False, error=error, prompt=prompt, response=response)

        try:
            data = schema.model_validate(extraction.value)
        except ValidationError as e:
            error = _describe_validation_error(schema, e)
            return StepResult[schema](success=False, error=error, prompt=prompt, response=response)

        logger.debug("Parsed %s using the %s strategy", schema.__name__, extraction.strategy)
        return StepResult[schema](success=True, data=data, prompt=prompt, response=response)


class RetryingExecutor:
    """Re-sends the same prompt while the step result is unsuccessful."""

    def __init__(self, executor: Executor, attempts: int = 2):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._executor = executor
        self.attempts = attempts

    async def execute(
        self,
        template_id: str,
        variables: Mapping[str, str],
        schema: type[M],
        *,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> StepResult[M]:
        for attempt in range(1, self.attempts + 1):
            result = await self._executor.execute(
                template_id, variables, schema, timeout=timeout, cancel=cancel
            )
            if result.success or attempt == self.attempts:
                return result
            logger.warning(
                "Step %s failed (attempt %d/%d), retrying: %s",
                template_id, attempt, self.attempts, result.error,
            )
        return result
