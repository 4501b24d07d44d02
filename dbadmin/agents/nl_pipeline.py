"""
Natural-language query pipeline: schema context, SQL generation, execution
and result interpretation, with per-connection cancellation.

Each connection id moves through ``idle -> generating -> (executing | done)``.
Starting a new request on a connection cancels the one already in flight.
``cancel`` drops back to ``idle`` and discards whatever the abandoned
reasoning call or query eventually returns.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict, List, Optional

from .context_agent import ContextAgent
from .execution_agent import ExecutionAgent
from .models import (
    NlGenerateResponse,
    NlHistoryEntry,
    NlInterpretResponse,
    NlPermissions,
    NlQueryResponse,
    NlState,
)
from .sql_generation_agent import SQLGenerationAgent, count_statements, validate_sql_permissions
from ..database.adapters import DatabaseAdapter
from ..database.models import QueryResult
from ..errors import PermissionDeniedError, QueryCancelledError, QueryError
from ..utils.llm_client import ReasoningClient
from ..utils.logger import get_logger

logger = get_logger(__name__)

REQUEST_CANCELLED = 'Request cancelled'
NOT_CONNECTED = 'Not connected to database'
POLL_INTERVAL = 0.1


class _NlRequest:
    """One in-flight NL operation on a connection"""

    def __init__(self):
        self.cancelled = threading.Event()
        self.driver: Optional[DatabaseAdapter] = None


class NlQueryPipeline:
    """Coordinates the context, generation and execution agents per connection"""

    def __init__(self, manager, reasoning_client: Optional[ReasoningClient] = None, settings=None,
                 max_workers: int = 4):
        if settings is None:
            from ..config import load_settings
            settings = load_settings()
        self.settings = settings.llm
        self.manager = manager
        self.reasoning = reasoning_client or ReasoningClient(settings)
        self.context_agent = ContextAgent()
        self.sql_agent = SQLGenerationAgent()
        self.execution_agent = ExecutionAgent()

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='nl-reasoning')
        self._requests: Dict[str, _NlRequest] = {}
        self._states: Dict[str, NlState] = {}
        self._lock = threading.Lock()

    # ---- state bookkeeping ----

    def get_state(self, connection_id: str) -> NlState:
        with self._lock:
            return self._states.get(connection_id, NlState.IDLE)

    def _begin(self, connection_id: str) -> _NlRequest:
        request = _NlRequest()
        with self._lock:
            previous = self._requests.get(connection_id)
            self._requests[connection_id] = request
            self._states[connection_id] = NlState.GENERATING
        if previous is not None:
            logger.info(f"Superseding in-flight NL request on {connection_id}")
            self._abort(previous)
        return request

    def _set_state(self, connection_id: str, request: _NlRequest, state: NlState) -> None:
        with self._lock:
            if self._requests.get(connection_id) is request:
                self._states[connection_id] = state

    def _finish(self, connection_id: str, request: _NlRequest, state: NlState) -> None:
        with self._lock:
            if self._requests.get(connection_id) is request:
                del self._requests[connection_id]
                self._states[connection_id] = state

    def _abort(self, request: _NlRequest) -> None:
        request.cancelled.set()
        if request.driver is not None:
            try:
                request.driver.cancel_query()
            except Exception as e:
                logger.warning(f"Cancelling NL query failed: {e}")

    def cancel(self, connection_id: str) -> bool:
        """Cancel the connection's in-flight NL operation; False when nothing was running"""
        with self._lock:
            request = self._requests.pop(connection_id, None)
            self._states[connection_id] = NlState.IDLE
        if request is None:
            return False
        self._abort(request)
        logger.info(f"Cancelled NL request on {connection_id}")
        return True

    # ---- reasoning service ----

    def _reason(self, request: _NlRequest, prompt: str) -> str:
        """Run the reasoning call off-thread, giving up on cancel or timeout"""
        future = self._executor.submit(self.reasoning.generate, prompt)
        deadline = time.monotonic() + self.settings.request_timeout
        while True:
            if request.cancelled.is_set():
                future.cancel()
                raise QueryCancelledError(REQUEST_CANCELLED)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise QueryError(f"Reasoning service timed out after {self.settings.request_timeout}s")
            done, _ = wait([future], timeout=min(POLL_INTERVAL, remaining))
            if done:
                if request.cancelled.is_set():
                    raise QueryCancelledError(REQUEST_CANCELLED)
                return future.result()

    # ---- operations ----

    def get_schema_context(self, connection_id: str) -> str:
        driver = self.manager.get_driver(connection_id)
        if driver is None:
            raise QueryError(NOT_CONNECTED)
        return self.context_agent.build_schema_context(driver)

    def _generate(self, driver: DatabaseAdapter, request: _NlRequest, prompt: str,
                  permissions: NlPermissions, history: Optional[List[NlHistoryEntry]]):
        try:
            schema_context = self.context_agent.build_schema_context(driver)
        except Exception as e:
            raise QueryError(f"Failed to read schema: {e}") from e

        generation_prompt = self.sql_agent.build_generation_prompt(
            driver.engine.value, schema_context, prompt, permissions, history
        )
        try:
            text = self._reason(request, generation_prompt)
        except (QueryCancelledError, QueryError):
            raise
        except Exception as e:
            raise QueryError(f"Reasoning service error: {e}") from e

        sql, explanation = self.sql_agent.parse_generation_response(text)
        if not sql:
            raise QueryError('Reasoning service returned no SQL')

        forbidden = validate_sql_permissions(sql, permissions)
        if forbidden:
            raise PermissionDeniedError(
                f"Permission denied: {forbidden} queries are not allowed on this connection",
                sql=sql,
            )
        if count_statements(sql) > 1:
            raise QueryError('Only a single statement can be generated per request')
        return sql, explanation

    def generate_sql(self, connection_id: str, prompt: str,
                     permissions: Optional[NlPermissions] = None,
                     history: Optional[List[NlHistoryEntry]] = None) -> NlGenerateResponse:
        """Ask the reasoning service for one statement that the permissions allow"""
        driver = self.manager.get_driver(connection_id)
        if driver is None:
            return NlGenerateResponse(success=False, error=NOT_CONNECTED)

        request = self._begin(connection_id)
        try:
            sql, explanation = self._generate(driver, request, prompt, permissions or NlPermissions(), history)
        except QueryCancelledError:
            return NlGenerateResponse(success=False, error=REQUEST_CANCELLED)
        except PermissionDeniedError as e:
            self._finish(connection_id, request, NlState.IDLE)
            return NlGenerateResponse(success=False, sql=e.sql, error=str(e))
        except QueryError as e:
            self._finish(connection_id, request, NlState.IDLE)
            return NlGenerateResponse(success=False, error=str(e))

        self._finish(connection_id, request, NlState.DONE)
        return NlGenerateResponse(success=True, sql=sql, explanation=explanation)

    def execute_nl_query(self, connection_id: str, prompt: str,
                         permissions: Optional[NlPermissions] = None,
                         history: Optional[List[NlHistoryEntry]] = None) -> NlQueryResponse:
        """Generate a statement and run it with the NL result limit"""
        driver = self.manager.get_driver(connection_id)
        if driver is None:
            return NlQueryResponse(success=False, error=NOT_CONNECTED)

        request = self._begin(connection_id)
        try:
            sql, explanation = self._generate(driver, request, prompt, permissions or NlPermissions(), history)
        except QueryCancelledError:
            return NlQueryResponse(success=False, error=REQUEST_CANCELLED)
        except PermissionDeniedError as e:
            self._finish(connection_id, request, NlState.IDLE)
            return NlQueryResponse(success=False, sql=e.sql, error=str(e))
        except QueryError as e:
            self._finish(connection_id, request, NlState.IDLE)
            return NlQueryResponse(success=False, error=str(e))

        with self._lock:
            if request.cancelled.is_set():
                return NlQueryResponse(success=False, sql=sql, error=REQUEST_CANCELLED)
            request.driver = driver
        self._set_state(connection_id, request, NlState.EXECUTING)

        result = self.execution_agent.execute_query(
            sql, driver, connection_id, limit=self.settings.result_limit, offset=0
        )
        if request.cancelled.is_set():
            return NlQueryResponse(success=False, sql=sql, error=REQUEST_CANCELLED)
        if result.error:
            self._finish(connection_id, request, NlState.IDLE)
            return NlQueryResponse(success=False, sql=sql, result=result, error=result.error)

        self._finish(connection_id, request, NlState.DONE)
        return NlQueryResponse(
            success=True,
            sql=sql,
            explanation=explanation or f"{result.row_count} result(s)",
            result=result,
        )

    def interpret_results(self, connection_id: str, question: str, sql: str,
                          columns: List[str], rows: List[Dict[str, Any]], row_count: int,
                          history: Optional[List[NlHistoryEntry]] = None) -> NlInterpretResponse:
        """Answer the question from a sample of the rows, or suggest a better query"""
        driver = self.manager.get_driver(connection_id)
        if driver is None:
            return NlInterpretResponse(success=False, error=NOT_CONNECTED)

        result = QueryResult(columns=list(columns), rows=list(rows), row_count=row_count)
        interpret_prompt = self.sql_agent.build_interpret_prompt(
            driver.engine.value, question, sql, result, self.settings.sample_rows, history
        )

        request = self._begin(connection_id)
        try:
            text = self._reason(request, interpret_prompt)
        except QueryCancelledError:
            return NlInterpretResponse(success=False, error=REQUEST_CANCELLED)
        except Exception as e:
            self._finish(connection_id, request, NlState.IDLE)
            message = str(e) if isinstance(e, QueryError) else f"Reasoning service error: {e}"
            return NlInterpretResponse(success=False, error=message)

        parsed = self.sql_agent.parse_interpret_response(text)
        self._finish(connection_id, request, NlState.DONE)
        return NlInterpretResponse(success=True, answer=parsed.get('answer'),
                                   refined_sql=parsed.get('refined_sql'))

    def shutdown(self) -> None:
        for connection_id in list(self._requests):
            self.cancel(connection_id)
        self._executor.shutdown(wait=False, cancel_futures=True)
