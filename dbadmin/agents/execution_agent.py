"""
Execution agent for query execution and monitoring
"""

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..database.adapters import DatabaseAdapter
from ..database.models import QueryResult


class ExecutionAgent:
    """Run generated queries on an adapter and keep a bounded history"""

    def __init__(self, max_history: int = 100):
        self.execution_history: List[Dict[str, Any]] = []
        self.max_history = max_history
        self._lock = threading.Lock()

    def execute_query(self, sql: str, adapter: DatabaseAdapter, connection_id: str,
                      limit: Optional[int] = None, offset: Optional[int] = None) -> QueryResult:
        """Execute a query; driver exceptions come back as a failed QueryResult"""
        start_time = datetime.now()
        try:
            result = adapter.execute_query(sql, limit, offset)
        except Exception as e:
            result = QueryResult.failed(str(e))

        self._add_to_history({
            'timestamp': start_time,
            'connection_id': connection_id,
            'sql': sql,
            'execution_time': (datetime.now() - start_time).total_seconds(),
            'success': result.success,
            'error': result.error,
            'result_summary': self._create_result_summary(result),
        })
        return result

    def _create_result_summary(self, result: QueryResult) -> str:
        if result.error:
            return "Execution failed"
        if result.columns:
            return f"Retrieved {result.row_count} rows"
        if result.affected_rows is not None:
            return f"Affected {result.affected_rows} rows"
        return "Operation completed"

    def _add_to_history(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self.execution_history.append(record)
            if len(self.execution_history) > self.max_history:
                self.execution_history = self.execution_history[-self.max_history:]

    def get_execution_stats(self) -> Dict[str, Any]:
        """Get execution statistics"""
        with self._lock:
            history = list(self.execution_history)
        total = len(history)
        successful = sum(1 for record in history if record['success'])
        total_time = sum(record['execution_time'] for record in history)
        return {
            'total_executions': total,
            'successful_executions': successful,
            'failed_executions': total - successful,
            'average_execution_time': total_time / total if total else 0,
            'total_execution_time': total_time,
            'success_rate': (successful / total * 100) if total else 0,
        }
