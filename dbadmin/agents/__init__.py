"""
Agents behind the natural-language query pipeline
"""

from .context_agent import ContextAgent
from .sql_generation_agent import SQLGenerationAgent
from .execution_agent import ExecutionAgent
from .models import NlPermissions, NlHistoryEntry, NlState
from .nl_pipeline import NlQueryPipeline

__all__ = [
    'ContextAgent',
    'SQLGenerationAgent',
    'ExecutionAgent',
    'NlPermissions',
    'NlHistoryEntry',
    'NlState',
    'NlQueryPipeline'
]
