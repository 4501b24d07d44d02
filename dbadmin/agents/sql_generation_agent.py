"""
SQL generation agent using LLM
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from .models import NlHistoryEntry, NlPermissions
from ..database.adapters.base import strip_literals_and_comments
from ..database.models import QueryResult
from ..utils.logger import get_logger

logger = get_logger(__name__)

ENGINE_LABELS = {
    'postgresql': 'PostgreSQL',
    'mysql': 'MySQL',
    'mssql': 'Microsoft SQL Server (T-SQL)',
    'sqlite': 'SQLite',
    'mongodb': 'MongoDB',
}

_JSON_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)
_SQL_FENCE = re.compile(r'^```[a-zA-Z]*\s*|\s*```$', re.IGNORECASE)

# (permission flag, reported keyword, pattern); checked in order, the first forbidden match wins
_PERMISSION_RULES = [
    ('can_read', 'SELECT', r'\bSELECT\b'),
    ('can_update', 'INSERT', r'\bINSERT\b'),
    ('can_update', 'UPDATE', r'\bUPDATE\b'),
    ('can_update', 'REPLACE', r'\bREPLACE\s+INTO\b|\A\s*REPLACE\b'),
    ('can_update', 'MERGE', r'\bMERGE\b'),
    ('can_update', 'SELECT INTO', r'\bINTO\b'),
    ('can_update', 'ALTER', r'\bALTER\b'),
    ('can_update', 'CREATE', r'\bCREATE\b'),
    ('can_update', 'RENAME', r'\bRENAME\b'),
    ('can_update', 'GRANT', r'\bGRANT\b'),
    ('can_update', 'REVOKE', r'\bREVOKE\b'),
    ('can_update', 'COPY', r'\bCOPY\b'),
    ('can_update', 'CALL', r'\bCALL\b'),
    ('can_update', 'EXEC', r'\bEXEC(UTE)?\b'),
    ('can_update', 'ATTACH', r'\bATTACH\b'),
    ('can_update', 'DETACH', r'\bDETACH\b'),
    ('can_delete', 'DELETE', r'\bDELETE\b'),
    ('can_delete', 'DROP', r'\bDROP\b'),
    ('can_delete', 'TRUNCATE', r'\bTRUNCATE\b'),
]

# Aggregation stages that write their output to a collection
_MONGO_WRITE_STAGES = ('$out', '$merge')


def engine_label(engine: str) -> str:
    return ENGINE_LABELS.get(engine, engine)


def build_permission_constraints(permissions: NlPermissions) -> str:
    allowed, forbidden = [], []
    groups = [
        (permissions.can_read, 'SELECT'),
        (permissions.can_update, 'INSERT, UPDATE, REPLACE, MERGE, SELECT INTO, ALTER, CREATE, GRANT, $out, $merge'),
        (permissions.can_delete, 'DELETE, DROP, TRUNCATE'),
    ]
    for granted, label in groups:
        (allowed if granted else forbidden).append(label)

    lines = [f"Allowed operations: {', '.join(allowed) if allowed else 'none'}"]
    if forbidden:
        lines.append(f"FORBIDDEN operations (never generate these): {', '.join(forbidden)}")
    return "\n".join(lines)


def quoting_rules(engine: str) -> str:
    if engine == 'postgresql':
        return ("CRITICAL QUOTING RULE: PostgreSQL folds unquoted identifiers to lowercase. "
                "Always wrap every table and column name in double quotes, "
                'e.g. SELECT "firstName" FROM "Users".')
    if engine == 'mysql':
        return "Wrap reserved words and identifiers with special characters in backticks."
    if engine == 'mssql':
        return "Wrap reserved words and identifiers with special characters in square brackets."
    if engine == 'mongodb':
        return ('Instead of SQL, write a JSON command: {"collection": "<name>", "filter": {...}, '
                '"projection": {...}, "sort": {...}} or {"collection": "<name>", "aggregate": [...]}.')
    return "Quote identifiers with double quotes when they contain special characters."


def _row_cap(engine: str) -> str:
    if engine == 'mssql':
        return 'SELECT TOP 100'
    if engine == 'mongodb':
        return '"limit": 100'
    return 'LIMIT 100'


def format_history(history: Optional[List[NlHistoryEntry]]) -> str:
    if not history:
        return ''
    lines = []
    for entry in history:
        if entry.role == 'user':
            lines.append(f"User: {entry.content}")
        else:
            sql_part = f" [SQL: {entry.sql}]" if entry.sql else ''
            lines.append(f"Assistant: {entry.content}{sql_part}")
    return "\nCONVERSATION HISTORY:\n" + "\n".join(lines) + "\n"


def clean_sql_output(text: str) -> str:
    """Strip ``` fences (with any language tag) from a bare-text reply"""
    return _SQL_FENCE.sub('', text.strip()).strip()


def _strip_json_fences(text: str) -> str:
    return _JSON_FENCE.sub('', text.strip()).strip()


def _mongo_command(sql: str) -> Optional[Dict[str, Any]]:
    text = sql.strip()
    if not text.startswith('{'):
        return None
    try:
        command = json.loads(text)
    except ValueError:
        return None
    return command if isinstance(command, dict) else None


def _validate_mongo_permissions(command: Dict[str, Any], permissions: NlPermissions) -> Optional[str]:
    if not permissions.can_read:
        return 'FIND'
    stages = command.get('aggregate')
    if permissions.can_update or not isinstance(stages, list):
        return None
    for stage in stages:
        if isinstance(stage, dict):
            for operator in _MONGO_WRITE_STAGES:
                if operator in stage:
                    return operator
    return None


def validate_sql_permissions(sql: str, permissions: NlPermissions) -> Optional[str]:
    """Return the first forbidden keyword (or aggregation stage) in ``sql``, or None when it is allowed"""
    command = _mongo_command(sql)
    if command is not None:
        return _validate_mongo_permissions(command, permissions)

    normalized = strip_literals_and_comments(sql).upper()
    for flag, keyword, pattern in _PERMISSION_RULES:
        if not getattr(permissions, flag) and re.search(pattern, normalized):
            return keyword
    return None


def count_statements(sql: str) -> int:
    """Number of non-empty ';'-separated statements, ignoring literals and comments"""
    normalized = strip_literals_and_comments(sql)
    return len([part for part in normalized.split(';') if part.strip()])


class SQLGenerationAgent:
    """Build reasoning prompts and parse what the model sends back"""

    def build_generation_prompt(self, engine: str, schema_context: str, question: str,
                                permissions: NlPermissions,
                                history: Optional[List[NlHistoryEntry]] = None) -> str:
        label = engine_label(engine)
        return f"""You are an expert {label} developer. Translate the user's question into a single query.

Rules:
1. Write a query valid for {label} and nothing else.
2. Only use tables and columns that exist in the schema below.
3. Return exactly one statement, without a trailing semicolon.
4. Respect the permission constraints; never produce a forbidden operation.
5. {quoting_rules(engine)}
6. Unless the question asks for a specific number of rows, limit SELECT results to 100 rows ({_row_cap(engine)}).
7. Handle NULL values appropriately and use JOINs that follow the foreign keys.
8. Reply with JSON only: {{"sql": "<query>", "explanation": "<one sentence, in the language of the question>"}}

PERMISSIONS:
{build_permission_constraints(permissions)}

DATABASE ENGINE: {label}

DATABASE SCHEMA:
{schema_context}
{format_history(history)}
USER QUESTION: {question}
"""

    def parse_generation_response(self, text: str) -> Tuple[str, Optional[str]]:
        """Extract (sql, explanation); fall back to treating the reply as bare SQL"""
        try:
            parsed = json.loads(_strip_json_fences(text))
            if isinstance(parsed, dict) and isinstance(parsed.get('sql'), str):
                explanation = parsed.get('explanation')
                return parsed['sql'].strip(), explanation if isinstance(explanation, str) else None
        except ValueError:
            logger.debug("Reasoning reply is not JSON, reading it as bare SQL")
        return clean_sql_output(text), None

    def build_interpret_prompt(self, engine: str, question: str, sql: str,
                               result: QueryResult, sample_rows: int = 10,
                               history: Optional[List[NlHistoryEntry]] = None) -> str:
        return f"""You are a data analyst. A query was run on a {engine_label(engine)} database to answer a question.
{format_history(history)}
USER QUESTION: {question}

QUERY:
{sql}

RESULT:
{self.sample_result(result, sample_rows)}

If the result answers the question, reply with JSON {{"answer": "<short answer in the language of the question>"}}.
If it does not, reply with JSON {{"refinedSql": "<a better single query>"}}.
Reply with JSON only.
"""

    @staticmethod
    def sample_result(result: QueryResult, sample_rows: int = 10) -> str:
        if not result.rows:
            return "No rows returned."
        sample = result.rows[:sample_rows]
        lines = [
            f"Columns: {', '.join(result.columns)}",
            f"Rows ({len(sample)} of {result.row_count}):",
        ]
        for row in sample:
            values = []
            for column in result.columns:
                value = row.get(column)
                values.append(f"{column}={'NULL' if value is None else value}")
            lines.append(', '.join(values))
        return "\n".join(lines)

    def parse_interpret_response(self, text: str) -> Dict[str, Any]:
        """Return {'answer': ...} or {'refined_sql': ...}"""
        try:
            parsed = json.loads(_strip_json_fences(text))
            if isinstance(parsed, dict):
                if isinstance(parsed.get('refinedSql'), str) and parsed['refinedSql'].strip():
                    return {'refined_sql': clean_sql_output(parsed['refinedSql'])}
                if isinstance(parsed.get('answer'), str):
                    return {'answer': parsed['answer']}
        except ValueError:
            logger.debug("Interpretation reply is not JSON, using it as the answer")
        return {'answer': text.strip()}
