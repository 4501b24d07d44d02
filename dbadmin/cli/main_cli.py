"""
Main CLI interface for the database admin system
"""

import os
from typing import List, Optional

from ..admin import DatabaseAdminSystem
from ..agents.models import NlHistoryEntry, NlPermissions
from ..database.models import ConnectionConfig, QueryResult

CLI_CONNECTION_ID = 'cli'

DB_TYPE_MAP = {
    '1': 'postgresql',
    '2': 'mysql',
    '3': 'mssql',
    '4': 'sqlite',
    '5': 'mongodb',
}


def config_from_env(engine: str) -> Optional[ConnectionConfig]:
    """Read a connection config for ``engine`` from environment variables"""
    prefix = {
        'postgresql': 'POSTGRES',
        'mysql': 'MYSQL',
        'mssql': 'MSSQL',
        'sqlite': 'SQLITE',
        'mongodb': 'MONGODB',
    }[engine]

    url = os.getenv(f'{prefix}_URL')
    if engine == 'sqlite':
        path = os.getenv('SQLITE_PATH')
        if not path:
            return None
        return ConnectionConfig(engine=engine, file_path=path)
    if url:
        return ConnectionConfig(engine=engine, connection_string=url, database=os.getenv(f'{prefix}_DB'))

    host = os.getenv(f'{prefix}_HOST')
    if not host:
        return None
    return ConnectionConfig(
        engine=engine,
        host=host,
        port=os.getenv(f'{prefix}_PORT'),
        username=os.getenv(f'{prefix}_USER'),
        password=os.getenv(f'{prefix}_PASSWORD'),
        database=os.getenv(f'{prefix}_DB'),
        ssl=os.getenv(f'{prefix}_SSL', '').lower() in ('1', 'true', 'yes'),
    )


def print_result(result: QueryResult, max_rows: int = 20) -> None:
    if result.error:
        print(f"❌ {result.error}")
        return
    if not result.columns:
        affected = result.affected_rows if result.affected_rows is not None else 0
        print(f"✅ {affected} row(s) affected ({result.execution_time:.1f} ms)")
        return

    total = f" of {result.total_rows}" if result.total_rows is not None else ""
    print(f"✅ Found {result.row_count}{total} results ({result.execution_time:.1f} ms):")
    print(" | ".join(result.columns))
    print("-" * 60)
    for row in result.rows[:max_rows]:
        print(" | ".join('NULL' if row.get(c) is None else str(row.get(c)) for c in result.columns))
    if result.row_count > max_rows:
        print(f"... and {result.row_count - max_rows} more rows")


def connect_interactive(system: DatabaseAdminSystem, engine: str) -> Optional[ConnectionConfig]:
    config = config_from_env(engine)
    if config is None:
        print(f"Missing configuration for {engine}. Check your .env file.")
        return None
    print(f"\n🔌 Connecting to {engine}...")
    try:
        system.connect(CLI_CONNECTION_ID, config)
    except Exception as e:
        print(f"❌ Failed to connect to {engine}: {e}")
        return None
    print(f"✅ Connected to {engine} database")
    return config


def main():
    """Interactive admin shell"""
    print("""
    ╔══════════════════════════════════════════════════════════╗
    ║          🗄️  Multi-Engine Database Admin Shell 🗄️          ║
    ╚══════════════════════════════════════════════════════════╝
    """)

    system = DatabaseAdminSystem()

    print("\n📊 Available Database Types:")
    print("1. PostgreSQL")
    print("2. MySQL")
    print("3. SQL Server")
    print("4. SQLite")
    print("5. MongoDB")

    db_choice = input("\nSelect database type (1-5): ").strip()
    selected_db = DB_TYPE_MAP.get(db_choice, 'postgresql')

    config = connect_interactive(system, selected_db)
    if config is None:
        return

    tables = system.list_tables(CLI_CONNECTION_ID)
    print(f"📊 Found {len(tables)} tables")
    for i, name in enumerate(tables[:10], 1):
        print(f"  {i}. {name}")
    if len(tables) > 10:
        print(f"  ... and {len(tables) - 10} more tables")

    print("\n" + "="*60)
    print("💡 Commands:")
    print("  - Type your question in natural language")
    print("  - 'TABLES' - List tables")
    print("  - 'SCHEMA <table>' - Show table schema")
    print("  - 'SQL <query>' - Run a query directly")
    print("  - 'BACKUP' - Back up the current database")
    print("  - 'BACKUPS' - List backups")
    print("  - 'CLEAR' - Clear conversation history")
    print("  - 'EXIT' - Exit the shell")
    print("="*60)

    history: List[NlHistoryEntry] = []
    permissions = NlPermissions(can_read=True)

    try:
        while True:
            try:
                user_input = input("\n💬 Your question: ").strip()

                if not user_input:
                    continue

                command = user_input.upper()
                if command == 'EXIT':
                    print("\n👋 Goodbye!")
                    break

                elif command == 'TABLES':
                    for name in system.list_tables(CLI_CONNECTION_ID):
                        print(f"  - {name}")

                elif command.startswith('SCHEMA'):
                    parts = user_input.split()
                    if len(parts) < 2:
                        print("Usage: SCHEMA <table_name>")
                        continue
                    info = system.get_table_info(CLI_CONNECTION_ID, parts[1])
                    print(f"\n📋 Schema for {info.name}:")
                    print(f"Rows: {info.row_count}")
                    print("\nColumns:")
                    for col in info.columns:
                        flags = ' PK' if col.is_primary_key else ''
                        print(f"  - {col.name}: {col.type} {'NULL' if col.nullable else 'NOT NULL'}{flags}")
                    if info.foreign_keys:
                        print("\nForeign Keys:")
                        for fk in info.foreign_keys:
                            print(f"  - {fk.column} -> {fk.referenced_table}.{fk.referenced_column}")

                elif command.startswith('SQL '):
                    print_result(system.execute_query(CLI_CONNECTION_ID, user_input[4:].strip()))

                elif command == 'BACKUP':
                    result = system.backup(CLI_CONNECTION_ID, selected_db, config)
                    if result.success:
                        print(f"💾 Backup saved: {result.file_path} ({result.size} bytes)")
                    else:
                        print(f"❌ Backup failed: {result.error}")

                elif command == 'BACKUPS':
                    entries = system.list_backups(CLI_CONNECTION_ID)
                    if not entries:
                        print("No backups yet")
                    for entry in entries:
                        print(f"  - {entry.id}  {entry.database}  {entry.size} bytes  {entry.file_path}")

                elif command == 'CLEAR':
                    history.clear()
                    print("🗑️ Conversation history cleared")

                else:
                    response = system.execute_nl_query(CLI_CONNECTION_ID, user_input, permissions, history)
                    print("\n" + "="*60)
                    if response.sql:
                        print(f"SQL: {response.sql}")
                    if response.success:
                        print(response.explanation)
                        print_result(response.result)
                    else:
                        print(f"❌ {response.error}")
                    print("="*60)

                    history.append(NlHistoryEntry(role='user', content=user_input))
                    history.append(NlHistoryEntry(
                        role='assistant',
                        content=response.explanation or response.error or '',
                        sql=response.sql,
                    ))

            except KeyboardInterrupt:
                print("\n\n👋 Session interrupted. Goodbye!")
                break
            except Exception as e:
                print(f"\n❌ Error: {str(e)}")
                print("Please try again or type 'EXIT' to quit")
    finally:
        system.shutdown()


if __name__ == "__main__":
    main()
