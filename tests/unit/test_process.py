"""
Unit tests for ProcessHandle.
"""
import sys

import pytest

from dbadmin.errors import ExternalToolError
from dbadmin.utils.process import ProcessHandle, extended_path


class TestProcessHandle:

    def test_missing_tool(self):
        handle = ProcessHandle('definitely-not-a-dump-tool', [], tool_paths=[])
        with pytest.raises(ExternalToolError) as exc_info:
            handle.start()
        assert exc_info.value.tool == 'definitely-not-a-dump-tool'
        assert 'not found' in str(exc_info.value)

    def test_exit_code_and_stderr(self):
        script = 'import sys; sys.stderr.write("warning: role missing"); sys.exit(3)'
        result = ProcessHandle(sys.executable, ['-c', script]).start().wait(30)
        assert result.returncode == 3
        assert result.stderr == 'warning: role missing'
        assert result.cancelled is False

    def test_stdout_goes_to_file(self, tmp_path):
        out = tmp_path / 'dump.sql'
        script = 'print("CREATE TABLE t (id int);")'
        result = ProcessHandle(sys.executable, ['-c', script], stdout_path=str(out)).start().wait(30)
        assert result.returncode == 0
        assert out.read_text().strip() == 'CREATE TABLE t (id int);'

    def test_cancel_terminates(self):
        handle = ProcessHandle(sys.executable, ['-c', 'import time; time.sleep(30)']).start()
        assert handle.cancel() is True
        result = handle.wait(30)
        assert result.cancelled is True
        assert handle.cancel() is False

    def test_extended_path_prepends_tool_dirs(self, monkeypatch):
        monkeypatch.setenv('PATH', '/usr/bin')
        assert extended_path(['/opt/pg/bin', '']).split(':') == ['/opt/pg/bin', '/usr/bin']
