import os
import sys
import textwrap

import pytest


@pytest.fixture
def make_tool(tmp_path):
    """Creates an executable Python script standing in for psql, pg_dump or gzip."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(name, body):
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        os.chmod(path, 0o755)
        return str(path)

    return _make


@pytest.fixture
def fake_gzip(make_tool):
    return make_tool(
        "gzip",
        """
        import gzip
        import sys

        sys.stdout.buffer.write(gzip.compress(sys.stdin.buffer.read()))
        """,
    )
