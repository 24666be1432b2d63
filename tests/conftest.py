import asyncio
import os
import socket
import sys
import tempfile
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
_TMP = Path(tempfile.mkdtemp(prefix="chikamap-test-"))

# chikamap.core.config 가 import 되기 전에 설정
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'app.db'}")
os.environ.setdefault("LOG_DIR", str(_TMP / "logs"))

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from chikamap.db.session import create_tables, make_session_factory  # noqa: E402


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0] if isinstance(address, tuple) else address
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)


@pytest.fixture
def session_factory(tmp_path):
    # 테스트마다 asyncio.run 으로 루프가 바뀌므로 커넥션 풀을 쓰지 않음
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}", poolclass=NullPool
    )
    asyncio.run(create_tables(engine))
    return make_session_factory(engine)
