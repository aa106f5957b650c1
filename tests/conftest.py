"""Shared test fixtures for smart-ast."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from smart_ast.config import AnalyzerConfig, deep_merge, load_config
from smart_ast.entities.analysis import FileRef, SourceFile

USERS_ROUTE = """\
const express = require('express');
const router = express.Router();
const User = require('../models/user');

router.get('/users', async (req, res) => {
  const users = await User.find();
  res.json(users);
});

router.post('/users', async (req, res) => {
  const filter = eval(req.body.filter);
  res.json(await User.create(req.body));
});

module.exports = router;
"""

APP_COMPONENT = """\
import React, { useState, useEffect } from 'react';

export default function App() {
  const [users, setUsers] = useState([]);
  useEffect(() => {
    fetch('/api/users').then((r) => r.json()).then(setUsers);
  }, []);
  return <ul>{users.map((u) => <li key={u.id}>{u.name}</li>)}</ul>;
}
"""

JWT_AUTH = """\
const jwt = require('jsonwebtoken');
const bcrypt = require('bcrypt');

function sign(user) {
  return jwt.sign({ id: user.id, role: 'admin' }, process.env.JWT_SECRET);
}

module.exports = { sign };
"""

USER_MODEL = """\
const mongoose = require('mongoose');

const schema = new mongoose.Schema({ name: String, email: String });

module.exports = mongoose.model('User', schema);
"""

CHAT_SOCKET = """\
const io = require('socket.io')(3001);

io.on('connection', (socket) => {
  socket.on('message', (msg) => io.emit('message', msg));
});
"""


class FakeClock:
    """Manually advanced clock for breaker, cache and timing tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleeps() -> tuple[list[float], Callable[[float], Any]]:
    """A list of requested delays and an awaitable sleep that records into it."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return delays, sleep


SAMPLE_FILES: dict[str, str] = {
    "package.json": json.dumps({
        "name": "sample-app",
        "dependencies": {"express": "^4.18.0", "react": "^18.2.0", "moment": "^2.29.0"},
        "devDependencies": {"jest": "^29.0.0"},
    }),
    "routes/users.js": USERS_ROUTE,
    "components/App.jsx": APP_COMPONENT,
    "auth/jwt.js": JWT_AUTH,
    "models/user.js": USER_MODEL,
    "socket/chat.js": CHAT_SOCKET,
    "README.md": "# sample\n",
}


@pytest.fixture
def sample_sources() -> dict[str, str]:
    """Relative path -> content of every file in the sample project."""
    return dict(SAMPLE_FILES)


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """A small Express + React project with one file per analysis category."""
    root = tmp_path / "app"
    for relative, content in SAMPLE_FILES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AnalyzerConfig]:
    """Build a config whose cache and output live under tmp_path."""

    def factory(path: Path | str, **overrides: Any) -> AnalyzerConfig:
        base: dict[str, Any] = {
            "path": str(path),
            "cache": {"directory": str(tmp_path / "cache")},
            "output": {"directory": str(tmp_path / "out")},
            "retry": {"base_delay": 0.0, "jitter": False},
        }
        return load_config(None, **deep_merge(base, overrides))

    return factory


def build_source(relative_path: str, content: str, root: Path = Path("/project")) -> SourceFile:
    ref = FileRef(
        path=str(root / relative_path),
        relative_path=relative_path,
        content_hash=f"hash-{relative_path}",
        size=len(content.encode("utf-8")),
    )
    return SourceFile(
        ref=ref,
        content=content,
        lines=content.count("\n") + 1,
        extension=Path(relative_path).suffix.lower(),
    )


@pytest.fixture
def make_source() -> Callable[..., SourceFile]:
    """In-memory SourceFile factory for analyzer tests."""
    return build_source
