"""
Shared pytest fixtures for commit-canvas tests.

Provides image factories and throwaway git repositories.
"""

import shutil
import subprocess
import time
from datetime import datetime, timezone

import pytest
from PIL import Image

from commit_canvas import GitRepo, init_repository

# Wednesday; the calendar then runs Sun 2023-06-04 .. Sat 2024-06-08.
NOW = datetime(2024, 6, 12, 9, 30, tzinfo=timezone.utc)

NAME = "Canvas Painter"
EMAIL = "painter@example.com"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def make_image(tmp_path):
    """Factory writing a 7-row image whose columns are given top to bottom."""

    def _make(columns, mode="L", name="canvas.png"):
        im = Image.new(mode, (len(columns), 7))
        for x, column in enumerate(columns):
            for y, value in enumerate(column):
                im.putpixel((x, y), value)
        path = tmp_path / name
        im.save(path)
        return path

    return _make


@pytest.fixture
def far_timezone(monkeypatch):
    """Run with the local clock far from UTC (UTC+14)."""
    tzset = getattr(time, "tzset", lambda: None)
    monkeypatch.setenv("TZ", "Pacific/Kiritimati")
    tzset()
    yield
    monkeypatch.undo()
    tzset()


@pytest.fixture
def git_repo(tmp_path):
    return GitRepo(init_repository(tmp_path / "canvas"), "HEAD", NAME, EMAIL)


def git(repo_path, *args):
    """Run git in `repo_path` and return its stripped stdout."""
    res = subprocess.run(
        ["git", "-C", str(repo_path), *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=True,
    )
    return res.stdout.strip()


def log(repo_path, ref="HEAD"):
    """(author epoch, parents, subject) for every commit, oldest first."""
    out = git(repo_path, "log", "--reverse", "--format=%at%x09%P%x09%s", ref)
    entries = []
    for line in out.splitlines():
        stamp, parents, subject = line.split("\t")
        entries.append((int(stamp), parents.split(), subject))
    return entries
