#!/usr/bin/env python3
"""
GitHub contribution "image painter" via backdated commits.

What it does:
- Reads a grayscale image exactly 7 pixels tall (one row per weekday).
- Lays it over the last 53 full weeks of the contribution calendar,
  repeating it with a one-column gap if it is narrower than the calendar.
- Creates a fresh repository and, for every day, makes as many empty
  commits as the pixel's luma value (0-255), all dated noon UTC.

Safety notes:
- It commits a lot: a white pixel is 255 commits. Use DRY_RUN first.
- The repository path must not exist yet; it is never reused.
- Nothing is pushed anywhere.

Usage:
  DRY_RUN=1 python commit_canvas.py -r out/canvas -i art.png -n "Me" -e me@example.com
  python commit_canvas.py -r out/canvas -i art.png -n "Me" -e me@example.com
  # Draw on a specific branch instead of the checked-out one:
  python commit_canvas.py -r out/canvas -i art.png -n "Me" -e me@example.com -g gh-pages

"""

import argparse
import os
import subprocess
import sys
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

from PIL import Image, UnidentifiedImageError

__version__ = "0.1.0"

ROWS = 7
WEEKS = 53
DAYS = ROWS * WEEKS

# Pillow bands that carry no chrominance.
GRAY_BANDS = frozenset({"1", "L", "I", "F", "A", "a"})

# Noon UTC keeps the date stable in any viewer's timezone.
COMMIT_TIME = time(12, 0, 0, tzinfo=timezone.utc)

# Variables that would override `git -C <repo>` and `git init <path>`.
GIT_LOCATION_VARS = frozenset({
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_COMMON_DIR",
    "GIT_NAMESPACE",
})


class CanvasError(RuntimeError):
    pass


class InvalidInput(CanvasError):
    pass


class InternalError(CanvasError):
    pass


class RepositoryError(CanvasError):
    pass


# ---------- small helpers ----------

def sunday_on_or_before(d: date) -> date:
    # Python weekday: Mon=0..Sun=6. We want the prior or same Sunday.
    return d - timedelta(days=(d.weekday() + 1) % 7)


def utc_date(now) -> date:
    if isinstance(now, datetime):
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()
    return now


def commit_timestamp(d: date) -> datetime:
    return datetime.combine(d, COMMIT_TIME)


def git_date(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d %H:%M:%S %z")


def days_between(dates):
    start, end = dates
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


# ---------- image ----------

def luma_reader(im):
    """8-bit luma accessor for a gray image, keyed by (x, y)."""
    if im.mode == "F":
        # Float gray is read as 0.0 (black) .. 1.0 (white).
        data = im.load()
        return lambda x, y: min(max(round(data[x, y] * 255), 0), 255)
    if im.mode == "I" or im.mode.startswith("I;16"):
        # 16-bit samples keep their top byte.
        data = im.load()
        return lambda x, y: min(max(int(data[x, y]) >> 8, 0), 255)
    data = im.convert("L").load()
    return lambda x, y: data[x, y]


def load_columns(path) -> list:
    """
    Decode `path` into one 7-tuple of luma values per horizontal pixel.
    Columns run left to right; each tuple runs top to bottom.
    """
    try:
        with Image.open(path) as im:
            im.load()
            width, height = im.size
            bands = im.getbands()
            if height != ROWS:
                raise InvalidInput(
                    f"Expected `{path}` to be {ROWS} pixels tall (?x{ROWS}), "
                    f"but it was {width}x{height}"
                )
            if not set(bands) <= GRAY_BANDS:
                raise InvalidInput(
                    f"Expected `{path}` to be grayscale, but it was {im.mode}"
                )
            luma = luma_reader(im)
            return [tuple(luma(x, y) for y in range(ROWS)) for x in range(width)]
    except (OSError, UnidentifiedImageError) as e:
        raise InvalidInput(f"Couldn't open `{path}` as an image: {e}") from e


# ---------- calendar ----------

def calendar_range(now) -> tuple:
    """
    The 53 full weeks before the current one, as an inclusive (start, end).
    `start` is a Sunday (row 0), `end` the Saturday closing the last column.
    """
    today = utc_date(now)
    try:
        end = sunday_on_or_before(today) - timedelta(days=1)
        start = end - timedelta(days=DAYS - 1)
    except OverflowError as e:
        raise InternalError(f"Couldn't align the calendar on {today}: {e}") from e
    return start, end


# ---------- pattern ----------

def tile_pixels(columns):
    """
    Endless stream of daily intensities: every column top to bottom, left to
    right, then one blank column, then around again.
    """
    if not columns:
        raise InvalidInput("Can't tile an image with no columns")
    return _tile(columns)


def _tile(columns):
    width = len(columns)
    x = y = 0
    while True:
        # x == width is the blank separator column.
        yield columns[x][y] if x < width else 0
        y += 1
        if y == ROWS:
            y = 0
            x = (x + 1) % (width + 1)


def count_commits(pixels, dates) -> int:
    return sum(next_pixel(pixels, d) for d in days_between(dates))


def next_pixel(pixels, d: date) -> int:
    try:
        return next(pixels)
    except StopIteration:
        raise InternalError(
            f"Ran out of pixels on {d} (the pattern should repeat endlessly)"
        ) from None


# ---------- git ----------

def init_repository(path) -> Path:
    """
    Create `path` (and any missing parents) and run `git init` in it.
    The repository directory itself must not exist yet.
    """
    repo = Path(os.path.abspath(path))
    try:
        repo.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InvalidInput(f"Couldn't ensure that `{repo.parent}` exists: {e}") from e

    # mkdir without exist_ok instead of checking first: no race between the two.
    try:
        repo.mkdir()
    except OSError as e:
        raise InvalidInput(f"Couldn't create `{repo}`: {e}") from e

    run(["git", "init", "--quiet", str(repo)])
    return repo


def git_environ(extra=None) -> dict:
    """The caller's environment, minus anything that points git at another repository."""
    env = {k: v for k, v in os.environ.items() if k not in GIT_LOCATION_VARS}
    env.update(extra or {})
    return env


def run(cmd, env=None, ok_codes=(0,)):
    try:
        res = subprocess.run(
            cmd, env=git_environ(env), stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
        )
    except OSError as e:
        raise RepositoryError(f"Couldn't run `{' '.join(cmd)}`: {e}") from e
    if res.returncode not in ok_codes:
        raise RepositoryError(
            f"`{' '.join(cmd)}` failed with exit code {res.returncode}: {res.stderr.strip()}"
        )
    return res


def full_reference(reference: str) -> str:
    if reference == "HEAD" or reference.startswith("refs/"):
        return reference
    return f"refs/heads/{reference}"


def check_reference(reference: str) -> str:
    full = full_reference(reference)
    if full != "HEAD":
        res = run(["git", "check-ref-format", full], ok_codes=(0, 1))
        if res.returncode != 0:
            raise InvalidInput(f"Invalid Git reference `{reference}`")
    return full


def check_identity(name: str, email: str) -> None:
    for label, value in (("name", name), ("email", email)):
        if not value.strip() or any(c in value for c in "<>\n"):
            raise InvalidInput(f"Invalid Git contributor {label}: {value!r}")


class GitRepo:
    """The git CLI, pointed at one repository, one reference and one identity."""

    def __init__(self, path, reference, name, email):
        self.path = Path(path)
        self.reference = full_reference(reference)
        self.name = name
        self.email = email

    def git(self, *args, env=None, ok_codes=(0,)):
        return run(["git", "-C", str(self.path), *args], env=env, ok_codes=ok_codes)

    def write_tree(self) -> str:
        return self.git("write-tree").stdout.strip()

    def resolve_tip(self):
        """Commit the reference points at, or None while it is unborn."""
        res = self.git(
            "rev-parse", "--verify", "--quiet", f"{self.reference}^{{commit}}", ok_codes=(0, 1)
        )
        oid = res.stdout.strip()
        return oid if res.returncode == 0 and oid else None

    def commit(self, tree: str, parent, message: str, when: datetime) -> str:
        stamp = git_date(when)
        env = dict(
            GIT_AUTHOR_NAME=self.name,
            GIT_AUTHOR_EMAIL=self.email,
            GIT_AUTHOR_DATE=stamp,
            GIT_COMMITTER_NAME=self.name,
            GIT_COMMITTER_EMAIL=self.email,
            GIT_COMMITTER_DATE=stamp,
        )
        cmd = ["commit-tree", "--no-gpg-sign", tree, "-m", message]
        if parent is not None:
            cmd += ["-p", parent]
        return self.git(*cmd, env=env).stdout.strip()

    def update_reference(self, oid: str, old=None) -> None:
        """Point the reference at `oid`, provided it still points at `old`.

        `old=None` requires the reference not to exist yet.
        """
        self.git("update-ref", "-m", "commit-canvas", self.reference, oid, old or "")


# ---------- main logic ----------

def draw_pixel(git: GitRepo, pixel: int, d: date) -> int:
    when = commit_timestamp(d)
    tree = git.write_tree()
    parent = git.resolve_tip()
    for i in range(pixel):
        oid = git.commit(tree, parent, f"#{i + 1}/{pixel}", when)
        git.update_reference(oid, old=parent)
        parent = oid
    return pixel


def draw_pattern(git: GitRepo, pixels, dates, out=None) -> int:
    """
    Walk `dates` day by day, drawing one pixel from `pixels` per day.
    Prints a progress line per day and returns the number of commits made.
    """
    out = out or sys.stdout
    start, end = dates
    span = (end - start).days + 1
    total = 0
    for d in days_between(dates):
        total += draw_pixel(git, next_pixel(pixels, d), d)
        print(f"{(d - start).days * 100 // span:3}% ({d})", file=out, flush=True)
    return total


def build_parser():
    ap = argparse.ArgumentParser(
        description="Draw a grayscale image on a contribution calendar with backdated commits."
    )
    ap.add_argument("-r", "--repo", required=True,
                    help="Path (to be created) to hold the fake Git repository.")
    ap.add_argument("-i", "--image", required=True,
                    help="Path to the image to draw (grayscale, 7 pixels tall).")
    ap.add_argument("-n", "--name", required=True,
                    help="Name of the Git contributor (e.g. your name).")
    ap.add_argument("-e", "--email", required=True,
                    help="Email of the Git contributor (e.g. your email).")
    ap.add_argument("-g", "--git-reference", default="HEAD",
                    help="Git reference, usually a branch name. Defaults to HEAD.")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def main(argv=None, now=None) -> int:
    args = build_parser().parse_args(argv)
    now = now or datetime.now(timezone.utc)
    dry_run = os.environ.get("DRY_RUN") is not None

    try:
        columns = load_columns(args.image)
        dates = calendar_range(now)
        check_identity(args.name, args.email)

        if dry_run:
            total = count_commits(tile_pixels(columns), dates)
            print(f"[DRY-RUN] {dates[0]} .. {dates[1]}: {total} commits")
            return 0

        check_reference(args.git_reference)
        git = GitRepo(init_repository(args.repo), args.git_reference, args.name, args.email)
        total = draw_pattern(git, tile_pixels(columns), dates)
    except CanvasError as e:
        sys.stderr.write(f"error: {e}\n")
        return 1

    print(f"{total} commits on {git.reference} in {git.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
