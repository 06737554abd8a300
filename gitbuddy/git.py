"""Async wrapper around the git command line."""

import asyncio
from dataclasses import dataclass
from pathlib import Path

from gitbuddy.exceptions import GitError
from gitbuddy.logging import get_logger

log = get_logger(__name__)


@dataclass
class LogOptions:
    """Filters for ``git log``."""

    author: str = ""
    since: str = ""
    until: str = ""
    format: str = ""
    count: int = 0


class GitExecutor:
    """Run git commands in a working directory."""

    def __init__(self, work_dir: Path | str = ".", timeout: float = 30.0):
        self.work_dir = Path(work_dir).expanduser()
        self.timeout = timeout

    async def run(self, *args: str) -> str:
        """Run ``git <args>`` and return stripped stdout.

        Raises:
            GitError on non-zero exit or timeout
        """
        log.debug("Running git", args=list(args), cwd=str(self.work_dir))
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(self.work_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise GitError(list(args), -1, f"timed out after {self.timeout:g}s") from None
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            raise GitError(list(args), process.returncode or -1, stderr.decode("utf-8", errors="replace"))
        return stdout.decode("utf-8", errors="replace").strip()

    async def status(self) -> str:
        return await self.run("status")

    async def diff_cached(self) -> str:
        return await self.run("diff", "--cached")

    async def show(self, ref: str = "HEAD") -> str:
        return await self.run("show", ref or "HEAD", "--stat")

    async def log(self, options: LogOptions | None = None) -> str:
        options = options or LogOptions()
        args = ["log"]
        if options.count > 0:
            args += ["-n", str(options.count)]
        if options.author:
            args.append(f"--author={options.author}")
        if options.since:
            args.append(f"--since={options.since}")
        if options.until:
            args.append(f"--until={options.until}")
        if options.format:
            args.append(f"--format={options.format}")
        try:
            return await self.run(*args)
        except GitError as e:
            # Fresh repositories have no history yet.
            if "does not have any commits" in e.stderr:
                return ""
            raise

    async def current_user(self) -> str:
        return await self.run("config", "user.name")

    async def current_branch(self) -> str:
        return await self.run("rev-parse", "--abbrev-ref", "HEAD")

    async def log_range(self, base: str, head: str = "HEAD") -> str:
        """Commits reachable from ``head`` but not from ``base``, one line each."""
        return await self.run("log", "--oneline", f"{base}..{head or 'HEAD'}")

    async def diff_branches(self, base: str, head: str = "HEAD") -> str:
        return await self.run("diff", f"{base}..{head or 'HEAD'}")

    async def commit(self, message: str) -> str:
        """Create a commit from the staged changes.

        Raises:
            GitError when git refuses, e.g. nothing staged or a hook failed
        """
        log.info("Creating commit", cwd=str(self.work_dir))
        return await self.run("commit", "-m", message)
