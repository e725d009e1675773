"""Export of a git commit into a throwaway build context."""

import os
import shutil
import subprocess
import tarfile
import tempfile
from pathlib import Path
from typing import Optional

from hldeploy.errors import CommandError, InputValidationError
from hldeploy.services.validation import SHORT_SHA_LENGTH, validate_commit_ref


class GitExportService:
    """Streams ``git archive`` of one commit into a fresh temp directory."""

    def __init__(self, logger, console, subprocess_module=subprocess, temp_root: Optional[str] = None):
        self.logger = logger
        self.console = console
        self.subprocess = subprocess_module
        self.temp_root = temp_root

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def check_member(self, base: Path, member: tarfile.TarInfo):
        target_path = (base / member.name).resolve()
        if not self.is_within_dir(base, target_path):
            raise InputValidationError(
                f"Unsafe archive entry detected: `{member.name}`. "
                "Export aborted to prevent path traversal."
            )

        if member.issym() or member.islnk():
            link_base = target_path.parent if member.issym() else base
            link_target = (link_base / member.linkname).resolve()
            if not self.is_within_dir(base, link_target):
                raise InputValidationError(
                    f"Unsafe archive entry detected: `{member.name}` links outside the export."
                )

    def export_commit(self, git_dir: str, sha: str) -> str:
        sha = validate_commit_ref(sha)
        if not os.path.exists(git_dir):
            raise InputValidationError(f"Git repository not found at: {git_dir}")

        workdir = tempfile.mkdtemp(prefix=f"hl-{sha[:SHORT_SHA_LENGTH]}-", dir=self.temp_root)
        base = Path(workdir).resolve()
        cmd = ["git", "--git-dir", git_dir, "archive", "--format=tar", sha]
        self.logger.debug("Exporting %s from %s to %s", sha, git_dir, workdir)

        try:
            process = self.subprocess.Popen(cmd, stdout=self.subprocess.PIPE, stderr=self.subprocess.PIPE)
        except OSError as exc:
            self.cleanup(workdir)
            raise CommandError(f"Failed to start git archive: {exc}", cmd=cmd) from exc

        extract_kwargs = {"filter": "tar"} if hasattr(tarfile, "data_filter") else {}
        try:
            with tarfile.open(fileobj=process.stdout, mode="r|") as archive:
                for member in archive:
                    self.check_member(base, member)
                    archive.extract(member, path=str(base), **extract_kwargs)
            # drain trailing tar padding so git can exit
            process.stdout.read()
        except tarfile.TarError as exc:
            self._abort_export(process, workdir)
            stderr = process.stderr.read().decode("utf-8", errors="replace").strip() if process.stderr else ""
            raise CommandError(
                f"git archive failed for {sha} in {git_dir}.\n{stderr or exc}",
                cmd=cmd,
                output=stderr,
            ) from exc
        except BaseException:
            self._abort_export(process, workdir)
            raise

        stderr = process.stderr.read().decode("utf-8", errors="replace").strip() if process.stderr else ""
        returncode = process.wait()
        if returncode != 0:
            self.cleanup(workdir)
            raise CommandError(
                f"git archive failed ({returncode}) for {sha} in {git_dir}.\n{stderr}",
                cmd=cmd,
                returncode=returncode,
                output=stderr,
            )

        self.logger.debug("Exported %s to %s", sha, workdir)
        return workdir

    def _abort_export(self, process, workdir: str):
        process.kill()
        process.wait()
        self.cleanup(workdir)

    def cleanup(self, path: str):
        if not path or not os.path.exists(path):
            return
        try:
            shutil.rmtree(path)
            self.logger.debug("Removed directory: %s", path)
        except OSError as exc:
            message = f"Warning: failed to clean up worktree at {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
