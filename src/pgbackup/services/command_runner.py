"""Subprocess execution service for pgbackup."""

import subprocess
import tempfile
from typing import BinaryIO, Dict, List, Optional

from pgbackup.errors import BackupError


class CommandRunner:
    """Runs external commands with consistent error and timeout handling.

    A ``default_timeout`` of ``None`` lets commands run unbounded.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        capture_output: bool = False,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        stdout: Optional[BinaryIO] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            if stdout is not None:
                result = subprocess.run(
                    cmd,
                    stdout=stdout,
                    stderr=subprocess.PIPE,
                    timeout=effective_timeout,
                    env=env,
                )
                result.stderr = (result.stderr or b"").decode("utf-8", errors="replace")
            else:
                result = subprocess.run(
                    cmd,
                    text=True,
                    capture_output=capture_output,
                    timeout=effective_timeout,
                    env=env,
                )
        except FileNotFoundError as exc:
            raise BackupError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise BackupError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise BackupError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip()
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        raise BackupError(message)

    def run_to_file(
        self,
        cmd: List[str],
        output_path: str,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """Runs ``cmd`` with its standard output written to ``output_path``."""
        with open(output_path, "wb") as file_obj:
            return self.run(cmd, timeout=timeout, env=env, stdout=file_obj)

    def run_pipeline(
        self,
        producer: List[str],
        consumer: List[str],
        output_path: str,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        """Runs ``producer | consumer > output_path``.

        The timeout bounds the producer stage. Both stages are killed when it
        expires, and the pipeline fails when either stage exits non-zero.
        """
        cmd_str = f"{' '.join(producer)} | {' '.join(consumer)}"
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        producer_proc: Optional[subprocess.Popen] = None
        consumer_proc: Optional[subprocess.Popen] = None

        with open(output_path, "wb") as file_obj, tempfile.TemporaryFile() as producer_err, \
                tempfile.TemporaryFile() as consumer_err:
            try:
                try:
                    producer_proc = subprocess.Popen(
                        producer,
                        stdout=subprocess.PIPE,
                        stderr=producer_err,
                        env=env,
                    )
                    try:
                        consumer_proc = subprocess.Popen(
                            consumer,
                            stdin=producer_proc.stdout,
                            stdout=file_obj,
                            stderr=consumer_err,
                        )
                    finally:
                        # Only the consumer may hold the read end, so the producer
                        # gets SIGPIPE if the consumer exits early.
                        producer_proc.stdout.close()
                except FileNotFoundError as exc:
                    raise BackupError(
                        f"Required command not found: {exc.filename}. "
                        "Please install it and try again."
                    ) from exc
                except OSError as exc:
                    raise BackupError(f"Failed to execute command: {cmd_str}. {exc}") from exc

                try:
                    producer_proc.wait(timeout=effective_timeout)
                except subprocess.TimeoutExpired as exc:
                    raise BackupError(
                        f"Command timed out after {effective_timeout}s: {cmd_str}"
                    ) from exc
                consumer_proc.wait()
            finally:
                for proc in (producer_proc, consumer_proc):
                    if proc is not None and proc.poll() is None:
                        proc.kill()
                        proc.wait()

            failures = []
            for name, proc, err_file in (
                (producer[0], producer_proc, producer_err),
                (consumer[0], consumer_proc, consumer_err),
            ):
                if proc.returncode == 0:
                    continue
                err_file.seek(0)
                detail = err_file.read().decode("utf-8", errors="replace").strip()
                line = f"{name} exited with {proc.returncode}"
                failures.append(f"{line}\n{detail}" if detail else line)

        if failures:
            raise BackupError(f"Command failed: {cmd_str}\n" + "\n".join(failures))
