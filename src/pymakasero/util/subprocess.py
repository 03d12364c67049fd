from __future__ import annotations
import subprocess
import time
from dataclasses import dataclass
from typing import Sequence, Optional

from .cancel import CancelToken, ensure_token

_POLL = 0.1

@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def combined(self) -> str:
        return self.stdout + self.stderr

def run_cmd(
    cmd: Sequence[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = 120,
    cancel: Optional[CancelToken] = None,
) -> CmdResult:
    """Run a command without a shell.

    A missing executable or a timeout is reported through the result
    (127 / 124, like a shell would) instead of raising. A fired cancel
    token kills the process and raises ``OperationCancelled``.
    """
    token = ensure_token(cancel)
    token.raise_if_cancelled(cmd[0])
    try:
        p = subprocess.Popen(
            list(cmd),
            cwd=cwd,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            shell=False,
        )
    except FileNotFoundError as e:
        return CmdResult(127, "", f"{cmd[0]}: command not found ({e})")

    started = time.monotonic()
    while True:
        try:
            out, err = p.communicate(timeout=_POLL)
            return CmdResult(p.returncode, out, err)
        except subprocess.TimeoutExpired:
            pass
        if token.cancelled:
            p.kill()
            p.communicate()
            token.raise_if_cancelled(cmd[0])
        if timeout is not None and time.monotonic() - started >= timeout:
            p.kill()
            p.communicate()
            return CmdResult(124, "", f"{cmd[0]}: timed out after {timeout}s")
