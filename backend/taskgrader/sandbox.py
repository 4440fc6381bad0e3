"""
Isolated execution of learner-submitted code.

Each call writes the submission plus a small harness into a fresh temporary
directory and runs it in a separate interpreter process:
- Python: the current interpreter with -I -B (isolated mode, no bytecode).
- JavaScript: a configurable node executable.
Unix: the child leads its own process group, which is killed when the run
ends. CPU time and memory are capped with the resource module, and the
network is removed with an isolation command (``unshare -rn`` by default).
Windows: only the wall-clock timeout applies.
"""
from __future__ import annotations

import json
import logging
import os
import platform
import shlex
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from .errors import SandboxUnavailable
from .settings import settings

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 64 * 1024

# Sets rlimits in a fresh interpreter and then becomes the runtime, so no
# Python code runs between fork and exec in the server process.
# argv: cpu_seconds memory_bytes executable [args...]; 0 bytes leaves memory unlimited
_LIMITS_LAUNCHER = """\
import os, resource, sys
cpu, memory = int(sys.argv[1]), int(sys.argv[2])
for limit, value in ((resource.RLIMIT_CPU, cpu), (resource.RLIMIT_AS, memory)):
    if value:
        try:
            resource.setrlimit(limit, (value, value))
        except (ValueError, OSError):
            pass
os.execv(sys.argv[3], sys.argv[3:])
"""
@dataclass(frozen=True)
class SandboxResult:
	stdout: str
	stderr: str
	timed_out: bool = False


class Sandbox(Protocol):
	def run(
		self,
		source: str,
		input: Any,
		timeout: float,
		*,
		language: str = "python",
		entrypoint: Optional[str] = None,
	) -> SandboxResult:
		...


def _python_harness(source: str, entrypoint: str, input: Any) -> str:
	if isinstance(input, str):
		args = input
	else:
		args = f"_json.loads({json.dumps(json.dumps(input))})"
	return f"{source}\n\nimport json as _json\nprint(_json.dumps({entrypoint}({args})))\n"


def _javascript_harness(source: str, entrypoint: str, input: Any) -> str:
	args = input if isinstance(input, str) else json.dumps(input)
	return f"{source}\nconsole.log(JSON.stringify({entrypoint}({args})));\n"


@dataclass(frozen=True)
class Runtime:
	command: List[str]
	suffix: str
	harness: Callable[[str, str, Any], str]
	# V8 reserves far more address space than it uses, so RLIMIT_AS breaks node
	limit_memory: bool = True


def default_runtimes() -> Dict[str, Runtime]:
	return {
		"python": Runtime([sys.executable, "-I", "-B"], ".py", _python_harness),
		"javascript": Runtime([settings.sandbox_node_executable], ".js", _javascript_harness, limit_memory=False),
	}


def _minimal_env() -> Dict[str, str]:
	env = {
		"PATH": os.environ.get("PATH", os.defpath),
		"LANG": "C.UTF-8",
		"PYTHONIOENCODING": "utf-8",
	}
	if platform.system() == "Windows" and "SYSTEMROOT" in os.environ:
		env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]
	return env


def _decode(raw: Optional[bytes]) -> str:
	if not raw:
		return ""
	return raw.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS]


def _kill_group(proc: subprocess.Popen) -> None:
	"""Kill the child and everything it spawned."""
	if hasattr(os, "killpg"):
		try:
			os.killpg(proc.pid, signal.SIGKILL)
		except (ProcessLookupError, PermissionError):
			pass
	elif proc.poll() is None:
		proc.kill()


_isolation_lock = threading.Lock()
_isolation_checked: Set[Tuple[str, ...]] = set()


def ensure_network_isolation(network_command: List[str]) -> None:
	"""Check once per command that submissions can be started without a network."""
	key = tuple(network_command)
	with _isolation_lock:
		if key in _isolation_checked:
			return
		if not network_command:
			raise SandboxUnavailable("network isolation is enabled but no isolation command is configured")
		try:
			subprocess.run(
				[*network_command, sys.executable, "-I", "-c", "pass"],
				stdin=subprocess.DEVNULL,
				capture_output=True,
				timeout=10,
				check=True,
			)
		except (OSError, subprocess.SubprocessError) as e:
			raise SandboxUnavailable(f"cannot isolate submissions from the network with {shlex.join(network_command)!r}: {e}") from e
		_isolation_checked.add(key)


@dataclass
class SubprocessSandbox:
	"""Runs each submission in its own short-lived process group."""
	memory_limit_mb: int = settings.sandbox_memory_limit_mb
	default_entrypoint: str = settings.sandbox_default_entrypoint
	isolate_network: bool = settings.sandbox_isolate_network
	network_command: List[str] = field(default_factory=lambda: shlex.split(settings.sandbox_network_command))
	runtimes: Dict[str, Runtime] = field(default_factory=default_runtimes)

	def run(
		self,
		source: str,
		input: Any,
		timeout: float,
		*,
		language: str = "python",
		entrypoint: Optional[str] = None,
	) -> SandboxResult:
		runtime = self.runtimes.get(language)
		if runtime is None:
			raise SandboxUnavailable(f"no runtime configured for language {language!r}")
		executable = shutil.which(runtime.command[0])
		if executable is None:
			raise SandboxUnavailable(f"runtime {runtime.command[0]!r} for {language} is not installed")
		if self.isolate_network:
			ensure_network_isolation(self.network_command)
		else:
			logger.warning("Running a %s submission with network access", language)
		program = runtime.harness(source, entrypoint or self.default_entrypoint, input)

		with tempfile.TemporaryDirectory(prefix="taskgrader-") as temp_dir:
			program_path = Path(temp_dir) / f"submission{runtime.suffix}"
			program_path.write_text(program, encoding="utf-8")
			command = [executable, *runtime.command[1:], str(program_path)]
			if hasattr(os, "killpg"):
				command = self._with_limits(command, timeout, runtime.limit_memory)
			if self.isolate_network:
				command = [*self.network_command, *command]

			try:
				proc = subprocess.Popen(
					command,
					stdin=subprocess.DEVNULL,
					stdout=subprocess.PIPE,
					stderr=subprocess.PIPE,
					cwd=temp_dir,
					env=_minimal_env(),
					start_new_session=hasattr(os, "killpg"),
				)
			except OSError as e:
				raise SandboxUnavailable(f"failed to start {command[0]!r}: {e}") from e

			with proc:
				try:
					stdout, stderr_raw = proc.communicate(timeout=timeout)
				except subprocess.TimeoutExpired:
					logger.info("Sandbox run exceeded %.1fs", timeout)
					_kill_group(proc)
					stdout, stderr_raw = proc.communicate()
					return SandboxResult(stdout=_decode(stdout), stderr=_decode(stderr_raw), timed_out=True)
				finally:
					# Background children of the submission must not outlive the run
					_kill_group(proc)

		stderr = _decode(stderr_raw)
		if proc.returncode != 0 and not stderr.strip():
			# Killed by a signal (e.g. CPU rlimit) without writing anything
			stderr = f"Process exited with status {proc.returncode}"
		return SandboxResult(stdout=_decode(stdout), stderr=stderr)

	def _with_limits(self, command: List[str], timeout: float, limit_memory: bool) -> List[str]:
		cpu_seconds = int(timeout) + 1
		memory_bytes = self.memory_limit_mb * 1024 * 1024 if limit_memory else 0
		return [sys.executable, "-I", "-S", "-c", _LIMITS_LAUNCHER, str(cpu_seconds), str(memory_bytes), *command]
