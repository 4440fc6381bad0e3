from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from taskgrader.routers.auth import create_access_token
from taskgrader.sandbox import SandboxResult


class FakeSandbox:
	"""Returns scripted results in order and records every call."""

	def __init__(self, results: Optional[List[SandboxResult]] = None):
		self.results = list(results or [])
		self.calls: List[Dict[str, Any]] = []

	def run(self, source, input, timeout, *, language="python", entrypoint=None):
		self.calls.append({"source": source, "input": input, "language": language, "entrypoint": entrypoint})
		return self.results[len(self.calls) - 1]


def ok(value: Any) -> SandboxResult:
	return SandboxResult(stdout=json.dumps(value) + "\n", stderr="")


def auth_headers(user_id: str = "user-1") -> Dict[str, str]:
	return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}
