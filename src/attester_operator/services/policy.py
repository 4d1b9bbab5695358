"""Policy compilation and evaluation through the OPA command line."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Protocol

from .. import metrics
from ..utils.errors import CompileError

logger = logging.getLogger(__name__)

_OPA_PATH = os.getenv("OPA_PATH", "opa")
_OPA_TIMEOUT_SECONDS = float(os.getenv("OPA_TIMEOUT_SECONDS", "10"))


@contextmanager
def _module_file(source: str) -> Iterator[str]:
    """Write a policy module to a temporary .rego file."""
    with tempfile.TemporaryDirectory(prefix="attester-policy-") as tmpdir:
        path = os.path.join(tmpdir, "policy.rego")
        with open(path, "w", encoding="utf-8") as f:
            f.write(source)
        yield path


def _run_opa(args: list[str], operation: str, stdin: str | None = None) -> subprocess.CompletedProcess:
    start_time = time.time()
    try:
        return subprocess.run(
            [_OPA_PATH, *args],
            input=stdin,
            capture_output=True,
            text=True,
            timeout=_OPA_TIMEOUT_SECONDS,
            check=False,
        )
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="opa", operation=operation).observe(duration)


@dataclass(frozen=True)
class Policy:
    """A compiled policy module.

    Violations are read from ``data.<name>.violation``; the module is expected
    to declare ``package <name>``.
    """

    name: str
    source: str
    trace: bool = False

    @property
    def query(self) -> str:
        return f'data["{self.name}"].violation'

    def evaluate(self, input_data: Any) -> list[Any]:
        """Evaluate the policy against an input document.

        Returns:
            The list of violations; empty when the input is acceptable

        Raises:
            CompileError: If the evaluator cannot run the module
        """
        args = ["eval", "--format", "json", "--stdin-input"]
        if self.trace:
            args += ["--explain", "full"]

        with _module_file(self.source) as path:
            args += ["--data", path, self.query]
            try:
                result = _run_opa(args, "eval", stdin=json.dumps(input_data))
            except (OSError, subprocess.TimeoutExpired) as e:
                raise CompileError(f"Policy {self.name} could not be evaluated: {e}") from e

        if result.returncode != 0:
            raise CompileError(f"Policy {self.name} evaluation failed: {result.stderr.strip()}")

        if self.trace:
            logger.debug(f"Policy {self.name} trace: {result.stdout}")

        output = json.loads(result.stdout or "{}")
        if "result" not in output:
            # Undefined, so the module has no violation rule
            raise CompileError(f"Policy {self.name} does not define {self.query}")

        violations: list[Any] = []
        for entry in output["result"]:
            for expression in entry.get("expressions", []):
                value = expression.get("value") or []
                violations.extend(value if isinstance(value, list) else [value])
        return violations


class PolicyCompiler(Protocol):
    def compile(self, name: str, source: str, trace: bool = False) -> Policy: ...


class OpaPolicyCompiler:
    """Compiles policy modules with ``opa check`` and ``opa parse``."""

    def compile(self, name: str, source: str, trace: bool = False) -> Policy:
        """Compile a policy source.

        Args:
            name: Attester name, also the policy package queried for violations
            source: Rego module text
            trace: Emit evaluation traces when the policy is evaluated

        Raises:
            CompileError: If the source is empty, does not compile, or declares
                a package other than ``name``
        """
        if not source.strip():
            metrics.policy_compilations_total.labels(result="failed").inc()
            raise CompileError(f"Policy {name} has no source")

        with _module_file(source) as path:
            try:
                result = _run_opa(["check", "--format", "json", path], "check")
                if result.returncode != 0:
                    metrics.policy_compilations_total.labels(result="failed").inc()
                    raise CompileError(f"Policy {name} failed to compile: {_compile_errors(result)}")
                parsed = _run_opa(["parse", "--format", "json", path], "parse")
            except (OSError, subprocess.TimeoutExpired) as e:
                metrics.policy_compilations_total.labels(result="error").inc()
                raise CompileError(f"Policy {name} could not be compiled: {e}") from e

        package = _package_path(parsed)
        if package != [name]:
            declared = ".".join(package) if package else "<unknown>"
            metrics.policy_compilations_total.labels(result="failed").inc()
            raise CompileError(f"Policy {name} declares package {declared}, expected package {name}")

        metrics.policy_compilations_total.labels(result="success").inc()
        return Policy(name=name, source=source, trace=trace)


def _compile_errors(result: subprocess.CompletedProcess) -> str:
    """Flatten ``opa check`` JSON error output into one line."""
    raw = (result.stdout or result.stderr or "").strip()
    try:
        errors = json.loads(raw).get("errors", [])
    except (ValueError, AttributeError):
        return raw
    return "; ".join(err.get("message", "") for err in errors) or raw


def _package_path(result: subprocess.CompletedProcess) -> list[str] | None:
    """Package path segments from ``opa parse`` JSON output, without ``data``."""
    if result.returncode != 0:
        return None
    try:
        path = json.loads(result.stdout)["package"]["path"]
    except (ValueError, KeyError, TypeError):
        return None
    # The first term is the ``data`` root
    return [str(term.get("value")) for term in path[1:]]
