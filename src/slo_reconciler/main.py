"""Process entrypoint: run the CLI and translate failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING, Final

from slo_reconciler.config import ConfigLoadError, ConfigValidationError
from slo_reconciler.providers import ProviderError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    ANALYSIS_NOT_PASSING = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


# First match wins while walking an exception and its causes.
_EXIT_CODE_BY_ERROR: Final[tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]] = (
    ((ProviderError,), ExitCode.PROVIDER_ERROR),
    ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
    ((OSError, ValueError), ExitCode.CONFIG_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run ``slo-reconciler`` and return the process exit code.

    Used by the console script and ``python -m slo_reconciler``.
    """

    from slo_reconciler.ui.cli import run_cli

    try:
        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - process boundary.
        code = exit_code_for(exc)
        _report(exc, code)
        return int(code)


def exit_code_for(exc: BaseException) -> ExitCode:
    for candidate in _causes(exc):
        for error_types, code in _EXIT_CODE_BY_ERROR:
            if isinstance(candidate, error_types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    node: BaseException | None = exc
    while node is not None and id(node) not in visited:
        visited.add(id(node))
        yield node
        if node.__cause__ is not None:
            node = node.__cause__
        elif node.__suppress_context__:
            node = None
        else:
            node = node.__context__


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return ExitCode.SUCCESS.value
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return ExitCode(raw).value
        except ValueError:
            return ExitCode.INTERNAL_ERROR.value
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR.value


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
    else:
        print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
