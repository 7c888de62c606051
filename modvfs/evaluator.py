"""
Evaluators turn a file's source into its exports.

An evaluator is any callable ``(source, module) -> exports``. Returning None
keeps whatever the code left in ``module.exports``.
"""

from typing import Any, Dict, Optional, Protocol


class Evaluator(Protocol):
    def __call__(self, source: str, module: Any) -> Any:
        ...


class PythonEvaluator:
    """
    Run module source as Python code.

    The code sees `exports`, `module`, `require`, `__filename__` and
    `__dirname__`, plus any extra globals given at construction.
    """

    def __init__(self, extra_globals: Optional[Dict[str, Any]] = None):
        self.extra_globals = dict(extra_globals or {})

    def __call__(self, source: str, module: Any) -> Any:
        code = compile(source, module.filename, 'exec')
        scope = dict(self.extra_globals)
        scope.update({
            '__name__': module.id,
            'exports': module.exports,
            'module': module,
            'require': module.require,
            '__filename__': module.filename,
            '__dirname__': module.dirname,
        })
        exec(code, scope)
        return module.exports
