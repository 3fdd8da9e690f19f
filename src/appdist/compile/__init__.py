"""Per-architecture compilation."""

from appdist.compile.invoker import (
    CompileOptions,
    compile_target,
    compile_targets,
    installed_targets,
    locate_compiled_binary,
)

__all__ = [
    "CompileOptions",
    "compile_target",
    "compile_targets",
    "installed_targets",
    "locate_compiled_binary",
]
