"""Archive Inspector: classification and light rewriting of uploads.

Public API:
    inspect(data) -> ClassifiedProject
    inject_stylesheet(files) -> files
    guard_dom_scripts(files) -> files
"""

from runner.inspector.orchestrator import inspect
from runner.inspector.rewriter import guard_dom_scripts, inject_stylesheet

__all__ = ["guard_dom_scripts", "inject_stylesheet", "inspect"]
