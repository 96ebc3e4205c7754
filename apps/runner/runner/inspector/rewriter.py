"""Content rewriting applied to inspected prototype files.

Both functions are total: they never raise and always return a new mapping,
leaving the input untouched.
"""

import re

TAILWIND_STYLESHEET = (
    '<link href="https://cdn.jsdelivr.net/npm/tailwindcss@2.2.19/dist/tailwind.min.css" '
    'rel="stylesheet">'
)
TAILWIND_MARKER = "tailwindcss"

INDEX_PATH = "/index.html"
HEAD_CLOSE = "</head>"

_QUERY_SELECTOR = re.compile(r"""document\.querySelector\((['"])([^'"]+)\1\)(?!\s*\|\|)""")
_GET_ELEMENT_BY_ID = re.compile(r"""document\.getElementById\((['"])([^'"]+)\1\)(?!\s*\|\|)""")

_DOM_READY_WRAPPER = """
// Ensure DOM is ready before accessing elements
document.addEventListener('DOMContentLoaded', function() {{
  try {{
    {body}
  }} catch (error) {{
    console.error('Error executing script:', error);
  }}
}});"""


def inject_stylesheet(files: dict[str, str]) -> dict[str, str]:
    """Link the hosted Tailwind stylesheet from /index.html.

    The link goes right before the first ``</head>``. Files without an
    /index.html, pages that already reference tailwindcss, and pages with no
    ``</head>`` are returned unchanged.
    """
    html = files.get(INDEX_PATH)
    if html is None or TAILWIND_MARKER in html or HEAD_CLOSE not in html:
        return dict(files)

    updated = html.replace(HEAD_CLOSE, f"  {TAILWIND_STYLESHEET}\n{HEAD_CLOSE}", 1)
    return {**files, INDEX_PATH: updated}


def guard_dom_scripts(files: dict[str, str]) -> dict[str, str]:
    """Make loose scripts tolerant of missing DOM nodes in the preview sandbox."""
    guarded = dict(files)
    for path, content in files.items():
        if not path.endswith((".js", ".jsx")):
            continue
        content = _QUERY_SELECTOR.sub(
            r'document.querySelector(\1\2\1) || { innerHTML: "" }', content
        )
        content = _GET_ELEMENT_BY_ID.sub(
            r'document.getElementById(\1\2\1) || document.createElement("div")', content
        )
        if "document." in content and "DOMContentLoaded" not in content:
            content = _DOM_READY_WRAPPER.format(body=content)
        guarded[path] = content
    return guarded
