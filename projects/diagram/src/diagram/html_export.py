"""HTML export functionality for projected diagrams."""

import json
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from diagram.schema_types import GraphSchema


def graph_to_html(graph: GraphSchema, title: str = "ER Diagram") -> str:
    """Create a standalone HTML diagram from a projected graph."""
    template_dir = Path(__file__).parent / "templates"

    env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)
    template = env.get_template("diagram.html")

    css_content = (template_dir / "diagram.css").read_text()
    js_content = (template_dir / "diagram.js").read_text()

    return template.render(
        title=title,
        css_content=css_content,
        js_content=js_content,
        diagram_json=json.dumps(graph, indent=2).replace("</", "<\\/"),
        table_count=len(graph["nodes"]),
        join_count=len(graph["edges"]),
    )
