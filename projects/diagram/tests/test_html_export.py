"""Tests for the standalone HTML diagram export."""

import json

from diagram import graph_to_html, project
from schema import connect, create_table, empty_snapshot


def test_html_embeds_graph() -> None:
    """The page carries the graph data and a summary of its size."""
    snapshot, user = create_table(empty_snapshot(), "User")
    snapshot, post = create_table(snapshot, "Post")
    snapshot, _ = connect(snapshot, user["id"], post["id"])
    graph = project(snapshot, {})

    html = graph_to_html(graph, title="Blog")

    assert "<title>Blog</title>" in html
    assert "2 tables, 1 joins" in html
    assert "renderDiagram" in html
    start = html.index("const DIAGRAM_DATA = ") + len("const DIAGRAM_DATA = ")
    end = html.index(";\n", start)
    assert json.loads(html[start:end]) == json.loads(json.dumps(graph))


def test_html_escapes_script_breakers() -> None:
    """Table names cannot close the embedding script element."""
    snapshot, _ = create_table(empty_snapshot(), "</script><b>")

    html = graph_to_html(project(snapshot, {}))

    assert "</script><b>" not in html
