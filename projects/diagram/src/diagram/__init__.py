"""Graph projection, canvas orchestration and diagram export."""

from diagram.canvas import Canvas
from diagram.html_export import graph_to_html
from diagram.projection import project
from diagram.settings import Settings, load_settings

__all__ = ["Canvas", "Settings", "graph_to_html", "load_settings", "project"]
