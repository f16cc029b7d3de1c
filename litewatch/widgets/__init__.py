"""Widget library for the Textual viewer."""

from __future__ import annotations

from .path_form import DatabasePathForm
from .status_bar import StatusBar
from .table_selector import TableSelector
from .table_viewer import TableViewer

__all__ = ["DatabasePathForm", "StatusBar", "TableSelector", "TableViewer"]
