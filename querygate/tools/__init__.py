"""Tools callable directly or through the request processor"""
from .registry import Tool, ToolDescriptor, ToolRegistry
from .sql_tools import SqlExecutorTool, SqlGeneratorTool, WorkbenchExportTool, register_sql_tools

__all__ = [
    'Tool',
    'ToolDescriptor',
    'ToolRegistry',
    'SqlExecutorTool',
    'SqlGeneratorTool',
    'WorkbenchExportTool',
    'register_sql_tools'
]
