"""Utility helpers shared across the pipeline."""

from autotest_pipeline.utils.shell import CommandResult, run_command, shell_escape
from autotest_pipeline.utils.json_extraction import extract_json_text, repair_json, parse_agent_json

__all__ = [
    "CommandResult",
    "run_command",
    "shell_escape",
    "extract_json_text",
    "repair_json",
    "parse_agent_json",
]
