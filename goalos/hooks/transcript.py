"""
Transcript mining

Pulls modified files, a closing summary and pending tasks out of a JSONL
session transcript. Each line is either a message
({"role": ..., "content": [...]}) or an envelope carrying one under
"message". Lines that are not valid JSON are skipped.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List

logger = logging.getLogger(__name__)

FILE_EDIT_TOOLS = ("Write", "Edit", "MultiEdit")
SUMMARY_LIMIT = 200
TASKS_LIMIT = 5
TASK_PATTERNS = [
    re.compile(r"next:?\s*(.+)", re.IGNORECASE),
    re.compile(r"todo:?\s*(.+)", re.IGNORECASE),
    re.compile(r"remaining:?\s*(.+)", re.IGNORECASE),
    re.compile(r"still need to:?\s*(.+)", re.IGNORECASE),
]


@dataclass
class TranscriptSummary:
    files: List[str] = field(default_factory=list)
    tasks: List[str] = field(default_factory=list)
    summary: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.files or self.tasks or self.summary)


def read_transcript(path: Path) -> List[Dict[str, Any]]:
    """Parse a JSONL transcript into message dicts"""
    messages = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping invalid transcript line {line_no}")
                continue
            if isinstance(record, dict) and isinstance(record.get("message"), dict):
                record = record["message"]
            if isinstance(record, dict):
                messages.append(record)
    return messages


def _assistant_blocks(messages: Iterable[Dict[str, Any]]) -> Iterable[Dict[str, Any]]:
    for message in messages:
        if message.get("role") != "assistant":
            continue
        content = message.get("content")
        if isinstance(content, str):
            yield {"type": "text", "text": content}
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, dict):
                    yield block


def extract_modified_files(messages: List[Dict[str, Any]]) -> List[str]:
    """file_path inputs of Write/Edit/MultiEdit tool calls, first-seen order"""
    files: List[str] = []
    for block in _assistant_blocks(messages):
        if block.get("type") != "tool_use" or block.get("name") not in FILE_EDIT_TOOLS:
            continue
        tool_input = block.get("input") or {}
        path = tool_input.get("file_path") if isinstance(tool_input, dict) else None
        if isinstance(path, str) and path and path not in files:
            files.append(path)
    return files


def extract_last_summary(messages: List[Dict[str, Any]]) -> str:
    """First non-empty text of the last assistant message that has one"""
    for message in reversed(messages):
        for block in _assistant_blocks([message]):
            text = block.get("text") if block.get("type") == "text" else None
            text = text.strip() if isinstance(text, str) else ""
            if text:
                if len(text) > SUMMARY_LIMIT:
                    return text[:SUMMARY_LIMIT] + "..."
                return text
    return ""


def extract_pending_tasks(messages: List[Dict[str, Any]]) -> List[str]:
    """next:/todo:/remaining:/still need to: lines, deduplicated, at most 5"""
    tasks: List[str] = []
    for block in _assistant_blocks(messages):
        if block.get("type") != "text" or not isinstance(block.get("text"), str):
            continue
        for pattern in TASK_PATTERNS:
            match = pattern.search(block["text"])
            if not match:
                continue
            task = match.group(1).strip()
            if 0 < len(task) < SUMMARY_LIMIT and task not in tasks:
                tasks.append(task)
    return tasks[:TASKS_LIMIT]


def mine_transcript(path: Path) -> TranscriptSummary:
    messages = read_transcript(path)
    return TranscriptSummary(
        files=extract_modified_files(messages),
        tasks=extract_pending_tasks(messages),
        summary=extract_last_summary(messages),
    )
