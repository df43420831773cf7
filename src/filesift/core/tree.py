# src/filesift/core/tree.py
from typing import Dict, Iterable, Optional

from filesift.models import FileRecord


def _annotation(record: FileRecord) -> str:
    if record.is_skipped:
        reason = record.skip_reason.value if record.skip_reason else "skipped"
        return f" [{reason}]"
    if record.is_binary:
        return " [binary]"
    return f" ({record.token_count} tokens)"


def render_file_tree(records: Iterable[FileRecord], root_name: str, annotate: bool = True) -> str:
    """Renders scanned records as an indented tree under root_name/."""
    tree: Dict[str, Dict] = {}
    leaves: Dict[str, Optional[FileRecord]] = {}
    for record in sorted(records, key=lambda r: r.rel_path):
        parts = record.rel_path.split("/")
        level = tree
        for part in parts:
            level = level.setdefault(part, {})
        leaves[record.rel_path] = record

    lines = [f"{root_name}/"]

    def walk(subtree: Dict, prefix: str, parent: str):
        entries = sorted(subtree.items())
        for i, (name, children) in enumerate(entries):
            is_last = i == len(entries) - 1
            rel = f"{parent}/{name}" if parent else name
            record = leaves.get(rel)
            label = name + (_annotation(record) if annotate and record and not children else "")
            lines.append(f"{prefix}{'└── ' if is_last else '├── '}{label}")
            if children:
                walk(children, prefix + ("    " if is_last else "│   "), rel)

    walk(tree, "", "")
    return "\n".join(lines) + "\n"
