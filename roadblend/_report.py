from __future__ import annotations
from pathlib import Path
from typing import Dict, Any
import json

def md_kv(title: str, kv: Dict[str, Any]) -> str:
    lines = [f"# {title}", ""]
    for k, v in kv.items():
        if isinstance(v, (dict, list)):
            vv = json.dumps(v, ensure_ascii=False, indent=2)
            lines.append(f"## {k}\n```json\n{vv}\n```")
        else:
            lines.append(f"- {k}: {v}")
    lines.append("")
    return "\n".join(lines)

def junction_summary(junctions) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for j in junctions:
        counts[j.junction_type] = counts.get(j.junction_type, 0) + 1
    return dict(sorted(counts.items()))

def write_run_card(path: Path, kv: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(md_kv("Harmonization RunCard", kv), encoding="utf-8")
