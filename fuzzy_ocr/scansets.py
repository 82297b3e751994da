"""
Scanset registry – the configured OCR engines and their adaptive order.

A scanset is a label plus a command template.  Placeholders:

  $input    normalized raster to read
  $output   text file the engine writes (read back afterwards)
  $<tool>   configured executable path, e.g. $tesseract

Iteration order is descending hit counter (stable for ties).  The
counters only bias which engine is tried first; they never change a
verdict.  The registry is a value: the autosort step returns a new
registry, and persistence is an explicit ``save``/``load`` at the edge.
"""

import json
import logging
import os
import shlex
from dataclasses import dataclass, replace
from string import Template

from fuzzy_ocr.config import ScanConfig
from fuzzy_ocr.tool_runner import ToolResult

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanSet:
    label: str
    command: str
    args: str | None = None
    hit_counter: int = 0

    def render(self, bins: dict, input_path: str, output_path: str) -> str:
        """Substitute tool paths and file placeholders into the command."""
        mapping = {name: shlex.quote(path) for name, path in bins.items() if path}
        mapping["input"] = shlex.quote(input_path)
        mapping["output"] = shlex.quote(output_path)
        cmd = Template(self.command).safe_substitute(mapping)
        if self.args:
            cmd = f"{cmd} {self.args}"
        return cmd

    def is_runnable(self, bins: dict) -> bool:
        """False when the executable placeholder could not be resolved."""
        return not self.render(bins, "", "").lstrip().startswith("$")

    @property
    def writes_output_file(self) -> bool:
        return "$output" in self.command or "${output}" in self.command

    def uses_tool(self, tool: str) -> bool:
        return tool in self.command


def _as_counter(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class ScansetRegistry:
    def __init__(self, scansets: list[ScanSet]):
        self._scansets = list(scansets)

    @classmethod
    def from_config(cls, cfg: ScanConfig) -> "ScansetRegistry":
        scansets = []
        for entry in cfg.scansets:
            if not entry.get("label") or not entry.get("command"):
                log.warning("Ignoring scanset without label/command: %r", entry)
                continue
            scansets.append(ScanSet(
                label=str(entry["label"]),
                command=str(entry["command"]),
                args=entry.get("args"),
                hit_counter=int(entry.get("hit_counter", 0)),
            ))
        return cls(scansets)

    @classmethod
    def load(cls, cfg: ScanConfig, path: str | None = None) -> "ScansetRegistry":
        """Registry from config, with hit counters restored from *path*."""
        registry = cls.from_config(cfg)
        path = path or cfg.scansets_state
        if not path or not os.path.exists(path):
            return registry
        try:
            with open(path, "r", encoding="utf-8") as f:
                counters = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("Cannot read scanset state %s: %s", path, exc)
            return registry
        if not isinstance(counters, dict):
            log.warning("Ignoring scanset state %s: expected an object, got %s",
                        path, type(counters).__name__)
            return registry
        buffer = cfg.autosort_buffer
        return cls([
            replace(s, hit_counter=max(0, min(_as_counter(counters.get(s.label), s.hit_counter), buffer)))
            for s in registry._scansets
        ])

    def save(self, path: str):
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self.counters(), f, indent=2)
        os.replace(tmp, path)

    def __len__(self):
        return len(self._scansets)

    def __iter__(self):
        return iter(self.ordered())

    def ordered(self) -> list[ScanSet]:
        return sorted(self._scansets, key=lambda s: -s.hit_counter)

    def counters(self) -> dict[str, int]:
        return {s.label: s.hit_counter for s in self._scansets}

    def order_text(self) -> str:
        return " ".join(f"{s.label}({s.hit_counter})" for s in self.ordered())

    def record_hit(self, label: str, buffer: int) -> "ScansetRegistry":
        """Bump *label* (capped at *buffer*) and decay every other counter (floored at 0)."""
        updated = []
        for s in self._scansets:
            if s.label == label:
                updated.append(replace(s, hit_counter=min(s.hit_counter + 1, buffer)))
            else:
                updated.append(replace(s, hit_counter=max(s.hit_counter - 1, 0)))
        return ScansetRegistry(updated)

    def run(self, scanset: ScanSet, input_path: str, runner, bins: dict,
            stderr: str | None = None) -> ToolResult:
        """Run one engine on *input_path* and return its text lines."""
        output_path = f"{input_path}.{scanset.label}.txt"
        argv = shlex.split(scanset.render(bins, input_path, output_path))
        result = runner.invoke(argv, stderr=stderr, capture=True)
        if not scanset.writes_output_file or result.retcode != 0:
            return result
        try:
            with open(output_path, "r", encoding="utf-8", errors="replace") as f:
                return ToolResult(0, f.read().splitlines())
        except OSError as exc:
            log.warning("Scanset %s produced no output file: %s", scanset.label, exc)
            return ToolResult(0, [])
