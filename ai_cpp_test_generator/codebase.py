"""
Codebase - Scans the configured folders and groups files into source units
"""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .context import RunContext

IMPLEMENTATION_EXTENSIONS = ('.cpp', '.cc')
HEADER_EXTENSIONS = ('.h', '.hpp')
SOURCE_EXTENSIONS = IMPLEMENTATION_EXTENSIONS + HEADER_EXTENSIONS


class SourceUnit(BaseModel):
    """An implementation file plus its optional header, sharing one base name"""

    model_config = ConfigDict(frozen=True)

    base_name: str
    impl_path: str
    impl_text: str
    header_path: Optional[str] = None
    header_text: Optional[str] = None

    @property
    def combined_text(self) -> str:
        parts = []
        if self.header_text:
            parts.append("// Header file content:\n")
            parts.append(self.header_text)
            parts.append("\n\n")
        parts.append("// Implementation file content:\n")
        parts.append(self.impl_text)
        return "".join(parts)


def is_source_file(filename: str) -> bool:
    return filename.endswith(SOURCE_EXTENSIONS)


def _top_level_folder(rel_path: str) -> str:
    parts = rel_path.split(os.sep)
    return '.' if len(parts) == 1 else parts[0]


def read_codebase(codebase_dir: str, folders_to_scan: List[str],
                  ctx: Optional[RunContext] = None) -> Dict[str, str]:
    """Read every C++ source/header under ``codebase_dir``.

    Only files whose first path component is listed in ``folders_to_scan``
    are read (``"."`` selects files directly in the root); an empty list reads
    everything. Keys are ``codebase_dir``-joined relative paths so later steps
    can recover the folder structure.

    Raises:
        FileNotFoundError: If ``codebase_dir`` does not exist.
    """
    ctx = ctx or RunContext()
    abs_dir = os.path.abspath(codebase_dir)
    if not os.path.isdir(abs_dir):
        raise FileNotFoundError(f"Codebase directory '{codebase_dir}' does not exist")

    wanted = set(folders_to_scan or [])
    ctx.debug(f"[SCAN] Reading {abs_dir} (folders: {sorted(wanted) or 'all'})")

    files_content = {}
    for root, dirs, files in os.walk(abs_dir):
        dirs.sort()
        for name in sorted(files):
            if not is_source_file(name):
                continue
            path = os.path.join(root, name)
            rel_path = os.path.relpath(path, abs_dir)
            if wanted and _top_level_folder(rel_path) not in wanted:
                continue
            with open(path, 'r', encoding='utf-8', errors='replace') as f:
                files_content[os.path.join(codebase_dir, rel_path)] = f.read()
            ctx.debug(f"[SCAN] Found {rel_path}")

    ctx.debug(f"[SCAN] Found {len(files_content)} files in codebase")
    return files_content


def group_source_units(files: Dict[str, str], ctx: Optional[RunContext] = None) -> List[SourceUnit]:
    """Group files by base name; groups without an implementation file are skipped"""
    ctx = ctx or RunContext()
    groups: Dict[str, Dict[str, str]] = {}
    for filename, content in files.items():
        base_name = os.path.splitext(filename)[0]
        groups.setdefault(base_name, {})[filename] = content

    units = []
    for base_name in sorted(groups):
        impl_path = header_path = None
        for filename in sorted(groups[base_name]):
            if filename.endswith(IMPLEMENTATION_EXTENSIONS) and impl_path is None:
                impl_path = filename
            elif filename.endswith(HEADER_EXTENSIONS) and header_path is None:
                header_path = filename

        if impl_path is None:
            ctx.debug(f"[SCAN] Skipping {base_name}: no implementation file found")
            continue

        group = groups[base_name]
        units.append(SourceUnit(
            base_name=base_name,
            impl_path=impl_path,
            impl_text=group[impl_path],
            header_path=header_path,
            header_text=group[header_path] if header_path else None,
        ))
    return units


def load_source_unit(impl_path: str) -> SourceUnit:
    """Build a unit for one implementation file, picking up a sibling header if present"""
    base_name = os.path.splitext(impl_path)[0]
    with open(impl_path, 'r', encoding='utf-8', errors='replace') as f:
        impl_text = f.read()

    header_path = header_text = None
    for ext in HEADER_EXTENSIONS:
        candidate = base_name + ext
        if os.path.exists(candidate):
            header_path = candidate
            with open(candidate, 'r', encoding='utf-8', errors='replace') as f:
                header_text = f.read()
            break

    return SourceUnit(base_name=base_name, impl_path=impl_path, impl_text=impl_text,
                      header_path=header_path, header_text=header_text)
