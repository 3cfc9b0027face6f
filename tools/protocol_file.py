#!/usr/bin/env python3
"""
protocol_file.py - Append-only text buffers for generated header and source files

A ProtocolFile collects the text of one generated module file. Generators
only append; blank-line separation and include directives are idempotent so
that several packets can share one module without duplicating either.
"""

import re
from pathlib import Path
from typing import List, Optional


def make_line_separator(text: str) -> str:
    """Return text ending in exactly one blank line (unchanged if empty)."""
    if not text:
        return text
    if text.endswith('\n\n'):
        return text
    if text.endswith('\n'):
        return text + '\n'
    return text + '\n\n'


class ProtocolFile:
    """Text of one generated .h or .c file."""

    def __init__(self, module_name: str, extension: str):
        self.module_name = module_name
        self.extension = extension
        self.contents = ''
        self.includes: List[str] = []
        self.appending = False

    @property
    def file_name(self) -> str:
        return self.module_name + self.extension

    @property
    def is_header(self) -> bool:
        return self.extension == '.h'

    def is_appending(self) -> bool:
        return self.appending

    def prepare_to_append(self) -> None:
        """A second writer to the same module appends after the first."""
        self.appending = bool(self.contents)

    def write(self, text: str) -> None:
        self.contents += text

    def make_line_separator(self) -> None:
        self.contents = make_line_separator(self.contents)

    def write_include_directive(self, include: Optional[str]) -> None:
        """Write #include for a module name or file name, once per file."""
        if not include:
            return

        include = include.strip()
        system = include.startswith('<')
        if not system:
            include = include.strip('"')
            if '.' not in include:
                include += '.h'

        if include in self.includes or include == self.module_name + '.h':
            return
        self.includes.append(include)

        if system:
            self.contents += f"#include {include}\n"
        else:
            self.contents += f"#include \"{include}\"\n"

    def include_guard(self) -> str:
        return '_' + re.sub(r'[^A-Za-z0-9]', '_', self.file_name).upper()

    def get_text(self) -> str:
        """Full file text, with include guard for headers and own header include for sources."""
        body = self.contents.rstrip('\n') + '\n'
        if self.is_header:
            guard = self.include_guard()
            return (f"#ifndef {guard}\n#define {guard}\n\n"
                    "#ifdef __cplusplus\nextern \"C\" {\n#endif\n\n"
                    f"{body}\n"
                    "#ifdef __cplusplus\n}\n#endif\n"
                    f"#endif // {guard}\n")

        return f"#include \"{self.module_name}.h\"\n{body}"

    def flush(self, directory: Path) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.file_name
        path.write_text(self.get_text())
        return path

    def clear(self) -> None:
        self.contents = ''
        self.includes = []
        self.appending = False
