#!/usr/bin/env python3
"""
protocol_support.py - Per-run protocol settings and the enumeration registry

One ProtocolSupport object is created at the start of a generation run and
handed to every structure and packet. It owns the enumeration registry and
the cache of generated module files; both are dropped when the run ends.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
from xml.etree.ElementTree import Element

from enum_creator import EnumCreator
from protocol_file import ProtocolFile


class EnumRegistry:
    """
    Every enumeration of the document, in registration order. The registry
    owns the EnumCreator objects; structures only keep references.
    """

    def __init__(self):
        self._enums: List[EnumCreator] = []
        self._emitted: set = set()

    def __iter__(self) -> Iterator[EnumCreator]:
        return iter(self._enums)

    def __len__(self) -> int:
        return len(self._enums)

    def parse_enumeration(self, element: Element) -> EnumCreator:
        """Register the enumeration of an <Enum> element, reusing one of the same name."""
        name = element.get('name', '')
        if name:
            existing = self.find(name)
            if existing is not None:
                return existing

        enum = EnumCreator(element)
        self._enums.append(enum)
        return enum

    def claim_output(self, enum: EnumCreator) -> bool:
        """True the first time an enumeration is emitted, False after that."""
        if id(enum) in self._emitted:
            return False
        self._emitted.add(id(enum))
        return True

    def find(self, name: str) -> Optional[EnumCreator]:
        for enum in self._enums:
            if enum.name == name:
                return enum
        return None

    def lookup_value(self, name: str) -> Optional[str]:
        """Resolved number text of an enumerator in any enumeration."""
        for enum in self._enums:
            number = enum.lookup(name)
            if number is not None:
                return number
        return None

    def replace_enumeration_name_with_value(self, text: str) -> str:
        for enum in self._enums:
            text = enum.replace_enumeration_name_with_value(text)
        return text

    def clear(self) -> None:
        self._enums = []
        self._emitted = set()


@dataclass
class ProtocolSupport:
    """Protocol wide settings and run scoped state."""
    protocol_name: str = ''
    prefix: str = ''
    big_endian: bool = True
    api: str = ''
    version: str = ''
    enums: EnumRegistry = field(default_factory=EnumRegistry)
    files: Dict[str, ProtocolFile] = field(default_factory=dict)

    @property
    def endian_suffix(self) -> str:
        return 'Be' if self.big_endian else 'Le'

    def get_file(self, module_name: str, extension: str) -> ProtocolFile:
        """The file for a module, shared by every writer of that module."""
        key = module_name + extension
        if key not in self.files:
            self.files[key] = ProtocolFile(module_name, extension)
        return self.files[key]

    def teardown(self) -> None:
        self.enums.clear()
        self.files = {}
