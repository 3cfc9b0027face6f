#!/usr/bin/env python3
"""
protocol_structure_module.py - Structures that own a generated module

A top-level <Structure> becomes a module: a header declaring the structure
and its public encode/decode functions, and a source file implementing
them. Packets derive from this class and reuse the file handling.

Several top-level elements may name the same module with the file
attribute. The files are shared through ProtocolSupport.get_file(), the
first writer emits the banner and later writers append.

Usage:
    from protocol_structure_module import ProtocolStructureModule

    module = ProtocolStructureModule(support, element)
    module.header.get_text()
    module.source.get_text()
"""

from typing import Optional
from xml.etree.ElementTree import Element

from encodable import Encodable
from protocol_file import ProtocolFile
from protocol_structure import ProtocolStructure
from protocol_support import ProtocolSupport
from schema_helpers import child_elements, get_attribute, output_long_comment

# Run-time helpers every generated source file relies on
HELPER_INCLUDES = ['fielddecode.h', 'fieldencode.h', 'scaleddecode.h', 'scaledencode.h']


def uses_bitfields_anywhere(encodable: Encodable) -> bool:
    """True if the encodable or any nested structure packs bitfields."""
    if encodable.uses_bitfields():
        return True
    return any(uses_bitfields_anywhere(child) for child in getattr(encodable, 'encodables', []))


class ProtocolStructureModule(ProtocolStructure):
    """A top-level structure with its own header and source files."""

    def __init__(self, support: ProtocolSupport, element: Optional[Element] = None):
        self.header: Optional[ProtocolFile] = None
        self.source: Optional[ProtocolFile] = None
        super().__init__(support, element)

    def clear(self) -> None:
        super().clear()
        self.module_name = ''
        self.header = None
        self.source = None

    def parse(self, element: Element) -> None:
        super().parse(element)

        self.open_module(element, self.prefix + self.name)
        self.write_header_banner("structure")
        self.write_module_includes(element)
        self.write_enumerations()

        self.header.write(self.get_structure_declaration(True))
        self.header.make_line_separator()

        self.write_source_includes()
        self.create_structure_functions()

    def open_module(self, element: Element, default_name: str) -> None:
        """Attach to the header and source of this module, appending if they exist."""
        self.module_name = get_attribute(element, 'file') or default_name

        self.header = self.support.get_file(self.module_name, '.h')
        self.source = self.support.get_file(self.module_name, '.c')

        self.header.prepare_to_append()
        self.source.prepare_to_append()

    def write_header_banner(self, kind: str) -> None:
        header = self.header
        if header.is_appending():
            header.make_line_separator()
            return

        header.write("/*!\n")
        header.write(" * \\file\n")
        header.write(f" * \\brief {header.file_name} defines the interface for the {self.name} "
                     f"{kind} of the {self.protocol_name} protocol stack\n")
        if self.comment:
            header.write(" *\n")
            header.write(output_long_comment(" *", self.comment) + "\n")
        header.write(" */\n")

        header.make_line_separator()
        header.write_include_directive(self.protocol_name + "Protocol.h")

    def write_module_includes(self, element: Element) -> None:
        """<Include> elements of the module, then whatever the children need."""
        for include in child_elements(element, 'Include'):
            self.header.write_include_directive(get_attribute(include, 'name'))

        for encodable in self.encodables:
            self.header.write_include_directive(encodable.get_include_directive())

        self.header.make_line_separator()

    def write_enumerations(self) -> None:
        """Local enumerations, unless an earlier module already declared them."""
        for enum in self.enum_list:
            if not self.support.enums.claim_output(enum):
                continue
            if not enum.get_output():
                continue
            self.header.make_line_separator()
            self.header.write(enum.get_output())

        self.header.make_line_separator()

    def write_source_includes(self) -> None:
        """Helper includes, written once per source file."""
        if not self.source.is_appending():
            self.source.make_line_separator()
            if uses_bitfields_anywhere(self):
                self.source.write_include_directive("bitfieldspecial.h")

            for include in HELPER_INCLUDES:
                self.source.write_include_directive(include)

        # String defaults are copied with strncpy
        if any(encodable.is_string() and encodable.is_default() for encodable in self.encodables):
            self.source.write_include_directive("<string.h>")

    def create_structure_functions(self) -> None:
        """Public encode and decode functions of this structure."""
        if not self.encodables:
            return

        header, source = self.header, self.source

        header.make_line_separator()
        header.write(f"//! Encode a {self.type_name} structure into a byte array\n")
        header.write(f"int encode{self.type_name}(uint8_t* data, int byteindex, const {self.type_name}* user);\n")

        header.make_line_separator()
        header.write(f"//! Decode a {self.type_name} structure from a byte array\n")
        header.write(f"int decode{self.type_name}(const uint8_t* data, int byteindex, {self.type_name}* user);\n")

        source.make_line_separator()
        source.write(self.get_prototype_encode_string(self.support.big_endian, public=True))

        source.make_line_separator()
        source.write(self.get_prototype_decode_string(self.support.big_endian, public=True))
