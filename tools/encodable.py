#!/usr/bin/env python3
"""
encodable.py - Common interface of everything that occupies bytes in a packet

An Encodable is either a primitive field (protocol_field.ProtocolField) or a
structure (protocol_structure.ProtocolStructure, and packets derived from
it). Structures own their child encodables; references between siblings
(variableArray, dependsOn) are kept by name and resolved to an index when
the structure is parsed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from xml.etree.ElementTree import Element

from encoded_length import EncodedLength
from protocol_support import ProtocolSupport
from schema_helpers import log_warn


@dataclass
class EmitContext:
    """
    State threaded through the fields of one generated function. bitcount
    mirrors the run-time bit counter so the last field of a bitfield group
    knows whether the group ends inside a byte.
    """
    big_endian: bool = True
    is_structure_member: bool = True
    defaults_enabled: bool = False
    bitcount: int = 0

    @property
    def endian(self) -> str:
        return 'Be' if self.big_endian else 'Le'


@dataclass
class DocumentationRows:
    """Columns of a packet encoding table, one entry per row."""
    bytes: List[str] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    encodings: List[str] = field(default_factory=list)
    repeats: List[str] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)

    def append(self, byte_range: str, name: str, encoding: str, repeat: str, comment: str) -> None:
        self.bytes.append(byte_range)
        self.names.append(name)
        self.encodings.append(encoding)
        self.repeats.append(repeat)
        self.comments.append(comment)

    def __len__(self) -> int:
        return len(self.names)


def outline_name(outline: List[int], name: str) -> str:
    """Hierarchical table name such as "3.1)value"."""
    return '.'.join(str(level) for level in outline) + ')' + name


def add_sentence(description: str, sentence: str) -> str:
    if not description:
        return sentence
    if not description.endswith('.'):
        description += '.'
    return description + ' ' + sentence


class Encodable(ABC):
    """Attributes and operations shared by fields and structures."""

    def __init__(self, support: ProtocolSupport):
        self.support = support
        self.clear()

    def clear(self) -> None:
        self.name = ''
        self.type_name = ''
        self.comment = ''
        self.array = ''
        self.variable_array = ''
        self.depends_on = ''
        self.variable_array_index: Optional[int] = None
        self.depends_on_index: Optional[int] = None
        self._encoded_length = EncodedLength()
        self.warnings: List[str] = []

    @abstractmethod
    def parse(self, element: Element) -> None:
        """Build this encodable from its XML element."""

    def warn(self, message: str) -> None:
        """Record a non-fatal problem and tell the operator."""
        self.warnings.append(message)
        log_warn(message)

    def all_warnings(self) -> List[str]:
        return list(self.warnings)

    @property
    def encoded_length(self) -> EncodedLength:
        return self._encoded_length

    @property
    def prefix(self) -> str:
        return self.support.prefix

    @property
    def protocol_name(self) -> str:
        return self.support.protocol_name

    def is_array(self) -> bool:
        return bool(self.array)

    @abstractmethod
    def is_primitive(self) -> bool:
        """True for fields, False for structures."""

    def is_bitfield(self) -> bool:
        return False

    def is_string(self) -> bool:
        return False

    def is_default(self) -> bool:
        return False

    def is_constant(self) -> bool:
        return False

    def is_not_encoded(self) -> bool:
        return False

    def is_not_in_memory(self) -> bool:
        return False

    def uses_bitfields(self) -> bool:
        return False

    def uses_iterator(self) -> bool:
        return False

    def uses_defaults(self) -> bool:
        return False

    def clear_defaults(self) -> None:
        pass

    def set_terminates_bitfield(self, terminates: bool) -> None:
        pass

    def set_starting_bit_count(self, bitcount: int) -> None:
        pass

    def get_ending_bit_count(self) -> int:
        return 0

    def get_include_directive(self) -> str:
        return ''

    @abstractmethod
    def get_declaration(self) -> str:
        """Member line of the parent structure declaration, with linefeed."""

    def get_structure_declaration(self, always_create: bool) -> str:
        return ''

    def get_prototype_encode_string(self, big_endian: bool, public: bool = False) -> str:
        return ''

    def get_prototype_decode_string(self, big_endian: bool, public: bool = False) -> str:
        return ''

    @abstractmethod
    def get_encode_string(self, ctx: EmitContext) -> str:
        """Source lines that encode this encodable."""

    @abstractmethod
    def get_decode_string(self, ctx: EmitContext) -> str:
        """Source lines that decode this encodable."""

    def get_set_to_defaults_string(self, is_structure_member: bool) -> str:
        return ''

    @abstractmethod
    def get_encode_signature(self) -> str:
        """Parameter fragment like ", uint8_t name" for parameter interfaces."""

    @abstractmethod
    def get_decode_signature(self) -> str:
        """Parameter fragment like ", uint8_t* name" for parameter interfaces."""

    def get_encode_parameter_comment(self) -> str:
        if not self.get_encode_signature():
            return ''
        return f" * \\param {self.name} is {self.comment or 'the ' + self.name + ' to encode'}\n"

    def get_decode_parameter_comment(self) -> str:
        if not self.get_decode_signature():
            return ''
        return f" * \\param {self.name} receives {self.comment or 'the decoded ' + self.name}\n"

    @abstractmethod
    def get_documentation_details(self, outline: List[int], start_byte: str,
                                  rows: DocumentationRows) -> str:
        """
        Append documentation rows for this encodable and return the start
        byte expression of whatever follows it.
        """

    def get_repeat_text(self) -> str:
        if not self.array:
            return ''
        if self.variable_array:
            return self.variable_array + ", up to " + self.array
        return self.array

    def _depends_on_access(self, ctx: EmitContext, decode: bool) -> str:
        if ctx.is_structure_member:
            return "user->" + self.depends_on
        if decode:
            return "*" + self.depends_on
        return self.depends_on

    def _variable_array_access(self, ctx: EmitContext, decode: bool) -> str:
        if ctx.is_structure_member:
            return "(int)user->" + self.variable_array
        if decode:
            return "(int)(*" + self.variable_array + ")"
        return "(int)(" + self.variable_array + ")"

    def _loop_header(self, ctx: EmitContext, decode: bool) -> str:
        if self.variable_array:
            return (f"for(i = 0; i < {self._variable_array_access(ctx, decode)}"
                    f" && i < {self.array}; i++)")
        return f"for(i = 0; i < {self.array}; i++)"
