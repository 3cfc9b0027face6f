#!/usr/bin/env python3
"""
protocol_field.py - Primitive fields of structures and packets

A <Data> element describes one primitive: its type in memory, its type on
the wire, and how it repeats or depends on earlier fields.

    <Data name="temperature" inMemoryType="float32" encodedType="signed16"
          scaler="100" comment="Air temperature in degrees C"/>
    <Data name="count" inMemoryType="unsigned8"/>
    <Data name="samples" inMemoryType="unsigned16" array="16" variableArray="count"/>
    <Data name="mode" inMemoryType="bitfield3"/>

Type names:
    unsignedN / signedN    N = 8, 16, 24 ... 64
    float32 / float64
    bitfieldN              N = 1 .. 32, packed across bytes
    string                 zero terminated, array gives the buffer size
    null                   not in memory (reserved wire data) or not encoded
    <enum name>            an enumeration registered earlier in the document
"""

import math
import re
from dataclasses import dataclass
from typing import List, Optional
from xml.etree.ElementTree import Element

from encodable import DocumentationRows, EmitContext, Encodable, add_sentence, outline_name
from encoded_length import EncodedLength, add_length_strings, collapse_length_string, subtract_one_from_length_string
from enum_creator import EnumCreator
from protocol_support import ProtocolSupport
from schema_helpers import get_attribute, get_comment

_TYPE_PATTERN = re.compile(r'^(unsigned|signed|float|bitfield)(\d+)$')

# Short names used in the encoding column of the documentation
ENCODING_NAMES = {
    'unsigned': 'U',
    'signed': 'I',
    'float': 'F',
    'bitfield': 'B',
}


@dataclass(frozen=True)
class TypeInfo:
    """A parsed type name."""
    kind: str       # unsigned, signed, float, bitfield, string, null, enum
    bits: int = 0
    enum: Optional[EnumCreator] = None

    @property
    def bytes(self) -> int:
        return (self.bits + 7) // 8

    def is_integer(self) -> bool:
        return self.kind in ('unsigned', 'signed', 'enum')

    def c_type(self) -> str:
        """C type of a value of this type in memory."""
        if self.kind == 'enum':
            return self.enum.name
        if self.kind == 'float':
            return 'float' if self.bits <= 32 else 'double'
        if self.kind == 'bitfield':
            return 'unsigned'
        if self.kind == 'string':
            return 'char'

        width = 8
        while width < self.bits:
            width *= 2
        if self.kind == 'signed':
            return f"int{width}_t"
        return f"uint{width}_t"


def parse_type(text: str, support: ProtocolSupport) -> Optional[TypeInfo]:
    """Parse a type name, None if it is not understood."""
    if text == 'null':
        return TypeInfo('null')
    if text == 'string':
        return TypeInfo('string', 8)

    match = _TYPE_PATTERN.match(text)
    if match:
        kind, bits = match.group(1), int(match.group(2))
        if kind in ('unsigned', 'signed') and bits % 8 == 0 and 8 <= bits <= 64:
            return TypeInfo(kind, bits)
        if kind == 'float' and bits in (32, 64):
            return TypeInfo(kind, bits)
        if kind == 'bitfield' and 1 <= bits <= 32:
            return TypeInfo(kind, bits)
        return None

    enum = support.enums.find(text)
    if enum is not None:
        # Enumerations go on the wire as the smallest whole number of bytes
        return TypeInfo('enum', 8 * ((enum.min_bit_width + 7) // 8), enum)

    return None


class ProtocolField(Encodable):
    """A primitive field: integer, float, bitfield, string or enumeration."""

    def __init__(self, support: ProtocolSupport, element: Optional[Element] = None):
        super().__init__(support)
        if element is not None:
            self.parse(element)

    def clear(self) -> None:
        super().clear()
        self.in_memory = TypeInfo('unsigned', 8)
        self.encoded = TypeInfo('unsigned', 8)
        self.default_value = ''
        self.constant_value = ''
        self.scaler = ''
        self.min_value = ''
        self.terminates_bitfield = False
        self.starting_bit_count = 0

    def parse(self, element: Element) -> None:
        self.clear()

        self.name = element.get('name', '') or '_unknown'
        self.comment = get_comment(element)
        self.array = get_attribute(element, 'array')
        self.variable_array = get_attribute(element, 'variableArray')
        self.depends_on = get_attribute(element, 'dependsOn')
        self.default_value = get_attribute(element, 'default')
        self.constant_value = get_attribute(element, 'constant')
        self.scaler = get_attribute(element, 'scaler')
        self.min_value = get_attribute(element, 'min')

        memory_text = get_attribute(element, 'inMemoryType')
        encoded_text = get_attribute(element, 'encodedType') or memory_text
        if not memory_text:
            memory_text = encoded_text

        self.in_memory = self._parse_type_attribute(memory_text, 'inMemoryType')
        self.encoded = self._parse_type_attribute(encoded_text, 'encodedType')
        self.type_name = self.in_memory.c_type() if self.in_memory.kind != 'null' else ''

        self._check_types()
        self._check_attributes()

    def _parse_type_attribute(self, text: str, attribute: str) -> TypeInfo:
        if not text:
            self.warn(f"{self.name}: {attribute} not specified, assuming unsigned8")
            return TypeInfo('unsigned', 8)

        info = parse_type(text, self.support)
        if info is None:
            self.warn(f"{self.name}: {attribute} \"{text}\" not understood, assuming unsigned8")
            return TypeInfo('unsigned', 8)

        if attribute == 'encodedType' and info.kind == 'enum' and self.in_memory.kind != 'enum':
            # An enumeration on the wire is just its unsigned width
            return TypeInfo('unsigned', info.bits)

        return info

    def _check_types(self) -> None:
        memory, encoded = self.in_memory, self.encoded

        if memory.kind == 'null' and encoded.kind in ('null', 'string'):
            if encoded.kind == 'string':
                self.warn(f"{self.name}: strings must be in memory, field ignored")
            self.encoded = TypeInfo('null')
            return

        if encoded.kind == 'null':
            return

        if memory.kind == 'bitfield' and encoded.kind != 'bitfield':
            self.warn(f"{self.name}: bitfields must be encoded as bitfields")
            self.encoded = memory
        elif encoded.kind == 'bitfield' and memory.kind not in ('bitfield', 'null', 'enum'):
            self.warn(f"{self.name}: bitfields must be in memory as bitfields")
            self.in_memory = encoded
            self.type_name = encoded.c_type()

        if (memory.kind == 'string') != (self.encoded.kind == 'string') and memory.kind != 'null':
            self.warn(f"{self.name}: strings must be in memory and encoded as strings")
            self.in_memory = TypeInfo('string', 8)
            self.encoded = TypeInfo('string', 8)
            self.type_name = 'char'

        if self.encoded.kind == 'string' and not self.array:
            self.warn(f"{self.name}: strings must specify the array length, field ignored")
            self.encoded = TypeInfo('null')

    def _check_attributes(self) -> None:
        if self.variable_array and not self.array:
            self.warn(f"{self.name}: must specify array length to specify variable array length")
            self.variable_array = ''

        if self.depends_on and self.variable_array:
            self.warn(f"{self.name}: variable length arrays cannot also use dependsOn")
            self.depends_on = ''

        if self.is_bitfield() and self.array:
            self.warn(f"{self.name}: bitfields cannot be arrays")
            self.array = ''
            self.variable_array = ''

        if self.is_string() and self.variable_array:
            self.warn(f"{self.name}: strings cannot use variableArray")
            self.variable_array = ''

        if self.scaler and not self.is_scaled():
            self.warn(f"{self.name}: scaler ignored, only floats encoded as integers are scaled")
            self.scaler = ''

        if self.default_value and (self.is_constant() or self.is_not_in_memory() or self.is_not_encoded()):
            self.warn(f"{self.name}: default value ignored for constant, reserved or unencoded data")
            self.default_value = ''

    # ---- classification ----------------------------------------------------

    def is_primitive(self) -> bool:
        return True

    def is_bitfield(self) -> bool:
        return self.encoded.kind == 'bitfield'

    def is_string(self) -> bool:
        return self.encoded.kind == 'string'

    def is_array(self) -> bool:
        return bool(self.array) and not self.is_string()

    def is_scaled(self) -> bool:
        return bool(self.scaler) and self.in_memory.kind == 'float' and self.encoded.kind in ('unsigned', 'signed')

    def is_default(self) -> bool:
        return bool(self.default_value)

    def is_constant(self) -> bool:
        return bool(self.constant_value)

    def is_not_encoded(self) -> bool:
        return self.encoded.kind == 'null'

    def is_not_in_memory(self) -> bool:
        return self.in_memory.kind == 'null'

    def uses_bitfields(self) -> bool:
        return self.is_bitfield()

    def uses_iterator(self) -> bool:
        return self.is_array() and not self.is_not_encoded()

    def uses_defaults(self) -> bool:
        return self.is_default()

    def clear_defaults(self) -> None:
        self.default_value = ''

    def set_terminates_bitfield(self, terminates: bool) -> None:
        self.terminates_bitfield = terminates

    def set_starting_bit_count(self, bitcount: int) -> None:
        self.starting_bit_count = bitcount

    def get_ending_bit_count(self) -> int:
        if self.is_bitfield():
            return self.starting_bit_count + self.encoded.bits
        return 0

    def get_include_directive(self) -> str:
        return ''

    # ---- lengths -------------------------------------------------------------

    def _element_length(self) -> EncodedLength:
        if self.is_not_encoded():
            return EncodedLength()

        if self.is_bitfield():
            # The whole group is accounted for by its last member
            if not self.terminates_bitfield:
                return EncodedLength()
            return EncodedLength.fixed(str(math.ceil(self.get_ending_bit_count() / 8)))

        if self.is_string():
            return EncodedLength('1', self.array, self.array)

        return EncodedLength.fixed(str(self.encoded.bytes))

    @property
    def encoded_length(self) -> EncodedLength:
        length = EncodedLength()
        length.add_to_length(self._element_length(),
                             self.array if self.is_array() else '',
                             bool(self.variable_array),
                             bool(self.depends_on),
                             self.is_default())
        return length

    # ---- declarations --------------------------------------------------------

    def get_declaration(self) -> str:
        if self.is_not_in_memory():
            return ''

        if self.in_memory.kind == 'bitfield':
            output = f"    unsigned {self.name} : {self.in_memory.bits};"
        elif self.is_string() or self.array:
            output = f"    {self.type_name} {self.name}[{self.array}];"
        else:
            output = f"    {self.type_name} {self.name};"

        if self.comment:
            output += " //!< " + self.comment

        return output + "\n"

    def _is_parameter(self) -> bool:
        return not (self.is_not_encoded() or self.is_not_in_memory() or self.is_constant())

    def get_encode_signature(self) -> str:
        if not self._is_parameter():
            return ''
        if self.is_string() or self.array:
            return f", const {self.type_name} {self.name}[{self.array}]"
        return f", {self.type_name} {self.name}"

    def get_decode_signature(self) -> str:
        if not self._is_parameter():
            return ''
        if self.is_string() or self.array:
            return f", {self.type_name} {self.name}[{self.array}]"
        return f", {self.type_name}* {self.name}"

    # ---- code generation -----------------------------------------------------

    def _access(self, ctx: EmitContext, decode: bool) -> str:
        """Expression for the value (or element i of the array) in memory."""
        if ctx.is_structure_member:
            access = "user->" + self.name
        elif decode and not (self.array or self.is_string()):
            access = "(*" + self.name + ")"
        else:
            access = self.name

        if self.is_array():
            access += "[i]"
        return access

    def _encode_value(self, ctx: EmitContext) -> str:
        if self.is_constant():
            return self.constant_value
        if self.is_not_in_memory():
            return '0'
        return self._access(ctx, decode=False)

    def _integer_function(self, direction: str, ctx: EmitContext) -> str:
        """Name like uint16ToBeBytes or int8FromBytes."""
        base = 'int' if self.encoded.kind == 'signed' else 'uint'
        if self.encoded.kind == 'float':
            base = 'float'
        endian = '' if self.encoded.bytes == 1 else ctx.endian
        return f"{base}{self.encoded.bits}{direction}{endian}Bytes"

    def _scaled_function(self, direction: str, ctx: EmitContext) -> str:
        """Name like float32ScaledTo2UnsignedBeBytes."""
        sign = 'Signed' if self.encoded.kind == 'signed' else 'Unsigned'
        endian = '' if self.encoded.bytes == 1 else ctx.endian
        return f"float{self.in_memory.bits}Scaled{direction}{self.encoded.bytes}{sign}{endian}Bytes"

    def _encode_statement(self, ctx: EmitContext) -> str:
        value = self._encode_value(ctx)

        if self.is_bitfield():
            return f"encodeBitfield({value}, data, &byteindex, &bitcount, {self.encoded.bits});"

        if self.is_string():
            return f"stringToBytes({value}, data, &byteindex, {self.array});"

        if self.is_scaled():
            return (f"{self._scaled_function('To', ctx)}({value}, {self.min_value or '0'}, "
                    f"{self.scaler}, data, &byteindex);")

        if self.encoded.kind == 'float':
            cast = self.encoded.c_type()
        else:
            cast = TypeInfo('signed' if self.encoded.kind == 'signed' else 'unsigned', self.encoded.bits).c_type()
        return f"{self._integer_function('To', ctx)}(({cast})({value}), data, &byteindex);"

    def _decode_statement(self, ctx: EmitContext) -> str:
        if self.is_not_in_memory():
            if self.is_bitfield():
                return f"decodeBitfield(data, &byteindex, &bitcount, {self.encoded.bits});"
            return f"byteindex += {self.encoded.bytes};"

        access = self._access(ctx, decode=True)

        if self.is_bitfield():
            cast = f"({self.type_name})" if self.in_memory.kind == 'enum' else ''
            return f"{access} = {cast}decodeBitfield(data, &byteindex, &bitcount, {self.encoded.bits});"

        if self.is_string():
            return f"stringFromBytes({access}, data, &byteindex, {self.array});"

        if self.is_scaled():
            return (f"{access} = {self._scaled_function('From', ctx)}(data, &byteindex, "
                    f"{self.min_value or '0'}, 1.0/{self.scaler});")

        return f"{access} = ({self.type_name}){self._integer_function('From', ctx)}(data, &byteindex);"

    def _close_bitfield(self, ctx: EmitContext, spacing: str) -> List[str]:
        ctx.bitcount = self.get_ending_bit_count()
        if not self.terminates_bitfield:
            return []

        lines = []
        if ctx.bitcount % 8:
            lines.append(f"{spacing}bitcount = 0; byteindex += 1; // close bit field")
        else:
            lines.append(f"{spacing}bitcount = 0; // close bit field")
        ctx.bitcount = 0
        return lines

    def _wrap(self, ctx: EmitContext, statement: str, decode: bool) -> List[str]:
        """Comment, dependsOn guard and array loop around one statement."""
        spacing = "    "
        lines = []

        if self.comment:
            lines.append(f"{spacing}// {self.comment}")

        if self.depends_on:
            lines.append(f"{spacing}if({self._depends_on_access(ctx, decode)})")
            lines.append(f"{spacing}{{")
            spacing += "    "

        if self.is_array():
            lines.append(spacing + self._loop_header(ctx, decode))
            lines.append(f"{spacing}    {statement}")
        else:
            lines.append(spacing + statement)

        if self.is_bitfield():
            lines.extend(self._close_bitfield(ctx, spacing))

        if self.depends_on:
            lines.append("    }")

        return lines

    def get_encode_string(self, ctx: EmitContext) -> str:
        if self.is_not_encoded():
            return ''
        return '\n'.join(self._wrap(ctx, self._encode_statement(ctx), decode=False)) + '\n'

    def get_decode_string(self, ctx: EmitContext) -> str:
        if self.is_not_encoded():
            return ''

        lines = []
        if ctx.defaults_enabled and self.is_default() and not (self.is_bitfield() and ctx.bitcount):
            length = self.get_presence_length()
            lines.append(f"    // {self.name} is optional, its default value is used if the data are absent")
            lines.append(f"    if(byteindex + {length} > numBytes)")
            lines.append("        return 1;")
            lines.append("")

        lines.extend(self._wrap(ctx, self._decode_statement(ctx), decode=True))
        return '\n'.join(lines) + '\n'

    def get_presence_length(self) -> str:
        """Fewest bytes that mean the field is present on the wire."""
        if self.is_string():
            return '1'
        if self.variable_array:
            return self._element_length().max_encoded_length or '1'
        return self.encoded_length.max_encoded_length or '1'

    def get_set_to_defaults_string(self, is_structure_member: bool) -> str:
        if not self.is_default():
            return ''

        if self.is_string():
            access = ("user->" if is_structure_member else '') + self.name
            text = self.default_value.strip('"')
            return f"    strncpy({access}, \"{text}\", {self.array});\n"

        if is_structure_member:
            access = "user->" + self.name
        elif self.is_array():
            access = self.name
        else:
            access = "(*" + self.name + ")"

        if self.is_array():
            return (f"    for(i = 0; i < {self.array}; i++)\n"
                    f"        {access}[i] = {self.default_value};\n")
        return f"    {access} = {self.default_value};\n"

    # ---- documentation -------------------------------------------------------

    def get_encoding_text(self) -> str:
        if self.is_string():
            return f"Zero-terminated string up to {self.array} bytes"
        kind = 'unsigned' if self.encoded.kind == 'enum' else self.encoded.kind
        return ENCODING_NAMES[kind] + str(self.encoded.bits)

    def get_description(self) -> str:
        description = self.comment

        if self.in_memory.kind == 'enum':
            description = add_sentence(description, f"Values from `{self.in_memory.enum.name}`.")

        if self.is_scaled():
            sentence = f"Scaled by {self.scaler}"
            if self.min_value:
                sentence += f" after subtracting {self.min_value}"
            description = add_sentence(description, sentence + ".")

        if self.is_constant():
            description = add_sentence(description, f"Data are given constant value on encode {self.constant_value}.")
        elif self.is_not_in_memory():
            description = add_sentence(description, "Reserved, encoded as zero.")

        if self.is_default():
            description = add_sentence(
                description,
                f"This field is optional. If it is not included then the value is assumed to be {self.default_value}.")

        if self.depends_on:
            description = add_sentence(description, f"Only included if {self.depends_on} is non-zero.")

        return description

    def _bitfield_byte_range(self, start_byte: str) -> str:
        first = self.starting_bit_count
        last = self.get_ending_bit_count() - 1

        first_byte = collapse_length_string(f"{start_byte}+{first // 8}")
        last_byte = collapse_length_string(f"{start_byte}+{last // 8}")
        first_text = f"{first_byte}:{7 - first % 8}"
        last_text = f"{last_byte}:{7 - last % 8}"

        if first == last:
            return first_text
        return first_text + "..." + last_text

    def get_documentation_details(self, outline: List[int], start_byte: str,
                                  rows: DocumentationRows) -> str:
        if self.is_not_encoded():
            return start_byte

        outline[-1] += 1
        max_length = self.encoded_length.max_encoded_length

        if self.is_bitfield():
            byte_range = self._bitfield_byte_range(start_byte)
            next_start_byte = add_length_strings(start_byte, max_length)
        else:
            next_start_byte = add_length_strings(start_byte, max_length)
            if not max_length or max_length == '1':
                byte_range = start_byte
            else:
                byte_range = start_byte + "..." + subtract_one_from_length_string(next_start_byte)

        repeat = '' if self.is_string() else self.get_repeat_text()
        rows.append(byte_range, outline_name(outline, self.name), self.get_encoding_text(),
                    repeat, self.get_description())

        return next_start_byte
