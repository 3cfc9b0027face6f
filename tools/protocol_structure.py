#!/usr/bin/env python3
"""
protocol_structure.py - Structures: ordered groups of fields

A <Structure> (and every <Packet>) holds an ordered list of encodables.
Parsing a structure resolves the relationships between its children:

  - variableArray and dependsOn must name an earlier sibling that is encoded,
    in memory, and primitive (or an array). Unresolved names are dropped.
  - Only a trailing run of fields may have default values. A non-default
    field after a default one clears the defaults before it.
  - Adjacent bitfields form a group. Bit offsets are chained through the
    group and only its last member closes the byte.

Code generation is bottom-up: nested structures produce their declarations
and their encode/decode functions before the structure that calls them.

Usage:
    from protocol_structure import ProtocolStructure

    structure = ProtocolStructure(support, element)
    header_text = structure.get_structure_declaration(True)
    source_text = structure.get_prototype_encode_string(support.big_endian)
"""

from typing import List, Optional
from xml.etree.ElementTree import Element

from encodable import DocumentationRows, EmitContext, Encodable, add_sentence, outline_name
from encoded_length import EncodedLength, add_length_strings, subtract_one_from_length_string
from enum_creator import EnumCreator
from protocol_field import ProtocolField
from protocol_file import make_line_separator
from protocol_support import ProtocolSupport
from schema_helpers import child_elements, get_attribute, get_comment, output_long_comment


def generate_encodable(support: ProtocolSupport, element: Element) -> Optional[Encodable]:
    """Build the encodable for a child element, None for tags that are not encoded."""
    if element.tag == 'Data':
        return ProtocolField(support, element)
    if element.tag == 'Structure':
        return ProtocolStructure(support, element)
    return None


def align_structure_data(structure: str) -> str:
    """
    Align member declarations in two columns: the names after the type, and
    the comments after the semicolon.
    """
    lines = [line for line in structure.split('\n') if line]

    # The first space after the indent separates type from name
    widest = max((line.find(' ', 4) for line in lines), default=0)
    for index, line in enumerate(lines):
        position = line.find(' ', 4)
        if 0 <= position < widest:
            lines[index] = line[:position] + ' ' * (widest - position) + line[position:]

    # The first semicolon separates the name from the comment
    widest = max((line.find(';') + 1 for line in lines), default=0)
    for index, line in enumerate(lines):
        position = line.find(';') + 1
        if 0 < position < widest:
            lines[index] = line[:position] + ' ' * (widest - position) + line[position:]

    return ''.join(line + '\n' for line in lines)


class ProtocolStructure(Encodable):
    """A structure of encodables, possibly nested inside another structure."""

    def __init__(self, support: ProtocolSupport, element: Optional[Element] = None):
        super().__init__(support)
        if element is not None:
            self.parse(element)

    def clear(self) -> None:
        super().clear()
        self.encodables: List[Encodable] = []
        # Enumerations are owned by the registry, this is only a reference list
        self.enum_list: List[EnumCreator] = []
        self.bitfields = False
        self.needs_iterator = False
        self.defaults = False

    def parse(self, element: Element) -> None:
        self.clear()

        self.name = element.get('name', '') or '_unknown'
        self.type_name = self.prefix + self.name + "_t"

        self.array = get_attribute(element, 'array')
        self.variable_array = get_attribute(element, 'variableArray')
        if not self.array and self.variable_array:
            self.warn(f"{self.name}: must specify array length to specify variable array length")
            self.variable_array = ''

        self.depends_on = get_attribute(element, 'dependsOn')
        if self.depends_on and self.variable_array:
            self.warn(f"{self.name}: variable length arrays cannot also use dependsOn")
            self.depends_on = ''

        self.comment = get_comment(element)

        self.parse_enumerations(element)
        self.parse_children(element)
        self.compute_encoded_length()

    def parse_enumerations(self, element: Element) -> None:
        for enum_element in child_elements(element, 'Enum'):
            self.enum_list.append(self.support.enums.parse_enumeration(enum_element))

    def _find_reference(self, reference: str) -> Optional[int]:
        """Index of the earlier sibling a variableArray or dependsOn can name."""
        for index, previous in enumerate(self.encodables):
            if previous.is_not_encoded() or previous.is_not_in_memory():
                continue
            if not previous.is_primitive() and not previous.is_array():
                continue
            if previous.name == reference:
                return index
        return None

    def parse_children(self, element: Element) -> None:
        previous: Optional[Encodable] = None

        for child in element:
            encodable = generate_encodable(self.support, child)
            if encodable is None:
                continue

            if not encodable.is_not_encoded():
                if encodable.is_primitive():
                    if encodable.uses_bitfields():
                        self.bitfields = True

                    if encodable.uses_iterator():
                        self.needs_iterator = True

                    if encodable.uses_defaults():
                        self.defaults = True
                    elif self.defaults:
                        # Only the last fields can have defaults
                        for earlier in self.encodables:
                            if earlier.is_default():
                                self.warn(f"{self.name}: {earlier.name}: default value ignored, "
                                          "field is followed by non-default")
                            earlier.clear_defaults()
                        self.defaults = False

                elif encodable.is_array():
                    self.needs_iterator = True

                if encodable.variable_array:
                    index = self._find_reference(encodable.variable_array)
                    if index is None:
                        self.warn(f"{self.name}: {encodable.name}: variable length array ignored, "
                                  f"failed to find length variable {encodable.variable_array}")
                        encodable.variable_array = ''
                    encodable.variable_array_index = index

                if encodable.depends_on:
                    if encodable.is_bitfield():
                        self.warn(f"{self.name}: {encodable.name}: bitfields cannot use dependsOn")
                        encodable.depends_on = ''
                    else:
                        index = self._find_reference(encodable.depends_on)
                        if index is None:
                            self.warn(f"{self.name}: {encodable.name}: dependsOn ignored, "
                                      f"failed to find dependsOn variable {encodable.depends_on}")
                            encodable.depends_on = ''
                        encodable.depends_on_index = index

                # Assume a bitfield ends its group until the next field says otherwise
                if encodable.is_bitfield():
                    encodable.set_terminates_bitfield(True)

                    if previous is not None and previous.is_bitfield():
                        previous.set_terminates_bitfield(False)
                        encodable.set_starting_bit_count(previous.get_ending_bit_count())

                previous = encodable

            self.encodables.append(encodable)

    def compute_encoded_length(self) -> None:
        """Sum the children, then fold in our own array and dependsOn."""
        length = EncodedLength()
        for encodable in self.encodables:
            length.add_to_length(encodable.encoded_length)

        self._encoded_length = EncodedLength()
        self._encoded_length.add_to_length(length, self.array, bool(self.variable_array),
                                           bool(self.depends_on))

    def all_warnings(self) -> List[str]:
        warnings = list(self.warnings)
        for encodable in self.encodables:
            warnings.extend(encodable.all_warnings())
        return warnings

    # ---- classification ----------------------------------------------------

    def is_primitive(self) -> bool:
        return False

    def uses_bitfields(self) -> bool:
        return self.bitfields

    def uses_iterator(self) -> bool:
        return self.needs_iterator

    def uses_defaults(self) -> bool:
        return self.defaults

    def get_number_of_encodes(self) -> int:
        """Children that appear in the encoded data."""
        return sum(1 for encodable in self.encodables if not encodable.is_not_encoded())

    def get_number_of_non_const_encodes(self) -> int:
        """Children that appear in the encoded data and whose value the user sets."""
        return sum(1 for encodable in self.encodables
                   if not (encodable.is_not_encoded() or encodable.is_not_in_memory()
                           or encodable.is_constant()))

    # ---- declarations --------------------------------------------------------

    def get_declaration(self) -> str:
        output = "    " + self.type_name + " " + self.name
        if self.array:
            output += "[" + self.array + "];"
        else:
            output += ";"

        if self.comment:
            output += " //!< " + self.comment

        return output + "\n"

    def get_structure_declaration(self, always_create: bool) -> str:
        """
        Declarations of nested structures followed by our own typedef. A
        single member structure is not declared unless always_create is set.
        """
        output = ''
        if not self.encodables:
            return output

        for encodable in self.encodables:
            if not encodable.is_primitive():
                output += encodable.get_structure_declaration(True)
                output += "\n"

        members = ''.join(e.get_declaration() for e in self.encodables)
        if not members:
            # Nothing in memory to declare
            return output

        if len(self.encodables) > 1 or always_create:
            if self.comment:
                output += "/*!\n"
                output += output_long_comment(" *", self.comment) + "\n"
                output += " */\n"

            output += "typedef struct\n"
            output += "{\n"
            output += align_structure_data(members)
            output += "}" + self.type_name + ";\n"

        return output

    def get_encode_signature(self) -> str:
        if self.array:
            return f", const {self.type_name} {self.name}[{self.array}]"
        return f", const {self.type_name}* {self.name}"

    def get_decode_signature(self) -> str:
        if self.array:
            return f", {self.type_name} {self.name}[{self.array}]"
        return f", {self.type_name}* {self.name}"

    # ---- code generation -----------------------------------------------------

    def _function_body(self, big_endian: bool, decode: bool) -> str:
        output = ''
        if self.bitfields:
            output += "    int bitcount = 0;\n"
        if self.needs_iterator:
            output += "    int i = 0;\n"

        ctx = EmitContext(big_endian=big_endian, is_structure_member=True)
        for encodable in self.encodables:
            output = make_line_separator(output)
            if decode:
                output += encodable.get_decode_string(ctx)
            else:
                output += encodable.get_encode_string(ctx)

        output = make_line_separator(output)
        output += "    return byteindex;\n"
        return output

    def get_prototype_encode_string(self, big_endian: bool, public: bool = False) -> str:
        """
        Encode functions of our nested structures, then our own. Nested
        functions are always static; ours is public when asked.
        """
        output = ''
        if not self.encodables:
            return output

        for encodable in self.encodables:
            if not encodable.is_primitive():
                output += encodable.get_prototype_encode_string(big_endian)
                output = make_line_separator(output)

        output = make_line_separator(output)
        output += "/*!\n"
        output += " * \\brief Encode a " + self.type_name + " structure into a byte array\n"
        output += " *\n"
        output += output_long_comment(" *", self.comment) + "\n"
        output += " * \\param data points to the byte array to add encoded data to\n"
        output += " * \\param byteindex is the starting location in the byte array\n"
        output += " * \\param user is the data to encode in the byte array\n"
        output += " * \\return the location for the next data to be encoded in the byte array\n"
        output += " */\n"
        if not public:
            output += ("static int encode" + self.type_name + "(uint8_t* data, int byteindex, const "
                       + self.type_name + "* user);\n\n")
        output += "int encode" + self.type_name + "(uint8_t* data, int byteindex, const " + self.type_name + "* user)\n"
        output += "{\n"
        output += self._function_body(big_endian, decode=False)
        output += "}\n"

        return output

    def get_prototype_decode_string(self, big_endian: bool, public: bool = False) -> str:
        output = ''
        if not self.encodables:
            return output

        for encodable in self.encodables:
            if not encodable.is_primitive():
                output += encodable.get_prototype_decode_string(big_endian)
                output = make_line_separator(output)

        output = make_line_separator(output)
        output += "/*!\n"
        output += " * \\brief Decode a " + self.type_name + " structure from a byte array\n"
        output += " *\n"
        output += output_long_comment(" *", self.comment) + "\n"
        output += " * \\param data points to the byte array to decoded data from\n"
        output += " * \\param byteindex is the starting location in the byte array\n"
        output += " * \\param user is the data to decode from the byte array\n"
        output += " * \\return the location for the next data to be decoded in the byte array\n"
        output += " */\n"
        if not public:
            output += ("static int decode" + self.type_name + "(const uint8_t* data, int byteindex, "
                       + self.type_name + "* user);\n\n")
        output += "int decode" + self.type_name + "(const uint8_t* data, int byteindex, " + self.type_name + "* user)\n"
        output += "{\n"
        output += self._function_body(big_endian, decode=True)
        output += "}\n"

        return output

    def _call_string(self, ctx: EmitContext, direction: str) -> str:
        """The call of our encode or decode function made by a parent."""
        decode = direction == 'decode'
        spacing = "    "
        output = ''

        if self.comment:
            output += spacing + "// " + self.comment + "\n"

        if self.depends_on:
            output += spacing + "if(" + self._depends_on_access(ctx, decode) + ")\n"
            output += spacing + "{\n"
            spacing += "    "

        if self.is_array():
            output += spacing + self._loop_header(ctx, decode) + "\n"
            if ctx.is_structure_member:
                access = "&user->" + self.name + "[i]"
            else:
                access = "&" + self.name + "[i]"
            output += spacing + "    byteindex = " + direction + self.type_name + "(data, byteindex, " + access + ");\n"
        else:
            if ctx.is_structure_member:
                access = "&user->" + self.name
            else:
                # Parameters are already pointers
                access = self.name
            output += spacing + "byteindex = " + direction + self.type_name + "(data, byteindex, " + access + ");\n"

        if self.depends_on:
            output += "    }\n"

        return output

    def get_encode_string(self, ctx: EmitContext) -> str:
        return self._call_string(ctx, 'encode')

    def get_decode_string(self, ctx: EmitContext) -> str:
        return self._call_string(ctx, 'decode')

    # ---- documentation -------------------------------------------------------

    def get_documentation_details(self, outline: List[int], start_byte: str,
                                  rows: DocumentationRows) -> str:
        max_length = self.encoded_length.max_encoded_length
        next_start_byte = add_length_strings(start_byte, max_length)

        if not max_length or max_length == '1':
            byte_range = start_byte
        else:
            byte_range = start_byte + "..." + subtract_one_from_length_string(next_start_byte)

        outline[-1] += 1

        description = self.comment
        if self.depends_on:
            description = add_sentence(description, f"Only included if {self.depends_on} is non-zero.")

        # Encoding is blank for structures
        rows.append(byte_range, outline_name(outline, self.name), '', self.get_repeat_text(), description)

        self.get_sub_documentation_details(outline, start_byte, rows)

        # Differs from the end of the children when this structure repeats
        return next_start_byte

    def get_sub_documentation_details(self, outline: List[int], start_byte: str,
                                      rows: DocumentationRows) -> str:
        outline.append(0)
        for encodable in self.encodables:
            start_byte = encodable.get_documentation_details(outline, start_byte, rows)
        outline.pop()
        return start_byte
