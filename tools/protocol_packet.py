#!/usr/bin/env python3
"""
protocol_packet.py - Packets: top-level structures with an identifier

A <Packet> is a structure module that is encoded into, and decoded from, a
packet handle owned by the protocol layer. Every packet gets two utility
functions (its identifier and its minimum data length) and one or both of
two interfaces:

  structure interface   encode<Prefix><Name>PacketStructure(void* pkt, const <Type>* user)
  parameter interface   encode<Prefix><Name>Packet(void* pkt, <one parameter per field>)

The interface is chosen by the structureInterface / parameterInterface
attributes. Without guidance a packet with more than one field gets the
structure interface and anything smaller gets the parameter interface.

Usage:
    from protocol_packet import ProtocolPacket

    packet = ProtocolPacket(support, element)
    packet.id                              # "MYPROTO_TEMPERATURE"
    packet.get_top_level_markdown("3")     # documentation section
"""

from typing import List, Optional, Tuple
from xml.etree.ElementTree import Element

from encodable import DocumentationRows, EmitContext
from encoded_length import markdown_cell, markdown_length
from protocol_structure import ProtocolStructure
from protocol_structure_module import ProtocolStructureModule
from protocol_support import ProtocolSupport
from schema_helpers import attribute_is_true, get_attribute, output_long_comment, spaced_string


def select_interfaces(element: Element, number_of_encodables: int) -> Tuple[bool, bool]:
    """Return (structure_interface, parameter_interface) for a packet element."""
    structure_functions = attribute_is_true(element, 'structureInterface')
    parameter_functions = attribute_is_true(element, 'parameterInterface')

    if number_of_encodables <= 0:
        return False, True

    if not structure_functions and not parameter_functions:
        # No sense wrapping a single parameter in a structure
        if number_of_encodables <= 1:
            return False, True
        return True, False

    return structure_functions, parameter_functions


class ProtocolPacket(ProtocolStructureModule):
    """A packet and the module that encodes and decodes it."""

    def __init__(self, support: ProtocolSupport, element: Optional[Element] = None):
        super().__init__(support, element)

    def clear(self) -> None:
        super().clear()
        self.id = ''
        self.structure_functions = False
        self.parameter_functions = False

    def parse(self, element: Element) -> None:
        # Our own structure and its children, the module is written below
        ProtocolStructure.parse(self, element)

        if self.is_array():
            self.warn(f"{self.name}: packets cannot be an array")
            self.array = ''
            self.variable_array = ''
            self.compute_encoded_length()

        if self.depends_on:
            self.warn(f"{self.name}: dependsOn makes no sense for a packet")
            self.depends_on = ''
            self.compute_encoded_length()

        # Without an ID the upper case name must be defined elsewhere
        self.id = get_attribute(element, 'ID') or self.name.upper()

        self.open_module(element, self.prefix + self.name + "Packet")
        self.write_header_banner("packet")
        self.write_module_includes(element)
        self.write_enumerations()

        self.structure_functions, self.parameter_functions = select_interfaces(element, len(self.encodables))

        self.header.write(self.get_structure_declaration(self.structure_functions))
        self.header.make_line_separator()

        self.write_source_includes()
        self.create_sub_structure_functions()

        if self.structure_functions:
            self.create_structure_packet_functions()

        if self.parameter_functions:
            self.create_packet_functions()

        self.create_utility_functions()
        self.header.make_line_separator()

    # ---- names ---------------------------------------------------------------

    @property
    def function_name(self) -> str:
        return self.prefix + self.name

    def get_packet_encode_brief_comment(self) -> str:
        return f"Create the {self.function_name} packet"

    def get_packet_decode_brief_comment(self) -> str:
        return f"Decode the {self.function_name} packet"

    def get_data_encode_parameter_list(self) -> str:
        return ''.join(encodable.get_encode_signature() for encodable in self.encodables)

    def get_data_decode_parameter_list(self) -> str:
        return ''.join(encodable.get_decode_signature() for encodable in self.encodables)

    def get_packet_encode_signature(self) -> str:
        return f"void encode{self.function_name}Packet(void* pkt{self.get_data_encode_parameter_list()})"

    def get_packet_decode_signature(self) -> str:
        return f"int decode{self.function_name}Packet(const void* pkt{self.get_data_decode_parameter_list()})"

    # ---- code generation -----------------------------------------------------

    def create_sub_structure_functions(self) -> None:
        """Static functions of nested structures, ahead of the packet functions."""
        for encodable in self.encodables:
            if encodable.is_primitive():
                continue

            self.source.make_line_separator()
            self.source.write(encodable.get_prototype_encode_string(self.support.big_endian))

            self.source.make_line_separator()
            self.source.write(encodable.get_prototype_decode_string(self.support.big_endian))

    def create_utility_functions(self) -> None:
        header, source = self.header, self.source
        name = self.function_name

        header.make_line_separator()
        header.write(f"//! return the packet ID for the {name} packet\n")
        header.write(f"uint32_t get{name}PacketID(void);\n")

        source.make_line_separator()
        source.write("/*!\n")
        source.write(f" * \\return the packet ID for the {name} packet\n")
        source.write(" */\n")
        source.write(f"uint32_t get{name}PacketID(void)\n")
        source.write("{\n")
        source.write(f"    return {self.id};\n")
        source.write("}\n")

        header.make_line_separator()
        header.write(f"//! return the minimum data length for the {name} packet\n")
        header.write(f"int get{name}MinDataLength(void);\n")

        source.make_line_separator()
        source.write("/*!\n")
        source.write(f" * \\return the minimum data length in bytes for the {name} packet\n")
        source.write(" */\n")
        source.write(f"int get{name}MinDataLength(void)\n")
        source.write("{\n")
        source.write(f"    return {self.encoded_length.min_encoded_length or '0'};\n")
        source.write("}\n")

    def _function_comment(self, brief: str, params: List[str], returns: str = '') -> str:
        output = "/*!\n"
        output += f" * \\brief {brief}\n"
        output += " *\n"
        output += output_long_comment(" *", self.comment) + "\n"
        output += ''.join(params)
        if returns:
            output += f" * \\return {returns}\n"
        output += " */\n"
        return output

    def _local_variables(self) -> str:
        output = ''
        if self.bitfields:
            output += "    int bitcount = 0;\n"
        if self.needs_iterator:
            output += "    int i = 0;\n"
        return output

    def _encode_fields(self, is_structure_member: bool) -> None:
        ctx = EmitContext(big_endian=self.support.big_endian, is_structure_member=is_structure_member)
        for encodable in self.encodables:
            self.source.make_line_separator()
            self.source.write(encodable.get_encode_string(ctx))

    def _decode_fields(self, is_structure_member: bool) -> None:
        """
        Required fields, then a size check when the length of the data is
        only known at run time, then the default tail.
        """
        source = self.source
        ctx = EmitContext(big_endian=self.support.big_endian, is_structure_member=is_structure_member,
                          defaults_enabled=True)

        index = 0
        while index < len(self.encodables):
            source.make_line_separator()
            if self.encodables[index].is_default():
                break
            source.write(self.encodables[index].get_decode_string(ctx))
            index += 1

        length = self.encoded_length
        if length.min_encoded_length != length.non_default_encoded_length and index > 0:
            source.make_line_separator()
            source.write("    // Used variable length arrays or dependent fields, check actual length\n")
            source.write("    if(numBytes < byteindex)\n")
            source.write("        return 0;\n")

        for encodable in self.encodables[index:]:
            source.make_line_separator()
            source.write(encodable.get_decode_string(ctx))

        source.make_line_separator()
        source.write("    return 1;\n")
        source.write("}\n")

    def _set_to_defaults(self, is_structure_member: bool) -> str:
        if not self.defaults:
            return ''
        output = "    // this packet has default fields, make sure they are set\n"
        for encodable in self.encodables:
            output += encodable.get_set_to_defaults_string(is_structure_member)
        return output

    def _write_zero_length_functions(self, encode_signature: str, decode_signature: str) -> None:
        """Functions of a packet that carries no data."""
        proto, name, source = self.protocol_name, self.function_name, self.source

        source.make_line_separator()
        source.write(self._function_comment(
            self.get_packet_encode_brief_comment(),
            [" * \\param pkt points to the packet which will be created by this function\n"]))
        source.write(encode_signature + "\n")
        source.write("{\n")
        source.write("    // create a zero length packet\n")
        source.write(f"    finish{proto}Packet(pkt, 0, get{name}PacketID());\n")
        source.write("}\n")

        source.write("\n")
        source.write(self._function_comment(
            self.get_packet_decode_brief_comment(),
            [" * \\param pkt points to the packet being decoded by this function\n"],
            "0 is returned if the packet ID is wrong, else 1"))
        source.write(decode_signature + "\n")
        source.write("{\n")
        source.write(f"    if(get{proto}PacketID(pkt) != get{name}PacketID())\n")
        source.write("        return 0;\n")
        source.write("    else\n")
        source.write("        return 1;\n")
        source.write("}\n")

    def create_structure_packet_functions(self) -> None:
        """Encode and decode the packet from a structure."""
        header, source = self.header, self.source
        proto, name = self.protocol_name, self.function_name

        if self.get_number_of_encodes() <= 0:
            encode_signature = f"void encode{name}PacketStructure(void* pkt)"
            decode_signature = f"int decode{name}PacketStructure(const void* pkt)"

            header.make_line_separator()
            header.write(f"//! {self.get_packet_encode_brief_comment()}\n")
            header.write(encode_signature + ";\n")
            header.make_line_separator()
            header.write(f"//! {self.get_packet_decode_brief_comment()}\n")
            header.write(decode_signature + ";\n")

            self._write_zero_length_functions(encode_signature, decode_signature)
            return

        params = [" * \\param pkt points to the packet which will be created by this function\n"]
        if self.get_number_of_non_const_encodes() > 0:
            encode_signature = f"void encode{name}PacketStructure(void* pkt, const {self.type_name}* user)"
            params.append(" * \\param user points to the user data that will be encoded in pkt\n")
        else:
            encode_signature = f"void encode{name}PacketStructure(void* pkt)"

        header.make_line_separator()
        header.write(f"//! {self.get_packet_encode_brief_comment()}\n")
        header.write(encode_signature + ";\n")

        source.make_line_separator()
        source.write(self._function_comment(self.get_packet_encode_brief_comment(), params))
        source.write(encode_signature + "\n")
        source.write("{\n")
        source.write(f"    uint8_t* data = get{proto}PacketData(pkt);\n")
        source.write("    int byteindex = 0;\n")
        source.write(self._local_variables())

        self._encode_fields(is_structure_member=True)

        source.make_line_separator()
        source.write("    // complete the process of creating the packet\n")
        source.write(f"    finish{proto}Packet(pkt, byteindex, get{name}PacketID());\n")
        source.write("}\n")

        decode_signature = f"int decode{name}PacketStructure(const void* pkt, {self.type_name}* user)"

        header.make_line_separator()
        header.write(f"//! {self.get_packet_decode_brief_comment()}\n")
        header.write(decode_signature + ";\n")

        source.make_line_separator()
        source.write(self._function_comment(
            self.get_packet_decode_brief_comment(),
            [" * \\param pkt points to the packet being decoded by this function\n",
             " * \\param user receives the data decoded from the packet\n"],
            "0 is returned if the packet ID or size is wrong, else 1"))
        source.write(decode_signature + "\n")
        source.write("{\n")
        source.write("    int numBytes;\n")
        source.write("    int byteindex = 0;\n")
        source.write("    const uint8_t* data;\n")
        source.write(self._local_variables())
        source.write("\n")
        source.write("    // Verify the packet identifier\n")
        source.write(f"    if(get{proto}PacketID(pkt) != get{name}PacketID())\n")
        source.write("        return 0;\n")
        source.write("\n")
        source.write("    // Verify the packet size\n")
        source.write(f"    numBytes = get{proto}PacketSize(pkt);\n")
        source.write(f"    if(numBytes < get{name}MinDataLength())\n")
        source.write("        return 0;\n")
        source.write("\n")
        source.write("    // The raw data from the packet\n")
        source.write(f"    data = get{proto}PacketDataConst(pkt);\n")
        source.make_line_separator()
        source.write(self._set_to_defaults(is_structure_member=True))

        self._decode_fields(is_structure_member=True)

    def create_packet_functions(self) -> None:
        """Encode and decode the packet from one parameter per field."""
        header, source = self.header, self.source
        proto, name = self.protocol_name, self.function_name
        encode_signature = self.get_packet_encode_signature()
        decode_signature = self.get_packet_decode_signature()

        header.make_line_separator()
        header.write(f"//! {self.get_packet_encode_brief_comment()}\n")
        header.write(encode_signature + ";\n")

        header.make_line_separator()
        header.write(f"//! {self.get_packet_decode_brief_comment()}\n")
        header.write(decode_signature + ";\n")

        if self.get_number_of_encodes() <= 0:
            self._write_zero_length_functions(encode_signature, decode_signature)
            return

        params = [" * \\param pkt points to the packet which will be created by this function\n"]
        params.extend(encodable.get_encode_parameter_comment() for encodable in self.encodables)

        source.make_line_separator()
        source.write(self._function_comment(self.get_packet_encode_brief_comment(), params))
        source.write(encode_signature + "\n")
        source.write("{\n")
        source.write(f"    uint8_t* data = get{proto}PacketData(pkt);\n")
        source.write("    int byteindex = 0;\n")
        source.write(self._local_variables())

        self._encode_fields(is_structure_member=False)

        source.make_line_separator()
        source.write("    // complete the process of creating the packet\n")
        source.write(f"    finish{proto}Packet(pkt, byteindex, get{name}PacketID());\n")
        source.write("}\n")

        params = [" * \\param pkt points to the packet being decoded by this function\n"]
        params.extend(encodable.get_decode_parameter_comment() for encodable in self.encodables)

        source.write("\n")
        source.write(self._function_comment(self.get_packet_decode_brief_comment(), params,
                                            "0 is returned if the packet ID or size is wrong, else 1"))
        source.write(decode_signature + "\n")
        source.write("{\n")
        source.write(self._local_variables())
        source.write("    int byteindex = 0;\n")
        source.write(f"    const uint8_t* data = get{proto}PacketDataConst(pkt);\n")
        source.write(f"    int numBytes = get{proto}PacketSize(pkt);\n")
        source.write("\n")
        source.write(f"    if(get{proto}PacketID(pkt) != get{name}PacketID())\n")
        source.write("        return 0;\n")
        source.write("\n")
        source.write(f"    if(numBytes < get{name}MinDataLength())\n")
        source.write("        return 0;\n")
        if self.defaults:
            source.write("\n")
            source.write(self._set_to_defaults(is_structure_member=False))

        self._decode_fields(is_structure_member=False)

    # ---- documentation -------------------------------------------------------

    def get_documentation_rows(self) -> DocumentationRows:
        """Encoding table rows for every encoded field, nested fields included."""
        rows = DocumentationRows()
        outline = [0]
        start_byte = "0"
        for encodable in self.encodables:
            if encodable.is_not_encoded():
                continue
            start_byte = encodable.get_documentation_details(outline, start_byte, rows)
        return rows

    def get_top_level_markdown(self, outline: str) -> str:
        output = f"## {outline}) <a name=\"{self.id}\"></a>{self.name}\n"
        output += "\n"

        if self.comment:
            output += self.comment + "\n"
            output += "\n"

        # The identifier is often an enumeration we know the value of
        id_value = self.support.enums.replace_enumeration_name_with_value(self.id)
        if id_value == self.id:
            output += f"- packet identifier: `{self.id}`\n"
        else:
            output += f"- packet identifier: `{self.id}` : {id_value}\n"

        length = self.encoded_length
        min_length = markdown_length(length.min_encoded_length) or '0'
        max_length = markdown_length(length.max_encoded_length) or '0'
        if min_length == max_length:
            output += f"- data length: {min_length}\n"
        else:
            output += f"- minimum data length: {min_length}\n"
            output += f"- maximum data length: {max_length}\n"

        paragraph = 1
        if self.enum_list:
            output += "\n"
            output += f"### {outline}.{paragraph}) {self.name} enumerations\n"
            output += "\n"
            paragraph += 1

            for enum in self.enum_list:
                output += enum.get_markdown('')
                output += "\n"

            output += "\n"

        if self.encodables:
            output += "\n"
            output += f"### {outline}.{paragraph}) {self.name} encoding\n"
            output += "\n"
            output += self.get_encoding_table()

        return output

    def get_encoding_table(self) -> str:
        """
        Markdown table of the packet encoding. Structure rows have neither
        encoding nor repeat, so their cells merge.
        """
        rows = self.get_documentation_rows()

        byte_cells = ["Bytes"] + [markdown_cell(text) for text in rows.bytes]
        names = ["Name"] + rows.names
        encodings = ["[Enc](#Enc)"] + rows.encodings
        repeats = ["Repeat"] + rows.repeats
        comments = ["Description"] + rows.comments

        byte_column = max(len(text) for text in byte_cells)
        name_column = max(len(text) for text in names)
        encoding_column = max(len(text) for text in encodings)
        repeat_column = max(len(text) for text in repeats)
        comment_column = max(len(text) for text in comments)

        output = "\n"
        output += f"[Encoding for packet {self.name}]\n"

        output += "| " + spaced_string(byte_cells[0], byte_column)
        output += " | " + spaced_string(names[0], name_column)
        output += " | " + spaced_string(encodings[0], encoding_column)
        output += " | " + spaced_string(repeats[0], repeat_column)
        output += " | " + spaced_string(comments[0], comment_column) + " |\n"

        # Encoding and repeat columns are centered
        output += "| " + "-" * byte_column
        output += " | " + "-" * name_column
        output += " | :" + "-" * (encoding_column - 2)
        output += ": | :" + "-" * (repeat_column - 2)
        output += ": | " + "-" * comment_column + " |\n"

        for index in range(1, len(names)):
            output += "| " + spaced_string(byte_cells[index], byte_column)
            output += " | " + spaced_string(names[index], name_column)

            encoding, repeat = encodings[index], repeats[index]
            if not encoding and not repeat:
                output += spaced_string('', encoding_column + repeat_column)
                output += "     ||| "
            elif not encoding:
                output += spaced_string(encoding, encoding_column)
                output += "   || "
                output += spaced_string(repeat, repeat_column)
                output += " | "
            elif not repeat:
                output += " | "
                output += spaced_string(encoding, encoding_column)
                output += spaced_string(repeat, repeat_column)
                output += "   || "
            else:
                output += " | "
                output += spaced_string(encoding, encoding_column)
                output += " | "
                output += spaced_string(repeat, repeat_column)
                output += " | "

            output += spaced_string(comments[index], comment_column) + " |\n"

        output += "\n"
        return output
