#!/usr/bin/env python3
"""
protocol_parser.py - One generation run over a protocol description

Reads a <Protocol> document, generates every module it describes and writes
the C headers, C sources and the Markdown documentation.

    <Protocol name="Demo" prefix="Demo" endian="big" api="1" version="1.0.0">
        <Enum name="DemoPackets">
            <Value name="DEMO_STATUS" value="0x10"/>
        </Enum>
        <Packet name="Status" ID="DEMO_STATUS">
            <Data name="mode" inMemoryType="unsigned8"/>
            <Data name="temperature" inMemoryType="float32" encodedType="signed16" scaler="100"/>
        </Packet>
    </Protocol>

Generation settings come from GeneratorConfig, which may be loaded from a
YAML file:

    output_dir: generated
    markdown: true
    big_endian: null      # null keeps the endian attribute of the document
    quiet: false

Usage:
    from protocol_parser import GeneratorConfig, ProtocolParser

    result = ProtocolParser(GeneratorConfig(output_dir='out')).parse_file('demo.xml')
    for path in result.files:
        print(path)
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from xml.etree.ElementTree import Element

import yaml

from enum_creator import EnumCreator
from protocol_packet import ProtocolPacket
from protocol_structure_module import ProtocolStructureModule
from protocol_support import ProtocolSupport
from schema_helpers import get_attribute, get_comment, log_info, log_warn, output_long_comment, set_quiet


@dataclass
class GeneratorConfig:
    """Settings of a generation run."""
    output_dir: str = '.'
    markdown: bool = True
    big_endian: Optional[bool] = None
    quiet: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'GeneratorConfig':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                log_warn(f"Unknown configuration key '{key}' ignored")

        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'GeneratorConfig':
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)


@dataclass
class GenerationResult:
    """Outcome of one run: the files written and every warning raised."""
    protocol_name: str = ''
    files: List[Path] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    packets: List[str] = field(default_factory=list)
    structures: List[str] = field(default_factory=list)


# Legend for the encoding column of the packet tables
ENCODING_LEGEND = [
    ("Bn", "Bitfield encoding of n bits, packed most significant bit first"),
    ("Un", "Unsigned integer of n bits"),
    ("In", "Signed integer of n bits"),
    ("Fn", "IEEE-754 floating point of n bits"),
]


class ProtocolParser:
    """
    Generator for one protocol document. The enumeration registry and the
    module files live for exactly one call of parse_root().
    """

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        self.support = ProtocolSupport()
        self.comment = ''
        self.global_enums: List[EnumCreator] = []
        self.structures: List[ProtocolStructureModule] = []
        self.packets: List[ProtocolPacket] = []
        self.warnings: List[str] = []

    def parse_file(self, path: Union[str, Path]) -> GenerationResult:
        path = Path(path)
        try:
            tree = ET.parse(path)
        except ET.ParseError as e:
            raise ValueError(f"{path}: {e}") from e
        return self.parse_root(tree.getroot())

    def parse_string(self, text: str) -> GenerationResult:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise ValueError(f"Malformed protocol description: {e}") from e
        return self.parse_root(root)

    def parse_root(self, root: Element) -> GenerationResult:
        if root.tag != 'Protocol':
            raise ValueError(f"Root element must be <Protocol>, got <{root.tag}>")

        set_quiet(self.config.quiet)
        self.start_run(root)
        try:
            self.parse_children(root)
            self.create_protocol_header()

            result = GenerationResult(protocol_name=self.support.protocol_name)
            result.packets = [packet.name for packet in self.packets]
            result.structures = [structure.name for structure in self.structures]

            for module in self.structures + self.packets:
                self.warnings.extend(module.all_warnings())
            result.warnings = list(self.warnings)

            result.files = self.write_files()
            if self.config.markdown:
                result.files.append(self.write_markdown())
            return result
        finally:
            self.support.teardown()
            set_quiet(False)

    def start_run(self, root: Element) -> None:
        self.warnings = []
        name = get_attribute(root, 'name')
        if not name:
            self.warnings.append("Protocol name not specified, using \"Protocol\"")
            log_warn(self.warnings[-1])
            name = 'Protocol'

        endian = get_attribute(root, 'endian', 'big').lower()
        big_endian = endian != 'little'
        if self.config.big_endian is not None:
            big_endian = bool(self.config.big_endian)

        self.support = ProtocolSupport(
            protocol_name=name,
            prefix=get_attribute(root, 'prefix'),
            big_endian=big_endian,
            api=get_attribute(root, 'api'),
            version=get_attribute(root, 'version'),
        )
        self.comment = get_comment(root)
        self.global_enums = []
        self.structures = []
        self.packets = []

    def parse_children(self, root: Element) -> None:
        """Enumerations, structures and packets, in document order."""
        protocol_header = self.protocol_header

        for child in root:
            if child.tag == 'Enum':
                enum = self.support.enums.parse_enumeration(child)
                if enum not in self.global_enums:
                    self.global_enums.append(enum)
            elif child.tag == 'Include':
                protocol_header.write_include_directive(get_attribute(child, 'name'))
            elif child.tag == 'Structure':
                self.structures.append(ProtocolStructureModule(self.support, child))
            elif child.tag == 'Packet':
                self.packets.append(ProtocolPacket(self.support, child))

    @property
    def protocol_header(self):
        return self.support.get_file(self.support.protocol_name + "Protocol", '.h')

    def create_protocol_header(self) -> None:
        """The header every module includes: enumerations and the packet interface."""
        name = self.support.protocol_name
        header = self.protocol_header

        # Includes from <Include> elements are already there, the banner goes first
        includes = header.contents
        header.contents = ''

        header.write("/*!\n")
        header.write(" * \\file\n")
        header.write(f" * \\brief {header.file_name} defines the interface for the {name} protocol stack\n")
        if self.comment:
            header.write(" *\n")
            header.write(output_long_comment(" *", self.comment) + "\n")
        header.write(" */\n")
        header.make_line_separator()

        header.write("#include <stdint.h>\n")
        header.write(includes)
        header.make_line_separator()

        if self.support.api:
            header.write("//! \\return the protocol API enumeration\n")
            header.write(f"#define get{name}Api() {self.support.api}\n")
        if self.support.version:
            header.write("//! \\return the protocol version string\n")
            header.write(f"#define get{name}Version() \"{self.support.version}\"\n")
        header.make_line_separator()

        for enum in self.global_enums:
            if not self.support.enums.claim_output(enum) or not enum.get_output():
                continue
            header.make_line_separator()
            header.write(enum.get_output())

        header.make_line_separator()
        header.write("// The prototypes below provide an interface to the packets.\n")
        header.write("// They are not auto-generated functions, but must be hand-written\n")
        header.write("\n")
        header.write("//! \\return the packet data pointer from the packet\n")
        header.write(f"uint8_t* get{name}PacketData(void* pkt);\n")
        header.write("\n")
        header.write("//! \\return the packet data pointer from the packet, const\n")
        header.write(f"const uint8_t* get{name}PacketDataConst(const void* pkt);\n")
        header.write("\n")
        header.write("//! Complete a packet after the data have been encoded\n")
        header.write(f"void finish{name}Packet(void* pkt, int size, uint32_t packetID);\n")
        header.write("\n")
        header.write("//! \\return the size of a packet from the packet header\n")
        header.write(f"int get{name}PacketSize(const void* pkt);\n")
        header.write("\n")
        header.write("//! \\return the ID of a packet from the packet header\n")
        header.write(f"uint32_t get{name}PacketID(const void* pkt);\n")

    def get_markdown(self) -> str:
        """Documentation of the whole protocol: enumerations, packets, encoding legend."""
        name = self.support.protocol_name
        packet_ids = [packet.id for packet in self.packets]

        output = f"# {name} Protocol\n"
        output += "\n"
        if self.comment:
            output += self.comment + "\n"
            output += "\n"

        if self.support.api:
            output += f"{name} protocol API is **{self.support.api}**.\n"
            output += "\n"
        if self.support.version:
            output += f"{name} protocol version is **{self.support.version}**.\n"
            output += "\n"

        paragraph = 1
        for enum in self.global_enums:
            markdown = enum.get_markdown(str(paragraph), packet_ids)
            if not markdown:
                continue
            output += markdown
            output += "\n"
            paragraph += 1

        for packet in self.packets:
            output += packet.get_top_level_markdown(str(paragraph))
            output += "\n"
            paragraph += 1

        output += "## <a name=\"Enc\"></a>Encodings\n"
        output += "\n"
        output += "| Enc | Meaning |\n"
        output += "| --- | ------- |\n"
        for code, meaning in ENCODING_LEGEND:
            output += f"| {code} | {meaning} |\n"

        return output

    def write_files(self) -> List[Path]:
        """Write every module file into the output directory."""
        directory = Path(self.config.output_dir)
        written = []
        for protocol_file in self.support.files.values():
            if not protocol_file.contents:
                continue

            path = protocol_file.flush(directory)

            log_info(f"Generated: {path}")
            written.append(path)

        return written

    def write_markdown(self) -> Path:
        directory = Path(self.config.output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / (self.support.protocol_name + '.markdown')
        path.write_text(self.get_markdown())
        log_info(f"Generated: {path}")
        return path
