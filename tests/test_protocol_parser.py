"""
Tests for whole generation runs, configuration and the command line tool.
"""

import subprocess
import sys
from pathlib import Path

import pytest

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from protocol_parser import GeneratorConfig, ProtocolParser

TOOL_PATH = Path(__file__).parent.parent / 'tools' / 'generate_protocol.py'


def run(text, tmp_path, **options):
    config = GeneratorConfig(output_dir=str(tmp_path), **options)
    return ProtocolParser(config).parse_string(text)


class TestGeneration:
    """Files written by a run over the demonstration protocol."""

    def test_files(self, demo_xml, tmp_path):
        result = run(demo_xml, tmp_path)
        names = sorted(path.name for path in result.files)
        assert names == sorted([
            "DemoProtocol.h",
            "DemoPosition.h", "DemoPosition.c",
            "DemoStatusPacket.h", "DemoStatusPacket.c",
            "DemoConfigPacket.h", "DemoConfigPacket.c",
            "DemoPingPacket.h", "DemoPingPacket.c",
            "Demo.markdown",
        ])
        for path in result.files:
            assert path.exists()

    def test_result_summary(self, demo_xml, tmp_path):
        result = run(demo_xml, tmp_path)
        assert result.protocol_name == "Demo"
        assert result.packets == ["Status", "Config", "Ping"]
        assert result.structures == ["Position"]
        assert result.warnings == []

    def test_protocol_header(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        header = (tmp_path / "DemoProtocol.h").read_text()
        assert header.startswith("#ifndef _DEMOPROTOCOL_H\n#define _DEMOPROTOCOL_H\n")
        assert "#include <stdint.h>\n" in header
        assert "#define getDemoApi() 3\n" in header
        assert "#define getDemoVersion() \"1.2.0\"\n" in header
        assert "    DEMO_STATUS = 0x10," in header
        assert "DEMO_MODE_IDLE" not in header
        assert "uint8_t* getDemoPacketData(void* pkt);\n" in header
        assert "const uint8_t* getDemoPacketDataConst(const void* pkt);\n" in header
        assert "void finishDemoPacket(void* pkt, int size, uint32_t packetID);\n" in header
        assert "int getDemoPacketSize(const void* pkt);\n" in header
        assert "uint32_t getDemoPacketID(const void* pkt);\n" in header
        assert header.rstrip().endswith("#endif // _DEMOPROTOCOL_H")

    def test_local_enum_in_packet_header(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        header = (tmp_path / "DemoStatusPacket.h").read_text()
        assert "DEMO_MODE_IDLE" in header
        assert '#include "DemoProtocol.h"' in header

    def test_source_includes_own_header(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        source = (tmp_path / "DemoStatusPacket.c").read_text()
        assert source.startswith('#include "DemoStatusPacket.h"\n')

    def test_structure_module(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        header = (tmp_path / "DemoPosition.h").read_text()
        source = (tmp_path / "DemoPosition.c").read_text()
        assert "}DemoPosition_t;" in header
        assert "int encodeDemoPosition_t(uint8_t* data, int byteindex, const DemoPosition_t* user);" in header
        assert "int decodeDemoPosition_t(const uint8_t* data, int byteindex, DemoPosition_t* user);" in header
        assert "float64ScaledTo4SignedBeBytes(user->latitude, 0, 1000000, data, &byteindex);" in source
        assert "static int encodeDemoPosition_t" not in source

    def test_protocol_include(self, tmp_path):
        text = """<Protocol name="Inc"><Include name="myTypes"/>
            <Packet name="A"><Data name="a" inMemoryType="unsigned8"/></Packet></Protocol>"""
        run(text, tmp_path, markdown=False)
        header = (tmp_path / "IncProtocol.h").read_text()
        assert header.index("#include <stdint.h>") < header.index('#include "myTypes.h"')

    def test_repeated_runs_are_independent(self, demo_xml, tmp_path):
        parser = ProtocolParser(GeneratorConfig(output_dir=str(tmp_path)))
        parser.parse_string(demo_xml)
        (tmp_path / "DemoProtocol.h").unlink()
        parser.parse_string(demo_xml)
        header = (tmp_path / "DemoProtocol.h").read_text()
        assert header.count("    DEMO_STATUS = 0x10,") == 1
        assert "DEMO_MODE_IDLE" in (tmp_path / "DemoStatusPacket.h").read_text()


class TestEndian:
    """Byte order of the generated code."""

    def test_big_endian_default(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        assert "uint16ToBeBytes" in (tmp_path / "DemoStatusPacket.c").read_text()

    def test_config_override(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path, big_endian=False)
        source = (tmp_path / "DemoStatusPacket.c").read_text()
        assert "uint16ToLeBytes" in source
        assert "uint16ToBeBytes" not in source

    def test_document_attribute(self, tmp_path):
        text = """<Protocol name="Le" endian="little">
            <Packet name="A"><Data name="a" inMemoryType="unsigned32"/></Packet></Protocol>"""
        run(text, tmp_path, markdown=False)
        assert "uint32ToLeBytes" in (tmp_path / "APacket.c").read_text()


class TestMarkdown:
    """The protocol documentation file."""

    def test_title_and_versions(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        markdown = (tmp_path / "Demo.markdown").read_text()
        assert markdown.startswith("# Demo Protocol\n\nDemonstration protocol\n\n")
        assert "Demo protocol API is **3**." in markdown
        assert "Demo protocol version is **1.2.0**." in markdown

    def test_paragraph_numbering(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        markdown = (tmp_path / "Demo.markdown").read_text()
        assert "## 1) DemoPackets" in markdown
        assert '## 2) <a name="DEMO_STATUS"></a>Status' in markdown
        assert '## 3) <a name="DEMO_CONFIG"></a>Config' in markdown
        assert '## 4) <a name="DEMO_PING"></a>Ping' in markdown

    def test_packet_links_and_legend(self, demo_xml, tmp_path):
        run(demo_xml, tmp_path)
        markdown = (tmp_path / "Demo.markdown").read_text()
        assert "[`DEMO_STATUS`](#DEMO_STATUS)" in markdown
        assert "- packet identifier: `DEMO_STATUS` : 16" in markdown
        assert '## <a name="Enc"></a>Encodings' in markdown
        assert "| Bn |" in markdown

    def test_no_markdown(self, demo_xml, tmp_path):
        result = run(demo_xml, tmp_path, markdown=False)
        assert not (tmp_path / "Demo.markdown").exists()
        assert all(path.suffix in ('.h', '.c') for path in result.files)


class TestErrors:
    """Fatal errors and collected warnings."""

    def test_wrong_root(self, tmp_path):
        with pytest.raises(ValueError, match="Protocol"):
            run("<Packets/>", tmp_path)

    def test_malformed_xml(self, tmp_path):
        with pytest.raises(ValueError, match="Malformed"):
            run("<Protocol name='x'>", tmp_path)

    def test_parse_file_malformed(self, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<Protocol")
        with pytest.raises(ValueError):
            ProtocolParser(GeneratorConfig(output_dir=str(tmp_path))).parse_file(path)

    def test_missing_name(self, tmp_path):
        result = run("<Protocol/>", tmp_path, markdown=False)
        assert result.protocol_name == "Protocol"
        assert any("Protocol name not specified" in w for w in result.warnings)

    def test_warnings_collected(self, tmp_path, capsys):
        text = """<Protocol name="W">
            <Packet name="A"><Data name="a" inMemoryType="bogus"/></Packet></Protocol>"""
        result = run(text, tmp_path, markdown=False)
        assert any('"bogus" not understood' in w for w in result.warnings)
        assert "[WARN]" in capsys.readouterr().err

    def test_quiet(self, tmp_path, capsys):
        text = """<Protocol name="W">
            <Packet name="A"><Data name="a" inMemoryType="bogus"/></Packet></Protocol>"""
        result = run(text, tmp_path, markdown=False, quiet=True)
        assert result.warnings
        assert "[WARN]" not in capsys.readouterr().err


class TestGeneratorConfig:
    """YAML generation settings."""

    def test_defaults(self):
        config = GeneratorConfig.from_dict(None)
        assert config.output_dir == '.'
        assert config.markdown is True
        assert config.big_endian is None

    def test_from_yaml(self, tmp_path, capsys):
        path = tmp_path / "protogen.yaml"
        path.write_text("output_dir: generated\nmarkdown: false\nbig_endian: false\ncolour: blue\n")
        config = GeneratorConfig.from_yaml(path)
        assert config.output_dir == "generated"
        assert config.markdown is False
        assert config.big_endian is False
        assert "Unknown configuration key 'colour'" in capsys.readouterr().err

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert GeneratorConfig.from_yaml(path) == GeneratorConfig()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            GeneratorConfig.from_yaml(path)


class TestCommandLine:
    """generate_protocol.py run as a script."""

    def test_help(self):
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "protocol" in result.stdout.lower()

    def test_generate(self, demo_xml, tmp_path):
        xml_file = tmp_path / "demo.xml"
        xml_file.write_text(demo_xml)
        out = tmp_path / "out"
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), str(xml_file), str(out)],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr
        assert (out / "DemoProtocol.h").exists()
        assert (out / "Demo.markdown").exists()
        assert "[INFO] Generated:" in result.stderr
        assert "3 packets, 1 structures, 0 warnings" in result.stderr

    def test_no_markdown_option(self, demo_xml, tmp_path):
        xml_file = tmp_path / "demo.xml"
        xml_file.write_text(demo_xml)
        out = tmp_path / "out"
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), str(xml_file), str(out), "-no-markdown"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr
        assert (out / "DemoStatusPacket.c").exists()
        assert not (out / "Demo.markdown").exists()

    def test_config_file(self, demo_xml, tmp_path):
        xml_file = tmp_path / "demo.xml"
        xml_file.write_text(demo_xml)
        config_file = tmp_path / "protogen.yaml"
        config_file.write_text(f"output_dir: {tmp_path / 'configured'}\nbig_endian: false\n")
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), str(xml_file), "--config", str(config_file)],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr
        source = (tmp_path / "configured" / "DemoStatusPacket.c").read_text()
        assert "uint16ToLeBytes" in source

    def test_missing_file(self, tmp_path):
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), str(tmp_path / "nothing.xml")],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 1
        assert "failed to open protocol file" in result.stderr

    def test_malformed_file(self, tmp_path):
        xml_file = tmp_path / "broken.xml"
        xml_file.write_text("<Protocol")
        result = subprocess.run(
            [sys.executable, str(TOOL_PATH), str(xml_file), str(tmp_path)],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 1
        assert "Error:" in result.stderr
