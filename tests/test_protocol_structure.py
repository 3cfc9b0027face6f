"""
Tests for structures: child resolution, default tails, bitfield groups,
declarations, generated functions and documentation rows.
"""

import sys
from pathlib import Path

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from conftest import xml
from encodable import DocumentationRows, EmitContext
from protocol_field import ProtocolField
from protocol_structure import ProtocolStructure, align_structure_data, generate_encodable


def structure(support, body, attributes='name="S"'):
    return ProtocolStructure(support, xml(f'<Structure {attributes}>{body}</Structure>'))


def documented_names(rows):
    """Field names of documentation rows without their outline numbers."""
    return [name.split(')', 1)[1] for name in rows.names]


class TestGenerateEncodable:
    """Factory of child encodables."""

    def test_variants(self, support):
        assert isinstance(generate_encodable(support, xml('<Data name="x" inMemoryType="unsigned8"/>')),
                          ProtocolField)
        assert isinstance(generate_encodable(support, xml('<Structure name="x"/>')), ProtocolStructure)
        assert generate_encodable(support, xml('<Documentation name="x"/>')) is None
        assert generate_encodable(support, xml('<Enum name="x"/>')) is None


class TestStructureParsing:
    """Names, attributes and children."""

    def test_names(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>', 'name="Point"')
        assert s.name == "Point"
        assert s.type_name == "DemoPoint_t"
        assert not s.is_primitive()

    def test_missing_name(self, support):
        s = ProtocolStructure(support, xml('<Structure/>'))
        assert s.name == "_unknown"

    def test_children_in_order(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Documentation comment="ignored"/>'
                               '<Data name="b" inMemoryType="unsigned8"/>')
        assert [e.name for e in s.encodables] == ["a", "b"]

    def test_variable_array_needs_array(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>', 'name="S" variableArray="a"')
        assert s.variable_array == ""
        assert any("must specify array length" in w for w in s.warnings)

    def test_local_enum_registered(self, support):
        s = structure(support, '<Enum name="Shade"><Value name="LIGHT"/><Value name="DARK"/></Enum>'
                               '<Data name="shade" inMemoryType="Shade"/>')
        assert [e.name for e in s.enum_list] == ["Shade"]
        assert support.enums.find("Shade") is s.enum_list[0]
        assert s.encodables[0].type_name == "Shade"

    def test_encoded_length_sums_children(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="b" inMemoryType="unsigned32"/>'
                               '<Data name="c" inMemoryType="unsigned16" array="N"/>')
        assert s.encoded_length.max_encoded_length == "5+2*N"
        assert s.encoded_length.min_encoded_length == "5+2*N"

    def test_own_array_folds_into_length(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="b" inMemoryType="unsigned8"/>', 'name="S" array="3"')
        assert s.encoded_length.max_encoded_length == "6"


class TestDefaultTail:
    """Only a trailing run of fields may carry default values."""

    def test_trailing_defaults_kept(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="b" inMemoryType="unsigned8" default="1"/>'
                               '<Data name="c" inMemoryType="unsigned8" default="2"/>')
        assert [e.is_default() for e in s.encodables] == [False, True, True]
        assert s.uses_defaults()
        assert s.warnings == []

    def test_default_followed_by_required_cleared(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8" default="1"/>'
                               '<Data name="b" inMemoryType="unsigned8"/>')
        assert not s.encodables[0].is_default()
        assert not s.uses_defaults()
        assert any("a: default value ignored" in w for w in s.warnings)

    def test_defaults_can_restart(self, support):
        """One pass: defaults cleared before b, c starts a new tail."""
        s = structure(support, '<Data name="a" inMemoryType="unsigned8" default="1"/>'
                               '<Data name="b" inMemoryType="unsigned8"/>'
                               '<Data name="c" inMemoryType="unsigned8" default="3"/>')
        assert [e.is_default() for e in s.encodables] == [False, False, True]
        assert s.uses_defaults()


class TestReferences:
    """variableArray and dependsOn resolve against earlier siblings."""

    def test_variable_array_resolves(self, support):
        s = structure(support, '<Data name="len" inMemoryType="unsigned8"/>'
                               '<Data name="data" inMemoryType="unsigned8" array="4" variableArray="len"/>')
        data = s.encodables[1]
        assert data.variable_array == "len"
        assert data.variable_array_index == 0
        assert s.warnings == []

    def test_variable_array_missing_dropped(self, support):
        s = structure(support, '<Data name="len" inMemoryType="unsigned8"/>'
                               '<Data name="data" inMemoryType="unsigned8" array="4" variableArray="missing"/>')
        data = s.encodables[1]
        assert data.variable_array == ""
        assert data.variable_array_index is None
        assert any("failed to find length variable" in w for w in s.warnings)
        assert "for(i = 0; i < 4; i++)" in data.get_encode_string(EmitContext())
        assert s.encoded_length.min_encoded_length == "5"

    def test_reference_must_be_earlier(self, support):
        s = structure(support, '<Data name="data" inMemoryType="unsigned8" array="4" variableArray="len"/>'
                               '<Data name="len" inMemoryType="unsigned8"/>')
        assert s.encodables[0].variable_array == ""

    def test_reference_must_be_in_memory(self, support):
        s = structure(support, '<Data name="flag" inMemoryType="null" encodedType="unsigned8"/>'
                               '<Data name="value" inMemoryType="unsigned8" dependsOn="flag"/>')
        assert s.encodables[1].depends_on == ""
        assert any("dependsOn ignored" in w for w in s.warnings)

    def test_depends_on_resolves(self, support):
        s = structure(support, '<Data name="flag" inMemoryType="unsigned8"/>'
                               '<Data name="value" inMemoryType="unsigned16" dependsOn="flag"/>')
        assert s.encodables[1].depends_on_index == 0
        assert s.encoded_length.min_encoded_length == "1"
        assert s.encoded_length.max_encoded_length == "3"

    def test_bitfield_cannot_depend(self, support):
        s = structure(support, '<Data name="flag" inMemoryType="unsigned8"/>'
                               '<Data name="bits" inMemoryType="bitfield3" dependsOn="flag"/>')
        assert s.encodables[1].depends_on == ""
        assert any("bitfields cannot use dependsOn" in w for w in s.warnings)


class TestBitfieldGroups:
    """Adjacent bitfields share bytes, the last one closes the group."""

    def test_chaining(self, support):
        s = structure(support, '<Data name="a" inMemoryType="bitfield3"/>'
                               '<Data name="b" inMemoryType="bitfield4"/>')
        a, b = s.encodables
        assert not a.terminates_bitfield
        assert b.terminates_bitfield
        assert b.starting_bit_count == 3
        assert s.uses_bitfields()
        assert s.encoded_length.max_encoded_length == "1"

    def test_group_spanning_bytes(self, support):
        s = structure(support, '<Data name="a" inMemoryType="bitfield4"/>'
                               '<Data name="b" inMemoryType="bitfield6"/>'
                               '<Data name="c" inMemoryType="unsigned8"/>')
        assert s.encoded_length.max_encoded_length == "3"

    def test_groups_split_by_other_fields(self, support):
        s = structure(support, '<Data name="a" inMemoryType="bitfield4"/>'
                               '<Data name="c" inMemoryType="unsigned8"/>'
                               '<Data name="b" inMemoryType="bitfield4"/>')
        a, c, b = s.encodables
        assert a.terminates_bitfield
        assert b.terminates_bitfield
        assert b.starting_bit_count == 0

    def test_function_closes_group_once(self, support):
        s = structure(support, '<Data name="a" inMemoryType="bitfield3"/>'
                               '<Data name="b" inMemoryType="bitfield3"/>')
        source = s.get_prototype_encode_string(True)
        assert "    int bitcount = 0;\n" in source
        assert source.count("close bit field") == 1
        assert "bitcount = 0; byteindex += 1; // close bit field" in source


class TestDeclarations:
    """Structure typedefs and member alignment."""

    def test_single_member_elided(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>')
        assert s.get_structure_declaration(False) == ""
        assert "typedef struct" in s.get_structure_declaration(True)

    def test_two_members_declared(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="bb" inMemoryType="unsigned16"/>'
                               '<Data name="c" inMemoryType="unsigned16"/>')
        declaration = s.get_structure_declaration(False)
        assert declaration.startswith("typedef struct\n{\n")
        assert declaration.endswith("}DemoS_t;\n")

    def test_nothing_in_memory(self, support):
        s = structure(support, '<Data name="r1" inMemoryType="null" encodedType="unsigned8"/>'
                               '<Data name="r2" inMemoryType="null" encodedType="unsigned16"/>')
        assert s.get_structure_declaration(True) == ""
        assert s.encoded_length.max_encoded_length == "3"

    def test_comment_block(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>', 'name="S" comment="Some data"')
        assert s.get_structure_declaration(True).startswith("/*!\n * Some data\n */\ntypedef struct\n")

    def test_alignment(self):
        text = "    uint8_t a; //!< x\n    uint16_t bb; //!< y\n"
        assert align_structure_data(text) == "    uint8_t  a;  //!< x\n    uint16_t bb; //!< y\n"

    def test_nested_declared_first(self, support):
        s = structure(support, '<Data name="n" inMemoryType="unsigned8"/>'
                               '<Structure name="Inner">'
                               '<Data name="a" inMemoryType="unsigned8"/>'
                               '</Structure>', 'name="Outer"')
        declaration = s.get_structure_declaration(True)
        assert declaration.index("}DemoInner_t;") < declaration.index("}DemoOuter_t;")
        assert "    DemoInner_t Inner;" in declaration


class TestNestedStructures:
    """Parents call the functions of their nested structures."""

    NESTED = ('<Data name="n" inMemoryType="unsigned8"/>'
              '<Structure name="Inner" array="3" variableArray="n">'
              '<Data name="a" inMemoryType="unsigned8"/>'
              '<Data name="b" inMemoryType="unsigned8"/>'
              '</Structure>')

    def test_call_in_loop(self, support):
        s = structure(support, self.NESTED, 'name="Outer"')
        inner = s.encodables[1]
        assert inner.get_encode_string(EmitContext()) == (
            "    for(i = 0; i < (int)user->n && i < 3; i++)\n"
            "        byteindex = encodeDemoInner_t(data, byteindex, &user->Inner[i]);\n")
        assert "byteindex = decodeDemoInner_t(data, byteindex, &user->Inner[i]);" in inner.get_decode_string(EmitContext())
        assert s.uses_iterator()

    def test_parameter_call(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="b" inMemoryType="unsigned8"/>', 'name="Inner"')
        call = s.get_encode_string(EmitContext(is_structure_member=False))
        assert call == "    byteindex = encodeDemoInner_t(data, byteindex, Inner);\n"
        assert s.get_encode_signature() == ", const DemoInner_t* Inner"
        assert s.get_decode_signature() == ", DemoInner_t* Inner"

    def test_length(self, support):
        s = structure(support, self.NESTED, 'name="Outer"')
        assert s.encoded_length.max_encoded_length == "7"
        assert s.encoded_length.min_encoded_length == "1"

    def test_functions_bottom_up(self, support):
        s = structure(support, self.NESTED, 'name="Outer"')
        source = s.get_prototype_encode_string(True, public=True)
        assert "static int encodeDemoInner_t(uint8_t* data, int byteindex, const DemoInner_t* user);" in source
        assert "static int encodeDemoOuter_t" not in source
        assert source.index("int encodeDemoInner_t(") < source.index("int encodeDemoOuter_t(")
        assert "    int i = 0;\n" in source
        assert source.rstrip().endswith("    return byteindex;\n}")

    def test_decode_functions(self, support):
        s = structure(support, self.NESTED, 'name="Outer"')
        source = s.get_prototype_decode_string(False)
        assert "static int decodeDemoOuter_t(const uint8_t* data, int byteindex, DemoOuter_t* user);" in source
        assert "user->n = (uint8_t)uint8FromBytes(data, &byteindex);" in source

    def test_warnings_collected_from_children(self, support):
        s = structure(support, '<Structure name="Inner">'
                               '<Data name="a" inMemoryType="unsigned8" variableArray="x"/>'
                               '</Structure>', 'name="Outer"')
        assert s.warnings == []
        assert any("must specify array length" in w for w in s.all_warnings())


class TestDocumentation:
    """Rows of the encoding table."""

    def test_names_match_encoded_fields(self, support):
        s = structure(support, '<Data name="a" inMemoryType="unsigned8"/>'
                               '<Data name="local" inMemoryType="unsigned8" encodedType="null"/>'
                               '<Data name="b" inMemoryType="unsigned16"/>'
                               '<Data name="c" inMemoryType="bitfield4"/>'
                               '<Data name="d" inMemoryType="bitfield4"/>')
        rows = DocumentationRows()
        end = s.get_sub_documentation_details([], "0", rows)
        encoded = [e.name for e in s.encodables if not e.is_not_encoded()]
        assert documented_names(rows) == encoded
        assert end == "4"
        assert rows.bytes == ["0", "1...2", "3:7...3:4", "3:3...3:0"]

    def test_nested_outline(self, support):
        s = structure(support, TestNestedStructures.NESTED, 'name="Outer"')
        rows = DocumentationRows()
        s.get_sub_documentation_details([], "0", rows)
        assert rows.names == ["1)n", "2)Inner", "2.1)a", "2.2)b"]
        assert rows.encodings[1] == ""
        assert rows.repeats[1] == "n, up to 3"
        assert rows.bytes[1] == "1...6"

    def test_depends_on_note(self, support):
        s = structure(support, '<Data name="flag" inMemoryType="unsigned8"/>'
                               '<Structure name="Extra" dependsOn="flag" comment="Extra data">'
                               '<Data name="a" inMemoryType="unsigned8"/>'
                               '</Structure>', 'name="Outer"')
        rows = DocumentationRows()
        s.get_sub_documentation_details([], "0", rows)
        assert rows.comments[1] == "Extra data. Only included if flag is non-zero."
